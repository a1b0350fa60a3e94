import re
from typing import Dict, List, Tuple

from catalog_sync.tset_ops import TSet


def _has_unescaped_trailing_backslash(s: str) -> bool:
    """Check if a string ends with an odd number of backslashes."""
    if not s.endswith('\\'):
        return False
    count = 0
    i = len(s) - 1
    while i >= 0 and s[i] == '\\':
        count += 1
        i -= 1
    return count % 2 == 1


def _find_separator(line: str) -> int:
    """Return the index of the first unescaped ':' or '=', or -1."""
    for j, char in enumerate(line):
        if char in (':', '='):
            backslash_count = 0
            k = j - 1
            while k >= 0 and line[k] == '\\':
                backslash_count += 1
                k -= 1
            if backslash_count % 2 == 0:
                return j
    return -1


def _comment_text(line: str) -> str:
    return line.lstrip()[1:].strip()


ESCAPE_SEQUENCE_PATTERN = re.compile(r'\\(u[0-9a-fA-F]{4}|.)', re.DOTALL)
UNESCAPED_CHARS = {'n': '\n', 't': '\t', 'r': '\r', 'f': '\f'}
ESCAPED_CHARS = {'\\': '\\\\', '\n': '\\n', '\t': '\\t', '\r': '\\r', '\f': '\\f'}


def unescape(text: str) -> str:
    """Resolve escapes such as \\n, \\t, \\uXXXX and a backslash before any other character."""
    def replace_escape(match):
        sequence = match.group(1)
        if len(sequence) == 5:
            return chr(int(sequence[1:], 16))
        return UNESCAPED_CHARS.get(sequence, sequence)

    return ESCAPE_SEQUENCE_PATTERN.sub(replace_escape, text)


def _escape_chars(text: str) -> str:
    return ''.join(ESCAPED_CHARS.get(char, char) for char in text)


def escape_value(value: str) -> str:
    escaped = _escape_chars(value)
    # Leading whitespace would be taken as part of the separator
    if escaped.startswith(' '):
        escaped = '\\' + escaped
    return escaped


def parse_properties_file(file_path: str) -> Tuple[List[Dict], Dict[str, str]]:
    """
    Parse a .properties file.

    Comment lines ('#' or '!') directly above an entry are attached to that
    entry as its 'comment'. A blank line breaks the attachment.

    Args:
        file_path (str): The path to the .properties file.

    Returns:
        Tuple[List[Dict], Dict[str, str]]: A list of parsed lines and a dictionary of values.
    """
    with open(file_path, 'r', encoding='utf-8') as file:
        lines = file.readlines()

    parsed_lines = []
    values = {}
    pending_comments: List[str] = []
    i = 0
    while i < len(lines):
        line = lines[i].rstrip('\n')
        stripped_line = line.lstrip()

        if not stripped_line:
            pending_comments = []
            parsed_lines.append({'type': 'comment_or_blank', 'content': lines[i]})
            i += 1
            continue
        if stripped_line.startswith(('#', '!')):
            pending_comments.append(_comment_text(line))
            parsed_lines.append({'type': 'comment_or_blank', 'content': lines[i]})
            i += 1
            continue

        sep_index = _find_separator(line)
        line_number = i
        if sep_index != -1:
            start_sep_group = sep_index
            while start_sep_group > 0 and line[start_sep_group - 1].isspace():
                start_sep_group -= 1

            end_sep_group = sep_index
            while end_sep_group < len(line) - 1 and line[end_sep_group + 1].isspace():
                end_sep_group += 1

            key_raw = line[:start_sep_group]
            separator_group = line[start_sep_group:end_sep_group + 1]
            value = line[end_sep_group + 1:]
            key = unescape(key_raw.strip())

            while _has_unescaped_trailing_backslash(value):
                value = value[:-1]
                i += 1
                if i < len(lines):
                    value += lines[i].rstrip('\n').lstrip()
                else:
                    break
            value = unescape(value)
            i += 1
        else:
            # A key with no value
            key = unescape(line.strip())
            separator_group = '='
            value = ''
            i += 1

        values[key] = value
        parsed_lines.append({
            'type': 'entry',
            'key': key,
            'value': value,
            'line_number': line_number,
            'separator_group': separator_group,
            'comment': '\n'.join(pending_comments),
        })
        pending_comments = []
    return parsed_lines, values


def _escape_key(key: str) -> str:
    return re.sub(r'([:=# !])', r'\\\1', _escape_chars(key))


def reassemble_file(parsed_lines: List[Dict]) -> str:
    """
    Reassemble the file content from parsed lines.

    Args:
        parsed_lines (List[Dict]): The parsed lines.

    Returns:
        str: The reassembled file content.
    """
    lines = []
    for item in parsed_lines:
        if item['type'] == 'entry':
            value = escape_value(item['value'] or '')
            separator_group = item.get('separator_group', '=')
            lines.append(f"{_escape_key(item['key'])}{separator_group}{value}\n")
        else:
            lines.append(item['content'])
    return ''.join(lines)


def entries_from_tset(tset: TSet) -> List[Dict]:
    """Build parsed-line entries for a mapping, one entry per key in order."""
    return [
        {'type': 'entry', 'key': key, 'value': value, 'line_number': index, 'separator_group': '='}
        for index, (key, value) in enumerate(tset.items())
    ]
