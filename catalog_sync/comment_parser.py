from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

MANUAL_DIRECTIVE = "@manual:"
CONTEXT_DIRECTIVE = "@context:"


@dataclass
class ParsedComment:
    """Directives extracted from the comment attached to a source key."""
    # Languages that must be translated by hand
    manual: List[str] = field(default_factory=list)
    # Free text handed to the translation service
    context: str = ""


def parse_extracted_comment(extracted: Optional[str]) -> ParsedComment:
    """
    Parse the raw comment of a source entry into a ParsedComment.

    Supported directives, separated by ';' or newlines:
    - ``@manual:zh-Hans,zh-Hant`` lists languages requiring manual translation.
      A later ``@manual:`` replaces an earlier one.
    - ``@context:text`` adds context for the translation service.
    - Plain text without a leading '@' is context as well.
    Unknown '@' directives are ignored.

    Example:
        #. @manual:zh-Hans; @context:This is a save button

    Args:
        extracted: The comment string, or None if the entry has no comment.

    Returns:
        ParsedComment: The manual languages and the joined context.
    """
    result = ParsedComment()
    if not extracted:
        return result

    parts: List[str] = []
    for line in extracted.split("\n"):
        for part in line.split(";"):
            trimmed = part.strip()
            if trimmed:
                parts.append(trimmed)

    context_parts: List[str] = []
    for part in parts:
        if part.startswith(MANUAL_DIRECTIVE):
            lang_list = part[len(MANUAL_DIRECTIVE):].strip()
            if lang_list:
                result.manual = [lang.strip() for lang in lang_list.split(",") if lang.strip()]
        elif part.startswith(CONTEXT_DIRECTIVE):
            context_text = part[len(CONTEXT_DIRECTIVE):].strip()
            if context_text:
                context_parts.append(context_text)
        elif not part.startswith("@"):
            context_parts.append(part)

    result.context = " ".join(context_parts)
    return result


def parse_comments(raw_comments: Mapping[str, str]) -> Dict[str, ParsedComment]:
    """Parse every raw comment of a source file, keyed like the source."""
    return {key: parse_extracted_comment(comment) for key, comment in raw_comments.items()}


def should_skip_for_manual(parsed_comment: ParsedComment, target_lng: str) -> bool:
    return target_lng in parsed_comment.manual


def has_manual_marking(parsed_comment: ParsedComment) -> bool:
    return len(parsed_comment.manual) > 0
