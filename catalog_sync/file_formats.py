"""
Readers and writers for translation files.

Every format turns a file into an ordered key -> text mapping and back. The
source file may additionally expose raw per-key comments, which carry the
``@manual``/``@context`` annotations.
"""
import json
import logging
import os
from typing import Any, Dict, Optional, Protocol

import polib
import yaml

from catalog_sync.errors import ConfigError, FileError
from catalog_sync.properties_parser import entries_from_tset, parse_properties_file, reassemble_file
from catalog_sync.tset_ops import TSet

logger = logging.getLogger(__name__)

NESTED_KEY_SEPARATOR = "."
PO_CONTEXT_SEPARATOR = "\x04"


class TFormat(Protocol):
    def read(self, path: str, lng: str) -> TSet:
        ...

    def read_comments(self, path: str) -> Dict[str, str]:
        ...

    def write(self, path: str, tset: TSet, lng: str) -> None:
        ...


def _ensure_parent_dir(path: str) -> None:
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)


def _write_text(path: str, content: str) -> None:
    try:
        _ensure_parent_dir(path)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(content)
    except OSError as e:
        raise FileError(f"Could not write '{path}': {e}", path) from e


def _read_text(path: str) -> str:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise FileError(f"Could not read '{path}': {e}", path) from e


def _check_leaf(path: str, key: str, value: Any) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    raise FileError(f"Value of '{key}' in '{path}' is not a string: {value!r}", path)


def flatten_nested(path: str, nested: Dict[str, Any], prefix: str = "") -> TSet:
    """Flatten nested objects into dotted keys, keeping document order."""
    flat: TSet = {}
    for key, value in nested.items():
        full_key = f"{prefix}{NESTED_KEY_SEPARATOR}{key}" if prefix else str(key)
        if isinstance(value, dict):
            flat.update(flatten_nested(path, value, full_key))
        else:
            flat[full_key] = _check_leaf(path, full_key, value)
    return flat


def unflatten_nested(path: str, tset: TSet) -> Dict[str, Any]:
    nested: Dict[str, Any] = {}
    for key, value in tset.items():
        parts = key.split(NESTED_KEY_SEPARATOR)
        node = nested
        for part in parts[:-1]:
            child = node.setdefault(part, {})
            if not isinstance(child, dict):
                raise FileError(f"Key '{key}' collides with a value at '{part}' while writing '{path}'", path)
            node = child
        if isinstance(node.get(parts[-1]), dict):
            raise FileError(f"Key '{key}' collides with a nested object while writing '{path}'", path)
        node[parts[-1]] = value
    return nested


def po_entry_key(entry: polib.POEntry) -> str:
    """Key of a PO entry: ``msgid``, prefixed with ``msgctxt`` and EOT as gettext does."""
    if entry.msgctxt is not None:
        return f"{entry.msgctxt}{PO_CONTEXT_SEPARATOR}{entry.msgid}"
    return entry.msgid


def new_po_entry(key: str) -> polib.POEntry:
    msgctxt, separator, msgid = key.partition(PO_CONTEXT_SEPARATOR)
    if separator:
        return polib.POEntry(msgctxt=msgctxt, msgid=msgid)
    return polib.POEntry(msgid=key)


class PoFormat:
    """
    gettext PO files. Extracted comments (``#.``) are the annotation source.

    Plural entries (``msgid_plural``) do not fit a one-text-per-key mapping:
    they are not read, and plural entries already present in a target file are
    written back unchanged after the singular entries.
    """

    @staticmethod
    def _load(path: str) -> polib.POFile:
        try:
            return polib.pofile(path, encoding='utf-8')
        except (OSError, ValueError) as e:
            raise FileError(f"Could not parse PO file '{path}': {e}", path) from e

    @staticmethod
    def _entries(po: polib.POFile):
        return [entry for entry in po if not entry.obsolete and entry.msgid and not entry.msgid_plural]

    @staticmethod
    def _plural_entries(po: polib.POFile):
        return [entry for entry in po if not entry.obsolete and entry.msgid_plural]

    def read(self, path: str, lng: str) -> TSet:
        po = self._load(path)
        plural_count = len(self._plural_entries(po))
        if plural_count:
            logger.info("Ignoring %d plural entries in '%s'.", plural_count, path)
        return {po_entry_key(entry): entry.msgstr or None for entry in self._entries(po)}

    def read_comments(self, path: str) -> Dict[str, str]:
        po = self._load(path)
        return {po_entry_key(entry): entry.comment for entry in self._entries(po) if entry.comment}

    def write(self, path: str, tset: TSet, lng: str) -> None:
        existing: Dict[str, polib.POEntry] = {}
        plural_entries = []
        metadata = {
            'MIME-Version': '1.0',
            'Content-Type': 'text/plain; charset=UTF-8',
            'Content-Transfer-Encoding': '8bit',
        }
        if os.path.exists(path):
            old_po = self._load(path)
            metadata.update(old_po.metadata)
            existing = {po_entry_key(entry): entry for entry in self._entries(old_po)}
            plural_entries = self._plural_entries(old_po)
        metadata['Language'] = lng

        po = polib.POFile()
        po.metadata = metadata
        for key, value in tset.items():
            entry = existing[key] if key in existing else new_po_entry(key)
            entry.msgstr = value or ''
            po.append(entry)
        for entry in plural_entries:
            po.append(entry)
        try:
            _ensure_parent_dir(path)
            po.save(path)
        except OSError as e:
            raise FileError(f"Could not write '{path}': {e}", path) from e


class FlatJsonFormat:
    def read(self, path: str, lng: str) -> TSet:
        try:
            data = json.loads(_read_text(path))
        except json.JSONDecodeError as e:
            raise FileError(f"Invalid JSON in '{path}': {e}", path) from e
        if not isinstance(data, dict):
            raise FileError(f"'{path}' must contain a JSON object", path)
        return {key: _check_leaf(path, key, value) for key, value in data.items()}

    def read_comments(self, path: str) -> Dict[str, str]:
        return {}

    def write(self, path: str, tset: TSet, lng: str) -> None:
        _write_text(path, json.dumps(tset, ensure_ascii=False, indent=2) + "\n")


class NestedJsonFormat:
    def read(self, path: str, lng: str) -> TSet:
        try:
            data = json.loads(_read_text(path))
        except json.JSONDecodeError as e:
            raise FileError(f"Invalid JSON in '{path}': {e}", path) from e
        if not isinstance(data, dict):
            raise FileError(f"'{path}' must contain a JSON object", path)
        return flatten_nested(path, data)

    def read_comments(self, path: str) -> Dict[str, str]:
        return {}

    def write(self, path: str, tset: TSet, lng: str) -> None:
        nested = unflatten_nested(path, tset)
        _write_text(path, json.dumps(nested, ensure_ascii=False, indent=2) + "\n")


class YamlFormat:
    def read(self, path: str, lng: str) -> TSet:
        try:
            data = yaml.safe_load(_read_text(path))
        except yaml.YAMLError as e:
            raise FileError(f"Invalid YAML in '{path}': {e}", path) from e
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise FileError(f"'{path}' must contain a YAML mapping", path)
        return flatten_nested(path, data)

    def read_comments(self, path: str) -> Dict[str, str]:
        return {}

    def write(self, path: str, tset: TSet, lng: str) -> None:
        nested = unflatten_nested(path, tset)
        _write_text(path, yaml.safe_dump(nested, allow_unicode=True, sort_keys=False, default_flow_style=False))


class PropertiesFormat:
    """Java .properties files. Comment lines above a key are its annotation."""

    @staticmethod
    def _parse(path: str):
        try:
            return parse_properties_file(path)
        except (OSError, UnicodeDecodeError) as e:
            raise FileError(f"Could not read properties file '{path}': {e}", path) from e

    def read(self, path: str, lng: str) -> TSet:
        _, values = self._parse(path)
        return {key: value or None for key, value in values.items()}

    def read_comments(self, path: str) -> Dict[str, str]:
        parsed_lines, _ = self._parse(path)
        return {
            line['key']: line['comment']
            for line in parsed_lines
            if line['type'] == 'entry' and line.get('comment')
        }

    def write(self, path: str, tset: TSet, lng: str) -> None:
        _write_text(path, reassemble_file(entries_from_tset(tset)))


FORMAT_REGISTRY: Dict[str, TFormat] = {
    "po": PoFormat(),
    "flat-json": FlatJsonFormat(),
    "nested-json": NestedJsonFormat(),
    "yaml": YamlFormat(),
    "properties": PropertiesFormat(),
}


def get_format(name: str) -> TFormat:
    try:
        return FORMAT_REGISTRY[name]
    except KeyError:
        raise ConfigError(
            f"Unknown file format '{name}'. Available formats: {', '.join(FORMAT_REGISTRY)}"
        ) from None


def read_tfile(path: str, lng: str, file_format: str) -> TSet:
    """
    Read a translation file into an ordered mapping.

    Raises:
        FileError: If the file does not exist or cannot be parsed.
    """
    fmt = get_format(file_format)
    if not os.path.isfile(path):
        raise FileError(f"File '{path}' does not exist", path)
    tset = fmt.read(path, lng)
    logger.debug("Read %d entries from '%s'", len(tset), path)
    return tset


def read_comments(path: str, file_format: str) -> Dict[str, str]:
    """Read the raw per-key comments of a source file. Formats without comments yield {}."""
    return get_format(file_format).read_comments(path)


def read_target_file(path: str, lng: str, file_format: str) -> Optional[TSet]:
    """
    Read the previous target. A target that does not exist yet is None; a
    target that exists but cannot be parsed raises FileError.
    """
    if not os.path.exists(path):
        logger.info("Target file '%s' does not exist yet, translating everything.", path)
        return None
    return read_tfile(path, lng, file_format)


def write_tfile(path: str, file_format: str, tset: TSet, lng: str) -> None:
    get_format(file_format).write(path, tset, lng)
    logger.info("Wrote %d entries to '%s'", len(tset), path)
