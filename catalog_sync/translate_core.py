"""
Incremental translation of a target mapping.

The source mapping is compared with the previous target, candidate keys are
routed by their ``@manual`` annotations, the translation service is invoked
for the buckets that need it, and the results are merged back into a new
target that follows the source's key order.
"""
import logging
import os
from dataclasses import dataclass, replace
from typing import Dict, Optional

from catalog_sync.comment_parser import ParsedComment, has_manual_marking, parse_comments, should_skip_for_manual
from catalog_sync.core_definitions import (
    ChangeSet,
    CoreArgs,
    CoreResults,
    ServiceInvocation,
    ServiceInvocationBuilder,
)
from catalog_sync.errors import ConfigError, FileError
from catalog_sync.file_formats import read_tfile
from catalog_sync.invoke_service import invoke_translation_service
from catalog_sync.tset_ops import CompareMode, TSet, join_results_preserve_order, left_minus_right, select_left_distinct

logger = logging.getLogger(__name__)


@dataclass
class ManualFilterResult:
    # No @manual marking, translated by the service
    to_translate: TSet
    # Target language is listed in @manual
    to_skip: TSet
    # @manual without the target language and no source override
    to_copy_original: TSet
    # @manual without the target language, translated from the override source
    to_translate_from_override: TSet


def filter_by_manual_marking(
        inputs: TSet,
        annotations: Dict[str, ParsedComment],
        target_lng: str,
        source_override: Dict[str, str]
) -> ManualFilterResult:
    """Split the candidate entries into the four disjoint routing buckets."""
    has_override = bool(source_override.get(target_lng))
    filtered = ManualFilterResult({}, {}, {}, {})

    for key, value in inputs.items():
        parsed = annotations.get(key)
        if parsed is None or not has_manual_marking(parsed):
            filtered.to_translate[key] = value
        elif should_skip_for_manual(parsed, target_lng):
            filtered.to_skip[key] = value
        elif has_override:
            filtered.to_translate_from_override[key] = value
        else:
            filtered.to_copy_original[key] = value
    return filtered


def infer_override_source_path(src_file: str, override_lng: str) -> str:
    """
    Infer the override source path from the source path.

    Example:
        /path/to/en.po with override zh-Hans -> /path/to/zh-Hans.po
    """
    directory = os.path.dirname(src_file)
    _, ext = os.path.splitext(src_file)
    return os.path.join(directory, f"{override_lng}{ext}")


def read_override_source(src_file: str, src_format: str, override_lng: str) -> Optional[TSet]:
    """Read the override source. Returns None (with a warning) if it cannot be read."""
    override_path = infer_override_source_path(src_file, override_lng)
    try:
        return read_tfile(override_path, override_lng, src_format)
    except FileError as e:
        logger.warning("Could not read override source file '%s': %s", override_path, e)
        return None


def extract_strings_to_translate(args: CoreArgs) -> TSet:
    if not args.src:
        raise ConfigError("Did not find any source translations")
    if args.old_target is None:
        # Translate everything if an old target does not yet exist.
        return dict(args.src)
    # Keys missing from the target or still without a value.
    return select_left_distinct(args.src, args.old_target, CompareMode.COMPARE_KEYS_AND_NULL_VALUES)


def extract_stale_translations(args: CoreArgs) -> Optional[TSet]:
    if args.old_target is None:
        return None
    return left_minus_right(args.old_target, args.src)


def compute_change_set(args: CoreArgs, service_invocation: Optional[ServiceInvocation]) -> ChangeSet:
    deleted = extract_stale_translations(args)
    if service_invocation is None:
        return ChangeSet(added={}, updated={}, skipped={}, deleted=deleted)

    skipped = select_left_distinct(service_invocation.inputs, service_invocation.results, CompareMode.COMPARE_KEYS)
    if args.old_target is None:
        return ChangeSet(added=dict(service_invocation.results), updated={}, skipped=skipped, deleted=deleted)

    added = select_left_distinct(service_invocation.results, args.old_target, CompareMode.COMPARE_KEYS)
    updated = select_left_distinct(service_invocation.results, args.old_target, CompareMode.COMPARE_VALUES)
    return ChangeSet(added=added, updated=updated, skipped=skipped, deleted=deleted)


def compute_new_target(
        args: CoreArgs,
        change_set: ChangeSet,
        service_invocation: Optional[ServiceInvocation]
) -> TSet:
    old_target: TSet = args.old_target or {}
    if change_set.deleted:
        old_target = left_minus_right(old_target, change_set.deleted)
    translate_results = service_invocation.results if service_invocation else {}
    return join_results_preserve_order(
        translate_results=translate_results,
        change_set=change_set,
        old_target=old_target,
        src=args.src,
    )


async def _translate_from_override(
        entries: TSet,
        args: CoreArgs,
        annotations: Dict[str, ParsedComment],
        builder: ServiceInvocationBuilder
) -> None:
    override_lng = args.source_override[args.target_lng]
    override_source = read_override_source(args.src_file, args.src_format, override_lng)
    if override_source is None:
        logger.warning("Falling back to the original text for %d entries.", len(entries))
        builder.copy_original(entries)
        return

    override_inputs: TSet = {}
    for key in entries:
        override_value = override_source.get(key)
        if override_value:
            override_inputs[key] = override_value
    missing = len(entries) - len(override_inputs)
    if missing:
        logger.debug("%d entries have no value in the override source %s.", missing, override_lng)
    if not override_inputs:
        return

    override_args = replace(args, src=override_inputs, src_lng=override_lng)
    builder.merge(await invoke_translation_service(override_inputs, override_args, annotations))


def log_core_results(args: CoreArgs, results: CoreResults) -> None:
    change_set = results.change_set
    if change_set.deleted:
        logger.info("Deleted %d stale translations.", len(change_set.deleted))
    if change_set.added:
        logger.info("Added %d new translations.", len(change_set.added))
    if change_set.updated:
        logger.info("Updated %d translations.", len(change_set.updated))
    if change_set.skipped:
        logger.warning("Skipped %d translations that the service did not return.", len(change_set.skipped))
    if not (change_set.deleted or change_set.added or change_set.updated):
        logger.info("Target '%s' is up to date.", args.target_lng)
    for key, value in {**change_set.added, **change_set.updated}.items():
        logger.debug("  %s -> %s", key, value)


async def translate_core(args: CoreArgs) -> CoreResults:
    """
    Run one incremental translation of ``args.src`` into ``args.target_lng``.

    Raises:
        ConfigError: If the source is empty or the service configuration is unusable.
    """
    raw_service_inputs = extract_strings_to_translate(args)
    annotations = parse_comments(args.comments)
    filtered = filter_by_manual_marking(raw_service_inputs, annotations, args.target_lng, args.source_override)

    if filtered.to_skip:
        logger.info("Skip %d entries marked as @manual:%s", len(filtered.to_skip), args.target_lng)
    if filtered.to_copy_original:
        logger.info("Copy original text for %d entries with @manual (no override)", len(filtered.to_copy_original))
    if filtered.to_translate_from_override:
        logger.info("Translate %d entries from override source %s",
                    len(filtered.to_translate_from_override), args.source_override[args.target_lng])

    builder = ServiceInvocationBuilder()
    if filtered.to_translate:
        builder.merge(await invoke_translation_service(filtered.to_translate, args, annotations))
    if filtered.to_copy_original:
        builder.copy_original(filtered.to_copy_original)
    if filtered.to_translate_from_override:
        await _translate_from_override(filtered.to_translate_from_override, args, annotations, builder)

    service_invocation = builder.build()
    change_set = compute_change_set(args, service_invocation)
    results = CoreResults(
        change_set=change_set,
        service_invocation=service_invocation,
        new_target=compute_new_target(args, change_set, service_invocation),
    )
    log_core_results(args, results)
    return results
