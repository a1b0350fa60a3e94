import logging
from typing import Dict, List

from catalog_sync.comment_parser import ParsedComment
from catalog_sync.core_definitions import CoreArgs, ServiceInvocation
from catalog_sync.matchers import get_matcher
from catalog_sync.services import ServiceArgs, TString, get_service
from catalog_sync.tset_ops import TSet

logger = logging.getLogger(__name__)


async def invoke_translation_service(
        service_inputs: TSet,
        args: CoreArgs,
        annotations: Dict[str, ParsedComment]
) -> ServiceInvocation:
    """
    Send one batch to the configured translation service.

    Entries without text are not sent; together with any keys the service
    leaves out they end up as skipped. Placeholders are protected by the
    configured matcher for the duration of the call.

    Args:
        service_inputs: Keys and source texts to translate.
        args: The run configuration. ``src_lng`` is the language of ``service_inputs``.
        annotations: Parsed source comments, used for per-key context.

    Returns:
        ServiceInvocation: All inputs and the non-empty translations keyed like the inputs.
    """
    matcher = get_matcher(args.matcher)
    service = get_service(args.service)

    strings: List[TString] = []
    placeholder_mappings: Dict[str, Dict[str, str]] = {}
    for key, value in service_inputs.items():
        if not value or not value.strip():
            continue
        protected, mapping = matcher.protect(value)
        placeholder_mappings[key] = mapping
        annotation = annotations.get(key)
        strings.append(TString(key=key, value=protected, context=annotation.context if annotation else ""))

    translated_by_key: Dict[str, str] = {}
    if strings:
        logger.info("Invoking '%s' for %d string(s) (%s -> %s).",
                    args.service, len(strings), args.src_lng, args.target_lng)
        service_args = ServiceArgs(
            strings=strings,
            src_lng=args.src_lng,
            target_lng=args.target_lng,
            service_config=args.service_config,
            prompt=args.prompt,
            base_url=args.base_url,
            model_name=args.model_name,
            max_concurrent_api_calls=args.max_concurrent_api_calls,
            requests_per_minute=args.requests_per_minute,
            debug=args.debug,
        )
        for t_result in await service.translate_strings(service_args):
            if t_result.key not in placeholder_mappings:
                logger.warning("Service returned unknown key '%s', ignoring it.", t_result.key)
                continue
            translated = matcher.restore(t_result.translated, placeholder_mappings[t_result.key])
            if not translated:
                logger.warning("Service returned an empty translation for '%s'.", t_result.key)
                continue
            translated_by_key[t_result.key] = translated

    # Backends may answer out of order
    results: TSet = {key: translated_by_key[key] for key in service_inputs if key in translated_by_key}
    return ServiceInvocation(inputs=dict(service_inputs), results=results)
