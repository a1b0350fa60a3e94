import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from catalog_sync import __version__
from catalog_sync.app_config import AppConfig, load_app_config
from catalog_sync.core_definitions import CoreArgs, CoreResults
from catalog_sync.errors import CatalogSyncError
from catalog_sync.file_formats import FORMAT_REGISTRY, read_comments, read_target_file, read_tfile, write_tfile
from catalog_sync.logging_config import LOGGER_NAME
from catalog_sync.matchers import MATCHER_REGISTRY
from catalog_sync.services import SERVICE_REGISTRY
from catalog_sync.translate_core import translate_core

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="catalog-sync",
        description="Translate new and changed entries of a source catalog into a target file.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--src-file", required=True, help="The source file to be translated")
    parser.add_argument("--src-lng", required=True, help="The source language")
    parser.add_argument("--src-format", required=True, choices=sorted(FORMAT_REGISTRY), help="The source file format")
    parser.add_argument("--target-file", required=True, help="The target file for the translations")
    parser.add_argument("--target-lng", required=True, help="The target language")
    parser.add_argument("--target-format", required=True, choices=sorted(FORMAT_REGISTRY),
                        help="The target file format")
    parser.add_argument("--service", choices=sorted(SERVICE_REGISTRY), help="The translation service")
    parser.add_argument("--service-config", dest="api_key", help="Credential for the translation service")
    parser.add_argument("--matcher", choices=sorted(MATCHER_REGISTRY), help="Interpolation matcher")
    parser.add_argument("--prompt", help="Extra instructions for AI translation services")
    parser.add_argument("--source-override",
                        help="Alternate source languages, e.g. 'zh-Hant:zh-Hans,pt-BR:pt-PT'")
    parser.add_argument("--base-url", help="Custom API endpoint for the translation service")
    parser.add_argument("--model", dest="model_name", help="Model used by AI translation services")
    parser.add_argument("--debug", action="store_true", default=None, help="Log service requests and responses")
    return parser


def build_core_args(cli_args: argparse.Namespace, app_config: AppConfig) -> CoreArgs:
    src = read_tfile(cli_args.src_file, cli_args.src_lng, cli_args.src_format)
    return CoreArgs(
        src=src,
        src_lng=cli_args.src_lng,
        src_file=cli_args.src_file,
        src_format=cli_args.src_format,
        old_target=read_target_file(cli_args.target_file, cli_args.target_lng, cli_args.target_format),
        target_lng=cli_args.target_lng,
        service=app_config.service,
        matcher=app_config.matcher,
        service_config=app_config.api_key,
        prompt=app_config.prompt,
        source_override=app_config.source_override,
        comments=read_comments(cli_args.src_file, cli_args.src_format),
        base_url=app_config.base_url,
        model_name=app_config.model_name,
        max_concurrent_api_calls=app_config.max_concurrent_api_calls,
        requests_per_minute=app_config.requests_per_minute,
        debug=app_config.debug,
    )


def write_core_results(cli_args: argparse.Namespace, args: CoreArgs, results: CoreResults) -> bool:
    """Write the new target unless it is unchanged. Returns True if a file was written."""
    if args.old_target is not None and list(args.old_target.items()) == list(results.new_target.items()):
        logger.info("Nothing changed, '%s' is left untouched.", cli_args.target_file)
        return False
    write_tfile(cli_args.target_file, cli_args.target_format, results.new_target, cli_args.target_lng)
    return True


async def main(argv: Optional[List[str]] = None) -> int:
    cli_args = build_parser().parse_args(argv)
    try:
        app_config = load_app_config(vars(cli_args))
        args = build_core_args(cli_args, app_config)
        results = await translate_core(args)
        write_core_results(cli_args, args, results)
    except CatalogSyncError as e:
        logging.getLogger(LOGGER_NAME).critical("%s", e)
        return 1
    except Exception as main_exc:
        logging.getLogger(LOGGER_NAME).critical("An unexpected error occurred during execution: %s", main_exc,
                                                exc_info=True)
        return 1
    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
