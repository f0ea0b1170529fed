"""Command line entrypoint for full syncs.

The deployment supplies its indexables through an import path of the form
``package.module:factory``; the factory receives the ``SyncConfig`` and
returns an ``IndexableRegistry``. A tenant directory factory can be supplied
the same way.

Examples
- ``searchsync sync --registry myapp.search:build_registry --put-mapping``
- ``searchsync status --registry myapp.search:build_registry``
- ``searchsync serve --registry myapp.search:build_registry``
"""

import argparse
import importlib
import sys
from typing import Any, Callable, List, Optional

import structlog

from .common.config import ApiConfig
from .common.logging import configure_logging
from .common.tenancy import TenantDirectory
from .indexables.registry import IndexableRegistry
from .sync.orchestrator import SyncArgs, SyncOrchestrator, build_orchestrator
from .sync.progress import ProgressEvent

logger = structlog.get_logger("searchsync.cli")


def load_factory(path: str) -> Callable[..., Any]:
    """Import ``module:attribute`` and return the attribute."""
    module_name, _, attribute = path.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"Expected 'module:callable', got {path!r}")

    module = importlib.import_module(module_name)
    try:
        return getattr(module, attribute)
    except AttributeError:
        raise ValueError(f"{module_name!r} has no attribute {attribute!r}") from None


def print_progress(event: ProgressEvent) -> None:
    """Write a progress event to stdout (errors to stderr)."""
    stream = sys.stderr if event.is_error else sys.stdout
    print(event.message, file=stream)


def create_orchestrator(args: argparse.Namespace, config: ApiConfig) -> SyncOrchestrator:
    """Build the orchestrator from the command line factories."""
    registry = load_factory(args.registry)(config)
    if not isinstance(registry, IndexableRegistry):
        raise ValueError(f"{args.registry} did not return an IndexableRegistry")

    tenants: Optional[TenantDirectory] = None
    if args.tenants:
        tenants = load_factory(args.tenants)(config)

    return build_orchestrator(config, registry, tenants=tenants)


def parse_options(values: List[str]) -> dict:
    """Parse repeated ``--option key=value`` flags."""
    options = {}
    for value in values:
        key, sep, option_value = value.partition("=")
        if not sep:
            raise ValueError(f"Expected key=value, got {value!r}")
        options[key] = option_value
    return options


def run_sync(orchestrator: SyncOrchestrator, args: argparse.Namespace) -> int:
    """Run (or resume) a full sync to completion."""
    orchestrator.full_index(SyncArgs(
        put_mapping=args.put_mapping,
        per_page=args.per_page,
        output=print_progress,
        extra=parse_options(args.option),
    ))
    return 0


def run_status(orchestrator: SyncOrchestrator, args: argparse.Namespace) -> int:
    """Print the state of the current run."""
    index_meta = orchestrator.status()
    if index_meta is None:
        print("No sync in progress")
        return 0

    current = index_meta.get("current_item") or {}
    print(f"Queued items: {len(index_meta['queue'])}")
    print(f"Current item: {current.get('indexable', '-')} (site {current.get('tenant_id') or 'global'})")
    print(f"Progress: {index_meta['offset']}/{index_meta['found_items']}")
    print(f"Pending aliases: {', '.join(index_meta['alias_backlog']) or '-'}")
    return 0


def run_cancel(orchestrator: SyncOrchestrator, args: argparse.Namespace) -> int:
    """Discard the current run."""
    if not orchestrator.cancel(SyncArgs(output=print_progress)):
        print("No sync in progress")
    return 0


def run_serve(orchestrator: SyncOrchestrator, args: argparse.Namespace, config: ApiConfig) -> int:
    """Serve the HTTP driver."""
    import uvicorn

    from .api.main import create_app

    uvicorn.run(
        create_app(orchestrator),
        host=args.host or config.sync_api_host,
        port=args.port or config.sync_api_port,
        log_level=config.sync_log_level.lower(),
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(prog="searchsync", description="Resumable full sync of search indexes")
    parser.add_argument("--registry", required=True, help="module:callable returning an IndexableRegistry")
    parser.add_argument("--tenants", help="module:callable returning a TenantDirectory")
    parser.add_argument("--log-format", choices=["json", "console"], help="Override the configured log format")

    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync", help="Run or resume a full sync")
    sync_parser.add_argument("--put-mapping", action="store_true", help="Delete every index and send its mapping first")
    sync_parser.add_argument("--per-page", type=int, help="Objects indexed per step; overrides the stored bulk_setting")
    sync_parser.add_argument("--option", action="append", default=[], help="key=value passed to sync hooks")

    subparsers.add_parser("status", help="Show the current run")
    subparsers.add_parser("cancel", help="Discard the current run")

    serve_parser = subparsers.add_parser("serve", help="Serve the HTTP driver")
    serve_parser.add_argument("--host", help="Bind address")
    serve_parser.add_argument("--port", type=int, help="Bind port")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main function for CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = ApiConfig()
    configure_logging("searchsync", config.sync_log_level, args.log_format or config.sync_log_format)

    try:
        orchestrator = create_orchestrator(args, config)
    except (ImportError, ValueError) as e:
        logger.error("Failed to set up sync", error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.command == "sync":
        return run_sync(orchestrator, args)
    if args.command == "status":
        return run_status(orchestrator, args)
    if args.command == "cancel":
        return run_cancel(orchestrator, args)
    if args.command == "serve":
        return run_serve(orchestrator, args, config)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
