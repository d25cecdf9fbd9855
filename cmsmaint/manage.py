#!/usr/bin/env python3
"""
CMS Search & Cache Maintenance CLI

Usage:
    cms search:reindex [--batch-size N] [--types content,term] [--dry-run] [--force]
    cms search:maintenance {cleanup|cache-clear|stats|optimize} [--days N] [--force]
    cms cache:clear [--components users,roles] [--tags permissions] [--all] [--info] [--force]
    cms cache:warm [--items all_roles,published_content] [--chunk N] [--delay MS] [--force]

Global options (before the command):
    --database PATH     SQLite database (default: CMS_DATABASE_PATH or data/cms.db)
    --config PATH       YAML configuration file
    --json              Machine-readable output on stdout
    -v, --verbose       Debug logging on stderr
"""
import argparse
import logging
import sqlite3
import sys
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from typing import Callable, List, Optional

from cmsmaint.cache.cache_service import CacheService
from cmsmaint.config import COMPONENT_TAGS, Config
from cmsmaint.config_validator import ConfigValidationError, ConfigValidator
from cmsmaint.errors import LockUnavailableError, MaintenanceError, ReindexError, ValidationError
from cmsmaint.ingestion.database import DatabaseConnection, SchemaManager
from cmsmaint.logging_config import configure_logging
from cmsmaint.models import (
    CacheClearItemResponse,
    CacheClearResponse,
    CacheInfoResponse,
    CacheStatsResponse,
    CacheWarmResponse,
    MaintenanceResponse,
    ReindexResponse,
    TypeEstimate,
)
from cmsmaint.operations.maintenance_orchestrator import MaintenanceAction, MaintenanceRun
from cmsmaint.operations.operations_factory import OperationsFactory
from cmsmaint.orchestration.progress_reporter import ReindexProgressReporter

logger = logging.getLogger(__name__)


@dataclass
class CommandContext:
    conn: sqlite3.Connection
    config: Config
    cache: CacheService
    say: Callable[[str], None]


def split_list(values: Optional[List[str]]) -> List[str]:
    """Flatten repeated and comma-separated option values"""
    items = []
    for value in values or []:
        items.extend(part.strip() for part in value.split(",") if part.strip())
    return items


def confirm(prompt: str, stream=None) -> bool:
    """Ask a [y/N] question; the prompt goes to stream when one is given"""
    try:
        if stream is None:
            answer = input(f"{prompt} [y/N] ")
        else:
            print(f"{prompt} [y/N] ", end="", file=stream, flush=True)
            answer = input()
    except EOFError:
        return False
    return answer.strip().lower() == 'y'


def _printer(args) -> Callable[[str], None]:
    """Human-readable lines go to stderr in --json mode"""
    if getattr(args, 'json', False):
        return lambda message="": print(message, file=sys.stderr)
    return print


def _confirmer(args) -> Callable[[str], bool]:
    """Confirmation prompts go to stderr in --json mode"""
    if getattr(args, 'json', False):
        return lambda prompt: confirm(prompt, sys.stderr)
    return confirm


def load_config(args) -> Config:
    try:
        config = Config.load(args.config)
    except FileNotFoundError as e:
        raise ConfigValidationError(f"Config file not found: {e.filename}") from e
    if args.database:
        config.database.path = args.database
    ConfigValidator(config).validate()
    return config


@contextmanager
def command_context(args):
    config = load_config(args)
    db = DatabaseConnection(config.database)
    conn = db.connect()
    try:
        SchemaManager(conn).create_schema()
        cache = OperationsFactory.create_cache_service(conn, config)
        yield CommandContext(conn, config, cache, _printer(args))
    finally:
        db.close()


def print_table(headers: List[str], rows: List[list], say: Callable[[str], None] = print):
    widths = [len(str(h)) for h in headers]
    for row in rows:
        widths = [max(w, len(str(cell))) for w, cell in zip(widths, row)]
    line = "  ".join(str(h).ljust(w) for h, w in zip(headers, widths))
    say(line)
    say("  ".join("-" * w for w in widths))
    for row in rows:
        say("  ".join(str(cell).ljust(w) for cell, w in zip(row, widths)))


def print_stats(cache: CacheService, say: Callable[[str], None]):
    stats = cache.get_stats()
    print_table(
        ['Metric', 'Count'],
        [
            ['Cache Hits', stats['hits']],
            ['Cache Misses', stats['misses']],
            ['Cache Writes', stats['writes']],
            ['Cache Invalidations', stats['invalidations']],
        ],
        say,
    )


def emit_json(args, model):
    if args.json:
        print(model.model_dump_json(indent=2))


def cmd_search_reindex(args):
    """Rebuild the search index from owner tables"""
    with command_context(args) as ctx:
        say = ctx.say
        search_config = ctx.config.search
        if not search_config.enabled:
            say("Search functionality is disabled in configuration.")
            return 1

        service = OperationsFactory.create_search_service(ctx.conn, ctx.config)
        types = split_list(args.types)
        batch_size = args.batch_size if args.batch_size is not None else search_config.indexing.batch_size
        response = ReindexResponse(
            status='failure', dry_run=args.dry_run, batch_size=batch_size,
            types=types, total_indexed=0,
        )

        try:
            estimate = service.estimate_reindex_size(types, batch_size)
        except (ValidationError, sqlite3.Error) as e:
            say(f"Error: {e}")
            response.message = str(e)
            emit_json(args, response)
            return 1

        response.types = list(estimate)
        response.estimate = {name: TypeEstimate(**item) for name, item in estimate.items()}
        say("Search Reindex Configuration:")
        print_table(['Setting', 'Value'], [
            ['Dry Run', 'Yes' if args.dry_run else 'No'],
            ['Batch Size', batch_size],
            ['Types', ', '.join(types) if types else 'All'],
            ['Force', 'Yes' if args.force else 'No'],
        ], say)

        if args.dry_run:
            say("\nDRY RUN - Models that would be indexed:")
            for name, item in estimate.items():
                say(f"  - {name}: {item['count']} items ({item['batches']} batches)")
            total = sum(item['count'] for item in estimate.values())
            say(f"\nWould have indexed {total} items.")
            response.status = 'dry_run'
            response.total_indexed = total
            response.message = f"Would index {total} items"
            emit_json(args, response)
            return 0

        if not args.force and not _confirmer(args)("This will rebuild the search index. Continue?"):
            say("Reindex cancelled.")
            response.status = 'cancelled'
            emit_json(args, response)
            return 0

        start = time.time()
        say("Starting search reindex...")
        reporter = ReindexProgressReporter(estimate, output=say)
        try:
            total = service.reindex_all(reporter, types or None, batch_size)
        except ReindexError as e:
            response.total_indexed = e.total_indexed
            response.failures = e.failures
            response.message = str(e)
            say(f"Reindex failed: {e}")
            say(f"Items indexed before failure: {e.total_indexed}")
            return _finish_reindex(args, response, service, start, 1)
        except (LockUnavailableError, sqlite3.Error) as e:
            logger.error(f"Reindex aborted: {e}")
            say(f"Error: {e}")
            response.message = str(e)
            emit_json(args, response)
            return 1

        response.status = 'success'
        response.total_indexed = total
        response.message = f"Total items indexed: {total}"
        return _finish_reindex(args, response, service, start, 0)


def _finish_reindex(args, response: ReindexResponse, service, start: float, code: int) -> int:
    say = _printer(args)
    response.by_type = dict(service.last_counts)
    response.stale_removed = dict(service.last_stale_removed)
    response.elapsed_seconds = round(time.time() - start, 2)

    rows = [
        [name, response.estimate[name].count if name in response.estimate else '-',
         count, response.stale_removed.get(name, 0)]
        for name, count in response.by_type.items()
    ]
    print_table(['Type', 'Before', 'Indexed', 'Stale Removed'], rows, say)
    if code == 0:
        say(f"Reindex completed successfully in {response.elapsed_seconds} seconds.")
        say(response.message)
    emit_json(args, response)
    return code


def cmd_search_maintenance(args):
    """Run a search maintenance action"""
    say = _printer(args)
    try:
        action = MaintenanceAction.parse(args.action)
    except ValidationError as e:
        say(f"Error: {e}")
        return 1

    with command_context(args) as ctx:
        orchestrator = OperationsFactory.create_maintenance_orchestrator(
            ctx.conn, ctx.config, ctx.cache, output=ctx.say
        )
        say(f"Running search maintenance: {action.value}")
        try:
            run = orchestrator.run(action, days=args.days, force=args.force, confirm=_confirmer(args))
        except (ValidationError, LockUnavailableError) as e:
            say(f"Error: {e}")
            emit_json(args, MaintenanceResponse(
                action=action.value, success=False, message=str(e), elapsed_seconds=0.0
            ))
            return 1

        _render_run(run, say)
        emit_json(args, MaintenanceResponse(
            action=run.action.value, success=run.success, message=run.message,
            elapsed_seconds=run.elapsed_seconds, details=run.details,
        ))
        return 0 if run.success else 1


def _render_run(run: MaintenanceRun, say: Callable[[str], None]):
    details = run.details
    failed = 'error' in details
    if run.action is MaintenanceAction.STATS and not failed:
        say(f"Total indexed items: {details['total_indexed']}")
        if details['by_type']:
            print_table(['Type', 'Count'],
                        [[row['type'] or '-', row['count']] for row in details['by_type']], say)
        if details['performance']:
            perf = details['performance']
            say(f"\nSearch analytics (last {details['window_days']} days):")
            print_table(['Metric', 'Value'], [
                ['Total Searches', perf['total_searches']],
                ['Unique Queries', perf['unique_queries']],
                ['Avg Results', perf['avg_results_per_search']],
                ['Avg Time (ms)', perf['avg_execution_time_ms']],
                ['Success Rate', f"{perf['success_rate']}%"],
            ], say)
        if details['popular_queries']:
            say("\nTop queries:")
            print_table(['Query', 'Searches', 'Avg Results'],
                        [[q['query'], q['search_count'], q['avg_results']]
                         for q in details['popular_queries']], say)
    elif run.action is MaintenanceAction.OPTIMIZE and not failed:
        say(f"  Orphan removal:     {details['orphans']['message']}")
        say(f"  Statistics refresh: {details['statistics_refresh']['hooks_run']} hooks run")
        say(f"  Cache clear:        {details['cache_clear']['message']}")

    status = "completed" if run.success else "failed"
    say(f"{run.message}")
    say(f"Maintenance {status} in {run.elapsed_seconds} seconds.")


def cmd_cache_clear(args):
    """Clear CMS caches by component, tag, or everything"""
    with command_context(args) as ctx:
        say = ctx.say
        cache = ctx.cache
        response = CacheClearResponse()

        if not cache.is_enabled() and not args.force:
            say("Cache is disabled. Use --force to clear anyway.")
            emit_json(args, response)
            return 1

        if args.info:
            info = cache.get_info()
            say("Current Cache Information:")
            print_table(['Setting', 'Value'], [[k, v] for k, v in info.items()], say)
            print_stats(cache, say)
            response.info = CacheInfoResponse(**info, stats=CacheStatsResponse(**cache.get_stats()))

        components = split_list(args.components)
        tags = split_list(args.tags)
        if not (args.all or tags or components):
            _print_clear_help(say)
            emit_json(args, response)
            return 0

        if args.all and not args.force:
            if not _confirmer(args)("This will clear ALL CMS framework caches. Are you sure?"):
                say("Cache clearing cancelled.")
                emit_json(args, response)
                return 0

        clearer = OperationsFactory.create_cache_clearer(cache)
        result = clearer.clear(all_caches=args.all, tags=tags, components=components)
        if result.selector != 'all':
            say(f"Clearing caches by {result.selector}: "
                f"{', '.join(item.name for item in result.items)}")
        for item in result.items:
            mark = "✓" if item.success else "✗"
            say(f"{mark} {item.message}")

        say(f"Cache clearing completed. {result.summary()}")
        response.selector = result.selector
        response.cleared = result.cleared
        response.failed = result.failed
        response.items = [CacheClearItemResponse(**asdict(item)) for item in result.items]
        response.stats = CacheStatsResponse(**cache.get_stats())
        emit_json(args, response)
        return 0 if result.success else 1


def _print_clear_help(say: Callable[[str], None]):
    say("No clearing options specified. Available options:")
    say("")
    say("Clear all CMS caches:")
    say("  cms cache:clear --all")
    say("")
    say("Clear specific components:")
    say("  cms cache:clear --components=users,roles")
    say("")
    say("Clear by tags:")
    say("  cms cache:clear --tags=permissions,plugins")
    say("")
    say(f"Available components: {', '.join(COMPONENT_TAGS)}")


def cmd_cache_warm(args):
    """Warm critical caches"""
    with command_context(args) as ctx:
        say = ctx.say
        cache = ctx.cache
        if not cache.is_enabled() and not args.force:
            say("Cache is disabled. Use --force to warm anyway.")
            return 1

        warmer = OperationsFactory.create_cache_warmer(
            ctx.conn, ctx.config, cache, force=args.force
        )
        items = split_list(args.items) or list(ctx.config.cache.warming.items)
        say("Starting cache warming process...")
        say(f"Items to warm: {', '.join(items)}")

        def report(item):
            if item.success:
                say(f"✓ Warmed cache for: {item.name} ({item.entries} entries)")
            else:
                say(f"✗ Failed to warm cache for: {item.name} - {item.message}")

        try:
            result = warmer.warm(items, chunk_size=args.chunk, delay_ms=args.delay, on_item=report)
        except ValidationError as e:
            say(f"Error: {e}")
            return 1

        say("Cache warming completed!")
        print_stats(cache, say)
        emit_json(args, CacheWarmResponse(
            warmed=result.warmed, failed=result.failed,
            items=[asdict(item) for item in result.items],
            stats=CacheStatsResponse(**cache.get_stats()),
        ))
        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='cms',
        description='CMS Search & Cache Maintenance CLI',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument('--database', help='SQLite database path')
    parser.add_argument('--config', help='YAML configuration file')
    parser.add_argument('--json', action='store_true', help='JSON output on stdout')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # search:reindex
    p = subparsers.add_parser('search:reindex', help='Reindex all searchable content')
    p.add_argument('-b', '--batch-size', type=int, help='Items per batch, 1-1000 (default: 100)')
    p.add_argument('-t', '--types', action='append', help='Types to reindex (e.g. content,term)')
    p.add_argument('--dry-run', action='store_true', help='Show what would be indexed')
    p.add_argument('-f', '--force', action='store_true', help='Skip confirmation')
    p.set_defaults(func=cmd_search_reindex)

    # search:maintenance
    p = subparsers.add_parser('search:maintenance', help='Search maintenance tasks')
    p.add_argument('action', help='cleanup, cache-clear, stats or optimize')
    p.add_argument('--days', type=int, help='Analytics retention in days (default: 365)')
    p.add_argument('-f', '--force', action='store_true', help='Skip confirmation')
    p.set_defaults(func=cmd_search_maintenance)

    # cache:clear
    p = subparsers.add_parser('cache:clear', help='Clear CMS caches')
    p.add_argument('--components', action='append', help='Components to clear (users,roles,...)')
    p.add_argument('--tags', action='append', help='Cache tags to clear')
    p.add_argument('--all', action='store_true', help='Clear all CMS caches')
    p.add_argument('--info', action='store_true', help='Show cache information')
    p.add_argument('--force', action='store_true', help='Skip confirmation / ignore disabled cache')
    p.set_defaults(func=cmd_cache_clear)

    # cache:warm
    p = subparsers.add_parser('cache:warm', help='Warm critical caches')
    p.add_argument('--items', action='append', help='Items to warm (all_roles,...)')
    p.add_argument('--chunk', type=int, default=100, help='Rows per chunk (default: 100)')
    p.add_argument('--delay', type=int, default=100, help='Delay between chunks in ms (default: 100)')
    p.add_argument('--force', action='store_true', help='Warm even if cache is disabled')
    p.set_defaults(func=cmd_cache_warm)

    return parser


def run(argv: Optional[List[str]] = None) -> int:
    """Parse arguments and run one command, returning its exit code"""
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    try:
        return args.func(args)
    except ConfigValidationError as e:
        print(str(e), file=sys.stderr)
        return 1
    except MaintenanceError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except sqlite3.Error as e:
        logger.debug("Database error", exc_info=True)
        print(f"Database error: {e}", file=sys.stderr)
        return 1


def main():
    sys.exit(run())


if __name__ == '__main__':
    main()
