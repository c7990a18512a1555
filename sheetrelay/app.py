import argparse
import sys

from . import __version__
from .config import LAST_ROW, ConfigError, Settings
from .env import load_env
from .logger import get_logger
from .pipeline import Orchestrator, PipelineContext, PipelineFailure
from .retry import RemoteOperationFailure
from .schema import parse_jobs
from .sheets import SheetsClient

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def _load_settings() -> Settings:
    settings = Settings.from_env()
    errors = settings.validate()
    if not settings.config_table_id:
        errors.append("SHEETRELAY_CONFIG_SPREADSHEET_ID is not set")
    if not settings.access_token:
        errors.append("GOOGLE_ACCESS_TOKEN is not set")
    if errors:
        raise ConfigError("; ".join(errors))
    return settings


def _build_context(settings: Settings) -> PipelineContext:
    logger = get_logger(level=settings.log_level, log_dir=settings.log_dir)
    client = SheetsClient(settings.access_token, logger=logger)
    return PipelineContext.build(client, settings, logger=logger)


def cmd_run(args: argparse.Namespace) -> int:
    settings = _load_settings()
    context = _build_context(settings)
    try:
        result = Orchestrator(context, dry_run=args.dry_run).run()
    except PipelineFailure as e:
        print(f"Application failed: {e}", file=sys.stderr)
        return EXIT_FAILED
    finally:
        context.logger.log_metrics_summary()
    stats = result.stats
    print(
        f"Done. processed={stats.processed_count} skipped={stats.skipped_count} "
        f"errors={stats.error_count} rows={result.rows_written} time={stats.elapsed:.1f}s"
    )
    return EXIT_OK


def cmd_check_config(args: argparse.Namespace) -> int:
    settings = _load_settings()
    context = _build_context(settings)
    try:
        rows = context.executor.execute(
            lambda: context.client.get(settings.config_table_id, settings.config_range),
            description="get configuration",
        )
    except RemoteOperationFailure as e:
        print(f"Could not read configuration: {e}", file=sys.stderr)
        return EXIT_FAILED
    jobs, rejected = parse_jobs(rows)
    print(f"Valid jobs: {len(jobs)}")
    for job in jobs:
        print(f" - {job.source_id} {job.source_range} -> {job.dest_id} {job.dest_range}")
    if rejected:
        print("Invalid rows:")
        for row_number, errors in rejected:
            print(f" - row {row_number}: {'; '.join(errors)}")
        return EXIT_CONFIG
    destinations = {job.destination for job in jobs}
    if len(destinations) > 1 and settings.destination_policy == LAST_ROW:
        print(
            f"Warning: {len(destinations)} destinations configured but policy is last_row; "
            f"all rows go to {jobs[-1].dest_id} {jobs[-1].dest_range}"
        )
    return EXIT_OK


def main(argv=None) -> int:
    load_env()
    parser = argparse.ArgumentParser(prog="sheetrelay", description="Batch copy Google Sheets ranges into destination sheets")
    parser.add_argument("--version", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command")
    run = subparsers.add_parser("run", help="Fetch every configured source range and rewrite the destinations")
    run.add_argument("--dry-run", action="store_true", help="Fetch and clean, but do not write destinations")
    run.set_defaults(func=cmd_run)

    chk = subparsers.add_parser("check-config", help="Read and validate the configuration range")
    chk.set_defaults(func=cmd_check_config)

    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return EXIT_OK

    if not hasattr(args, "func"):
        parser.print_help()
        return EXIT_OK

    try:
        return args.func(args)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG


if __name__ == "__main__":
    sys.exit(main())
