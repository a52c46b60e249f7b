from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from location_sync.config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from location_sync.logging.init import log_summary, setup_logging
from location_sync.models.config_models import SyncConfig
from location_sync.remote.client import CatalogClient
from location_sync.services.connectivity import ConnectivityChecker, ConnectivityFailure
from location_sync.services.ledger import write_report
from location_sync.services.pipeline import PipelineError, run_pipeline
from location_sync.services.progress import ProgressTracker
from location_sync.services.summary import render_summary_line
from location_sync.services.validator import eligible
from location_sync.tabular.parser import EmptyInputError

"""CLI entrypoint.

    location-sync shops.csv  (or: python -m location_sync.cli)
    location-sync shops.csv [--config config/sync.yml]
        [--dry-run] [--check-only] [--report out.csv] [--debug]

Exit codes:
- 0: every attempted record succeeded and no row was invalid
- 2: partial failure (an ERROR outcome, an invalid row, or a cancelled batch)
- 1: fatal (config, unreadable / empty file, remote catalog not ready)
"""

EXIT_SUCCESS_ALL = 0
EXIT_FATAL = 1
EXIT_PARTIAL_FAILURE = 2


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv; CATALOG_* values there win over the YAML."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="CSV -> remote catalog location sync")
    p.add_argument("csv_file", nargs="?", type=Path, help="CSV file to import")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="YAML config path")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--dry-run", action="store_true", help="Parse and validate only, no remote calls")
    p.add_argument("--check-only", action="store_true", help="Run the connectivity probe then exit")
    p.add_argument("--report", type=Path, default=None, help="Write a CSV outcome report to this path")
    return p.parse_args(argv)


def _check_only(cfg: SyncConfig, logger: logging.Logger) -> int:
    with CatalogClient(cfg.remote) as client:
        ready, health = ConnectivityChecker(cfg.remote, client).check()
    logger.info(
        f"server_reachable={health.server_reachable} authorized={health.authorized} "
        f"collection_accessible={health.target_collection_accessible}"
    )
    return EXIT_SUCCESS_ALL if ready else EXIT_FATAL


def main(argv: list[str] | None = None) -> int:
    # None のときのみ sys.argv を読む (テストで main([]) を呼ぶため)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    logger = setup_logging(debug=args.debug)
    if args.debug:
        logger.debug("debug mode enabled")

    _load_env_file(Path(".env"), override=True)
    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.check_only:
        return _check_only(cfg, logger)

    if args.csv_file is None:
        logger.error("no CSV file given")
        return EXIT_FATAL

    logger.info(f"Importing {args.csv_file} -> {cfg.remote.base_url} ({cfg.remote.collection})")

    try:
        if args.dry_run:
            result = run_pipeline(cfg, args.csv_file, dry_run=True)
        else:
            with ProgressTracker() as progress:
                result = run_pipeline(cfg, args.csv_file, on_progress=progress)
    except (PipelineError, EmptyInputError) as e:
        logger.error(f"input: {e}")
        return EXIT_FATAL
    except ConnectivityFailure as e:
        logger.error(f"connectivity: {e}")
        return EXIT_FATAL

    if args.dry_run:
        for r in result.records:
            label = r.classification.value.upper()
            detail = "; ".join(r.validation_errors)
            logger.info(f"line={r.line_number} id={r.id or '-'} {label}{' ' + detail if detail else ''}")
        logger.info(f"dry-run: {len(eligible(result.records))} record(s) would be submitted")

    for o in result.outcomes:
        if o.error_kind is not None:
            logger.warning(f"id={o.record_id} {o.status.value}: {o.message}")

    if args.report is not None and result.outcomes:
        write_report(result.outcomes, args.report)
        logger.info(f"report written: {args.report}")
    if result.error_log_path:
        logger.info(f"error log: {result.error_log_path}")

    # "SUMMARY " は log_summary 側でラベルとして付与される
    log_summary(render_summary_line(result)[len("SUMMARY "):])

    if result.failed > 0 or result.invalid > 0 or result.cancelled:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
