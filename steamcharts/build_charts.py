from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger

from .aggregate import BelowThresholdError
from .config import DEFAULT_LOG_LEVEL, LOG_FILE, load_settings
from .output import write_outputs
from .pipeline import run_full_pipeline


def configure_logging(level: str = DEFAULT_LOG_LEVEL) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level)
    LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
    logger.add(LOG_FILE, level="DEBUG", rotation="10 MB", retention=5)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Build the ranked Steam charts dataset.")
    ap.add_argument("--min-required", type=int, default=None,
                    help="Fail the run when fewer items than this survive")
    ap.add_argument("--target-size", type=int, default=None,
                    help="Down-sample the merged pool to about this many candidates (0 = off)")
    ap.add_argument("--concurrency", type=int, default=None,
                    help="Lookups per window")
    ap.add_argument("--output-dir", type=Path, default=None)
    ap.add_argument("--log-level", default=DEFAULT_LOG_LEVEL)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    settings = load_settings(
        min_required=args.min_required,
        target_size=args.target_size,
        concurrency=args.concurrency,
        output_dir=args.output_dir,
    )
    logger.info("Starting run with {}", settings.model_dump())

    try:
        dataset = run_full_pipeline(settings)
    except BelowThresholdError as e:
        logger.error("Run failed: {}", e)
        return 1

    write_outputs(dataset, settings.output_dir, min_required=settings.min_required)

    md = dataset.metadata
    logger.info(
        "Done: {} items, {} total players, {} processed, {} failed, {:.2f}s",
        md.total_items,
        md.total_metric_sum,
        md.processed_count,
        md.failed_count,
        md.duration_seconds,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
