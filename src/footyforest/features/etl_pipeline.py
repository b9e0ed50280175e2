"""
End-to-end ETL pipeline for FootyForest.

Usage (from project root, with the virtualenv activated):

    footyforest-etl --competition PL --season 2023

This will:
- Load raw matches from data/raw/matches.csv (or the given file).
- Select finished matches and build leakage-free, normalized feature vectors
  with their outcome labels.
- Save the labelled dataset to data/processed/train.csv and the matches that
  had to be skipped to data/processed/skipped.csv.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Optional

import pandas as pd

from footyforest.config import PROCESSED_DATA_DIR
from footyforest.data.data_loader import DataSelection, MatchRepository
from footyforest.features.feature_builder import FeatureConfig, FeatureExtractor
from footyforest.features.feature_cache import FeatureCache
from footyforest.utils.logging_utils import get_logger
from footyforest.utils.paths import get_processed_data_path

logger = get_logger(__name__)


def run_etl(
    raw_path: Optional[Path | str] = None,
    selection: Optional[DataSelection] = None,
    recent_form_window: int | None = None,
    out_dir: Optional[Path | str] = None,
) -> Path:
    """Run the ETL pipeline and return the path of the processed dataset."""
    if recent_form_window is not None:
        cfg = FeatureConfig(recent_form_window=recent_form_window)
    else:
        cfg = FeatureConfig()

    logger.info("Starting ETL pipeline...")
    repository = MatchRepository.from_csv(raw_path)
    extractor = FeatureExtractor(repository, config=cfg, cache=FeatureCache())
    dataset = extractor.build_labeled_samples(repository.select_matches(selection))

    if out_dir is None:
        PROCESSED_DATA_DIR.mkdir(parents=True, exist_ok=True)
        out_path = get_processed_data_path("train.csv")
        skipped_path = get_processed_data_path("skipped.csv")
    else:
        out_dir = Path(out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        out_path = out_dir / "train.csv"
        skipped_path = out_dir / "skipped.csv"

    dataset.to_frame().to_csv(out_path, index=False)
    logger.info(
        "ETL complete. Saved processed training data with %d rows to %s",
        len(dataset),
        out_path,
    )

    pd.DataFrame(dataset.skipped, columns=["match_id", "reason"]).to_csv(
        skipped_path, index=False
    )
    if dataset.skipped:
        logger.info("Saved %d skipped matches to %s", len(dataset.skipped), skipped_path)
    return out_path


def main() -> None:
    parser = argparse.ArgumentParser(description="Run FootyForest ETL pipeline.")
    parser.add_argument("--data", default=None, help="Raw matches CSV (defaults to config).")
    parser.add_argument("--out-dir", default=None, help="Output directory for processed CSVs.")
    parser.add_argument("--competition", default=None, help="Competition id filter.")
    parser.add_argument("--season", type=int, default=None, help="Season start year filter.")
    parser.add_argument("--days-back", type=int, default=None, help="Lookback window in days.")
    parser.add_argument(
        "--window",
        type=int,
        default=None,
        help="Recent form window size (number of previous matches per team). "
        "If not provided, uses the default from config.py.",
    )
    args = parser.parse_args()
    selection = DataSelection(
        season=args.season,
        competition_id=args.competition,
        days_back=args.days_back,
        limit=None,
    )
    run_etl(
        raw_path=args.data,
        selection=selection,
        recent_form_window=args.window,
        out_dir=args.out_dir,
    )


if __name__ == "__main__":
    main()
