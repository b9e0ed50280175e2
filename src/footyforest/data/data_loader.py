"""
Data loading utilities for FootyForest.

This module loads historical match data and exposes it through
`MatchRepository`, the read-only data source the feature extractor and the
training pipeline query by team, competition, season and date.
"""

from __future__ import annotations

from bisect import bisect_left
from collections import Counter
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

import pandas as pd
from pydantic import BaseModel, Field

from footyforest.config import (
    DEFAULT_DAYS_BACK,
    DEFAULT_MIN_MATCHES_PER_TEAM,
    DEFAULT_TRAINING_LIMIT,
)
from footyforest.data.schema import HistoricalMatch, validate_raw_matches_df
from footyforest.errors import MatchNotFoundError
from footyforest.utils.logging_utils import get_logger
from footyforest.utils.paths import get_processed_data_path, get_raw_data_path

logger = get_logger(__name__)


class DataSelection(BaseModel):
    """Filter used to select finished matches for training or evaluation."""

    season: Optional[int] = None
    competition_id: Optional[Any] = None
    days_back: Optional[int] = Field(default=DEFAULT_DAYS_BACK, ge=1)
    min_matches_per_team: int = Field(default=DEFAULT_MIN_MATCHES_PER_TEAM, ge=0)
    limit: Optional[int] = Field(default=DEFAULT_TRAINING_LIMIT, ge=1)
    reference_date: Optional[datetime] = None


def load_raw_matches(path: Optional[Path | str] = None) -> pd.DataFrame:
    """
    Load raw match data from a CSV file and validate it.

    Parameters
    ----------
    path : pathlib.Path | str | None
        Path to the raw CSV file. If None, uses the default path from config.

    Returns
    -------
    pandas.DataFrame
        Validated raw matches DataFrame.
    """
    csv_path = Path(path) if path is not None else get_raw_data_path()
    if not csv_path.exists():
        raise FileNotFoundError(f"Raw data file not found: {csv_path}")

    logger.info("Loading raw match data from %s", csv_path)
    df = pd.read_csv(csv_path)
    df = validate_raw_matches_df(df)
    logger.info("Loaded %d valid raw match rows.", len(df))
    return df


def load_processed_train(path: Optional[Path | str] = None) -> pd.DataFrame:
    """
    Load processed training data (features + labels).

    Raises
    ------
    FileNotFoundError
        If the processed file does not exist.
    """
    if path is None:
        csv_path = get_processed_data_path("train.csv")
    else:
        csv_path = Path(path)

    if not csv_path.exists():
        raise FileNotFoundError(
            f"Processed training data not found: {csv_path}. "
            f"Run the ETL pipeline first."
        )

    logger.info("Loading processed training data from %s", csv_path)
    df = pd.read_csv(csv_path)
    logger.info("Loaded %d processed training rows.", len(df))
    return df


class MatchRepository:
    """
    Read-only, in-memory view over historical matches.

    Finished matches are indexed per team in chronological order so that
    "matches strictly before a timestamp" lookups are a bisection.
    """

    def __init__(self, df: pd.DataFrame):
        self._df = validate_raw_matches_df(df)
        self._matches: Dict[Any, HistoricalMatch] = {}
        self._team_history: Dict[Any, List[HistoricalMatch]] = {}
        self._team_dates: Dict[Any, List[pd.Timestamp]] = {}

        for _, row in self._df.iterrows():
            match = HistoricalMatch.from_row(row)
            self._matches[match.match_id] = match
            if not match.is_finished:
                continue
            for team_id in (match.home_team_id, match.away_team_id):
                self._team_history.setdefault(team_id, []).append(match)

        # Rows are already sorted by (utc_date, match_id)
        for team_id, history in self._team_history.items():
            self._team_dates[team_id] = [m.utc_date for m in history]

        logger.info(
            "Match repository ready: %d matches, %d teams.",
            len(self._matches),
            len(self._team_history),
        )

    @classmethod
    def from_csv(cls, path: Optional[Path | str] = None) -> "MatchRepository":
        return cls(load_raw_matches(path))

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> "MatchRepository":
        return cls(pd.DataFrame(list(records)))

    def __len__(self) -> int:
        return len(self._matches)

    def to_frame(self) -> pd.DataFrame:
        return self._df.copy()

    def get_match(self, match_id: Any) -> HistoricalMatch:
        try:
            return self._matches[match_id]
        except KeyError:
            raise MatchNotFoundError(
                f"Match with ID {match_id} not found", match_id=match_id
            ) from None

    def team_matches_before(
        self,
        team_id: Any,
        as_of: pd.Timestamp,
        season: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[HistoricalMatch]:
        """
        Finished matches of a team that kicked off strictly before `as_of`,
        most recent first.
        """
        history = self._team_history.get(team_id, [])
        end = bisect_left(self._team_dates.get(team_id, []), as_of)
        previous = history[:end]
        if season is not None:
            previous = [m for m in previous if m.season == season]
        previous = previous[::-1]
        if limit is not None:
            previous = previous[:limit]
        return previous

    def head_to_head_before(
        self,
        team_a: Any,
        team_b: Any,
        as_of: pd.Timestamp,
        limit: Optional[int] = None,
    ) -> List[HistoricalMatch]:
        """Finished meetings of two teams (either venue) before `as_of`."""
        meetings = [
            m
            for m in self.team_matches_before(team_a, as_of)
            if m.involves(team_b)
        ]
        if limit is not None:
            meetings = meetings[:limit]
        return meetings

    def select_matches(self, selection: Optional[DataSelection] = None) -> List[HistoricalMatch]:
        """
        Select finished, scored matches for training or evaluation.

        Applies the season / competition / lookback filters, keeps the most
        recent `limit` matches, then drops matches whose teams appear fewer
        than `min_matches_per_team` times in the selection. The result is in
        chronological order.
        """
        if selection is None:
            selection = DataSelection()

        candidates = [m for m in self._matches.values() if m.is_finished]

        if selection.days_back is not None:
            reference = selection.reference_date or datetime.now(timezone.utc)
            cutoff = pd.Timestamp(reference)
            if cutoff.tzinfo is None:
                cutoff = cutoff.tz_localize("UTC")
            cutoff = cutoff - timedelta(days=selection.days_back)
            candidates = [m for m in candidates if m.utc_date >= cutoff]
        if selection.season is not None:
            candidates = [m for m in candidates if m.season == selection.season]
        if selection.competition_id is not None:
            candidates = [
                m
                for m in candidates
                if str(m.competition_id) == str(selection.competition_id)
            ]

        candidates.sort(key=lambda m: (m.utc_date, str(m.match_id)), reverse=True)
        if selection.limit is not None:
            candidates = candidates[: selection.limit]

        team_counts: Counter = Counter()
        for m in candidates:
            team_counts[m.home_team_id] += 1
            team_counts[m.away_team_id] += 1

        selected = [
            m
            for m in candidates
            if team_counts[m.home_team_id] >= selection.min_matches_per_team
            and team_counts[m.away_team_id] >= selection.min_matches_per_team
        ]
        selected.reverse()

        logger.info(
            "Selected %d matches (filtered from %d candidates).",
            len(selected),
            len(candidates),
        )
        return selected
