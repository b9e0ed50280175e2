"""
Schema and validation utilities for historical match data.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import pandas as pd

from footyforest.config import (
    AWAY_TEAM,
    CLASS_LABELS,
    DRAW,
    FINISHED_STATUS,
    HOME_TEAM,
    TARGET_COLUMN,
)
from footyforest.utils.logging_utils import get_logger

logger = get_logger(__name__)

# Columns every raw dataset must provide
REQUIRED_MATCH_COLUMNS: List[str] = [
    "match_id",
    "utc_date",
    "season",
    "competition_id",
    "status",
    "home_team_id",
    "away_team_id",
]

# Optional columns and the value used when they are absent
OPTIONAL_MATCH_COLUMNS: Dict[str, Any] = {
    "competition_type": "LEAGUE",
    "competition_tier": "TIER_TWO",
    "matchday": 0,
    "home_score": float("nan"),
    "away_score": float("nan"),
    TARGET_COLUMN: None,
}

RAW_MATCHES_COLUMNS: List[str] = REQUIRED_MATCH_COLUMNS + list(OPTIONAL_MATCH_COLUMNS)

COMPETITION_TYPES: Dict[str, int] = {
    "LEAGUE": 1,
    "CUP": 2,
    "FRIENDLY": 3,
}

COMPETITION_TIERS: Dict[str, int] = {
    "TIER_ONE": 1,
    "TIER_TWO": 2,
    "TIER_THREE": 3,
    "TIER_FOUR": 4,
}


def compute_outcome_label(home_score: int, away_score: int) -> str:
    """
    Compute the match outcome from the scores.

    Returns
    -------
    str
        One of 'HOME_TEAM', 'DRAW', 'AWAY_TEAM'.
    """
    if home_score > away_score:
        return HOME_TEAM
    if home_score < away_score:
        return AWAY_TEAM
    return DRAW


def competition_type_code(competition_type: Optional[str]) -> int:
    """Numeric code of a competition type; unknown types count as leagues."""
    return COMPETITION_TYPES.get(str(competition_type).upper(), 1)


def competition_tier_code(competition_tier: Optional[str]) -> int:
    """Numeric code of a competition tier; unknown tiers count as tier two."""
    return COMPETITION_TIERS.get(str(competition_tier).upper(), 2)


@dataclass(frozen=True)
class HistoricalMatch:
    """One historical (or scheduled) match as read from the data source."""

    match_id: Any
    home_team_id: Any
    away_team_id: Any
    competition_id: Any
    season: int
    utc_date: pd.Timestamp
    status: str
    matchday: int = 0
    competition_type: str = "LEAGUE"
    competition_tier: str = "TIER_TWO"
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    winner: Optional[str] = None

    @property
    def is_finished(self) -> bool:
        return (
            self.status == FINISHED_STATUS
            and self.home_score is not None
            and self.away_score is not None
        )

    def involves(self, team_id: Any) -> bool:
        return team_id in (self.home_team_id, self.away_team_id)

    @classmethod
    def from_row(cls, row: pd.Series) -> "HistoricalMatch":
        """Build a match record from a validated DataFrame row."""
        home_score = None if pd.isna(row["home_score"]) else int(row["home_score"])
        away_score = None if pd.isna(row["away_score"]) else int(row["away_score"])
        winner = row[TARGET_COLUMN]
        return cls(
            match_id=row["match_id"],
            home_team_id=row["home_team_id"],
            away_team_id=row["away_team_id"],
            competition_id=row["competition_id"],
            season=int(row["season"]),
            utc_date=row["utc_date"],
            status=str(row["status"]),
            matchday=0 if pd.isna(row["matchday"]) else int(row["matchday"]),
            competition_type=str(row["competition_type"]),
            competition_tier=str(row["competition_tier"]),
            home_score=home_score,
            away_score=away_score,
            winner=None if pd.isna(winner) else str(winner),
        )


def validate_raw_matches_df(df: pd.DataFrame) -> pd.DataFrame:
    """
    Validate that a DataFrame conforms to the expected raw matches schema.

    Checks:
    - All required columns are present; optional columns are filled in.
    - Coerces utc_date to timezone-aware UTC timestamps.
    - Derives the winner label of finished matches from their scores.
    - Drops duplicate match ids (keeps the first).

    Raises
    ------
    ValueError
        If required columns are missing or an unknown winner label is found.
    """
    missing = [col for col in REQUIRED_MATCH_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(f"Missing required raw match columns: {missing}")

    df = df.reset_index(drop=True)
    for col, default in OPTIONAL_MATCH_COLUMNS.items():
        if col not in df.columns:
            df[col] = default

    df["utc_date"] = pd.to_datetime(df["utc_date"], errors="coerce", utc=True)
    if df["utc_date"].isna().any():
        logger.warning(
            "Dropping %d rows with invalid 'utc_date' values.",
            int(df["utc_date"].isna().sum()),
        )
        df = df[df["utc_date"].notna()]

    df["matchday"] = df["matchday"].fillna(0)
    df["home_score"] = pd.to_numeric(df["home_score"], errors="coerce")
    df["away_score"] = pd.to_numeric(df["away_score"], errors="coerce")

    has_scores = df["home_score"].notna() & df["away_score"].notna()
    finished = (df["status"] == FINISHED_STATUS) & has_scores
    needs_label = finished & df[TARGET_COLUMN].isna()
    if needs_label.any():
        df.loc[needs_label, TARGET_COLUMN] = [
            compute_outcome_label(h, a)
            for h, a in zip(
                df.loc[needs_label, "home_score"],
                df.loc[needs_label, "away_score"],
                strict=True,
            )
        ]

    invalid_labels = set(df[TARGET_COLUMN].dropna().unique()) - set(CLASS_LABELS)
    if invalid_labels:
        raise ValueError(f"Unexpected outcome labels found: {invalid_labels}")

    before = len(df)
    df = df.drop_duplicates(subset="match_id", keep="first")
    if len(df) < before:
        logger.info("Dropped %d duplicate match rows.", before - len(df))

    return df.sort_values(["utc_date", "match_id"]).reset_index(drop=True)
