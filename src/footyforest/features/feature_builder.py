# path: src/footyforest/features/feature_builder.py
"""
Feature engineering utilities for FootyForest.

This module turns a match's historical context into a fixed-width numeric
feature vector:

- Recent form of each team (last N finished matches of the season).
- Season-to-date aggregates, including home/away splits.
- Form momentum (latest matches vs the ones before).
- Head-to-head history between the two teams.
- Match context (competition type/tier, matchday, kick-off timing).

Only matches that kicked off strictly before the "as-of" timestamp are used,
so training features never leak information from the future. Every feature
vector has exactly the keys in `FEATURE_NAMES`.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import pandas as pd

from footyforest.config import (
    CLASS_LABELS,
    FEATURE_SCHEMA_VERSION,
    HEAD_TO_HEAD_WINDOW,
    MIN_MATCHES_FOR_FEATURES,
    MOMENTUM_WINDOW,
    NORMALIZATION_BOUNDS,
    RECENT_FORM_WINDOW,
    SEASON_START_DAY,
    SEASON_START_MONTH,
    TARGET_COLUMN,
)
from footyforest.data.data_loader import MatchRepository
from footyforest.data.schema import (
    HistoricalMatch,
    competition_tier_code,
    competition_type_code,
)
from footyforest.errors import FeatureGenerationError
from footyforest.features.feature_cache import FeatureCache
from footyforest.utils.logging_utils import get_logger

logger = get_logger(__name__)

FeatureVector = Dict[str, float]

# Per-team features and their normalization group. Prefixed with
# "home_" / "away_" in the final vector.
TEAM_FEATURE_GROUPS: Dict[str, str] = {
    # Recent form
    "recent_wins": "recent_results",
    "recent_draws": "recent_results",
    "recent_losses": "recent_results",
    "recent_goals_for": "recent_goals",
    "recent_goals_against": "recent_goals",
    "recent_goal_difference": "recent_goal_difference",
    "recent_points": "recent_points",
    "recent_win_rate": "win_rate",
    "recent_avg_goals_for": "avg_goals",
    "recent_avg_goals_against": "avg_goals",
    # Season to date
    "season_matches": "season_results",
    "season_wins": "season_results",
    "season_draws": "season_results",
    "season_losses": "season_results",
    "season_goals_for": "season_goals",
    "season_goals_against": "season_goals",
    "season_goal_difference": "season_goal_difference",
    "season_points": "season_points",
    "season_win_rate": "win_rate",
    "season_avg_goals_for": "avg_goals",
    "season_avg_goals_against": "avg_goals",
    "home_matches": "season_results",
    "away_matches": "season_results",
    "home_win_rate": "win_rate",
    "away_win_rate": "win_rate",
    # Momentum
    "form_momentum": "momentum",
}

HEAD_TO_HEAD_GROUPS: Dict[str, str] = {
    "h2h_total_matches": "h2h_results",
    "h2h_home_team_wins": "h2h_results",
    "h2h_away_team_wins": "h2h_results",
    "h2h_draws": "h2h_results",
    "h2h_home_team_win_rate": "win_rate",
    "h2h_away_team_win_rate": "win_rate",
    "h2h_draw_rate": "win_rate",
}

CONTEXT_GROUPS: Dict[str, str] = {
    "competition_type": "competition_type",
    "competition_tier": "competition_tier",
    "matchday": "matchday",
    "match_month": "month",
    "match_day_of_week": "day_of_week",
    "match_hour": "hour",
    "days_since_season_start": "days_since_season_start",
}

FEATURE_GROUPS: Dict[str, str] = {
    **{f"home_{name}": group for name, group in TEAM_FEATURE_GROUPS.items()},
    **{f"away_{name}": group for name, group in TEAM_FEATURE_GROUPS.items()},
    **HEAD_TO_HEAD_GROUPS,
    **CONTEXT_GROUPS,
}

# The fixed feature schema, in enumeration order.
FEATURE_NAMES: Tuple[str, ...] = tuple(FEATURE_GROUPS)


@dataclass
class FeatureConfig:
    """Configuration for feature engineering."""

    recent_form_window: int = RECENT_FORM_WINDOW
    head_to_head_window: int = HEAD_TO_HEAD_WINDOW
    momentum_window: int = MOMENTUM_WINDOW
    min_matches_for_features: int = MIN_MATCHES_FOR_FEATURES


@dataclass
class LabeledDataset:
    """Labeled feature set ready for training."""

    features: pd.DataFrame
    labels: pd.Series
    match_ids: List[Any] = field(default_factory=list)
    skipped: List[Dict[str, Any]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.labels)

    def to_frame(self) -> pd.DataFrame:
        """Features plus label column, indexed by match id."""
        df = self.features.copy()
        df[TARGET_COLUMN] = self.labels.values
        df.insert(0, "match_id", self.match_ids)
        return df


def _team_goals(match: HistoricalMatch, team_id: Any) -> Tuple[int, int]:
    if match.home_team_id == team_id:
        return match.home_score, match.away_score
    return match.away_score, match.home_score


def _points(goals_for: int, goals_against: int) -> int:
    if goals_for > goals_against:
        return 3
    if goals_for == goals_against:
        return 1
    return 0


def calculate_match_stats(matches: List[HistoricalMatch], team_id: Any) -> Dict[str, float]:
    """Aggregate results and goals of a team over a list of matches."""
    wins = draws = losses = goals_for = goals_against = 0
    for match in matches:
        scored, conceded = _team_goals(match, team_id)
        goals_for += scored
        goals_against += conceded
        if scored > conceded:
            wins += 1
        elif scored == conceded:
            draws += 1
        else:
            losses += 1

    played = len(matches)
    return {
        "matches": played,
        "wins": wins,
        "draws": draws,
        "losses": losses,
        "goals_for": goals_for,
        "goals_against": goals_against,
        "goal_difference": goals_for - goals_against,
        "points": wins * 3 + draws,
        "win_rate": wins / played if played else 0.0,
        "avg_goals_for": goals_for / played if played else 0.0,
        "avg_goals_against": goals_against / played if played else 0.0,
    }


def calculate_form_momentum(
    recent_matches: List[HistoricalMatch], team_id: Any, window: int = MOMENTUM_WINDOW
) -> int:
    """
    Points of the latest `window` matches minus points of the `window`
    matches before them. `recent_matches` is most recent first.
    """
    if len(recent_matches) < window:
        return 0
    latest = recent_matches[:window]
    older = recent_matches[window : 2 * window]
    latest_points = sum(_points(*_team_goals(m, team_id)) for m in latest)
    older_points = sum(_points(*_team_goals(m, team_id)) for m in older)
    return latest_points - older_points


def calculate_form_string(matches: List[HistoricalMatch], team_id: Any) -> str:
    """W/D/L string of the given matches (most recent first)."""
    letters = []
    for match in matches:
        scored, conceded = _team_goals(match, team_id)
        if scored > conceded:
            letters.append("W")
        elif scored == conceded:
            letters.append("D")
        else:
            letters.append("L")
    return "".join(letters)


def days_since_season_start(kickoff: pd.Timestamp, season: Optional[int]) -> int:
    if not season:
        return 0
    start = pd.Timestamp(
        year=int(season), month=SEASON_START_MONTH, day=SEASON_START_DAY, tz="UTC"
    )
    return max(0, (kickoff - start).days)


def default_team_features(prefix: str) -> FeatureVector:
    """Zero-valued team features used when too little history exists."""
    return {f"{prefix}_{name}": 0.0 for name in TEAM_FEATURE_GROUPS}


def default_head_to_head_features() -> FeatureVector:
    return {name: 0.0 for name in HEAD_TO_HEAD_GROUPS}


def normalize_value(value: float, group: str) -> float:
    """Map a raw value into its group range, clamping out-of-bound values."""
    low, high, target = NORMALIZATION_BOUNDS[group]
    if high == low:
        return 0.5 if target == "unit" else 0.0
    scaled = (value - low) / (high - low)
    scaled = min(1.0, max(0.0, scaled))
    if target == "symmetric":
        return 2.0 * scaled - 1.0
    return scaled


def normalize_features(features: FeatureVector) -> FeatureVector:
    """
    Normalize a raw feature vector using the fixed per-group bounds.

    Win rates, counts and context features map into [0, 1]; differential
    features (goal difference, momentum) map into [-1, 1].
    """
    return {
        name: normalize_value(float(value), FEATURE_GROUPS[name])
        for name, value in features.items()
    }


def validate_feature_vector(features: FeatureVector, match_id: Any = None) -> FeatureVector:
    """Check schema and finiteness; returns the vector in schema order."""
    missing = [name for name in FEATURE_NAMES if name not in features]
    if missing:
        raise FeatureGenerationError(
            f"Feature vector is missing {len(missing)} schema features",
            match_id=match_id,
            missing=missing,
        )
    non_finite = [
        name for name in FEATURE_NAMES if not math.isfinite(float(features[name]))
    ]
    if non_finite:
        raise FeatureGenerationError(
            f"Feature vector has non-finite values: {non_finite}",
            match_id=match_id,
            non_finite=non_finite,
        )
    return {name: float(features[name]) for name in FEATURE_NAMES}


class FeatureExtractor:
    """
    Compute feature vectors for matches from a read-only match repository.

    Parameters
    ----------
    repository : MatchRepository
        Historical match data source.
    config : FeatureConfig | None
        Windows and thresholds. If None, uses defaults from config.py.
    cache : FeatureCache | None
        Optional cache for per-team feature groups.
    """

    schema_version = FEATURE_SCHEMA_VERSION

    def __init__(
        self,
        repository: MatchRepository,
        config: FeatureConfig | None = None,
        cache: FeatureCache | None = None,
    ):
        self.repository = repository
        self.config = config if config is not None else FeatureConfig()
        self.cache = cache

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate_features(
        self,
        match_id: Any,
        as_of: Optional[pd.Timestamp] = None,
        normalize: bool = True,
    ) -> FeatureVector:
        """
        Build the feature vector of a stored match.

        `as_of` defaults to the match kick-off; only matches strictly before it
        are used.
        """
        match = self.repository.get_match(match_id)
        return self._generate(
            match_id=match.match_id,
            home_team_id=match.home_team_id,
            away_team_id=match.away_team_id,
            kickoff=match.utc_date,
            season=match.season,
            matchday=match.matchday,
            competition_type=match.competition_type,
            competition_tier=match.competition_tier,
            as_of=as_of,
            normalize=normalize,
        )

    def generate_pairing_features(
        self,
        home_team_id: Any,
        away_team_id: Any,
        kickoff: Any,
        season: int,
        matchday: int = 0,
        competition_type: str = "LEAGUE",
        competition_tier: str = "TIER_TWO",
        as_of: Optional[pd.Timestamp] = None,
        normalize: bool = True,
    ) -> FeatureVector:
        """Build the feature vector of a hypothetical, unplayed pairing."""
        return self._generate(
            match_id=None,
            home_team_id=home_team_id,
            away_team_id=away_team_id,
            kickoff=_as_utc(kickoff),
            season=season,
            matchday=matchday,
            competition_type=competition_type,
            competition_tier=competition_tier,
            as_of=as_of,
            normalize=normalize,
        )

    def build_labeled_samples(self, matches: Iterable[HistoricalMatch]) -> LabeledDataset:
        """
        Build normalized features and labels for finished matches.

        A match whose features cannot be generated is logged, recorded in
        `skipped` and excluded; it never aborts the batch.
        """
        rows: List[FeatureVector] = []
        labels: List[str] = []
        match_ids: List[Any] = []
        skipped: List[Dict[str, Any]] = []

        for match in matches:
            if match.winner not in CLASS_LABELS:
                skipped.append({"match_id": match.match_id, "reason": "no outcome label"})
                continue
            try:
                features = self.generate_features(match.match_id)
            except FeatureGenerationError as exc:
                logger.warning(
                    "Skipping match %s due to feature generation error: %s",
                    match.match_id,
                    exc,
                )
                skipped.append({"match_id": match.match_id, "reason": str(exc)})
                continue
            rows.append(features)
            labels.append(match.winner)
            match_ids.append(match.match_id)

        features_df = pd.DataFrame(rows, columns=list(FEATURE_NAMES), dtype=float)
        logger.info(
            "Built features for %d matches (%d skipped).", len(rows), len(skipped)
        )
        return LabeledDataset(
            features=features_df,
            labels=pd.Series(labels, dtype=object, name=TARGET_COLUMN),
            match_ids=match_ids,
            skipped=skipped,
        )

    def form_string(self, team_id: Any, as_of: Any, season: Optional[int] = None) -> str:
        """W/D/L string of a team's recent matches, for display."""
        recent = self.repository.team_matches_before(
            team_id, _as_utc(as_of), season=season, limit=self.config.recent_form_window
        )
        return calculate_form_string(recent, team_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _generate(
        self,
        match_id: Any,
        home_team_id: Any,
        away_team_id: Any,
        kickoff: pd.Timestamp,
        season: int,
        matchday: int,
        competition_type: str,
        competition_tier: str,
        as_of: Optional[pd.Timestamp],
        normalize: bool,
    ) -> FeatureVector:
        as_of_ts = _as_utc(as_of) if as_of is not None else kickoff
        try:
            features: FeatureVector = {}
            features.update(
                self._team_features(home_team_id, season, as_of_ts, "home")
            )
            features.update(
                self._team_features(away_team_id, season, as_of_ts, "away")
            )
            features.update(
                self._head_to_head_features(home_team_id, away_team_id, as_of_ts)
            )
            features.update(
                {
                    "competition_type": competition_type_code(competition_type),
                    "competition_tier": competition_tier_code(competition_tier),
                    "matchday": matchday or 0,
                    "match_month": kickoff.month,
                    "match_day_of_week": kickoff.dayofweek,
                    "match_hour": kickoff.hour,
                    "days_since_season_start": days_since_season_start(kickoff, season),
                }
            )
            features = validate_feature_vector(features, match_id=match_id)
        except FeatureGenerationError:
            raise
        except Exception as exc:
            raise FeatureGenerationError(
                f"Error generating features for match {match_id}: {exc}",
                match_id=match_id,
            ) from exc

        if normalize:
            features = normalize_features(features)
        return features

    def _cached(self, key: Tuple, compute: Callable[[], FeatureVector]) -> FeatureVector:
        if self.cache is None:
            return compute()
        cached = self.cache.get(key)
        if cached is not None:
            return dict(cached)
        value = compute()
        self.cache.set(key, dict(value))
        return value

    def _team_features(
        self, team_id: Any, season: int, as_of: pd.Timestamp, prefix: str
    ) -> FeatureVector:
        key = ("team", team_id, season, prefix, as_of)
        return self._cached(
            key, lambda: self._compute_team_features(team_id, season, as_of, prefix)
        )

    def _compute_team_features(
        self, team_id: Any, season: int, as_of: pd.Timestamp, prefix: str
    ) -> FeatureVector:
        season_matches = self.repository.team_matches_before(team_id, as_of, season=season)
        if len(season_matches) < self.config.min_matches_for_features:
            return default_team_features(prefix)

        recent = season_matches[: self.config.recent_form_window]
        recent_stats = calculate_match_stats(recent, team_id)
        season_stats = calculate_match_stats(season_matches, team_id)

        home_matches = [m for m in season_matches if m.home_team_id == team_id]
        away_matches = [m for m in season_matches if m.away_team_id == team_id]
        home_wins = sum(1 for m in home_matches if m.home_score > m.away_score)
        away_wins = sum(1 for m in away_matches if m.away_score > m.home_score)

        values = {
            "recent_wins": recent_stats["wins"],
            "recent_draws": recent_stats["draws"],
            "recent_losses": recent_stats["losses"],
            "recent_goals_for": recent_stats["goals_for"],
            "recent_goals_against": recent_stats["goals_against"],
            "recent_goal_difference": recent_stats["goal_difference"],
            "recent_points": recent_stats["points"],
            "recent_win_rate": recent_stats["win_rate"],
            "recent_avg_goals_for": recent_stats["avg_goals_for"],
            "recent_avg_goals_against": recent_stats["avg_goals_against"],
            "season_matches": season_stats["matches"],
            "season_wins": season_stats["wins"],
            "season_draws": season_stats["draws"],
            "season_losses": season_stats["losses"],
            "season_goals_for": season_stats["goals_for"],
            "season_goals_against": season_stats["goals_against"],
            "season_goal_difference": season_stats["goal_difference"],
            "season_points": season_stats["points"],
            "season_win_rate": season_stats["win_rate"],
            "season_avg_goals_for": season_stats["avg_goals_for"],
            "season_avg_goals_against": season_stats["avg_goals_against"],
            "home_matches": len(home_matches),
            "away_matches": len(away_matches),
            "home_win_rate": home_wins / len(home_matches) if home_matches else 0.0,
            "away_win_rate": away_wins / len(away_matches) if away_matches else 0.0,
            "form_momentum": calculate_form_momentum(
                recent, team_id, self.config.momentum_window
            ),
        }
        return {f"{prefix}_{name}": float(value) for name, value in values.items()}

    def _head_to_head_features(
        self, home_team_id: Any, away_team_id: Any, as_of: pd.Timestamp
    ) -> FeatureVector:
        meetings = self.repository.head_to_head_before(
            home_team_id, away_team_id, as_of, limit=self.config.head_to_head_window
        )
        total = len(meetings)
        if total < self.config.min_matches_for_features or total == 0:
            return default_head_to_head_features()

        home_wins = sum(
            1 for m in meetings if _points(*_team_goals(m, home_team_id)) == 3
        )
        away_wins = sum(
            1 for m in meetings if _points(*_team_goals(m, away_team_id)) == 3
        )
        draws = total - home_wins - away_wins
        return {
            "h2h_total_matches": float(total),
            "h2h_home_team_wins": float(home_wins),
            "h2h_away_team_wins": float(away_wins),
            "h2h_draws": float(draws),
            "h2h_home_team_win_rate": home_wins / total,
            "h2h_away_team_win_rate": away_wins / total,
            "h2h_draw_rate": draws / total,
        }


def _as_utc(value: Any) -> pd.Timestamp:
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        return ts.tz_localize("UTC")
    return ts.tz_convert("UTC")
