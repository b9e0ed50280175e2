from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from footyforest.data.data_loader import DataSelection, MatchRepository
from footyforest.features.feature_builder import FeatureExtractor
from footyforest.features.feature_cache import FeatureCache
from footyforest.models.model_store import ModelStore, TrainingHistory
from footyforest.models.train_model import TrainingOptions


def make_league(
    n_matches: int,
    n_teams: int = 10,
    competition_id: str = "PL",
    season: int = 2023,
    start: str = "2023-08-12 15:00",
    seed: int = 0,
) -> pd.DataFrame:
    """
    Synthetic finished league matches with a strength gradient between teams,
    played in rounds of n_teams // 2 matches a week.
    """
    rng = np.random.default_rng(seed)
    strength = np.linspace(2.2, 0.6, n_teams)
    pairings = [(h, a) for h in range(n_teams) for a in range(n_teams) if h != a]
    rng.shuffle(pairings)

    per_round = n_teams // 2
    kickoff0 = pd.Timestamp(start, tz="UTC")
    rows = []
    for i in range(n_matches):
        home, away = pairings[i % len(pairings)]
        home_score = int(rng.poisson(strength[home] * 0.8 + 0.3))
        away_score = int(rng.poisson(strength[away] * 0.6))
        round_no = i // per_round
        rows.append(
            {
                "match_id": 1000 + i,
                "utc_date": (kickoff0 + pd.Timedelta(days=7 * round_no, hours=i % per_round)).isoformat(),
                "season": season,
                "competition_id": competition_id,
                "status": "FINISHED",
                "home_team_id": home + 1,
                "away_team_id": away + 1,
                "matchday": round_no + 1,
                "home_score": home_score,
                "away_score": away_score,
            }
        )
    return pd.DataFrame(rows)


@pytest.fixture
def league_df() -> pd.DataFrame:
    return make_league(150)


@pytest.fixture
def repository(league_df: pd.DataFrame) -> MatchRepository:
    return MatchRepository(league_df)


@pytest.fixture
def extractor(repository: MatchRepository) -> FeatureExtractor:
    return FeatureExtractor(repository, cache=FeatureCache())


@pytest.fixture
def model_store(tmp_path: Path) -> ModelStore:
    return ModelStore(tmp_path / "models")


@pytest.fixture
def history(tmp_path: Path) -> TrainingHistory:
    return TrainingHistory(tmp_path / "models" / "training_history.jsonl")


@pytest.fixture
def fast_options() -> TrainingOptions:
    """Five-fold random forest training small enough for unit tests."""
    return TrainingOptions(
        model_types=["random_forest"],
        cross_validation_folds=5,
        hyperparameter_search=False,
        candidate_params=[{"n_estimators": 8, "max_depth": 4}],
        data=DataSelection(days_back=None, competition_id="PL"),
    )


@pytest.fixture
def make_league_df():
    return make_league
