from datetime import datetime, timezone

import pandas as pd
import pytest

from footyforest.data.data_loader import DataSelection, MatchRepository, load_raw_matches
from footyforest.data.schema import compute_outcome_label, validate_raw_matches_df
from footyforest.errors import MatchNotFoundError


def test_validate_derives_winner_and_sorts(league_df):
    df = validate_raw_matches_df(league_df.sample(frac=1.0, random_state=0))
    assert df["utc_date"].is_monotonic_increasing
    row = df.iloc[0]
    assert row["winner"] == compute_outcome_label(row["home_score"], row["away_score"])


def test_validate_requires_core_columns(league_df):
    with pytest.raises(ValueError):
        validate_raw_matches_df(league_df.drop(columns=["home_team_id"]))


def test_load_raw_matches_from_csv(tmp_path, league_df):
    path = tmp_path / "matches.csv"
    league_df.to_csv(path, index=False)
    df = load_raw_matches(path)
    assert len(df) == 150
    with pytest.raises(FileNotFoundError):
        load_raw_matches(tmp_path / "missing.csv")


def test_scheduled_matches_are_stored_but_not_history(make_league_df):
    df = make_league_df(20)
    df[["home_score", "away_score"]] = df[["home_score", "away_score"]].astype(float)
    df.loc[19, ["status", "home_score", "away_score"]] = ["SCHEDULED", float("nan"), float("nan")]
    repo = MatchRepository(df)
    assert len(repo) == 20
    assert not repo.get_match(1019).is_finished
    selected = repo.select_matches(DataSelection(days_back=None, min_matches_per_team=0))
    assert len(selected) == 19


def test_team_history_is_strictly_before_as_of(repository):
    match = repository.get_match(1050)
    history = repository.team_matches_before(match.home_team_id, match.utc_date)
    assert history
    assert all(m.utc_date < match.utc_date for m in history)
    assert history == sorted(history, key=lambda m: m.utc_date, reverse=True)


def test_unknown_match_id(repository):
    with pytest.raises(MatchNotFoundError):
        repository.get_match(-1)


def test_select_matches_filters(make_league_df):
    df = pd.concat(
        [make_league_df(40, competition_id="PL"), make_league_df(30, competition_id="BL1")]
    )
    df["match_id"] = range(len(df))
    repo = MatchRepository(df)

    pl = repo.select_matches(DataSelection(days_back=None, competition_id="PL", min_matches_per_team=0))
    assert len(pl) == 40
    assert all(m.competition_id == "PL" for m in pl)

    limited = repo.select_matches(DataSelection(days_back=None, limit=10, min_matches_per_team=0))
    assert len(limited) == 10
    assert limited == sorted(limited, key=lambda m: m.utc_date)

    assert repo.select_matches(DataSelection(days_back=None, season=2020)) == []

    reference = datetime(2023, 9, 1, tzinfo=timezone.utc)
    recent = repo.select_matches(
        DataSelection(days_back=7, reference_date=reference, min_matches_per_team=0)
    )
    assert recent
    assert all(m.utc_date >= pd.Timestamp("2023-08-25", tz="UTC") for m in recent)


def test_min_matches_per_team_drops_sparse_teams(repository):
    few = repository.select_matches(DataSelection(days_back=None, min_matches_per_team=0))
    strict = repository.select_matches(DataSelection(days_back=None, min_matches_per_team=1000))
    assert len(few) == 150
    assert strict == []


def test_head_to_head_covers_both_venues(repository):
    match = repository.get_match(1120)
    meetings = repository.head_to_head_before(
        match.home_team_id, match.away_team_id, match.utc_date
    )
    pair = {match.home_team_id, match.away_team_id}
    assert all({m.home_team_id, m.away_team_id} == pair for m in meetings)
    assert all(m.utc_date < match.utc_date for m in meetings)
    limited = repository.head_to_head_before(
        match.home_team_id, match.away_team_id, match.utc_date, limit=1
    )
    assert len(limited) <= 1
