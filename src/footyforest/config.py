"""
Global configuration for the FootyForest project.

This module centralizes paths and key parameters (form windows, thresholds,
normalization bounds, training defaults), so you can tweak them in one place.
"""

import os
from pathlib import Path

# Project root = folder that contains "src", "data", "models", etc.
PROJECT_ROOT: Path = Path(__file__).resolve().parents[2]

# Data directories (override with FOOTYFOREST_DATA_DIR)
DATA_DIR: Path = Path(os.environ.get("FOOTYFOREST_DATA_DIR", PROJECT_ROOT / "data"))
RAW_DATA_DIR: Path = DATA_DIR / "raw"
PROCESSED_DATA_DIR: Path = DATA_DIR / "processed"

# Default raw dataset
RAW_MATCHES_FILENAME: str = "matches.csv"

# Models directory (override with FOOTYFOREST_MODELS_DIR)
MODELS_DIR: Path = Path(
    os.environ.get("FOOTYFOREST_MODELS_DIR", PROJECT_ROOT / "models")
)
MODEL_FILE_SUFFIX: str = ".joblib"
TRAINING_HISTORY_FILENAME: str = "training_history.jsonl"

# Plot output directory (for evaluation reports)
PLOTS_DIR: Path = PROJECT_ROOT / "plots"

# Target and label mapping. The order is the canonical class order used in
# probability mappings and metric tables.
TARGET_COLUMN: str = "winner"
HOME_TEAM: str = "HOME_TEAM"
AWAY_TEAM: str = "AWAY_TEAM"
DRAW: str = "DRAW"
CLASS_LABELS = [HOME_TEAM, DRAW, AWAY_TEAM]

FINISHED_STATUS: str = "FINISHED"

# Feature engineering parameters
RECENT_FORM_WINDOW: int = 10  # previous matches for recent form
HEAD_TO_HEAD_WINDOW: int = 10  # previous meetings between the two teams
MOMENTUM_WINDOW: int = 3  # latest N vs the N before
SEASON_START_MONTH: int = 8  # seasons start on 1 August
SEASON_START_DAY: int = 1

# Minimum number of past matches a team must have played BEFORE the current
# match for a feature group to be computed; otherwise defaults are emitted.
MIN_MATCHES_FOR_FEATURES: int = 1

# Version tag of the feature schema, stored with every persisted model.
FEATURE_SCHEMA_VERSION: int = 1

# Feature cache: 30 minutes time-to-live
FEATURE_CACHE_TTL_SECONDS: float = 30 * 60
FEATURE_CACHE_MAX_ENTRIES: int = 10_000

# Normalization bounds per feature group: (min, max, target range)
# "unit" maps into [0, 1]; "symmetric" maps into [-1, 1].
NORMALIZATION_BOUNDS = {
    "win_rate": (0.0, 1.0, "unit"),
    "avg_goals": (0.0, 5.0, "unit"),
    "recent_results": (0.0, 10.0, "unit"),
    "recent_goals": (0.0, 30.0, "unit"),
    "recent_points": (0.0, 30.0, "unit"),
    "recent_goal_difference": (-20.0, 20.0, "symmetric"),
    "season_results": (0.0, 50.0, "unit"),
    "season_goals": (0.0, 120.0, "unit"),
    "season_points": (0.0, 150.0, "unit"),
    "season_goal_difference": (-60.0, 60.0, "symmetric"),
    "momentum": (-9.0, 9.0, "symmetric"),
    "h2h_results": (0.0, 10.0, "unit"),
    "competition_type": (1.0, 3.0, "unit"),
    "competition_tier": (1.0, 4.0, "unit"),
    "matchday": (0.0, 50.0, "unit"),
    "month": (1.0, 12.0, "unit"),
    "day_of_week": (0.0, 6.0, "unit"),
    "hour": (0.0, 23.0, "unit"),
    "days_since_season_start": (0.0, 366.0, "unit"),
}

# Training / evaluation thresholds
MIN_TRAINING_SAMPLES: int = 100
MIN_EVALUATION_SAMPLES: int = 10
DEFAULT_CV_FOLDS: int = 5
DEFAULT_TEST_SIZE: float = 0.2
DEFAULT_TRAINING_BUDGET_SECONDS: float = 30 * 60

# Training data selection defaults
DEFAULT_DAYS_BACK: int = 730  # 2 years
DEFAULT_MIN_MATCHES_PER_TEAM: int = 10
DEFAULT_TRAINING_LIMIT: int = 5000

# Predictions below this confidence are logged as low-confidence.
PREDICTION_CONFIDENCE_THRESHOLD: float = 0.6

# Reproducibility
RANDOM_STATE: int = 42
