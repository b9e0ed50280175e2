"""
Helper functions for file and directory paths used in FootyForest.
"""

from pathlib import Path
from typing import Union

from footyforest.config import (
    RAW_DATA_DIR,
    PROCESSED_DATA_DIR,
    RAW_MATCHES_FILENAME,
    MODELS_DIR,
    MODEL_FILE_SUFFIX,
    TRAINING_HISTORY_FILENAME,
    PLOTS_DIR,
)


PathLike = Union[str, Path]


def get_raw_data_path(filename: str | None = None) -> Path:
    """
    Return the path to a raw data file.

    Parameters
    ----------
    filename : str | None
        Specific filename, or None for the default raw matches CSV.

    Returns
    -------
    Path
        Full path to the raw data file.
    """
    if filename is None:
        filename = RAW_MATCHES_FILENAME
    return RAW_DATA_DIR / filename


def get_processed_data_path(filename: str = "train.csv") -> Path:
    """Return the path to a processed data file."""
    return PROCESSED_DATA_DIR / filename


def get_models_dir(models_dir: PathLike | None = None) -> Path:
    """Return the models directory, creating it if needed."""
    path = Path(models_dir) if models_dir is not None else MODELS_DIR
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_model_path(name: str, models_dir: PathLike | None = None) -> Path:
    """
    Return the path to a model artifact file.

    Parameters
    ----------
    name : str
        Model name (without suffix).
    models_dir : str | Path | None
        Directory holding the artifacts, or None for the configured default.

    Returns
    -------
    Path
        Full path to the model artifact.
    """
    return get_models_dir(models_dir) / f"{name}{MODEL_FILE_SUFFIX}"


def get_training_history_path(models_dir: PathLike | None = None) -> Path:
    """Return the path of the append-only training history log."""
    return get_models_dir(models_dir) / TRAINING_HISTORY_FILENAME


def get_plot_path(filename: str) -> Path:
    """Return the path of a plot file, creating the plots directory."""
    PLOTS_DIR.mkdir(parents=True, exist_ok=True)
    return PLOTS_DIR / filename
