# path: src/footyforest/models/evaluate_model.py
"""
Evaluate a persisted FootyForest model on labelled historical matches.

Usage:

    footyforest-evaluate --model PL_random_forest --competition PL --season 2023

This will:
- Select finished matches with the given filters
- Build their feature vectors and outcome labels
- Load the model and compute accuracy, per-class precision/recall/F1,
  log loss, baseline accuracy and the confusion matrix
- Save confusion matrix and feature importance plots to plots/
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Optional

import matplotlib.pyplot as plt
import numpy as np

from footyforest.config import MIN_EVALUATION_SAMPLES
from footyforest.data.data_loader import DataSelection, MatchRepository
from footyforest.features.feature_builder import FeatureExtractor
from footyforest.features.feature_cache import FeatureCache
from footyforest.models.forest import Ensemble
from footyforest.models.metrics import EvaluationReport, evaluate
from footyforest.models.model_store import ModelStore
from footyforest.models.predictor import top_feature_importances
from footyforest.utils.logging_utils import get_logger, set_log_level
from footyforest.utils.paths import get_plot_path

logger = get_logger(__name__)


def evaluate_on_matches(
    ensemble: Ensemble,
    repository: MatchRepository,
    selection: Optional[DataSelection] = None,
    extractor: Optional[FeatureExtractor] = None,
    min_samples: int = MIN_EVALUATION_SAMPLES,
    model_name: Optional[str] = None,
) -> EvaluationReport:
    """
    Score an ensemble on the finished matches picked by `selection`.

    Matches whose features cannot be generated are skipped, as in training.

    Raises
    ------
    InsufficientDataError
        If fewer than `min_samples` labelled samples remain.
    """
    if extractor is None:
        extractor = FeatureExtractor(repository, cache=FeatureCache())
    matches = repository.select_matches(selection)
    dataset = extractor.build_labeled_samples(matches)
    report = evaluate(ensemble, dataset.features, dataset.labels, min_samples=min_samples)
    report.model_name = model_name
    return report


def plot_confusion_matrix(report: EvaluationReport, out_path: Optional[Path] = None) -> Path:
    """Plot and save the confusion matrix of a report."""
    if out_path is None:
        out_path = get_plot_path("confusion_matrix.png")
    cm = np.asarray(report.confusion_matrix, dtype=int)
    labels = report.class_labels

    fig, ax = plt.subplots(figsize=(6, 5))
    im = ax.imshow(cm, interpolation="nearest")
    ax.figure.colorbar(im, ax=ax)

    ax.set_xticks(np.arange(len(labels)))
    ax.set_yticks(np.arange(len(labels)))
    ax.set_xticklabels(labels)
    ax.set_yticklabels(labels)
    ax.set_xlabel("Predicted label")
    ax.set_ylabel("True label")
    title = "Confusion Matrix"
    if report.model_name:
        title = f"{title} ({report.model_name})"
    ax.set_title(title)

    # Annotate cells
    thresh = cm.max() / 2.0 if cm.max() > 0 else 0.5
    for i in range(cm.shape[0]):
        for j in range(cm.shape[1]):
            ax.text(
                j,
                i,
                format(cm[i, j], "d"),
                ha="center",
                va="center",
                color="white" if cm[i, j] > thresh else "black",
            )

    fig.tight_layout()
    fig.savefig(out_path)
    plt.close(fig)
    logger.info("Saved confusion matrix plot to %s", out_path)
    return Path(out_path)


def plot_feature_importances(
    ensemble: Ensemble, out_path: Optional[Path] = None, top_n: int = 20
) -> Path:
    """Horizontal bar chart of the most important features."""
    if out_path is None:
        out_path = get_plot_path("feature_importances.png")
    top = top_feature_importances(ensemble, top_n=top_n)
    names = [item["feature_name"] for item in top]
    values = [item["importance"] for item in top]

    fig, ax = plt.subplots(figsize=(8, 6))
    ax.barh(range(len(top)), values)
    ax.set_yticks(range(len(top)))
    ax.set_yticklabels(names)
    ax.invert_yaxis()
    ax.set_xlabel("Relative Importance")
    ax.set_title("Top Feature Importances")

    fig.tight_layout()
    fig.savefig(out_path)
    plt.close(fig)
    logger.info("Saved feature importances plot to %s", out_path)
    return Path(out_path)


def main() -> None:
    parser = argparse.ArgumentParser(description="Evaluate a trained FootyForest model.")
    parser.add_argument("--model", required=True, help="Name of the persisted model.")
    parser.add_argument("--data", default=None, help="Raw matches CSV (defaults to config).")
    parser.add_argument("--models-dir", default=None, help="Model artifact directory.")
    parser.add_argument("--competition", default=None, help="Competition id filter.")
    parser.add_argument("--season", type=int, default=None, help="Season start year filter.")
    parser.add_argument("--days-back", type=int, default=None, help="Lookback window in days.")
    parser.add_argument("--min-samples", type=int, default=MIN_EVALUATION_SAMPLES)
    parser.add_argument("--no-plots", action="store_true", help="Skip saving plots.")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()
    set_log_level(args.log_level)

    store = ModelStore(args.models_dir)
    ensemble = store.load(args.model)
    selection = DataSelection(
        season=args.season,
        competition_id=args.competition,
        days_back=args.days_back,
        min_matches_per_team=0,
        limit=None,
    )
    report = evaluate_on_matches(
        ensemble,
        MatchRepository.from_csv(args.data),
        selection,
        min_samples=args.min_samples,
        model_name=args.model,
    )

    # Print a concise summary to stdout as well
    print("Evaluation metrics:")
    for k in ("accuracy", "log_loss", "baseline_accuracy"):
        print(f"  {k}: {getattr(report, k):.4f}")
    print(json.dumps(report.per_class, indent=2))

    if not args.no_plots:
        plot_confusion_matrix(report)
        plot_feature_importances(ensemble)


if __name__ == "__main__":
    main()
