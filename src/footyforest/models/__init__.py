"""
Decision-tree ensembles for FootyForest.

- `tree` grows Gini-impurity decision trees.
- `forest` bags trees into ensembles and aggregates their votes.
- `validation` runs k-fold cross-validation and hyperparameter search.
- `model_store` persists ensembles and the training history.
- `train_model` / `evaluate_model` are the training and evaluation CLIs.
- `predictor` and `metrics` serve predictions and evaluation reports.
"""
