"""
Feature engineering and ETL pipeline for FootyForest.

- `feature_builder` computes leakage-free, normalized match feature vectors.
- `feature_cache` holds the TTL/LRU cache for per-team feature groups.
- `etl_pipeline` wires everything together into a CLI-style script.
"""
