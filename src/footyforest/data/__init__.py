"""
Data layer for FootyForest.

Includes:
- Raw match schema and validation (`schema`)
- Loading utilities and the read-only `MatchRepository` (`data_loader`)
"""
