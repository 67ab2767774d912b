"""Domain models, errors and normalization helpers."""
