"""Data layer: models and storage."""
