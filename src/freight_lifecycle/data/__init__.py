"""Data layer: snapshot models."""
