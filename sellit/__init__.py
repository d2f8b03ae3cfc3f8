"""Sellit: multi-store marketplace API with a combinatorial product variant engine."""

__version__ = "0.1.0"
