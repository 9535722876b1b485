"""Load & trip lifecycle engine for moving and freight operations."""

__version__ = "0.1.0"
