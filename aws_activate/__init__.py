"""Resolve AWS profiles into credentials and manage the active default session."""

__version__ = "0.1.0"
