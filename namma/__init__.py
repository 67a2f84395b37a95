"""Namma: personal productivity data kernel."""

__version__ = "0.1.0"
