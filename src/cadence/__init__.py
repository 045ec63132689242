"""Cadence: turn recurring personal goals into calendar suggestions."""

__version__ = "0.1.0"
