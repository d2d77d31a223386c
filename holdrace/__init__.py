"""Seat hold contention load generator."""

__version__ = "1.0.0"
