"""Synchronize Oracle Content Management channels into local nodes and files."""

__version__ = "0.1.0"
