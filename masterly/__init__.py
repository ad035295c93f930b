"""Masterly: concept mastery and prerequisite unlock engine."""

__version__ = "1.0.0"
