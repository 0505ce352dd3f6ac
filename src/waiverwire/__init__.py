"""Waiver-wire claim processing for fantasy football leagues."""

__version__ = "0.1.0"
