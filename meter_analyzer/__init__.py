"""Meter analyzer: label grouping and scope resolution for meter expressions."""

__version__ = "0.1.0"
