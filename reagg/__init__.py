"""Areal re-aggregation of polygon attributes onto non-matching polygons."""

__version__ = '0.1.0'
