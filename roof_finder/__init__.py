"""Roof Finder - map-driven roof lead capture and conversion."""

__version__ = "1.0.0"
