"""Utility modules for farescope."""

from farescope.utils.url_builder import build_google_flights_url

__all__ = ["build_google_flights_url"]
