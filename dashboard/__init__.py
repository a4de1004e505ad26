"""
Dashboard - read-only REST API over signals and statistics.
"""

from dashboard.api import create_app

__all__ = ["create_app"]
