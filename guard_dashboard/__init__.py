"""
Ads Guard Dashboard - JSON API for savings, activity, logs and undo.
"""

from .app import create_app

__all__ = ["create_app"]
