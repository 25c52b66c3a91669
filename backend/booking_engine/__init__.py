"""Reservation lifecycle engine for bookable workspaces."""

__version__ = "1.0.0"
