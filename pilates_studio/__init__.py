"""Pilates studio booking core: lessons, reservations, tickets and waitlists."""

__version__ = "0.1.0"
