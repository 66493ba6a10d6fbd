"""Headless console host for the deck engine."""
