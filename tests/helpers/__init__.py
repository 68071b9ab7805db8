"""Shared test helpers for the wtdev suite."""
