"""Shared utilities for wtdev."""
