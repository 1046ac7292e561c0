"""Shared helpers for looptrack."""
