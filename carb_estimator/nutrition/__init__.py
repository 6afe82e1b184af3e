"""Turning model output into nutrition records."""
