"""State/store layer.

This package is the single source of truth for how the initial snapshot,
change-feed events and local optimistic reports are merged into one
per-location view, and how that view decays over time.
"""
