# media_insights/core/indexing/__init__.py
"""
Media usage indexing.

Folds the audit and media logs into per-page usage rows, reconciles them
with the persisted index and coordinates full and incremental builds.
"""
