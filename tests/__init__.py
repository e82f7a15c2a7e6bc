"""
GraphSync Test Suite.

This package contains:
- unit/: Unit tests for pure modules (query, focus, indexer, normalizer,
  merge, history, config)
- integration/: Reconciler tests driven through the in-memory host
"""
