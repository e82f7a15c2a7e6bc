"""
Index module for GraphSync.

The Indexer maps query properties to the classes reading them, class-paths
to query templates, and refs and classes to live component instances.
"""

from .indexer import ClassPath, Indexer

__all__ = ["ClassPath", "Indexer"]
