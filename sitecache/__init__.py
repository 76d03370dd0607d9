"""
sitecache: a cache-first offline cache manager for static websites.
"""

__version__ = "1.0.0"
