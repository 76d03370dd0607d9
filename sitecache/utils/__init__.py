"""
Small helpers shared across layers: URL handling, formatting and logging.
"""
