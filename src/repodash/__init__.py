"""
repodash - repository dashboard backed by an expiry-aware, persistent cache.
"""

__version__ = "0.1.0"
