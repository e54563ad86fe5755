"""StatsGuard - schema-driven validation of dataset feature statistics."""

__version__ = "0.1.0"
