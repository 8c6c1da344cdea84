"""Label field classification and comparison engine."""

__version__ = "1.0.0"
