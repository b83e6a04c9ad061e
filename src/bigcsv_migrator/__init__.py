"""Legacy CSV to relational database migration pipeline."""

__version__ = "0.1.0"

__all__ = ["__version__"]
