"""billbook - billing engine for a retail bookshop."""

__version__ = "0.1.0"
