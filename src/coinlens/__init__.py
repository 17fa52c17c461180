"""coinlens: cached cryptocurrency market listings."""

__version__ = "0.1.0"
