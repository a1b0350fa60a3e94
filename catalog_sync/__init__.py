"""Keep translation targets in sync with an evolving source catalog."""

__version__ = "1.0.0"
