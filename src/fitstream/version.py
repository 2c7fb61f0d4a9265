"""Version information for fitstream."""

__version__ = "0.1.0"
