"""Admin-mediated encrypted messaging service."""

__version__ = "0.1.0"
