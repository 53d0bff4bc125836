"""Authentication and session core for the internship board API."""

__version__ = "0.1.0"
