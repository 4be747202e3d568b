"""Security context constraint matching, defaulting and validation for pods."""

__version__ = "0.1.0"