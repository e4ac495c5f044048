"""Chat-driven C++ sandbox runner."""

__version__ = "1.0.0"
