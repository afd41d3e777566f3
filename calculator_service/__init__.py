"""Calculation service with result caching and Kafka lifecycle events."""

__version__ = "1.0.0"
