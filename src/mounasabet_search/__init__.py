"""Search, result caching and search analytics for the Mounasabet marketplace."""

__version__ = "0.1.0"
