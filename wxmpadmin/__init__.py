"""Push-message handling, platform API client, token caching and MongoDB models for official accounts."""

__version__ = "0.1.0"