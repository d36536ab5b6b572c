"""dice-apply — session bootstrap, search extraction, and Easy apply automation."""

__version__ = "0.1.0"
