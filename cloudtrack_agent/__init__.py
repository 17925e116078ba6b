"""CloudTrack asset expiry notifications and AI advisor."""

__version__ = "0.1.0"
