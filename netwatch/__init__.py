"""netwatch: request interception for automated browsing sessions."""

__version__ = "1.0.0"
