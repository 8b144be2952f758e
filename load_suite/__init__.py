"""Sequential k6 load-suite runner with HTML/CSV reporting."""

__version__ = "0.1.0"
