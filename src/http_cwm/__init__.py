"""http-cwm - per-deployment object-storage traffic ingestion."""

from http_cwm._version import __version__

__all__ = ["__version__"]
