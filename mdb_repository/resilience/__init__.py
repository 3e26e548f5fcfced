"""
Resilience patterns.

Retry with exponential backoff for transient store failures.
"""

from .retry import ResilientStoreClient

__all__ = ["ResilientStoreClient"]
