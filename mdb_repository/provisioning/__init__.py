"""
Lazy, idempotent provisioning of databases and collections.
"""

from .cache import ProvisioningCache
from .lazy import AsyncLazy, LazyState

__all__ = ["AsyncLazy", "LazyState", "ProvisioningCache"]
