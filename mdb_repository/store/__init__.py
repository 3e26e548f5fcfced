"""
Store client boundary.

StoreClient is the contract the repository talks to; MotorStoreClient
implements it for MongoDB and InMemoryStoreClient in process memory.
"""

from .base import CollectionHandle, DatabaseHandle, StoreClient
from .initializer import create_client, create_mongo_client, verify_connection
from .memory import InMemoryStoreClient
from .motor_client import MotorStoreClient

__all__ = [
    "CollectionHandle",
    "DatabaseHandle",
    "StoreClient",
    "InMemoryStoreClient",
    "MotorStoreClient",
    "create_client",
    "create_mongo_client",
    "verify_connection",
]
