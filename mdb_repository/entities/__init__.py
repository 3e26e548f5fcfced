"""
Entity metadata: field descriptors, identity resolution and field merging.
"""

from .descriptor import (
    DataclassDescriptor,
    EntityDescriptor,
    EntityField,
    PydanticDescriptor,
    describe,
)
from .identity import resolve_identity_field
from .merge import merge_fields

__all__ = [
    "EntityDescriptor",
    "EntityField",
    "PydanticDescriptor",
    "DataclassDescriptor",
    "describe",
    "resolve_identity_field",
    "merge_fields",
]
