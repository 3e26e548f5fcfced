"""
Identity field resolution.

Decides, once per repository, which entity field is stored under the
reserved ``id`` attribute. First match wins:

1. an explicitly selected field, which must be stored as ``id``
2. a field already stored as ``id`` (``id: str`` or ``Field(alias="id")``)
3. a field named ``Id``/``ID`` that is not stored as ``id`` is rejected,
   since the store would otherwise generate a second identity for it
4. nothing found: rejected
"""

import logging

from ..constants import IDENTITY_ATTRIBUTE
from ..exceptions import IdentityResolutionError
from .descriptor import EntityDescriptor

logger = logging.getLogger(__name__)


def resolve_identity_field(descriptor: EntityDescriptor, id_field: str | None = None) -> str:
    """
    Resolve the identity field name for an entity type.

    Args:
        descriptor: Descriptor of the entity type
        id_field: Optional explicit field name to use as identity

    Returns:
        Name of the identity field (the Python attribute name)

    Raises:
        IdentityResolutionError: If no field qualifies, or the selected one
            is not stored under the reserved identity attribute
    """
    type_name = descriptor.type_name

    if id_field is not None:
        selected = descriptor.field(id_field)
        if selected is None:
            raise IdentityResolutionError(
                f"'{type_name}' has no field named '{id_field}'",
                entity_type=type_name,
                field_name=id_field,
            )
        _ensure_stored_as_identity(type_name, selected.name, selected.serialized_name)
        return selected.name

    stored_as_id = [f for f in descriptor.fields if f.serialized_name == IDENTITY_ATTRIBUTE]
    if len(stored_as_id) > 1:
        raise IdentityResolutionError(
            f"'{type_name}' has more than one field stored as "
            f"'{IDENTITY_ATTRIBUTE}': {', '.join(f.name for f in stored_as_id)}",
            entity_type=type_name,
        )
    if stored_as_id:
        return stored_as_id[0].name

    for candidate in descriptor.fields:
        if candidate.name.lower() == IDENTITY_ATTRIBUTE:
            _ensure_stored_as_identity(type_name, candidate.name, candidate.serialized_name)

    raise IdentityResolutionError(
        f"Unique identity field not found on '{type_name}'. Add an "
        f"'{IDENTITY_ATTRIBUTE}' field, or alias another field to "
        f"'{IDENTITY_ATTRIBUTE}' and select it with id_field",
        entity_type=type_name,
    )


def _ensure_stored_as_identity(type_name: str, field_name: str, serialized_name: str) -> None:
    if serialized_name != IDENTITY_ATTRIBUTE:
        logger.warning(
            f"Identity field '{type_name}.{field_name}' is stored as "
            f"'{serialized_name}', expected '{IDENTITY_ATTRIBUTE}'"
        )
        raise IdentityResolutionError(
            f"'{field_name}' must be stored under '{IDENTITY_ATTRIBUTE}' "
            f"(pydantic: Field(alias='{IDENTITY_ATTRIBUTE}'), dataclass: "
            f"field(metadata={{'alias': '{IDENTITY_ATTRIBUTE}'}}))",
            entity_type=type_name,
            field_name=field_name,
        )
