"""
Field-by-field copy between entities.

Used by the read-modify-write upsert: the incoming entity's values are copied
onto the stored one, so the stored identity is kept.
"""

from typing import Any, TypeVar

from .descriptor import describe

D = TypeVar("D")


def merge_fields(
    source: Any,
    destination: D,
    include_identity: bool = False,
    *,
    identity_field: str,
) -> D:
    """
    Copy every value ``source`` can provide onto ``destination``.

    A destination field is copied when it is writable and the source has a
    readable field of the same name. The identity field is skipped unless
    ``include_identity`` is set. Source and destination may be of different
    entity types.

    Args:
        source: Entity to read values from
        destination: Entity to write values to (modified in place)
        include_identity: Also copy the identity field
        identity_field: Name of the identity field on the destination

    Returns:
        The destination entity
    """
    source_descriptor = describe(type(source))
    destination_descriptor = describe(type(destination))

    for target in destination_descriptor.fields:
        if not target.writable:
            continue
        if target.name == identity_field and not include_identity:
            continue

        origin = source_descriptor.field(target.name)
        if origin is None or not origin.readable:
            continue

        destination_descriptor.set(
            destination, target.name, source_descriptor.get(source, origin.name)
        )

    return destination
