"""
Error taxonomy for the dual-store entity core.

Fatal vs. non-fatal is decided by the synchronizer, not here:
  - Relational failures (CoreStoreError, Conflict, RecordNotFound) always
    propagate, wrapped in EntityCreateFailed / EntityUpdateFailed /
    EntityDeleteFailed where an operation is in progress.
  - DetailStoreUnavailable / DetailNotFound raised during a mutation are
    logged and swallowed; the core record stays authoritative.
  - InvalidCoordinate never ends an operation; the proximity matcher uses it
    to drop a record from results.
"""

from __future__ import annotations


class TransitCoreError(Exception):
    """Base class for every error raised by the entity core."""


# -- Lookup -----------------------------------------------------------------

class NotFound(TransitCoreError):
    """Read-by-id found nothing. Filtered searches return empty instead."""


class RecordNotFound(NotFound):
    def __init__(self, entity: str, core_id: int) -> None:
        self.entity = entity
        self.core_id = core_id
        super().__init__(f"{entity} {core_id} not found")


class DetailNotFound(NotFound):
    def __init__(self, collection: str, reference: str) -> None:
        self.collection = collection
        self.reference = reference
        super().__init__(f"detail document {collection}/{reference} not found")


# -- Stores -----------------------------------------------------------------

class DetailStoreUnavailable(TransitCoreError):
    """Transport or connection failure talking to the document store."""


class CoreStoreError(TransitCoreError):
    """Generic relational-store failure (connection, timeout, bad SQL)."""


class Conflict(CoreStoreError):
    """Unique-constraint or foreign-key violation surfaced by the database."""


# -- Synchronizer operations ------------------------------------------------

class EntityCreateFailed(TransitCoreError):
    def __init__(self, entity: str, detail_ref: str | None = None) -> None:
        self.entity = entity
        self.detail_ref = detail_ref
        msg = f"failed to create {entity}"
        if detail_ref:
            msg += f" (orphaned detail document {detail_ref})"
        super().__init__(msg)


class EntityUpdateFailed(TransitCoreError):
    def __init__(self, entity: str, core_id: int) -> None:
        self.entity = entity
        self.core_id = core_id
        super().__init__(f"failed to update {entity} {core_id}")


class EntityDeleteFailed(TransitCoreError):
    def __init__(self, entity: str, core_id: int) -> None:
        self.entity = entity
        self.core_id = core_id
        super().__init__(f"failed to delete {entity} {core_id}")


class DependentsExist(TransitCoreError):
    """Delete refused because other core records still reference this one."""

    def __init__(self, entity: str, core_id: int, dependents: dict[str, int]) -> None:
        self.entity = entity
        self.core_id = core_id
        self.dependents = dependents
        summary = ", ".join(f"{count} {label}" for label, count in dependents.items())
        super().__init__(f"cannot delete {entity} {core_id}: has {summary}")


class InvalidStatusTransition(TransitCoreError):
    def __init__(self, entity: str, core_id: int, current: str, target: str) -> None:
        self.entity = entity
        self.core_id = core_id
        self.current = current
        self.target = target
        super().__init__(
            f"{entity} {core_id} cannot move from {current!r} to {target!r}"
        )


# -- Geo --------------------------------------------------------------------

class InvalidCoordinate(TransitCoreError, ValueError):
    def __init__(self, raw: object, reason: str) -> None:
        self.raw = raw
        self.reason = reason
        super().__init__(f"invalid coordinate {raw!r}: {reason}")
