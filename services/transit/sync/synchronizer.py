"""
Entity synchronizer -- create / update / delete across the two stores.

The core record (relational) is authoritative for identity and referential
integrity. The detail document is best-effort: every document-store
failure during a mutation is logged with entity, id and reference, then
swallowed. Relational failures always end the operation.

Create:
  1. detail payload given -> create_detail (back-reference placeholder 0).
     Failure: log, continue with detail_ref=None.
  2. core create with detail_ref. Failure: EntityCreateFailed. A document
     from step 1 is now orphaned; logged at ERROR for reconciliation.
  3. attach_back_reference(ref, core_id). Failure: log, continue.
  4. return the re-read core record.

Update:
  1. record has detail_ref and detail fields or mirrored core fields
     given -> update_detail.
     Failure: log, continue.
  2. core update (incl. recomputed rollups). Failure: EntityUpdateFailed.
  3. return the re-read core record.

Delete:
  1. re-read, evaluate dependent guards -> DependentsExist, no mutation.
  2. detail_ref present -> delete_detail. Failure: log, continue.
  3. core delete. Failure: EntityDeleteFailed.

The document is written before the core row so the core row gets its
reference in the INSERT itself; the back-reference is written after
because the core id does not exist until then.

Steps run strictly in sequence. There is no entity-level locking and no
cross-store atomicity: concurrent writers are last-write-wins per store.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Collection, Hashable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from services.transit.geo.proximity import NearbyMatch, match_nearby
from services.transit.reporting.statistics import Summary, summarize
from services.transit.sync.core_repository import (
    CoreRepository,
    FilterCriteria,
    Page,
    RecordQuery,
    SQLCoreRepository,
)
from services.transit.sync.detail_store import DetailDocument, DetailStore, RedisDetailStore
from services.transit.sync.entities import ENTITY_TYPES, EntityType
from services.transit.sync.errors import (
    CoreStoreError,
    DependentsExist,
    DetailNotFound,
    DetailStoreUnavailable,
    EntityCreateFailed,
    EntityDeleteFailed,
    EntityUpdateFailed,
    InvalidStatusTransition,
    RecordNotFound,
)

logger = logging.getLogger(__name__)

# Document-side failures the synchronizer degrades on
_DETAIL_ERRORS = (DetailStoreUnavailable, DetailNotFound)

# Core-side failures that end an update in progress
_CORE_UPDATE_ERRORS = (CoreStoreError, RecordNotFound)


@dataclass
class HydratedRecord:
    """A core record plus its detail document, when one could be read."""

    record: Any
    details: DetailDocument | None = None


class EntitySynchronizer:
    """
    Two-store lifecycle for one entity type.

    Usage:
        sync = EntitySynchronizer(STATION, repository, detail_store)
        station = await sync.create(
            {"name": "La Y", "transport_type": "metro", "coordinates": "-0.16,-78.48"},
            {"accessibility": {"elevator": True}, "photos": []},
        )
    """

    def __init__(self, entity: EntityType, repository: CoreRepository, detail_store: DetailStore) -> None:
        self.entity = entity
        self.repository = repository
        self.detail_store = detail_store

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_core_fields(self, fields: dict[str, Any]) -> None:
        unknown = set(fields) - self.entity.core_fields
        if unknown:
            raise ValueError(f"{self.entity.name} core record has no fields {sorted(unknown)}")

    def _mirrored(self, core_fields: dict[str, Any]) -> dict[str, Any]:
        return {k: v for k, v in core_fields.items() if k in self.entity.mirrored_fields}

    async def _attach(self, reference: str, core_id: int) -> None:
        try:
            await self.detail_store.attach_back_reference(reference, core_id)
        except _DETAIL_ERRORS:
            logger.warning(
                "sync attach failed: entity=%s id=%s ref=%s (back-reference left at placeholder)",
                self.entity.name,
                core_id,
                reference,
                exc_info=True,
            )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def read(self, core_id: int) -> Any:
        return await self.repository.read(core_id)

    async def read_with_details(self, core_id: int) -> HydratedRecord:
        """Core record plus detail document; an unreadable document yields details=None."""
        record = await self.repository.read(core_id)
        if not record.detail_ref:
            return HydratedRecord(record)
        try:
            details = await self.detail_store.read_detail(record.detail_ref)
        except _DETAIL_ERRORS:
            logger.warning(
                "sync hydrate failed: entity=%s id=%s ref=%s",
                self.entity.name,
                core_id,
                record.detail_ref,
                exc_info=True,
            )
            details = None
        return HydratedRecord(record, details)

    def find(self, criteria: FilterCriteria | None = None) -> RecordQuery:
        return self.repository.find_by_filter(criteria)

    async def find_page(
        self,
        criteria: FilterCriteria | None = None,
        *,
        page: int = 1,
        limit: int = 10,
    ) -> Page:
        return await self.repository.find_page(criteria, page=page, limit=limit)

    async def find_nearby(
        self,
        lat: float,
        lng: float,
        radius_km: float | None = None,
        criteria: FilterCriteria | None = None,
    ) -> list[NearbyMatch]:
        """Records within radius_km (entity default when None), nearest first."""
        if self.entity.coordinate_field is None:
            raise ValueError(f"{self.entity.name} has no coordinate field")
        if radius_km is None:
            radius_km = self.entity.default_radius_km
        records = await self.repository.find_by_filter(criteria).all()
        return match_nearby(
            records,
            lat,
            lng,
            radius_km,
            coordinate_field=self.entity.coordinate_field,
        )

    async def summarize(
        self,
        value: str | Callable[[Any], Any],
        group_by: str | Callable[[Any], Hashable] | None = None,
        criteria: FilterCriteria | None = None,
    ) -> Summary:
        records = await self.repository.find_by_filter(criteria).all()
        return summarize(records, value, group_by)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create(
        self,
        core_fields: dict[str, Any] | None = None,
        detail: dict[str, Any] | None = None,
    ) -> Any:
        """
        Create the core record and, when `detail` is given, its document.

        Raises:
            EntityCreateFailed: the core insert failed.
        """
        core_fields = dict(core_fields or {})
        self._check_core_fields(core_fields)
        if self.entity.default_status and "status" not in core_fields:
            core_fields["status"] = self.entity.default_status

        reference: str | None = None
        if detail is not None:
            try:
                reference = await self.detail_store.create_detail(
                    {**self._mirrored(core_fields), **detail}
                )
            except DetailStoreUnavailable:
                logger.warning(
                    "sync create: detail store unavailable, creating %s without details",
                    self.entity.name,
                    exc_info=True,
                )

        try:
            core_id = await self.repository.create({**core_fields, "detail_ref": reference})
        except CoreStoreError as exc:
            if reference:
                logger.error(
                    "sync create failed after detail insert: entity=%s orphan_ref=%s",
                    self.entity.name,
                    reference,
                )
            raise EntityCreateFailed(self.entity.name, reference) from exc

        if reference:
            await self._attach(reference, core_id)

        logger.info(
            "sync create: entity=%s id=%s ref=%s",
            self.entity.name,
            core_id,
            reference,
        )
        return await self.repository.read(core_id)

    async def update(
        self,
        core_id: int,
        core_fields: dict[str, Any] | None = None,
        detail_fields: dict[str, Any] | None = None,
    ) -> Any:
        """
        Apply partial changes to either half.

        Mirrored core fields are copied onto the detail document whenever
        one exists, even if no detail_fields are given.

        Raises:
            RecordNotFound: no such core record.
            EntityUpdateFailed: the core update failed.
        """
        core_fields = dict(core_fields or {})
        self._check_core_fields(core_fields)
        record = await self.repository.read(core_id)

        document_update = {**self._mirrored(core_fields), **(detail_fields or {})}
        if document_update and record.detail_ref:
            try:
                await self.detail_store.update_detail(record.detail_ref, document_update)
            except _DETAIL_ERRORS:
                logger.warning(
                    "sync update: detail write failed: entity=%s id=%s ref=%s",
                    self.entity.name,
                    core_id,
                    record.detail_ref,
                    exc_info=True,
                )
        elif detail_fields:
            logger.warning(
                "sync update: entity=%s id=%s has no detail document, dropped fields=%s",
                self.entity.name,
                core_id,
                sorted(detail_fields),
            )

        rollup = self.entity.rollup
        if (
            rollup is not None
            and {rollup.average_column, rollup.count_column} & set(core_fields)
        ):
            # A hand-edited average or count invalidates the running total.
            core_fields[rollup.total_column] = None

        try:
            await self.repository.update(core_id, core_fields)
        except _CORE_UPDATE_ERRORS as exc:
            raise EntityUpdateFailed(self.entity.name, core_id) from exc

        logger.info("sync update: entity=%s id=%s", self.entity.name, core_id)
        return await self.repository.read(core_id)

    async def delete(self, core_id: int) -> None:
        """
        Delete both halves, core record last.

        Raises:
            RecordNotFound: no such core record.
            DependentsExist: a dependent guard is violated; nothing was changed.
            EntityDeleteFailed: the core delete failed.
        """
        record = await self.repository.read(core_id)

        dependents: dict[str, int] = {}
        for guard in self.entity.dependents:
            count = await self.repository.count_dependents(core_id, guard)
            if count:
                dependents[guard.label] = count
        if dependents:
            raise DependentsExist(self.entity.name, core_id, dependents)

        if record.detail_ref:
            try:
                await self.detail_store.delete_detail(record.detail_ref)
            except DetailStoreUnavailable:
                logger.warning(
                    "sync delete: detail delete failed: entity=%s id=%s orphan_ref=%s",
                    self.entity.name,
                    core_id,
                    record.detail_ref,
                    exc_info=True,
                )

        try:
            await self.repository.delete(core_id)
        except CoreStoreError as exc:
            raise EntityDeleteFailed(self.entity.name, core_id) from exc

        logger.info(
            "sync delete: entity=%s id=%s ref=%s",
            self.entity.name,
            core_id,
            record.detail_ref,
        )

    async def transition_status(
        self,
        core_id: int,
        to_status: str,
        *,
        from_statuses: Collection[str] | None = None,
    ) -> Any:
        """
        Move a record to `to_status` (approve, reject, suspend...).

        Raises:
            InvalidStatusTransition: current status not in from_statuses.
        """
        record = await self.repository.read(core_id)
        if from_statuses is not None and record.status not in from_statuses:
            raise InvalidStatusTransition(self.entity.name, core_id, record.status, to_status)
        return await self.update(core_id, {"status": to_status})

    async def add_review(self, core_id: int, review: dict[str, Any]) -> Any:
        """
        Append a review to the detail document and refresh the rating rollup.

        The new average and count are computed from the core record's
        unrounded running total and count plus this review, before any
        detail write, so a failed document write never skews them. Only the
        stored average is rounded to 2 decimals. A record without a detail
        document gets one created.

        Raises:
            ValueError: entity has no rollup, or the review has no numeric value.
            EntityUpdateFailed: the core update failed.
        """
        rollup = self.entity.rollup
        if rollup is None:
            raise ValueError(f"{self.entity.name} does not take reviews")
        try:
            value = float(review[rollup.value_key])
        except (KeyError, TypeError, ValueError):
            raise ValueError(f"review needs a numeric {rollup.value_key!r}") from None

        record = await self.repository.read(core_id)
        count = int(getattr(record, rollup.count_column) or 0)
        total = getattr(record, rollup.total_column, None)
        if total is None:
            # Rows predating the running total only have the rounded average.
            total = float(getattr(record, rollup.average_column) or 0) * count
        new_total = float(total) + value
        new_count = count + 1
        new_average = round(new_total / new_count, 2)

        item = {"created_at": datetime.now(timezone.utc).isoformat(), **review}
        core_update: dict[str, Any] = {
            rollup.average_column: new_average,
            rollup.count_column: new_count,
            rollup.total_column: new_total,
        }
        reference = record.detail_ref
        created_reference: str | None = None

        if reference:
            try:
                document = await self.detail_store.read_detail(reference)
                items = list(document.payload.get(rollup.items_field) or [])
                items.append(item)
                await self.detail_store.update_detail(
                    reference,
                    {rollup.items_field: items, rollup.average_column: new_average},
                )
            except _DETAIL_ERRORS:
                logger.warning(
                    "sync review: detail write failed: entity=%s id=%s ref=%s",
                    self.entity.name,
                    core_id,
                    reference,
                    exc_info=True,
                )
        else:
            try:
                created_reference = await self.detail_store.create_detail(
                    {rollup.items_field: [item], rollup.average_column: new_average}
                )
                core_update["detail_ref"] = created_reference
            except DetailStoreUnavailable:
                logger.warning(
                    "sync review: could not create detail document: entity=%s id=%s",
                    self.entity.name,
                    core_id,
                    exc_info=True,
                )

        try:
            await self.repository.update(core_id, core_update)
        except _CORE_UPDATE_ERRORS as exc:
            if created_reference:
                logger.error(
                    "sync review failed after detail insert: entity=%s id=%s orphan_ref=%s",
                    self.entity.name,
                    core_id,
                    created_reference,
                )
            raise EntityUpdateFailed(self.entity.name, core_id) from exc

        if created_reference:
            await self._attach(created_reference, core_id)

        logger.info(
            "sync review: entity=%s id=%s average=%.2f count=%d",
            self.entity.name,
            core_id,
            new_average,
            new_count,
        )
        return await self.repository.read(core_id)


class EntityRegistry:
    """
    One synchronizer per entity type, built once at process start.

        registry = EntityRegistry.build(session_factory, redis)
        stations = registry["station"]
    """

    def __init__(self, synchronizers: dict[str, EntitySynchronizer]) -> None:
        self._synchronizers = synchronizers

    @classmethod
    def build(cls, session_factory, redis, entity_types: dict[str, EntityType] | None = None) -> EntityRegistry:
        entity_types = entity_types or ENTITY_TYPES
        return cls({
            name: EntitySynchronizer(
                entity,
                SQLCoreRepository(session_factory, entity),
                RedisDetailStore(redis, entity.detail_collection),
            )
            for name, entity in entity_types.items()
        })

    def __getitem__(self, name: str) -> EntitySynchronizer:
        return self._synchronizers[name]

    def __iter__(self):
        return iter(self._synchronizers.values())

    def __len__(self) -> int:
        return len(self._synchronizers)
