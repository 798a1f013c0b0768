"""
Cross-store reconciliation job.

The synchronizer never rolls back across stores, so over time the two halves
drift. This job finds and (with --repair) fixes the drift, one entity type
at a time.

Pass 1 -- core -> document:
  Core records whose detail_ref resolves to no document ("dangling").
  Repair: set detail_ref = NULL. NULL is a valid permanent state.

Pass 2 -- document -> core:
  For every document in the entity's collection:
    - back-reference points at a core record that references it: healthy
    - some core record references it but the back-reference is missing or
      wrong ("unattached", an attach step that failed).
      Repair: re-attach the back-reference.
    - nothing references it ("orphan", a create whose core insert failed or
      a delete whose document delete failed).
      Repair: delete the document.
  Documents still carrying the placeholder back-reference and younger than
  the grace period are skipped ("pending"); their create may be in flight.

Idempotent: a second run over a repaired store finds nothing. Scheduling
and retry policy belong to the deployment (cron / Cloud Scheduler).

Usage:
    python -m services.transit.jobs.reconcile
    python -m services.transit.jobs.reconcile --entity station --repair
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from services.transit.config import settings
from services.transit.sync.core_repository import FilterCriteria
from services.transit.sync.errors import DetailNotFound, RecordNotFound
from services.transit.sync.synchronizer import EntityRegistry, EntitySynchronizer

logger = logging.getLogger(__name__)


@dataclass
class ReconcileStats:
    """Summary of one entity type's reconciliation run."""

    entity: str
    repair: bool = False
    records_checked: int = 0
    documents_checked: int = 0
    dangling_records: list[int] = field(default_factory=list)
    unattached_documents: list[str] = field(default_factory=list)
    orphan_documents: list[str] = field(default_factory=list)
    pending_documents: int = 0
    repaired: int = 0
    duration_ms: int = 0

    @property
    def is_consistent(self) -> bool:
        return not (self.dangling_records or self.unattached_documents or self.orphan_documents)


async def _check_records(sync: EntitySynchronizer, stats: ReconcileStats) -> None:
    repository, store = sync.repository, sync.detail_store
    query = repository.find_by_filter(FilterCriteria(is_not_null=("detail_ref",)))

    async for record in query:
        stats.records_checked += 1
        if await store.exists(record.detail_ref):
            continue

        stats.dangling_records.append(record.id)
        logger.warning(
            "reconcile: dangling reference entity=%s id=%s ref=%s",
            stats.entity,
            record.id,
            record.detail_ref,
        )
        if stats.repair:
            await repository.update(record.id, {"detail_ref": None})
            stats.repaired += 1


async def _owner_of(sync: EntitySynchronizer, reference: str, core_id: int):
    """The core record that references `reference`, or None."""
    if core_id:
        try:
            record = await sync.repository.read(core_id)
        except RecordNotFound:
            record = None
        if record is not None and record.detail_ref == reference:
            return record

    claimers = await sync.repository.find_by_filter(
        FilterCriteria(equals={"detail_ref": reference}, limit=1)
    ).all()
    return claimers[0] if claimers else None


async def _check_documents(
    sync: EntitySynchronizer,
    stats: ReconcileStats,
    *,
    grace_period: timedelta,
    now: datetime,
) -> None:
    store = sync.detail_store

    async for reference in store.iter_references():
        try:
            document = await store.read_detail(reference)
        except DetailNotFound:
            # Deleted between SCAN and read
            continue
        stats.documents_checked += 1

        owner = await _owner_of(sync, reference, document.core_id)
        if owner is not None:
            if owner.id == document.core_id:
                continue
            stats.unattached_documents.append(reference)
            logger.warning(
                "reconcile: unattached document entity=%s id=%s ref=%s back_ref=%s",
                stats.entity,
                owner.id,
                reference,
                document.core_id,
            )
            if stats.repair:
                await store.attach_back_reference(reference, owner.id)
                stats.repaired += 1
            continue

        if (
            not document.is_attached
            and document.created_at is not None
            and now - document.created_at < grace_period
        ):
            stats.pending_documents += 1
            continue

        stats.orphan_documents.append(reference)
        logger.warning(
            "reconcile: orphan document entity=%s ref=%s back_ref=%s",
            stats.entity,
            reference,
            document.core_id,
        )
        if stats.repair:
            await store.delete_detail(reference)
            stats.repaired += 1


async def reconcile_entity(
    sync: EntitySynchronizer,
    *,
    repair: bool = False,
    grace_period_s: int | None = None,
    now: datetime | None = None,
) -> ReconcileStats:
    """
    Reconcile one entity type. Store failures propagate; re-run the job.

    Args:
        sync: The entity's synchronizer (gives access to both adapters).
        repair: Apply fixes instead of only reporting.
        grace_period_s: Placeholder documents younger than this are skipped.
        now: Clock override for tests.
    """
    t0 = time.monotonic()
    stats = ReconcileStats(entity=sync.entity.name, repair=repair)
    grace = timedelta(
        seconds=settings.reconcile_grace_period_s if grace_period_s is None else grace_period_s
    )

    await _check_records(sync, stats)
    await _check_documents(sync, stats, grace_period=grace, now=now or datetime.now(timezone.utc))

    stats.duration_ms = int((time.monotonic() - t0) * 1000)
    logger.info(
        "reconcile: complete entity=%s records=%d documents=%d dangling=%d "
        "unattached=%d orphans=%d pending=%d repaired=%d duration_ms=%d",
        stats.entity,
        stats.records_checked,
        stats.documents_checked,
        len(stats.dangling_records),
        len(stats.unattached_documents),
        len(stats.orphan_documents),
        stats.pending_documents,
        stats.repaired,
        stats.duration_ms,
    )
    return stats


async def run_reconcile(
    registry: EntityRegistry,
    *,
    entities: list[str] | None = None,
    repair: bool = False,
) -> list[ReconcileStats]:
    """Reconcile the named entity types (all when None), in registry order."""
    selected = [registry[name] for name in entities] if entities else list(registry)
    results = []
    for sync in selected:
        results.append(await reconcile_entity(sync, repair=repair))
    return results


# ---------------------------------------------------------------------------
# Standalone entry point
# ---------------------------------------------------------------------------

async def main(argv: list[str] | None = None) -> int:
    """Standalone entry point for running from cron or Cloud Run Job."""
    from services.transit.db.engine import standalone_session_factory
    from services.transit.sync.detail_store import create_redis_client
    from services.transit.sync.entities import ENTITY_TYPES

    parser = argparse.ArgumentParser(description="Reconcile core records with detail documents.")
    parser.add_argument(
        "--entity",
        action="append",
        choices=sorted(ENTITY_TYPES),
        help="Entity type to reconcile (repeatable). Default: all.",
    )
    parser.add_argument("--repair", action="store_true", help="Apply fixes instead of reporting.")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)

    redis = create_redis_client()
    try:
        async with standalone_session_factory() as session_factory:
            registry = EntityRegistry.build(session_factory, redis)
            results = await run_reconcile(registry, entities=args.entity, repair=args.repair)
    finally:
        await redis.aclose()

    for stats in results:
        print(
            f"{stats.entity}: dangling={len(stats.dangling_records)} "
            f"unattached={len(stats.unattached_documents)} "
            f"orphans={len(stats.orphan_documents)} repaired={stats.repaired}"
        )
    inconsistent = [s for s in results if not s.is_consistent and not s.repair]
    return 1 if inconsistent else 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
