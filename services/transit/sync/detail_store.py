"""
Detail store adapter -- the schemaless half of each entity.

Backed by Redis. One hash per detail document:

    Key format:  {prefix}:{collection}:{reference}
    Fields:      p:<key>      one per top-level payload key, value JSON-encoded
                 _core_id     back-reference to the core record ("0" = not yet known)
                 _created_at  ISO-8601 UTC creation timestamp

Payload keys always carry the "p:" prefix, so an opaque payload may use any
key (including "_core_id") without touching the metadata fields.
Payload values must be JSON-serializable; anything else is rejected with
ValueError rather than coerced, so read_detail() returns what was written.

Storing top-level keys as separate hash fields makes update_detail() a
single HSET: the given fields are merged, the rest of the document is left
alone, and no read-modify-write round trip is needed. Nested values are
replaced wholesale at their top-level key.

References are UUID4 hex strings minted client-side, so create_detail()
is one HSET as well.

Every transport failure is raised as DetailStoreUnavailable. Whether that
is fatal is the synchronizer's decision, not this module's.

Uses only standard Redis commands (HSET, HGETALL, EXISTS, DEL, SCAN), no
Lua scripts or modules.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from services.transit.config import settings
from services.transit.sync.errors import DetailNotFound, DetailStoreUnavailable

logger = logging.getLogger(__name__)

CORE_ID_FIELD = "_core_id"
CREATED_AT_FIELD = "_created_at"
PAYLOAD_PREFIX = "p:"

# Back-reference value written before the core record id is known
PLACEHOLDER_CORE_ID = 0


@dataclass
class DetailDocument:
    reference: str
    core_id: int
    payload: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None

    @property
    def is_attached(self) -> bool:
        return self.core_id != PLACEHOLDER_CORE_ID


class DetailStore(Protocol):
    """Contract every detail-document backend satisfies."""

    collection: str

    async def create_detail(self, payload: dict[str, Any]) -> str: ...

    async def attach_back_reference(self, reference: str, core_id: int) -> None: ...

    async def read_detail(self, reference: str) -> DetailDocument: ...

    async def update_detail(self, reference: str, partial: dict[str, Any]) -> None: ...

    async def delete_detail(self, reference: str) -> None: ...

    async def exists(self, reference: str) -> bool: ...

    def iter_references(self) -> AsyncIterator[str]: ...


def create_redis_client(url: str | None = None) -> aioredis.Redis:
    """Redis client with the process-wide connect / operation timeouts."""
    return aioredis.from_url(
        url or settings.redis_url,
        decode_responses=True,
        socket_connect_timeout=settings.redis_connect_timeout_s,
        socket_timeout=settings.redis_socket_timeout_s,
    )


def _encode_payload(payload: dict[str, Any]) -> dict[str, str]:
    """Serialize top-level payload values to prefixed JSON hash fields for HSET."""
    mapping: dict[str, str] = {}
    for key, value in payload.items():
        try:
            mapping[f"{PAYLOAD_PREFIX}{key}"] = json.dumps(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"detail field {key!r} is not JSON-serializable: {exc}") from exc
    return mapping


def _as_str(value: Any) -> str:
    return value.decode() if isinstance(value, bytes) else value


def _decode_document(reference: str, raw: dict) -> DetailDocument:
    """Deserialize HGETALL output back into a DetailDocument."""
    payload: dict[str, Any] = {}
    core_id = PLACEHOLDER_CORE_ID
    created_at: datetime | None = None

    for raw_field, raw_value in raw.items():
        name = _as_str(raw_field)
        value = _as_str(raw_value)
        if name == CORE_ID_FIELD:
            try:
                core_id = int(value)
            except (ValueError, TypeError):
                core_id = PLACEHOLDER_CORE_ID
        elif name == CREATED_AT_FIELD:
            try:
                created_at = datetime.fromisoformat(value)
            except (ValueError, TypeError):
                created_at = None
        else:
            # Documents written before the prefix was introduced carry bare keys.
            if name.startswith(PAYLOAD_PREFIX):
                name = name[len(PAYLOAD_PREFIX):]
            try:
                payload[name] = json.loads(value)
            except (ValueError, TypeError):
                payload[name] = value

    return DetailDocument(
        reference=reference,
        core_id=core_id,
        payload=payload,
        created_at=created_at,
    )


class RedisDetailStore:
    """
    Detail documents for one entity collection, stored as Redis hashes.

    Usage:
        store = RedisDetailStore(app.state.redis, "station_details")
        ref = await store.create_detail({"accessibility": {"ramp": True}})
        await store.attach_back_reference(ref, station.id)
    """

    def __init__(self, redis: Any, collection: str, *, prefix: str | None = None) -> None:
        """
        Args:
            redis: An async Redis client (redis.asyncio compatible).
            collection: Detail collection name, e.g. "station_details".
            prefix: Key namespace; defaults to settings.detail_key_prefix.
        """
        self._redis = redis
        self.collection = collection
        self._prefix = prefix or settings.detail_key_prefix

    def _key(self, reference: str) -> str:
        return f"{self._prefix}:{self.collection}:{reference}"

    def _reference_from_key(self, key: str) -> str:
        return key[len(self._prefix) + len(self.collection) + 2:]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def create_detail(self, payload: dict[str, Any]) -> str:
        """
        Insert a new document with the placeholder back-reference.

        Returns:
            The new reference (UUID4 hex).
        """
        reference = uuid.uuid4().hex
        mapping = _encode_payload(payload)
        mapping[CORE_ID_FIELD] = str(PLACEHOLDER_CORE_ID)
        mapping[CREATED_AT_FIELD] = datetime.now(timezone.utc).isoformat()

        try:
            await self._redis.hset(self._key(reference), mapping=mapping)
        except RedisError as exc:
            raise DetailStoreUnavailable(
                f"create in {self.collection} failed: {exc}"
            ) from exc

        logger.debug("detail_store create: collection=%s ref=%s", self.collection, reference)
        return reference

    async def attach_back_reference(self, reference: str, core_id: int) -> None:
        """Write the core record id onto the document. Safe to retry."""
        key = self._key(reference)
        try:
            if not await self._redis.exists(key):
                raise DetailNotFound(self.collection, reference)
            await self._redis.hset(key, mapping={CORE_ID_FIELD: str(core_id)})
        except RedisError as exc:
            raise DetailStoreUnavailable(
                f"attach on {self.collection}/{reference} failed: {exc}"
            ) from exc

    async def read_detail(self, reference: str) -> DetailDocument:
        try:
            raw = await self._redis.hgetall(self._key(reference))
        except RedisError as exc:
            raise DetailStoreUnavailable(
                f"read of {self.collection}/{reference} failed: {exc}"
            ) from exc
        if not raw:
            raise DetailNotFound(self.collection, reference)
        return _decode_document(reference, raw)

    async def update_detail(self, reference: str, partial: dict[str, Any]) -> None:
        """Merge top-level fields into an existing document."""
        if not partial:
            return
        mapping = _encode_payload(partial)
        key = self._key(reference)
        try:
            if not await self._redis.exists(key):
                raise DetailNotFound(self.collection, reference)
            await self._redis.hset(key, mapping=mapping)
        except RedisError as exc:
            raise DetailStoreUnavailable(
                f"update of {self.collection}/{reference} failed: {exc}"
            ) from exc

    async def delete_detail(self, reference: str) -> None:
        """Delete a document. Already absent counts as success."""
        try:
            removed = await self._redis.delete(self._key(reference))
        except RedisError as exc:
            raise DetailStoreUnavailable(
                f"delete of {self.collection}/{reference} failed: {exc}"
            ) from exc
        if not removed:
            logger.debug(
                "detail_store delete: collection=%s ref=%s already absent",
                self.collection,
                reference,
            )

    async def exists(self, reference: str) -> bool:
        try:
            return bool(await self._redis.exists(self._key(reference)))
        except RedisError as exc:
            raise DetailStoreUnavailable(
                f"exists on {self.collection}/{reference} failed: {exc}"
            ) from exc

    async def iter_references(self) -> AsyncIterator[str]:
        """Yield every reference in this collection (SCAN, no KEYS)."""
        pattern = self._key("*")
        try:
            async for key in self._redis.scan_iter(match=pattern):
                yield self._reference_from_key(_as_str(key))
        except RedisError as exc:
            raise DetailStoreUnavailable(
                f"scan of {self.collection} failed: {exc}"
            ) from exc
