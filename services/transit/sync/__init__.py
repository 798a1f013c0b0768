"""
Dual-store entity synchronization.

Each entity is a relational core record plus an optional schemaless detail
document, linked by the core record's detail_ref column.

Public API:
    from services.transit.sync.synchronizer import EntitySynchronizer, EntityRegistry
    from services.transit.sync.core_repository import SQLCoreRepository, FilterCriteria
    from services.transit.sync.detail_store import RedisDetailStore
    from services.transit.sync.entities import ENTITY_TYPES
"""
