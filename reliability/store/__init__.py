# Incident store package
from reliability.store.base import IncidentStore
from reliability.store.memory import InMemoryIncidentStore
from reliability.store.sql import SQLIncidentStore
from reliability.store.locks import (
    IncidentLockManager,
    LocalIncidentLocks,
    RedisIncidentLocks,
)

__all__ = [
    "IncidentStore",
    "InMemoryIncidentStore",
    "SQLIncidentStore",
    "IncidentLockManager",
    "LocalIncidentLocks",
    "RedisIncidentLocks",
]
