from __future__ import annotations

import logging
from typing import Optional

from ap_backlog import config
from ap_backlog.store.base import Store
from ap_backlog.store.memory import MemoryStore

logger = logging.getLogger(__name__)


def create_store(backend: Optional[str] = None) -> Store:
    backend = (backend or config.STORE_BACKEND).lower()
    if backend == "firestore":
        # Imported lazily so the memory backend runs without Google credentials.
        from ap_backlog.store.firestore import FirestoreStore

        logger.info(
            "Using Firestore store (database=%s)",
            config.FIRESTORE_DATABASE or "(default)",
        )
        return FirestoreStore()
    if backend != "memory":
        logger.warning("Unknown STORE_BACKEND %s, falling back to memory", backend)
    return MemoryStore()
