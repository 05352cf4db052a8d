from __future__ import annotations

import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)


def _get_env(name: str) -> Optional[str]:
    value = os.getenv(name)
    return value.strip() if value else None


def _get_int(name: str, default: int) -> int:
    value = _get_env(name)
    if not value:
        return default
    try:
        parsed = int(value)
    except ValueError:
        logger.warning("Invalid %s value: %s", name, value)
        return default
    if parsed <= 0:
        logger.warning("Ignoring non-positive %s value: %s", name, value)
        return default
    return parsed


def _get_float(name: str) -> Optional[float]:
    value = _get_env(name)
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        logger.warning("Invalid %s value: %s", name, value)
        return None


APP_VERSION = _get_env("APP_VERSION") or "dev"

STORE_BACKEND = (_get_env("STORE_BACKEND") or "memory").lower()
FIRESTORE_DATABASE = _get_env("FIRESTORE_DATABASE")
FIRESTORE_BATCH_COLLECTION = _get_env("FIRESTORE_BATCH_COLLECTION") or "import_batches"
FIRESTORE_INVOICE_COLLECTION = _get_env("FIRESTORE_INVOICE_COLLECTION") or "invoices"

FORMAT_PROFILE = _get_env("FORMAT_PROFILE") or "aging-v3"
HIGH_VALUE_THRESHOLD = _get_float("HIGH_VALUE_THRESHOLD")

PAGE_SIZE = _get_int("PAGE_SIZE", 1000)
INSERT_CHUNK_SIZE = _get_int("INSERT_CHUNK_SIZE", 500)
TOGGLE_CHUNK_SIZE = _get_int("TOGGLE_CHUNK_SIZE", 500)
MAX_ROW_ERRORS = _get_int("MAX_ROW_ERRORS", 5)
TREND_BATCH_LIMIT = _get_int("TREND_BATCH_LIMIT", 5)

MAX_REQUEST_BYTES = _get_env("MAX_REQUEST_BYTES")


def max_request_bytes() -> Optional[int]:
    if not MAX_REQUEST_BYTES:
        return None
    try:
        return int(MAX_REQUEST_BYTES)
    except ValueError:
        logger.warning("Invalid MAX_REQUEST_BYTES value: %s", MAX_REQUEST_BYTES)
        return None
