from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ap_backlog.archive import decode_text, extract_text_files, format_file_size, is_zip
from ap_backlog.batches import BatchManager
from ap_backlog.errors import EmptyImportError, ImportAbortedError, PartialWriteError
from ap_backlog.events import ImportCompleted
from ap_backlog.ingest import ingest_files
from ap_backlog.models import ImportBatch, ImportCounters
from ap_backlog.profiles import FormatProfile, get_profile
from ap_backlog.store.base import INVOICES
from ap_backlog.store.paging import insert_chunked

logger = logging.getLogger(__name__)


@dataclass
class ImportSummary:
    batch: ImportBatch
    counters: ImportCounters
    errors: List[str] = field(default_factory=list)
    files: List[str] = field(default_factory=list)


def named_texts(filename: str, data: bytes) -> List[Tuple[str, str]]:
    if is_zip(data):
        return [(item.name, item.text) for item in extract_text_files(data)]
    return [(filename, decode_text(data))]


async def import_extract(
    batches: BatchManager,
    filename: str,
    data: bytes,
    imported_by: Optional[str] = None,
    profile: Optional[FormatProfile] = None,
) -> ImportSummary:
    """Create a batch from one uploaded extract (plain text or a zip of extracts).

    An upload that yields no invoices leaves no batch behind.
    """
    profile = profile or get_profile()
    texts = named_texts(filename, data)
    logger.info(
        "Importing %s (%s, %s files)",
        filename,
        format_file_size(len(data)),
        len(texts),
        extra={"profile": profile.name, "imported_by": imported_by},
    )

    batch = await batches.create_batch(filename, imported_by, profile.name)
    result = ingest_files(texts, batch.id, profile)

    if not result.records:
        logger.warning("No invoices in %s, rolling back batch %s", filename, batch.id, extra={"batch_id": batch.id})
        await batches.delete_batch(batch.id)
        raise EmptyImportError(result.errors)

    rows = [record.to_row() for record in result.records]
    try:
        await insert_chunked(batches.store, INVOICES, rows)
    except PartialWriteError as exc:
        raise ImportAbortedError(
            f"Import of {filename} stopped after {exc.committed} of {len(rows)} invoices",
            batch_id=batch.id,
            committed=exc.committed,
            pending=exc.pending,
        ) from exc

    batch = await batches.finalize(batch.id, result.counters)
    batches.events.publish(ImportCompleted(batch.id))
    logger.info(
        "Imported %s invoices into batch %s",
        result.counters.record_count,
        batch.id,
        extra={"batch_id": batch.id, "skipped": result.counters.skipped_count},
    )
    return ImportSummary(batch=batch, counters=result.counters, errors=result.errors, files=[name for name, _ in texts])
