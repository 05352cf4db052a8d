from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Literal, Optional

from fastapi import FastAPI, Header, HTTPException, Request, status
from fastapi.responses import Response
from pydantic import BaseModel

from ap_backlog import config
from ap_backlog.analytics import Analytics
from ap_backlog.batches import BatchManager
from ap_backlog.errors import (
    ArchiveError,
    BatchNotFoundError,
    EmptyImportError,
    ImportAbortedError,
    InvoiceNotFoundError,
    LifecycleError,
    NoCurrentBatchError,
    PartialWriteError,
    StoreError,
    UnknownProfileError,
)
from ap_backlog.events import EventBus
from ap_backlog.export import export_csv, export_filename
from ap_backlog.importer import import_extract
from ap_backlog.invoices import SORTABLE, InvoiceFilter, filter_invoices, paginate, sort_invoices
from ap_backlog.outliers import bulk_set_inclusion, list_outliers, outlier_summary, set_inclusion
from ap_backlog.profiles import available_profiles, get_profile
from ap_backlog.store.base import Store
from ap_backlog.store.factory import create_store


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("ap-backlog")

app = FastAPI()

events = EventBus()
batches: BatchManager
analytics: Analytics


def configure(store: Optional[Store] = None) -> BatchManager:
    """(Re)bind the services to a store; tests call this with a fresh MemoryStore."""
    global batches, analytics
    batches = BatchManager(store or create_store(), events)
    analytics = Analytics(batches)
    return batches


configure()


class InclusionUpdate(BaseModel):
    include: bool


class BulkInclusionUpdate(BaseModel):
    include: bool
    reason: Optional[Literal["high_value", "negative"]] = None


def _enforce_request_size(request: Request) -> None:
    limit = config.max_request_bytes()
    if limit is None:
        return

    content_length = request.headers.get("content-length")
    if content_length is None:
        return

    try:
        length = int(content_length)
    except ValueError:
        return

    if length > limit:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Request too large: {length} bytes (max {limit})",
        )


def _store_failure(exc: StoreError) -> HTTPException:
    logger.error("Store failure: %s", exc)
    detail: Dict[str, Any] = {"message": str(exc)}
    if isinstance(exc, PartialWriteError):
        detail.update(committed=exc.committed, pending=exc.pending)
    if isinstance(exc, ImportAbortedError):
        detail["batch_id"] = exc.batch_id
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail)


async def _current_records():
    try:
        return await analytics.current()
    except NoCurrentBatchError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except StoreError as exc:
        raise _store_failure(exc) from exc


@app.get("/version")
async def version() -> Dict[str, Any]:
    return {
        "status": "ok",
        "app_version": config.APP_VERSION,
        "store": config.STORE_BACKEND,
        "profiles": available_profiles(),
    }


@app.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/imports")
async def create_import(
    request: Request,
    filename: str,
    profile: Optional[str] = None,
    x_imported_by: Optional[str] = Header(default=None),
) -> Dict[str, Any]:
    _enforce_request_size(request)
    data = await request.body()
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty upload")

    try:
        format_profile = get_profile(profile)
    except UnknownProfileError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    try:
        summary = await import_extract(batches, filename, data, x_imported_by, format_profile)
    except EmptyImportError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(exc), "errors": exc.errors},
        ) from exc
    except ArchiveError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except StoreError as exc:
        raise _store_failure(exc) from exc

    return {
        "status": "ok",
        "batch": summary.batch.model_dump(mode="json"),
        "counters": summary.counters.model_dump(),
        "errors": summary.errors,
        "files": summary.files,
    }


@app.get("/batches")
async def get_batches(include_deleted: bool = False) -> Dict[str, Any]:
    try:
        items = await batches.list_batches(include_deleted=include_deleted)
    except StoreError as exc:
        raise _store_failure(exc) from exc
    return {"batches": [batch.model_dump(mode="json") for batch in items]}


@app.get("/batches/current")
async def get_current_batch() -> Dict[str, Any]:
    try:
        batch = await batches.get_current_batch()
    except StoreError as exc:
        raise _store_failure(exc) from exc
    if batch is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No current batch found")
    return batch.model_dump(mode="json")


@app.delete("/batches/{batch_id}")
async def delete_batch(batch_id: str) -> Dict[str, Any]:
    try:
        deletion = await batches.delete_batch(batch_id)
    except BatchNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except LifecycleError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except StoreError as exc:
        raise _store_failure(exc) from exc
    return {
        "status": "deleted",
        "batch_id": deletion.batch_id,
        "promoted_id": deletion.promoted_id,
        "purged": deletion.purged,
    }


@app.get("/invoices")
async def get_invoices(
    supplier: Optional[str] = None,
    process_state: Optional[str] = None,
    min_days: Optional[int] = None,
    max_days: Optional[int] = None,
    min_amount: Optional[float] = None,
    max_amount: Optional[float] = None,
    outliers: Literal["default", "exclude", "all"] = "default",
    sort: str = "days_old",
    descending: bool = True,
    page: int = 1,
    page_size: int = 50,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    if sort not in SORTABLE:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Cannot sort by {sort}")
    if page_size < 1 or page_size > config.PAGE_SIZE:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid page_size")

    batch, records = await _current_records()
    criteria = InvoiceFilter(
        supplier=supplier,
        process_state=process_state,
        min_days=min_days,
        max_days=max_days,
        min_amount=min_amount,
        max_amount=max_amount,
        outliers=outliers,
    )
    matched = sort_invoices(filter_invoices(records, criteria, today), sort, descending, today)
    items, total = paginate(matched, page, page_size)
    return {
        "batch_id": batch.id,
        "total": total,
        "page": page,
        "page_size": page_size,
        "invoices": [
            {**record.model_dump(mode="json"), "days_old": record.days_old(today)} for record in items
        ],
    }


@app.get("/invoices/export")
async def export_invoices(
    outliers: Literal["default", "exclude", "all"] = "default",
    today: Optional[date] = None,
) -> Response:
    batch, records = await _current_records()
    selected = sort_invoices(filter_invoices(records, InvoiceFilter(outliers=outliers), today), today=today)
    return Response(
        content=export_csv(selected, today),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{export_filename(batch.filename, today)}"'},
    )


@app.patch("/invoices/{invoice_id}/inclusion")
async def update_inclusion(invoice_id: str, payload: InclusionUpdate) -> Dict[str, Any]:
    try:
        record = await set_inclusion(batches.store, invoice_id, payload.include, events)
    except InvoiceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except StoreError as exc:
        raise _store_failure(exc) from exc
    return {"status": "ok", "invoice": record.model_dump(mode="json")}


@app.get("/outliers")
async def get_outliers(reason: Optional[Literal["high_value", "negative"]] = None) -> Dict[str, Any]:
    batch, records = await _current_records()
    return {
        "batch_id": batch.id,
        "summary": outlier_summary(records).model_dump(),
        "outliers": [record.model_dump(mode="json") for record in list_outliers(records, reason)],
    }


@app.post("/outliers/inclusion")
async def update_outlier_inclusion(payload: BulkInclusionUpdate) -> Dict[str, Any]:
    try:
        batch = await batches.get_current_batch()
        if batch is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No current batch found")
        result = await bulk_set_inclusion(batches.store, batch.id, payload.include, payload.reason, events)
    except StoreError as exc:
        raise _store_failure(exc) from exc
    return {
        "status": "ok" if result.complete else "partial",
        "batch_id": batch.id,
        "matched": result.matched,
        "updated": result.updated,
        "failed": result.failed,
        "error": result.error,
    }


@app.get("/dashboard")
async def dashboard(today: Optional[date] = None) -> Dict[str, Any]:
    try:
        summary = await analytics.dashboard(today)
    except NoCurrentBatchError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except StoreError as exc:
        raise _store_failure(exc) from exc
    return summary.model_dump(mode="json")


@app.get("/aging")
async def aging(today: Optional[date] = None) -> Dict[str, Any]:
    try:
        result = await analytics.aging(today)
    except NoCurrentBatchError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except StoreError as exc:
        raise _store_failure(exc) from exc
    return {key: [bucket.model_dump() for bucket in buckets] for key, buckets in result.items()}


@app.get("/analytics/trend")
async def trend(limit: Optional[int] = None) -> Dict[str, Any]:
    try:
        points = await analytics.backlog_trend(limit)
    except StoreError as exc:
        raise _store_failure(exc) from exc
    return {"trend": [point.model_dump(mode="json") for point in points]}


@app.get("/analytics/state-trend")
async def state_trend(limit: Optional[int] = None) -> Dict[str, Any]:
    try:
        trends = await analytics.process_state_trend(limit)
    except StoreError as exc:
        raise _store_failure(exc) from exc
    return {"states": [item.model_dump() for item in trends]}


@app.get("/analytics/comparison")
async def comparison() -> Dict[str, Any]:
    try:
        result = await analytics.compare_batches()
    except NoCurrentBatchError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except StoreError as exc:
        raise _store_failure(exc) from exc
    return {"comparison": result.model_dump() if result is not None else None}
