#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict

from ap_backlog.batches import BatchManager
from ap_backlog.errors import BacklogError
from ap_backlog.importer import import_extract, named_texts
from ap_backlog.ingest import ingest_files
from ap_backlog.profiles import available_profiles, get_profile
from ap_backlog.store.factory import create_store


def _env(name: str) -> str | None:
    value = os.getenv(name)
    return value.strip() if value else None


def _dry_run(path: Path, data: bytes, profile_name: str | None) -> Dict[str, Any]:
    profile = get_profile(profile_name)
    texts = named_texts(path.name, data)
    result = ingest_files(texts, batch_id="dry-run", profile=profile)
    return {
        "profile": profile.name,
        "files": [name for name, _ in texts],
        "counters": result.counters.model_dump(),
        "errors": result.errors,
    }


async def _import(path: Path, data: bytes, profile_name: str | None, imported_by: str | None, backend: str | None) -> Dict[str, Any]:
    batches = BatchManager(create_store(backend))
    summary = await import_extract(batches, path.name, data, imported_by, get_profile(profile_name))
    return {
        "batch": summary.batch.model_dump(mode="json"),
        "counters": summary.counters.model_dump(),
        "errors": summary.errors,
        "files": summary.files,
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="Import an AP aging extract (csv, tab-delimited or zip).")
    parser.add_argument("path", help="Extract file to import")
    parser.add_argument("--profile", choices=available_profiles(), default=_env("FORMAT_PROFILE"))
    parser.add_argument("--imported-by", default=_env("IMPORTED_BY") or _env("USER"))
    parser.add_argument("--backend", choices=["memory", "firestore"], default=_env("STORE_BACKEND"))
    parser.add_argument("--dry-run", action="store_true", help="Parse and classify only, write nothing")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)

    path = Path(args.path)
    if not path.exists():
        raise SystemExit(f"File not found: {path}")
    data = path.read_bytes()

    try:
        if args.dry_run:
            result = _dry_run(path, data, args.profile)
        else:
            result = asyncio.run(_import(path, data, args.profile, args.imported_by, args.backend))
    except BacklogError as exc:
        raise SystemExit(f"Import failed: {exc}")

    print(json.dumps(result, indent=2, default=str))


if __name__ == "__main__":
    main()
