from __future__ import annotations

import io
import logging
import zipfile
from dataclasses import dataclass
from typing import List

from ap_backlog.errors import ArchiveError

logger = logging.getLogger(__name__)

_ZIP_MAGIC = b"PK\x03\x04"
_TEXT_SUFFIXES = (".csv", ".txt")


@dataclass(frozen=True)
class ExtractedFile:
    name: str
    text: str
    size: int


def is_zip(data: bytes) -> bool:
    return data[:4] == _ZIP_MAGIC


def decode_text(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        # Spreadsheet exports from Windows hosts are often cp1252.
        return data.decode("cp1252", errors="replace")


def _is_extract_member(name: str) -> bool:
    if name.endswith("/") or "__MACOSX" in name:
        return False
    base = name.rsplit("/", 1)[-1]
    if not base or base.startswith("._") or base.startswith("."):
        return False
    return base.lower().endswith(_TEXT_SUFFIXES)


def extract_text_files(data: bytes) -> List[ExtractedFile]:
    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as exc:
        raise ArchiveError(f"Invalid zip archive: {exc}") from exc

    files: List[ExtractedFile] = []
    with archive:
        for info in archive.infolist():
            if info.is_dir() or not _is_extract_member(info.filename):
                logger.debug("Skipping archive member %s", info.filename)
                continue
            try:
                raw = archive.read(info)
            except (zipfile.BadZipFile, RuntimeError) as exc:
                raise ArchiveError(f"Could not read {info.filename}: {exc}") from exc
            files.append(ExtractedFile(info.filename.rsplit("/", 1)[-1], decode_text(raw), info.file_size))

    logger.info("Extracted %s text files from archive", len(files))
    return files


def format_file_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"
