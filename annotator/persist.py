"""주석 파일 CRUD 및 디렉터리 단위 조회."""

from __future__ import annotations

import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from .codec import LEDGER_FILENAME, decode_filename, encode_filename
from .doc import (
    AnnotationRecord,
    LegacyDocument,
    new_current_document,
    parse_document,
    render_document,
    single_line,
    utc_timestamp,
)

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _umask_mode() -> int:
    """새 파일 권한 (mkstemp 기본값 0600 대신 umask 기준)."""
    # umask는 되돌려 놓는 방식으로만 읽을 수 있다. 요청은 한 번에 하나씩 처리된다
    current = os.umask(0)
    os.umask(current)
    return 0o666 & ~current


class StoreError(Exception):
    """주석 저장소 연산 실패."""


class SourceRequiredError(StoreError):
    """새 주석 파일을 만들 때 원본 텍스트가 없음."""


def annotation_path(storage_root: PathLike, collection_id: str, file_path: str) -> Path:
    return Path(storage_root) / encode_filename(collection_id, file_path)


def read_annotations(storage_root: PathLike, collection_id: str, file_path: str) -> List[AnnotationRecord]:
    """파일이 없으면 빈 목록."""
    text = read_text(annotation_path(storage_root, collection_id, file_path))
    if text is None:
        return []
    return parse_document(text).records


def save_annotation(
    storage_root: PathLike,
    collection_id: str,
    file_path: str,
    line: int,
    author: str,
    text: str,
    *,
    source: Optional[str] = None,
    source_hash: Optional[str] = None,
    context: Optional[Sequence[str]] = None,
    now: Optional[datetime] = None,
) -> AnnotationRecord:
    """한 줄의 주석을 추가하거나 교체.

    파일이 아직 없으면 ``source`` 가 반드시 필요하며 current 형식으로 만든다.
    기존 파일은 형식을 유지한 채 해당 줄만 바꿔 다시 쓴다. legacy 파일에는
    ``context`` 가 함께 기록된다.
    """
    path = annotation_path(storage_root, collection_id, file_path)
    timestamp = utc_timestamp(now)
    record = AnnotationRecord(line=line, author=single_line(author), timestamp=timestamp, text=text)

    existing = read_text(path)
    if existing is None:
        if not source:
            raise SourceRequiredError(
                f"source required: {collection_id}/{file_path} has no annotation file yet"
            )
        doc = new_current_document(
            f"{collection_id}/{file_path}",
            source,
            source_hash=source_hash,
            captured=timestamp,
        )
        LOGGER.debug("annotation file created: %s", path.name)
    else:
        doc = parse_document(existing)
        if isinstance(doc, LegacyDocument):
            record.context = list(context or [])

    doc.upsert(record)
    write_text_atomic(path, render_document(doc))
    LOGGER.debug("annotation saved: %s line %s by %s", path.name, line, record.author)
    return record


def delete_annotation(storage_root: PathLike, collection_id: str, file_path: str, line: int) -> bool:
    """해당 줄의 주석을 제거. 마지막 주석이면 파일 자체를 지운다."""
    path = annotation_path(storage_root, collection_id, file_path)
    existing = read_text(path)
    if existing is None:
        return False

    doc = parse_document(existing)
    if not doc.remove(line):
        return False

    if not doc.records:
        remove_file(path)
        LOGGER.debug("annotation file removed: %s", path.name)
    else:
        write_text_atomic(path, render_document(doc))
        LOGGER.debug("annotation deleted: %s line %s", path.name, line)
    return True


def list_annotated_files(storage_root: PathLike, collection_id: str) -> List[Tuple[str, AnnotationRecord]]:
    """컬렉션의 모든 주석을 (경로, 레코드) 목록으로."""
    root = Path(storage_root)
    try:
        entries = sorted(root.iterdir())
    except FileNotFoundError:
        return []

    results: List[Tuple[str, AnnotationRecord]] = []
    for entry in entries:
        if entry.name == LEDGER_FILENAME or not entry.is_file():
            continue
        decoded = decode_filename(entry.name)
        if decoded is None:
            continue
        file_collection, file_path = decoded
        if file_collection != collection_id:
            continue
        try:
            text = read_text(entry)
            records = parse_document(text).records if text is not None else []
        except (OSError, ValueError) as exc:
            LOGGER.warning("skip unreadable annotation file (%s): %s", entry.name, exc)
            continue
        for record in records:
            results.append((file_path, record))
    return results


# ---------- 파일 I/O ----------
def read_text(path: Path) -> Optional[str]:
    """UTF-8 텍스트를 줄바꿈 변환 없이 읽는다. 없으면 None."""
    try:
        with path.open("r", encoding="utf-8", newline="") as fp:
            return fp.read()
    except FileNotFoundError:
        return None


def write_text_atomic(path: Path, text: str) -> None:
    """임시 파일에 쓴 뒤 교체."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8", newline="") as fp:
            fp.write(text)
        os.chmod(tmp_path, _umask_mode())
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)


def remove_file(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


__all__ = [
    "SourceRequiredError",
    "StoreError",
    "annotation_path",
    "delete_annotation",
    "list_annotated_files",
    "read_annotations",
    "save_annotation",
]
