"""(collectionId, 상대 경로) 쌍과 평탄한 파일명 사이의 가역 변환."""

from __future__ import annotations

import re
from typing import Optional, Tuple


EXTENSION = ".md"
LEDGER_FILENAME = ".editing.md"

SEPARATOR = "__"
ESCAPED_SEPARATOR = "___"

_SENTINEL = "\x00"
_EMPTY_SEGMENT = "%%"
_PERCENT_RE = re.compile(r"%([0-9A-F]{2})")


def encode_filename(collection_id: str, file_path: str) -> str:
    """collectionId/경로를 저장소 파일명으로 변환.

    경로 구분자(/)는 ``__`` 로, 식별자 안의 ``__`` 는 ``___`` 로 바뀐다.
    구분자와 맞닿는 ``_``, 빈 세그먼트, ``%`` 는 ``%XX`` 로 한 번 더 감싸서
    모든 입력이 되돌려지도록 한다.
    """
    segments = [collection_id] + file_path.split("/")
    return SEPARATOR.join(_encode_segment(seg) for seg in segments) + EXTENSION


def decode_filename(filename: str) -> Optional[Tuple[str, str]]:
    """파일명을 (collectionId, 경로)로 복원. 형식이 아니면 None."""
    if filename == LEDGER_FILENAME or not filename.endswith(EXTENSION):
        return None
    stem = filename[: -len(EXTENSION)]
    parts = stem.replace(ESCAPED_SEPARATOR, _SENTINEL).split(SEPARATOR)
    if len(parts) < 2:
        return None
    segments = [_decode_segment(part.replace(_SENTINEL, SEPARATOR)) for part in parts]
    return segments[0], "/".join(segments[1:])


def _encode_segment(segment: str) -> str:
    if not segment:
        return _EMPTY_SEGMENT
    segment = segment.replace("%", "%25").replace("/", "%2F").replace(_SENTINEL, "%00")
    body = segment.lstrip("_")
    leading = len(segment) - len(body)
    stripped = body.rstrip("_")
    trailing = len(body) - len(stripped)
    escaped = stripped.replace(SEPARATOR, ESCAPED_SEPARATOR)
    return "%5F" * leading + escaped + "%5F" * trailing


def _decode_segment(segment: str) -> str:
    if segment == _EMPTY_SEGMENT:
        return ""
    return _PERCENT_RE.sub(lambda m: chr(int(m.group(1), 16)), segment)


__all__ = [
    "EXTENSION",
    "LEDGER_FILENAME",
    "decode_filename",
    "encode_filename",
]
