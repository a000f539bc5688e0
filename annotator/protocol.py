"""길이 접두사(4바이트 little-endian) + UTF-8 JSON 프레이밍 유틸리티."""

from __future__ import annotations

import json
import struct
from typing import Any, BinaryIO, Dict, Optional


MAX_FRAME_BYTES = 1024 * 1024  # 1MB 제한 (오용 방지)
HEADER = struct.Struct("<I")
_DRAIN_CHUNK = 64 * 1024


class ProtocolError(Exception):
    """프레이밍/파싱 중 발생하는 예외."""


class FrameTooLargeError(ProtocolError):
    """최대 크기를 넘는 프레임. 본문은 버퍼에 담지 않고 버린다."""


class TruncatedFrameError(ProtocolError):
    """프레임 도중에 스트림이 끝남."""


class FrameReader:
    """바이너리 스트림에서 프레임 단위로 본문을 읽는 헬퍼."""

    def __init__(self, stream: BinaryIO, *, max_frame_bytes: int = MAX_FRAME_BYTES) -> None:
        self._stream = stream
        self._max_frame_bytes = max_frame_bytes
        self.eof = False

    def read_frame(self) -> Optional[bytes]:
        """다음 프레임 본문을 반환. 프레임 시작 전에 스트림이 끝나면 None."""
        header = self._read_exact(HEADER.size)
        if not header:
            self.eof = True
            return None
        if len(header) < HEADER.size:
            raise TruncatedFrameError("stream ended inside frame header")

        (length,) = HEADER.unpack(header)
        if length > self._max_frame_bytes:
            self._drain(length)
            raise FrameTooLargeError(f"Message too large: {length} bytes (max {self._max_frame_bytes})")

        payload = self._read_exact(length)
        if len(payload) < length:
            raise TruncatedFrameError(f"stream ended inside frame body ({len(payload)}/{length} bytes)")
        return payload

    def _read_exact(self, size: int) -> bytes:
        chunks = []
        remaining = size
        while remaining > 0:
            chunk = self._stream.read(remaining)
            if not chunk:
                self.eof = True
                break
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)

    def _drain(self, size: int) -> None:
        remaining = size
        while remaining > 0:
            chunk = self._stream.read(min(remaining, _DRAIN_CHUNK))
            if not chunk:
                self.eof = True
                return
            remaining -= len(chunk)


def parse_payload(payload: bytes) -> Dict[str, Any]:
    """프레임 본문을 dict로 파싱."""
    try:
        data = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ProtocolError(f"Failed to parse request: {exc}") from exc
    if not isinstance(data, dict):
        raise ProtocolError("Failed to parse request: message must be object")
    return data


def encode_frame(obj: Dict[str, Any], *, max_frame_bytes: Optional[int] = None) -> bytes:
    """dict를 길이 접두사가 붙은 바이트로 직렬화."""
    try:
        payload = json.dumps(obj, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise ProtocolError(f"cannot encode message: {exc}") from exc
    if max_frame_bytes is not None and len(payload) > max_frame_bytes:
        raise FrameTooLargeError(f"Response too large: {len(payload)} bytes (max {max_frame_bytes})")
    return HEADER.pack(len(payload)) + payload


def write_frame(stream: BinaryIO, obj: Dict[str, Any], *, max_frame_bytes: Optional[int] = None) -> None:
    stream.write(encode_frame(obj, max_frame_bytes=max_frame_bytes))
    stream.flush()


__all__ = [
    "FrameReader",
    "FrameTooLargeError",
    "MAX_FRAME_BYTES",
    "ProtocolError",
    "TruncatedFrameError",
    "encode_frame",
    "parse_payload",
    "write_frame",
]
