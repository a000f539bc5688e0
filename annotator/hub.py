"""요청 라우팅: 검증 → 저장소/ledger 호출 → 응답 생성."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from . import editing, persist
from .doc import AnnotationRecord
from .editing import EditEntry
from .models import (
    AnnotationPayload,
    DeleteRequest,
    EditingPayload,
    GetEditingRequest,
    ListAnnotatedFilesRequest,
    PingRequest,
    ReadRequest,
    Request,
    RequestValidationError,
    Response,
    SaveRequest,
    StartEditingRequest,
    StopEditingRequest,
    parse_request,
)
from .protocol import ProtocolError, parse_payload

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AnnotationHub:
    """요청 하나를 받아 응답 하나를 돌려준다. 요청 사이에 상태를 남기지 않는다."""

    def __init__(
        self,
        *,
        stale_after: timedelta = editing.STALE_AFTER,
        clock: Optional[Clock] = None,
    ) -> None:
        self.stale_after = stale_after
        self.clock = clock or _utcnow

    # ---------- 진입점 ----------
    def handle_payload(self, payload: bytes) -> Response:
        """프레임 본문(UTF-8 JSON)을 처리."""
        try:
            data = parse_payload(payload)
        except ProtocolError as exc:
            return Response.fail(str(exc))
        return self.handle_message(data)

    def handle_message(self, data: dict) -> Response:
        try:
            request = parse_request(data)
        except RequestValidationError as exc:
            LOGGER.debug("request rejected: %s", exc)
            return Response.fail(str(exc))
        return self.handle(request)

    def handle(self, request: Request) -> Response:
        try:
            return self.route(request)
        except persist.StoreError as exc:
            return Response.fail(str(exc))
        except OSError as exc:
            LOGGER.warning("%s failed: %s", request.action, exc)
            return Response.fail(str(exc))
        except Exception as exc:
            LOGGER.exception("route failed: action=%s", request.action)
            return Response.fail(f"internal error: {exc}")

    # ---------- 라우팅 ----------
    def route(self, request: Request) -> Response:
        if isinstance(request, PingRequest):
            return Response.ok()
        if isinstance(request, ReadRequest):
            return self._handle_read(request)
        if isinstance(request, SaveRequest):
            return self._handle_save(request)
        if isinstance(request, DeleteRequest):
            return self._handle_delete(request)
        if isinstance(request, StartEditingRequest):
            return self._handle_start_editing(request)
        if isinstance(request, StopEditingRequest):
            return self._handle_stop_editing(request)
        if isinstance(request, GetEditingRequest):
            return self._handle_get_editing(request)
        if isinstance(request, ListAnnotatedFilesRequest):
            return self._handle_list(request)
        raise TypeError(f"unhandled request type: {type(request).__name__}")

    def _handle_read(self, request: ReadRequest) -> Response:
        records = persist.read_annotations(request.storage_root, request.collection_id, request.file_path)
        return Response.ok(annotations=[annotation_payload(rec) for rec in records])

    def _handle_save(self, request: SaveRequest) -> Response:
        persist.save_annotation(
            request.storage_root,
            request.collection_id,
            request.file_path,
            request.line,
            request.author,
            request.text,
            source=request.source,
            source_hash=request.source_hash,
            context=request.context,
            now=self.clock(),
        )
        return Response.ok()

    def _handle_delete(self, request: DeleteRequest) -> Response:
        persist.delete_annotation(request.storage_root, request.collection_id, request.file_path, request.line)
        return Response.ok()

    def _handle_start_editing(self, request: StartEditingRequest) -> Response:
        editing.start_editing(
            request.storage_root,
            request.user,
            request.file_path,
            request.line,
            now=self.clock(),
            stale_after=self.stale_after,
        )
        return Response.ok()

    def _handle_stop_editing(self, request: StopEditingRequest) -> Response:
        editing.stop_editing(
            request.storage_root,
            request.user,
            now=self.clock(),
            stale_after=self.stale_after,
        )
        return Response.ok()

    def _handle_get_editing(self, request: GetEditingRequest) -> Response:
        entries = editing.get_editing(request.storage_root, now=self.clock(), stale_after=self.stale_after)
        return Response.ok(editing=[editing_payload(entry) for entry in entries])

    def _handle_list(self, request: ListAnnotatedFilesRequest) -> Response:
        results = persist.list_annotated_files(request.storage_root, request.collection_id)
        return Response.ok(
            annotations=[annotation_payload(rec, file_path=path) for path, rec in results]
        )


# ---------- 변환 헬퍼 ----------
def annotation_payload(record: AnnotationRecord, *, file_path: Optional[str] = None) -> AnnotationPayload:
    return AnnotationPayload(
        line=record.line,
        author=record.author,
        timestamp=record.timestamp,
        text=record.text,
        context=record.context or None,
        file_path=file_path,
    )


def editing_payload(entry: EditEntry) -> EditingPayload:
    return EditingPayload(
        user=entry.user,
        file_path=entry.file_path,
        line=entry.line,
        timestamp=entry.timestamp,
    )


__all__ = [
    "AnnotationHub",
    "annotation_payload",
    "editing_payload",
]
