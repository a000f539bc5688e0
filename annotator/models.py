"""
요청/응답 모델.

요청은 ``action`` 값으로 구분되는 닫힌 union이다. 새 action을 추가하려면
여기에 모델을 만들고 ``Request`` union과 hub의 분기에 함께 넣는다.
필수 필드는 I/O 전에 pydantic 검증 단계에서 모두 확인된다.
"""

from __future__ import annotations

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel


RequiredStr = Annotated[str, Field(min_length=1)]
PositiveLine = Annotated[int, Field(gt=0)]
CursorLine = Annotated[int, Field(ge=0)]

# "필드 누락"으로 보고하는 pydantic 오류 종류
_MISSING_ERROR_TYPES = {"missing", "string_too_short", "greater_than"}


class RequestValidationError(ValueError):
    """요청 검증 실패 (I/O 이전 단계)."""


class _RequestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class PingRequest(_RequestModel):
    action: Literal["ping"]


class ReadRequest(_RequestModel):
    action: Literal["read"]
    storage_root: RequiredStr
    collection_id: RequiredStr
    file_path: RequiredStr


class SaveRequest(_RequestModel):
    action: Literal["save"]
    storage_root: RequiredStr
    collection_id: RequiredStr
    file_path: RequiredStr
    line: PositiveLine
    author: RequiredStr
    text: RequiredStr
    # legacy 파일에 저장할 때만 쓰인다
    context: Optional[List[str]] = None
    # 주석 파일이 아직 없을 때만 필요
    source: Optional[str] = None
    source_hash: Optional[str] = None


class DeleteRequest(_RequestModel):
    action: Literal["delete"]
    storage_root: RequiredStr
    collection_id: RequiredStr
    file_path: RequiredStr
    line: PositiveLine


class StartEditingRequest(_RequestModel):
    action: Literal["startEditing"]
    storage_root: RequiredStr
    user: RequiredStr
    file_path: RequiredStr
    line: CursorLine


class StopEditingRequest(_RequestModel):
    action: Literal["stopEditing"]
    storage_root: RequiredStr
    user: RequiredStr


class GetEditingRequest(_RequestModel):
    action: Literal["getEditing"]
    storage_root: RequiredStr


class ListAnnotatedFilesRequest(_RequestModel):
    action: Literal["listAnnotatedFiles"]
    storage_root: RequiredStr
    collection_id: RequiredStr


Request = Annotated[
    Union[
        PingRequest,
        ReadRequest,
        SaveRequest,
        DeleteRequest,
        StartEditingRequest,
        StopEditingRequest,
        GetEditingRequest,
        ListAnnotatedFilesRequest,
    ],
    Field(discriminator="action"),
]

REQUEST_ADAPTER: TypeAdapter = TypeAdapter(Request)


def parse_request(data: dict) -> Request:
    """dict를 요청 모델로 변환. 실패 시 RequestValidationError."""
    try:
        return REQUEST_ADAPTER.validate_python(data)
    except ValidationError as exc:
        raise RequestValidationError(describe_validation_error(exc, data)) from exc


def describe_validation_error(exc: ValidationError, data: dict) -> str:
    missing: List[str] = []
    invalid: List[str] = []
    for error in exc.errors():
        kind = error.get("type", "")
        if kind == "union_tag_not_found":
            return "Missing required field: action"
        if kind == "union_tag_invalid":
            return f"Unknown action: {data.get('action')}"
        # loc = (tag, field, ...)
        loc = [str(part) for part in error.get("loc", ())]
        if loc and loc[0] == data.get("action"):
            loc = loc[1:]
        name = ".".join(loc) or "request"
        if kind in _MISSING_ERROR_TYPES and len(loc) == 1:
            missing.append(name)
        else:
            invalid.append(f"{name} ({error.get('msg', kind)})")

    parts: List[str] = []
    if missing:
        label = "field" if len(missing) == 1 else "fields"
        parts.append(f"Missing required {label}: {', '.join(missing)}")
    if invalid:
        parts.append(f"Invalid fields: {', '.join(invalid)}")
    return "; ".join(parts) or "Invalid request"


# ---------- 응답 ----------
class _ResponseModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AnnotationPayload(_ResponseModel):
    line: int
    author: str
    timestamp: str
    text: str
    context: Optional[List[str]] = None
    file_path: Optional[str] = None


class EditingPayload(_ResponseModel):
    user: str
    file_path: str
    line: int
    timestamp: str


class Response(_ResponseModel):
    success: bool
    error: Optional[str] = None
    annotations: Optional[List[AnnotationPayload]] = None
    editing: Optional[List[EditingPayload]] = None

    @classmethod
    def ok(cls, **kwargs) -> "Response":
        return cls(success=True, **kwargs)

    @classmethod
    def fail(cls, message: str) -> "Response":
        return cls(success=False, error=message)

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


__all__ = [
    "AnnotationPayload",
    "EditingPayload",
    "Request",
    "RequestValidationError",
    "Response",
    "parse_request",
]
