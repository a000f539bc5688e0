"""주석 문서 모델과 두 가지 디스크 형식(legacy/current)의 파서·직렬화."""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Union

LOGGER = logging.getLogger(__name__)

FRONTMATTER_FENCE = "---"
HASH_LENGTH = 12
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# legacy
_LEGACY_HEADER_RE = re.compile(r"^## Line (\d+) - (.+) - (\S+)$")
_LEGACY_CONTEXT = "### Context"
_LEGACY_ANNOTATION = "### Annotation"
_LEGACY_RECORD_END = "---"

# current
_SOURCE_LINE_RE = re.compile(r"^\s*(\d+)\|(.*)$")
_LINE_MARKER_RE = re.compile(r"^## Line (\d+)$")
_INLINE_HEADER_RE = re.compile(r"^> \*\*@(.+)\*\* \(([^()]*)\):$")


@dataclass
class AnnotationRecord:
    """한 줄에 달린 주석 하나."""

    line: int
    author: str
    timestamp: str
    text: str
    context: List[str] = field(default_factory=list)


@dataclass
class _RecordSet:
    records: List[AnnotationRecord] = field(default_factory=list)

    def upsert(self, record: AnnotationRecord) -> None:
        """같은 줄이면 교체, 아니면 줄 번호 순서를 지켜 삽입."""
        for index, existing in enumerate(self.records):
            if existing.line == record.line:
                self.records[index] = record
                return
            if existing.line > record.line:
                self.records.insert(index, record)
                return
        self.records.append(record)

    def remove(self, line: int) -> bool:
        remaining = [rec for rec in self.records if rec.line != line]
        removed = len(remaining) != len(self.records)
        self.records = remaining
        return removed


@dataclass
class LegacyDocument(_RecordSet):
    """제목 + 레코드별 context window 형식 (읽기/삭제 전용으로 유지)."""

    title: str = ""


@dataclass
class CurrentDocument(_RecordSet):
    """frontmatter + 번호 매긴 원본 + 인라인 인용 블록 형식."""

    source_id: str = ""
    source_hash: str = ""
    captured: str = ""
    source_lines: List[str] = field(default_factory=list)


Document = Union[LegacyDocument, CurrentDocument]


# ---------- 공용 헬퍼 ----------
def utc_timestamp(now: Optional[datetime] = None) -> str:
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> Optional[datetime]:
    """RFC3339 형식의 UTC 시각을 datetime으로. 실패하면 None."""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        moment = datetime.fromisoformat(text)
    except ValueError:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def compute_source_hash(source: str) -> str:
    return hashlib.sha256(source.encode("utf-8")).hexdigest()[:HASH_LENGTH]


def split_source(source: str) -> List[str]:
    lines = source.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def format_line_number(line_num: int, max_line_num: int) -> str:
    width = len(str(max_line_num))
    return f"{line_num:>{width}}|"


def single_line(value: str) -> str:
    return " ".join(value.splitlines()) if value else value


# ---------- 형식 판별 ----------
def is_current_format(text: str) -> bool:
    first_line = text.split("\n", 1)[0].rstrip("\r")
    return first_line == FRONTMATTER_FENCE


def parse_document(text: str) -> Document:
    """첫 줄로 형식을 판별해 알맞은 파서를 적용."""
    if is_current_format(text):
        return parse_current(text)
    return parse_legacy(text)


def render_document(doc: Document) -> str:
    if isinstance(doc, CurrentDocument):
        return render_current(doc)
    return render_legacy(doc)


# ---------- legacy ----------
def parse_legacy(text: str) -> LegacyDocument:
    doc = LegacyDocument()
    current: Optional[AnnotationRecord] = None
    context_lines: List[str] = []
    text_lines: List[str] = []
    section = ""
    in_fence = False

    def finish() -> None:
        if current is None:
            return
        current.context = list(context_lines)
        current.text = "\n".join(text_lines).strip()
        doc.records.append(current)

    for line in text.split("\n"):
        line = line.rstrip("\r")
        if current is None and not doc.title and line.startswith("# "):
            doc.title = line[2:]
            continue

        match = _LEGACY_HEADER_RE.match(line)
        if match:
            finish()
            current = AnnotationRecord(
                line=int(match.group(1)),
                author=match.group(2),
                timestamp=match.group(3),
                text="",
            )
            context_lines, text_lines = [], []
            section, in_fence = "", False
            continue

        if current is None:
            continue

        if line == _LEGACY_CONTEXT:
            section, in_fence = "context", False
        elif line == _LEGACY_ANNOTATION:
            section, in_fence = "annotation", False
        elif line == _LEGACY_RECORD_END:
            finish()
            current = None
            section, in_fence = "", False
        elif section == "context" and line.startswith("```"):
            in_fence = not in_fence
        elif section == "context" and in_fence:
            context_lines.append(line)
        elif section == "annotation":
            text_lines.append(line)

    finish()
    doc.records = _dedupe_by_line(doc.records)
    return doc


def render_legacy(doc: LegacyDocument) -> str:
    out: List[str] = [f"# {doc.title}", ""]
    for rec in doc.records:
        out.append(f"## Line {rec.line} - {single_line(rec.author)} - {rec.timestamp}")
        out.append("")
        if rec.context:
            out.append(_LEGACY_CONTEXT)
            out.append("```")
            out.extend(rec.context)
            out.append("```")
            out.append("")
        out.append(_LEGACY_ANNOTATION)
        out.append(rec.text)
        out.append("")
        out.append(_LEGACY_RECORD_END)
        out.append("")
    return "\n".join(out) + "\n"


# ---------- current ----------
def parse_current(text: str) -> CurrentDocument:
    doc = CurrentDocument()
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()

    index = _parse_frontmatter(doc, lines)

    current: Optional[AnnotationRecord] = None
    text_lines: List[str] = []
    anchor = 0

    def finish() -> None:
        if current is None:
            return
        current.text = "\n".join(text_lines)
        if current.line <= 0:
            LOGGER.warning("skip inline annotation before any source line (%s)", doc.source_id)
            return
        doc.records.append(current)

    for line in lines[index:]:
        if current is not None:
            if line.startswith("> "):
                text_lines.append(line[2:])
                continue
            if line.rstrip("\r") == ">":
                text_lines.append("")
                continue
            finish()
            current, text_lines = None, []

        header = _INLINE_HEADER_RE.match(line)
        if header:
            current = AnnotationRecord(
                line=anchor,
                author=header.group(1),
                timestamp=header.group(2),
                text="",
            )
            continue

        source = _SOURCE_LINE_RE.match(line)
        if source:
            anchor = int(source.group(1))
            content = source.group(2)
            if content.startswith(" "):
                content = content[1:]
            doc.source_lines.append(content)
            continue

        marker = _LINE_MARKER_RE.match(line)
        if marker:
            anchor = int(marker.group(1))

    finish()
    doc.records = _dedupe_by_line(doc.records)
    return doc


def _parse_frontmatter(doc: CurrentDocument, lines: List[str]) -> int:
    if not lines or lines[0].rstrip("\r") != FRONTMATTER_FENCE:
        return 0
    for index in range(1, len(lines)):
        line = lines[index].rstrip("\r")
        if line == FRONTMATTER_FENCE:
            return index + 1
        key, sep, value = line.partition(":")
        if not sep:
            continue
        value = value.strip()
        if key == "source":
            doc.source_id = value
        elif key == "hash":
            doc.source_hash = value
        elif key == "captured":
            doc.captured = value
    return len(lines)


def _dedupe_by_line(records: List[AnnotationRecord]) -> List[AnnotationRecord]:
    by_line: Dict[int, AnnotationRecord] = {}
    for rec in records:
        by_line[rec.line] = rec
    return [by_line[line] for line in sorted(by_line)]


def render_current(doc: CurrentDocument) -> str:
    out: List[str] = [
        FRONTMATTER_FENCE,
        f"source: {doc.source_id}",
        f"hash: {doc.source_hash}",
        f"captured: {doc.captured}",
        FRONTMATTER_FENCE,
        "",
    ]
    by_line = {rec.line: rec for rec in doc.records}
    total = len(doc.source_lines)

    for line_num, content in enumerate(doc.source_lines, start=1):
        out.append(f"{format_line_number(line_num, total)} {content}")
        rec = by_line.pop(line_num, None)
        if rec is not None:
            out.extend(_render_inline(rec))

    # 원본 범위 밖의 줄은 마커로 남긴다
    for line_num in sorted(by_line):
        out.append(f"## Line {line_num}")
        out.extend(_render_inline(by_line[line_num]))

    return "\n".join(out) + "\n"


def _render_inline(rec: AnnotationRecord) -> List[str]:
    block = ["", f"> **@{single_line(rec.author)}** ({rec.timestamp}):"]
    block.extend(f"> {text_line}" for text_line in rec.text.split("\n"))
    block.append("")
    return block


def new_current_document(
    source_id: str,
    source: str,
    *,
    source_hash: Optional[str] = None,
    captured: str,
) -> CurrentDocument:
    return CurrentDocument(
        source_id=source_id,
        source_hash=source_hash or compute_source_hash(source),
        captured=captured,
        source_lines=split_source(source),
    )


__all__ = [
    "AnnotationRecord",
    "CurrentDocument",
    "Document",
    "LegacyDocument",
    "compute_source_hash",
    "format_line_number",
    "new_current_document",
    "parse_document",
    "parse_timestamp",
    "render_document",
    "utc_timestamp",
]
