"""편집 중인 사용자 목록(ledger) 관리.

ledger는 저장소 루트 하나에 파일 하나이며 모든 컬렉션이 공유한다.
잠금은 없고 마지막에 쓴 쪽이 이긴다. 일정 시간 갱신되지 않은 항목은
읽을 때마다 걸러지므로 비정상 종료한 클라이언트도 따로 정리할 필요가 없다.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

from .codec import LEDGER_FILENAME
from .doc import parse_timestamp, single_line, utc_timestamp
from .persist import PathLike, read_text, remove_file, write_text_atomic

LOGGER = logging.getLogger(__name__)

STALE_AFTER = timedelta(minutes=5)
LEDGER_HEADER = "# Currently Being Edited"

_ENTRY_RE = re.compile(r"^(.+?): (.+):(\d+) @ (\S+)$")
# user 필드 안의 ":" 는 구분자와 겹치지 않도록 %XX 로 쓴다
_USER_ESCAPE_RE = re.compile(r"%(25|3A)")


@dataclass
class EditEntry:
    user: str
    file_path: str
    line: int
    timestamp: str


def ledger_path(storage_root: PathLike) -> Path:
    return Path(storage_root) / LEDGER_FILENAME


def get_editing(
    storage_root: PathLike,
    *,
    now: Optional[datetime] = None,
    stale_after: timedelta = STALE_AFTER,
) -> List[EditEntry]:
    """만료되지 않은 항목만 반환."""
    text = read_text(ledger_path(storage_root))
    if text is None:
        return []
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    threshold = current - stale_after
    entries: List[EditEntry] = []
    for entry in parse_ledger(text):
        moment = parse_timestamp(entry.timestamp)
        if moment is None or moment < threshold:
            continue
        entries.append(entry)
    return entries


def start_editing(
    storage_root: PathLike,
    user: str,
    file_path: str,
    line: int,
    *,
    now: Optional[datetime] = None,
    stale_after: timedelta = STALE_AFTER,
) -> EditEntry:
    """사용자의 이전 항목을 지우고 새 항목을 추가."""
    entries = get_editing(storage_root, now=now, stale_after=stale_after)
    entry = EditEntry(
        user=single_line(user),
        file_path=single_line(file_path),
        line=line,
        timestamp=utc_timestamp(now),
    )
    remaining = [e for e in entries if e.user != entry.user]
    remaining.append(entry)
    write_text_atomic(ledger_path(storage_root), render_ledger(remaining))
    LOGGER.debug("editing started: %s %s:%s", entry.user, entry.file_path, entry.line)
    return entry


def stop_editing(
    storage_root: PathLike,
    user: str,
    *,
    now: Optional[datetime] = None,
    stale_after: timedelta = STALE_AFTER,
) -> None:
    """사용자 항목 제거. 남은 항목이 없으면 ledger 파일을 지운다."""
    path = ledger_path(storage_root)
    if not path.exists():
        return
    user = single_line(user)
    entries = get_editing(storage_root, now=now, stale_after=stale_after)
    remaining = [e for e in entries if e.user != user]
    if not remaining:
        remove_file(path)
        LOGGER.debug("ledger removed: %s", path)
        return
    write_text_atomic(path, render_ledger(remaining))
    LOGGER.debug("editing stopped: %s", user)


def parse_ledger(text: str) -> List[EditEntry]:
    entries: List[EditEntry] = []
    for line in text.split("\n"):
        line = line.rstrip("\r")
        if not line or line == LEDGER_HEADER:
            continue
        match = _ENTRY_RE.match(line)
        if not match:
            LOGGER.warning("skip bad ledger line: %r", line)
            continue
        entries.append(
            EditEntry(
                user=_unescape_user(match.group(1)),
                file_path=match.group(2),
                line=int(match.group(3)),
                timestamp=match.group(4),
            )
        )
    return entries


def render_ledger(entries: List[EditEntry]) -> str:
    out = [LEDGER_HEADER, ""]
    out.extend(f"{_escape_user(e.user)}: {e.file_path}:{e.line} @ {e.timestamp}" for e in entries)
    return "\n".join(out) + "\n"


def _escape_user(user: str) -> str:
    return user.replace("%", "%25").replace(":", "%3A")


def _unescape_user(user: str) -> str:
    return _USER_ESCAPE_RE.sub(lambda m: "%" if m.group(1) == "25" else ":", user)


__all__ = [
    "EditEntry",
    "STALE_AFTER",
    "get_editing",
    "ledger_path",
    "start_editing",
    "stop_editing",
]
