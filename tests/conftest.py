"""
pytest 공용 fixture.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from annotator.hub import AnnotationHub


SOURCE = "package main\n\nimport \"fmt\"\n\nfunc main() {\n\tfmt.Println(\"hi\")\n}\n"


class FakeClock:
    """테스트용 시계. advance()로 시간을 진행."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def storage_root(tmp_path: Path) -> Path:
    return tmp_path / "annotations"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def hub(clock: FakeClock) -> AnnotationHub:
    return AnnotationHub(clock=clock)


@pytest.fixture
def source_text() -> str:
    return SOURCE
