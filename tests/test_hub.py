"""
요청 라우팅 테스트.
"""

import json
from pathlib import Path

import pytest

from annotator.hub import AnnotationHub


def _req(action: str, **fields) -> dict:
    return {"action": action, **fields}


def _call(hub: AnnotationHub, message: dict) -> dict:
    return hub.handle_message(message).to_dict()


class TestBasics:

    def test_ping(self, hub: AnnotationHub):
        assert _call(hub, _req("ping")) == {"success": True}

    def test_unknown_action(self, hub: AnnotationHub):
        resp = _call(hub, _req("explode"))
        assert resp["success"] is False
        assert resp["error"] == "Unknown action: explode"

    def test_missing_action(self, hub: AnnotationHub):
        resp = _call(hub, {"storageRoot": "/tmp"})
        assert resp["success"] is False
        assert "action" in resp["error"]

    def test_bad_json_payload(self, hub: AnnotationHub):
        resp = hub.handle_payload(b"{not json").to_dict()
        assert resp["success"] is False
        assert resp["error"].startswith("Failed to parse request")

    def test_non_object_payload(self, hub: AnnotationHub):
        resp = hub.handle_payload(b"[1, 2]").to_dict()
        assert resp["success"] is False

    def test_extra_fields_ignored(self, hub: AnnotationHub):
        assert _call(hub, _req("ping", foo="bar"))["success"] is True


class TestValidation:

    @pytest.mark.parametrize(
        "message,expected",
        [
            (_req("read", storageRoot="/x", collectionId="p"), ["filePath"]),
            (_req("read"), ["storageRoot", "collectionId", "filePath"]),
            (_req("save", storageRoot="/x", collectionId="p", filePath="f"), ["line", "author", "text"]),
            (_req("save", storageRoot="/x", collectionId="p", filePath="f", line=0, author="a", text="t"), ["line"]),
            (_req("save", storageRoot="/x", collectionId="p", filePath="f", line=1, author="", text="t"), ["author"]),
            (_req("delete", storageRoot="/x", collectionId="p", filePath="f"), ["line"]),
            (_req("startEditing", storageRoot="/x", user="u"), ["filePath", "line"]),
            (_req("stopEditing", storageRoot="/x"), ["user"]),
            (_req("getEditing"), ["storageRoot"]),
            (_req("listAnnotatedFiles", storageRoot="/x"), ["collectionId"]),
        ],
    )
    def test_missing_fields_reported(self, hub: AnnotationHub, message, expected):
        resp = _call(hub, message)
        assert resp["success"] is False
        assert resp["error"].startswith("Missing required")
        for name in expected:
            assert name in resp["error"]

    def test_validation_has_no_side_effects(self, hub: AnnotationHub, storage_root: Path):
        resp = _call(hub, _req("save", storageRoot=str(storage_root), collectionId="p", filePath="f", line=1, author="a"))
        assert resp["success"] is False
        assert not storage_root.exists()

    def test_invalid_line_type(self, hub: AnnotationHub, storage_root: Path):
        resp = _call(hub, _req("delete", storageRoot=str(storage_root), collectionId="p", filePath="f", line="abc"))
        assert resp["success"] is False
        assert "line" in resp["error"]


class TestAnnotationActions:

    def _base(self, storage_root: Path, **fields) -> dict:
        return {"storageRoot": str(storage_root), "collectionId": "proj", "filePath": "file.go", **fields}

    def test_save_then_read(self, hub, storage_root, source_text):
        resp = _call(hub, _req("save", **self._base(storage_root, line=10, author="alice", text="note", source=source_text)))
        assert resp == {"success": True}

        resp = _call(hub, _req("read", **self._base(storage_root)))
        assert resp["success"] is True
        assert resp["annotations"] == [
            {"line": 10, "author": "alice", "timestamp": "2026-03-01T12:00:00Z", "text": "note"}
        ]

    def test_read_missing_is_empty_list(self, hub, storage_root):
        assert _call(hub, _req("read", **self._base(storage_root))) == {"success": True, "annotations": []}

    def test_ordering_and_replacement(self, hub, storage_root, source_text):
        _call(hub, _req("save", **self._base(storage_root, line=10, author="alice", text="a", source=source_text)))
        _call(hub, _req("save", **self._base(storage_root, line=20, author="bob", text="b")))
        _call(hub, _req("save", **self._base(storage_root, line=15, author="carol", text="c")))
        _call(hub, _req("save", **self._base(storage_root, line=20, author="dave", text="d")))

        annotations = _call(hub, _req("read", **self._base(storage_root)))["annotations"]
        assert [(a["line"], a["author"], a["text"]) for a in annotations] == [
            (10, "alice", "a"),
            (15, "carol", "c"),
            (20, "dave", "d"),
        ]

    def test_save_without_source_on_new_file(self, hub, storage_root):
        resp = _call(hub, _req("save", **self._base(storage_root, line=3, author="alice", text="x")))
        assert resp["success"] is False
        assert "source" in resp["error"]
        assert _call(hub, _req("read", **self._base(storage_root)))["annotations"] == []

    def test_delete_only_record_removes_file(self, hub, storage_root, source_text):
        _call(hub, _req("save", **self._base(storage_root, line=2, author="alice", text="x", source=source_text)))
        assert _call(hub, _req("delete", **self._base(storage_root, line=2))) == {"success": True}
        assert _call(hub, _req("read", **self._base(storage_root)))["annotations"] == []
        assert list(storage_root.iterdir()) == []

    def test_delete_nonexistent_succeeds(self, hub, storage_root):
        assert _call(hub, _req("delete", **self._base(storage_root, line=7))) == {"success": True}

    def test_list_annotated_files(self, hub, storage_root, source_text):
        _call(hub, _req("save", **self._base(storage_root, line=1, author="a", text="x", source=source_text)))
        _call(hub, _req("save", **self._base(storage_root, filePath="src/b.go", line=2, author="b", text="y", source=source_text)))

        resp = _call(hub, _req("listAnnotatedFiles", storageRoot=str(storage_root), collectionId="proj"))
        assert resp["success"] is True
        assert sorted((a["filePath"], a["line"]) for a in resp["annotations"]) == [("file.go", 1), ("src/b.go", 2)]

    def test_io_error_surfaces_message(self, hub, tmp_path, source_text):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x", encoding="utf-8")
        resp = _call(hub, _req(
            "save", storageRoot=str(blocker / "root"), collectionId="p", filePath="f",
            line=1, author="a", text="t", source=source_text,
        ))
        assert resp["success"] is False
        assert resp["error"]


class TestEditingActions:

    def test_start_get_stop(self, hub, storage_root, clock):
        root = str(storage_root)
        assert _call(hub, _req("startEditing", storageRoot=root, user="alice", filePath="f1", line=5))["success"]
        assert _call(hub, _req("startEditing", storageRoot=root, user="alice", filePath="f2", line=9))["success"]

        resp = _call(hub, _req("getEditing", storageRoot=root))
        assert resp["editing"] == [
            {"user": "alice", "filePath": "f2", "line": 9, "timestamp": "2026-03-01T12:00:00Z"}
        ]

        assert _call(hub, _req("stopEditing", storageRoot=root, user="alice")) == {"success": True}
        assert _call(hub, _req("getEditing", storageRoot=root)) == {"success": True, "editing": []}

    def test_stale_entries_expire(self, hub, storage_root, clock):
        root = str(storage_root)
        _call(hub, _req("startEditing", storageRoot=root, user="alice", filePath="f1", line=5))
        clock.advance(minutes=6)
        assert _call(hub, _req("getEditing", storageRoot=root))["editing"] == []


class TestResponseShape:

    def test_response_is_json_serialisable(self, hub, storage_root, source_text):
        _call(hub, {"action": "save", "storageRoot": str(storage_root), "collectionId": "p",
                    "filePath": "f", "line": 1, "author": "a", "text": "ü", "source": source_text})
        resp = _call(hub, {"action": "read", "storageRoot": str(storage_root), "collectionId": "p", "filePath": "f"})
        assert json.loads(json.dumps(resp, ensure_ascii=False)) == resp
