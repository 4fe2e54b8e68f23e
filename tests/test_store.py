"""Tests for the append-only event stores."""

import json

import pytest

from response_boxes.exceptions import ArrayShapedStoreError, CorruptStoreError
from response_boxes.models.events import AnnotationEnriched
from response_boxes.store import (
    InMemoryEventStore,
    JsonlEventStore,
    StoreState,
    migrate_legacy_store,
    parse_lines,
)


class TestParseLines:
    """Tests for JSONL parsing and shape detection."""

    def test_valid_lines(self):
        result = parse_lines(['{"event": "A"}\n', "\n", '{"event": "B"}\n'])

        assert result.state == StoreState.OK
        assert [r["event"] for r in result.records] == ["A", "B"]
        assert result.skipped_lines == 0

    def test_bad_lines_are_skipped_and_counted(self):
        result = parse_lines(['{"event": "A"}', "{not json", "[1, 2]", '"text"'])

        assert result.state == StoreState.OK
        assert len(result.records) == 1
        assert result.skipped_lines == 3

    def test_array_shaped(self):
        result = parse_lines(["  [", '  {"event": "A"}', "]"])

        assert result.state == StoreState.ARRAY_SHAPED
        assert result.records == []

    def test_every_line_bad_is_corrupt(self):
        result = parse_lines(["garbage", "more garbage"])

        assert result.state == StoreState.CORRUPT
        assert result.skipped_lines == 2

    def test_blank_file_is_empty(self):
        assert parse_lines(["", "  \n"]).state == StoreState.EMPTY

    def test_raise_for_state(self):
        with pytest.raises(ArrayShapedStoreError):
            parse_lines(["[]"], source="x").raise_for_state()
        with pytest.raises(CorruptStoreError, match="x"):
            parse_lines(["nope"], source="x").raise_for_state()
        parse_lines(['{"a": 1}']).raise_for_state()


class TestJsonlEventStore:
    """Tests for the file-backed store."""

    def test_missing_file(self, jsonl_store):
        result = jsonl_store.read_all()

        assert result.state == StoreState.MISSING
        assert result.records == []
        assert result.usable

    def test_append_creates_parent_dirs(self, jsonl_store, store_path, make_annotation):
        jsonl_store.append(make_annotation())

        assert store_path.is_file()
        lines = store_path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["id"] == "a1"

    def test_append_typed_event(self, jsonl_store, store_path):
        jsonl_store.append(AnnotationEnriched(annotation_id="a1", updates={"score": 95}))

        record = json.loads(store_path.read_text(encoding="utf-8"))
        assert record["event"] == "AnnotationEnriched"
        assert record["box_id"] == "a1"

    def test_append_many_preserves_order(self, jsonl_store, make_annotation):
        count = jsonl_store.append_many(
            [make_annotation("a1"), make_annotation("a2"), make_annotation("a3")]
        )

        assert count == 3
        assert [r["id"] for r in jsonl_store.read_all().records] == ["a1", "a2", "a3"]

    def test_append_never_rewrites(self, jsonl_store, store_path, make_annotation):
        jsonl_store.append(make_annotation("a1"))
        first = store_path.read_text(encoding="utf-8")
        jsonl_store.append(make_annotation("a2"))

        assert store_path.read_text(encoding="utf-8").startswith(first)

    def test_append_nothing(self, jsonl_store, store_path):
        assert jsonl_store.append_many([]) == 0
        assert not store_path.exists()

    def test_unicode_is_preserved(self, jsonl_store, make_annotation):
        jsonl_store.append(make_annotation(fields={"selected": "Zöd ⚖️"}))

        assert jsonl_store.read_all().records[0]["fields"]["selected"] == "Zöd ⚖️"

    def test_array_shaped_file(self, jsonl_store, store_path):
        store_path.parent.mkdir(parents=True)
        store_path.write_text('[{"type": "Choice"}]', encoding="utf-8")

        assert jsonl_store.read_all().state == StoreState.ARRAY_SHAPED

    def test_corrupt_file(self, jsonl_store, store_path):
        store_path.parent.mkdir(parents=True)
        store_path.write_text("not json at all\n", encoding="utf-8")

        result = jsonl_store.read_all()
        assert result.state == StoreState.CORRUPT
        assert not result.usable


class TestInMemoryEventStore:
    """Tests for the in-memory store."""

    def test_same_contract(self, memory_store, make_annotation):
        assert memory_store.read_all().state == StoreState.MISSING

        memory_store.append(make_annotation("a1"))
        memory_store.append_raw("{broken")

        result = memory_store.read_all()
        assert result.state == StoreState.OK
        assert result.skipped_lines == 1
        assert result.records[0]["id"] == "a1"

    def test_initial_records(self, make_annotation):
        store = InMemoryEventStore([make_annotation("a1"), make_annotation("a2")])

        assert len(store.read_all().records) == 2


class TestMigrateLegacyStore:
    """Tests for legacy store migration."""

    def test_copies_when_target_missing(self, tmp_path, make_annotation):
        legacy = tmp_path / "legacy" / "boxes.jsonl"
        JsonlEventStore(legacy).append(make_annotation("a1"))
        target = tmp_path / "new" / "boxes.jsonl"

        assert migrate_legacy_store(legacy, target) is True
        assert target.read_text(encoding="utf-8") == legacy.read_text(encoding="utf-8")
        assert legacy.exists()

    def test_skips_existing_target(self, tmp_path, make_annotation):
        legacy = tmp_path / "legacy.jsonl"
        target = tmp_path / "target.jsonl"
        JsonlEventStore(legacy).append(make_annotation("a1"))
        JsonlEventStore(target).append(make_annotation("a2"))

        assert migrate_legacy_store(legacy, target) is False
        assert JsonlEventStore(target).read_all().records[0]["id"] == "a2"

    def test_skips_missing_legacy(self, tmp_path):
        assert migrate_legacy_store(tmp_path / "nope.jsonl", tmp_path / "t.jsonl") is False

    def test_skips_array_shaped_legacy(self, tmp_path):
        legacy = tmp_path / "legacy.jsonl"
        legacy.write_text("[]", encoding="utf-8")
        target = tmp_path / "target.jsonl"

        assert migrate_legacy_store(legacy, target) is False
        assert not target.exists()
