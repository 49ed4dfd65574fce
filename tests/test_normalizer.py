"""Tests for normalize_payload and its timestamp/message helpers."""

from __future__ import annotations

from datetime import datetime, timezone

from opsdash.core.normalizer import message_text, normalize_payload, parse_timestamp


class TestParseTimestamp:
    def test_epoch_seconds(self, now):
        assert parse_timestamp(1700000000, now) == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)

    def test_epoch_milliseconds(self, now):
        assert parse_timestamp(1700000000000, now) == parse_timestamp(1700000000, now)

    def test_digit_string(self, now):
        assert parse_timestamp("1700000000", now) == parse_timestamp(1700000000, now)

    def test_iso_string_naive_becomes_utc(self, now):
        assert parse_timestamp("2026-01-01T10:00:00", now) == datetime(2026, 1, 1, 10, tzinfo=timezone.utc)

    def test_garbage_falls_back(self, now):
        assert parse_timestamp("yesterday-ish", now) == now
        assert parse_timestamp(None, now) == now
        assert parse_timestamp(True, now) == now

    def test_malformed_digit_strings_fall_back(self, now):
        assert parse_timestamp("--5", now) == now
        assert parse_timestamp("²", now) == now
        assert parse_timestamp("-", now) == now
        assert parse_timestamp("", now) == now

    def test_negative_epoch_string(self, now):
        assert parse_timestamp("-5", now) == datetime(1969, 12, 31, 23, 59, 55, tzinfo=timezone.utc)


class TestMessageText:
    def test_message_preferred_over_error(self):
        assert message_text({"message": "a", "error": "b"}) == "a"

    def test_error_used_when_message_empty(self):
        assert message_text({"message": "", "error": "disk full"}) == "disk full"

    def test_error_object_with_message(self):
        assert message_text({"error": {"message": "nested", "code": 3}}) == "nested"

    def test_error_object_without_message_is_json(self):
        assert message_text({"error": {"code": 3}}) == '{"code": 3}'


class TestNormalizePayload:
    def test_flat_input_one_record_per_key(self, now):
        data = {
            "a": {"message": "first", "timestamp": 1700000000},
            "b": {"message": "second", "timestamp": 1700000100},
            "c": {"message": "third"},
        }
        records = normalize_payload(data, "error", now)
        assert [r.id for r in records] == ["a", "b", "c"]
        assert records[2].timestamp == now

    def test_bad_timestamp_does_not_drop_batch(self, now):
        data = {
            "a": {"message": "fine", "timestamp": 1700000000},
            "b": {"message": "odd stamp", "timestamp": "--5"},
            "c": {"message": "superscript", "timestamp": "²"},
        }
        records = normalize_payload(data, "error", now)
        assert [r.message for r in records] == ["fine", "odd stamp", "superscript"]
        assert records[1].timestamp == now
        assert records[2].timestamp == now

    def test_flat_input_is_idempotent(self, now):
        data = {"a": {"message": "first"}, "b": {"message": "second"}}
        first = normalize_payload(data, "error", now)
        second = normalize_payload(data, "error", now)
        assert first == second

    def test_nested_paths_and_defaults(self, now, nested_payload):
        records = normalize_payload(nested_payload, "error", now)
        by_id = {r.id: r for r in records}

        smtp = by_id["error:1700000000:email:abc"]
        assert smtp.message == "SMTP timeout"
        assert smtp.category == "error"  # no category field -> folder
        assert smtp.type == "error"
        assert smtp.level == "error"
        assert smtp.metadata["queue"] == "outbound"

        lock = by_id["error:1700000500:locking:def"]
        assert lock.message == "lock expired"
        assert lock.category == "locking"

    def test_duplicate_messages_keep_first(self, now):
        data = {
            "x": {"deep": {"message": "same text", "timestamp": 1}},
            "y": {"message": "same text", "timestamp": 2},
            "z": {"message": "other"},
        }
        records = normalize_payload(data, "error", now)
        assert [r.id for r in records] == ["x:deep", "z"]

    def test_does_not_descend_into_records(self, now):
        data = {"a": {"message": "outer", "child": {"message": "inner"}}}
        records = normalize_payload(data, "error", now)
        assert len(records) == 1
        assert records[0].message == "outer"

    def test_level_kept_only_when_valid(self, now):
        data = {
            "a": {"message": "one", "level": "warn"},
            "b": {"message": "two", "level": "fatal"},
        }
        levels = {r.id: r.level for r in normalize_payload(data, "error", now)}
        assert levels == {"a": "warn", "b": "error"}

    def test_scalars_are_ignored(self, now):
        data = {"count": 3, "name": "x", "a": {"message": "only"}}
        assert [r.id for r in normalize_payload(data, "error", now)] == ["a"]

    def test_non_mapping_payload(self, now):
        assert normalize_payload(["not", "a", "dict"], "error", now) == []
