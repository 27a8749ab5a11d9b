"""Tests for inventory_ingestion.extraction: content fields and dedup keys."""

import pytest

from inventory_ingestion.extraction import (
    MAX_DEDUP_KEY_LENGTH,
    bounded_key,
    derive_dedup_key,
    extract_content,
    extract_contents,
    job_hit_key,
    parse_validity_hit,
)


class TestExtractContent:
    @pytest.mark.parametrize(
        "hit,expected",
        [
            ({"data": {"SUCCESS": "a"}}, "a"),
            ({"data": {"DATA": "b"}}, "b"),
            ({"data": {"SUCCESS": "a", "DATA": "b"}}, "a"),
            ({"data": {"SUCCESS": ""}, "capturedData": "c"}, "c"),
            ({"capturedData": "  c  "}, "c"),
            ({"data": {"DATA": 12345}}, "12345"),
        ],
    )
    def test_field_precedence(self, hit, expected):
        assert extract_content(hit) == expected

    @pytest.mark.parametrize(
        "hit",
        [
            {},
            {"data": {}},
            {"data": "flat"},
            {"capturedData": None},
            {"capturedData": {"nested": 1}},
            {"data": {"SUCCESS": True}},
            None,
            "string-hit",
        ],
    )
    def test_no_content(self, hit):
        assert extract_content(hit) is None

    def test_extract_contents_counts_skips(self):
        hits = [
            {"data": {"SUCCESS": "h1"}},
            {"nothing": True},
            {"capturedData": "h3"},
        ]
        assert extract_contents(hits) == (["h1", "h3"], 1)


class TestParseValidityHit:
    def test_top_level_fields(self):
        parsed = parse_validity_hit({
            "itemId": "7", "score": "0.92", "result": "valid",
            "method": "http-check", "details": {"latency": 30}, "executionTimeMs": 45,
        })

        assert parsed.item_id == 7
        assert parsed.score == pytest.approx(0.92)
        assert parsed.result == "valid"
        assert parsed.method == "http-check"
        assert parsed.details == {"latency": 30}
        assert parsed.execution_time_ms == 45

    def test_fields_inside_data(self):
        parsed = parse_validity_hit({"data": {"itemId": 3, "score": 0.1}})

        assert parsed.item_id == 3
        assert parsed.result == "unknown"
        assert parsed.method == "job-service"
        assert parsed.details is None

    @pytest.mark.parametrize(
        "hit",
        [{}, {"itemId": "x"}, {"itemId": 1, "score": "high"}, "nope"],
    )
    def test_unusable(self, hit):
        assert parse_validity_hit(hit) is None


class TestDedupKeys:
    def test_explicit_event_id_wins(self):
        event = {"type": "job.completed", "jobId": "J1", "eventId": "evt-9"}
        assert derive_dedup_key(event) == "event:evt-9"

    def test_job_completed(self):
        assert derive_dedup_key({"type": "job.completed", "jobId": "J1"}) == "job.completed:J1"

    def test_job_hit_uses_hit_id(self):
        event = {"type": "job.hit", "jobId": "J1", "hit": {"id": "h-1", "data": {"SUCCESS": "a"}}}
        assert derive_dedup_key(event) == "job.hit:J1:h-1"

    def test_job_hit_hashes_content_without_id(self):
        a = job_hit_key("J1", {"data": {"SUCCESS": "a"}})
        b = job_hit_key("J1", {"data": {"SUCCESS": "a"}})
        c = job_hit_key("J1", {"data": {"SUCCESS": "b"}})

        assert a == b
        assert a != c
        assert a.startswith("job.hit:J1:")

    def test_job_hit_without_job(self):
        assert job_hit_key(None, {"hitId": 5}) == "job.hit:-:5"

    @pytest.mark.parametrize(
        "event",
        [
            {"type": "job.progress", "jobId": "J1", "progress": 50},
            {"type": "job.completed"},
            {"type": "job.hit", "jobId": "J1"},
            {"type": "something.else"},
        ],
    )
    def test_no_key(self, event):
        assert derive_dedup_key(event) is None

    def test_long_upstream_ids_fit_the_key_column(self):
        long_id = "x" * 1000

        explicit = derive_dedup_key({"type": "job.completed", "eventId": long_id})
        hit = job_hit_key("J1", {"id": long_id})

        assert len(explicit) <= MAX_DEDUP_KEY_LENGTH
        assert len(hit) <= MAX_DEDUP_KEY_LENGTH
        assert explicit.startswith("event:xxx")
        assert explicit == derive_dedup_key({"type": "job.completed", "eventId": long_id})
        assert explicit != derive_dedup_key({"type": "job.completed", "eventId": long_id + "y"})

    def test_short_keys_are_unchanged(self):
        assert bounded_key("job.completed:J1") == "job.completed:J1"
