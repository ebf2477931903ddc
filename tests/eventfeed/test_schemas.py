"""Tests for wire models: poll responses, filters and options."""

import pytest

from core.errors.exceptions import ParserError
from eventfeed.schemas import (
    EventBatch,
    EventFilter,
    FilterOptions,
    FilterSpec,
    LogType,
    PollOptions,
    build_filter,
    parse_poll_response,
)


class TestEventBatch:
    def test_of_normalises_log_type(self):
        batch = EventBatch.of("EventService", LogType.TRAFFIC, [{"a": 1}])
        assert batch.log_type == "traffic"
        assert batch.records == ({"a": 1},)
        assert len(batch) == 1
        assert batch

    def test_empty_is_falsy(self):
        assert not EventBatch.of("EventService", "threat", [])


class TestParsePollResponse:
    def test_empty_body(self):
        assert parse_poll_response(None, "EventService") == []

    def test_groups_become_batches(self):
        body = [
            {"logType": "traffic", "event": [{"session_id": 1}, {"session_id": 2}]},
            {"logType": "threat", "event": [{"pcap": "AA=="}]},
        ]
        batches = parse_poll_response(body, "EventService")
        assert [b.log_type for b in batches] == ["traffic", "threat"]
        assert len(batches[0]) == 2
        assert batches[1].source == "EventService"

    def test_null_event_list(self):
        batches = parse_poll_response([{"logType": "traffic", "event": None}], "S")
        assert batches[0].records == ()

    def test_unknown_fields_ignored(self):
        batches = parse_poll_response([{"logType": "url", "event": [], "extra": 1}], "S")
        assert batches[0].log_type == "url"

    def test_not_a_list(self):
        with pytest.raises(ParserError, match="must be a list"):
            parse_poll_response({"logType": "traffic"}, "S")

    def test_group_without_log_type(self):
        with pytest.raises(ParserError, match="Unparseable poll response"):
            parse_poll_response([{"event": []}], "S")


class TestFilters:
    def test_build_filter_statements(self):
        event_filter = build_filter(
            [
                FilterSpec(table=LogType.TRAFFIC, where="action = 'deny'", batch_size=50),
                FilterSpec(table="threat", timeout=1000),
            ],
            flush=True,
        )
        assert event_filter.to_wire() == {
            "filters": [
                {
                    "traffic": {
                        "filter": "SELECT * FROM `traffic` WHERE action = 'deny'",
                        "batchSize": 50,
                    }
                },
                {"threat": {"filter": "SELECT * FROM `threat`", "timeout": 1000}},
            ],
            "flush": True,
        }

    def test_tables(self):
        event_filter = build_filter([FilterSpec("traffic"), FilterSpec("url")])
        assert event_filter.tables == ["traffic", "url"]

    def test_parse_wire_document(self):
        event_filter = EventFilter.model_validate(
            {"filters": [{"traffic": {"filter": "SELECT * FROM `traffic`", "batchSize": 5}}]}
        )
        assert event_filter.filters[0]["traffic"].batch_size == 5
        assert event_filter.flush is None
        assert "flush" not in event_filter.to_wire()


class TestOptions:
    def test_poll_options_wire(self):
        assert PollOptions().to_wire() == {"pollTimeout": 1000, "fetchTimeout": 45000}
        assert PollOptions(poll_timeout=5).to_wire()["pollTimeout"] == 5

    def test_poll_options_reject_negative(self):
        with pytest.raises(ValueError):
            PollOptions(fetch_timeout=-1)

    def test_filter_options_reject_negative_sleep(self):
        with pytest.raises(ValueError, match="sleep"):
            FilterOptions(sleep=-1)
        assert FilterOptions(sleep=0).sleep == 0

    def test_has_callbacks(self):
        assert not FilterOptions(sleep=1).has_callbacks
        assert FilterOptions(pcap_callback=print).has_callbacks
