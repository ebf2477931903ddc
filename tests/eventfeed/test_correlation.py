"""Tests for the correlation engine."""

import pytest

from core.errors.exceptions import ConfigError
from eventfeed.correlation import (
    MAC_FIELD,
    MAC_STC_FIELD,
    CorrelationConfig,
    CorrelationEngine,
    parse_event_time,
)
from eventfeed.schemas import EventBatch, LogType
from eventfeed.stats import CorrelationStats

T0 = 1_700_000_000


def net_half(session_id, ts=T0, src="10.0.0.1", dst="10.0.0.2", **extra):
    return {"session_id": session_id, "time_generated": ts, "src": src, "dst": dst, **extra}


def mac_half(session_id, ts=T0, mac="00:11:22:33:44:55", mac_stc="66:77:88:99:aa:bb"):
    return {"session_id": session_id, "time_generated": ts, MAC_FIELD: mac, MAC_STC_FIELD: mac_stc}


def traffic(*records):
    return EventBatch.of("EventService", LogType.TRAFFIC, records)


@pytest.fixture
def engine(clock):
    return CorrelationEngine(CorrelationConfig(), clock=clock)


class TestConfig:
    def test_defaults(self):
        config = CorrelationConfig()
        assert config.time_window == 120.0
        assert config.gc_threshold == 10_000
        assert config.log_types == ("traffic",)

    def test_coerces_strings(self):
        config = CorrelationConfig(time_window="30", gc_multiplier="2", expected_size="5")
        assert config.time_window == 30.0
        assert config.gc_threshold == 10

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"time_window": 0},
            {"gc_multiplier": 0},
            {"expected_size": 0},
            {"required_fields": ()},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(ConfigError):
            CorrelationConfig(**kwargs)


class TestParseEventTime:
    def test_seconds_and_millis(self):
        assert parse_event_time(T0) == T0
        assert parse_event_time(T0 * 1000) == T0
        assert parse_event_time(str(T0)) == T0

    def test_iso(self):
        assert parse_event_time("2023-11-14T22:13:20") == T0
        assert parse_event_time("2023-11-14T23:13:20+01:00") == T0

    @pytest.mark.parametrize("value", [None, True, "", "yesterday", {"t": 1}])
    def test_unusable(self, value):
        assert parse_event_time(value) is None


class TestMerge:
    def test_buffered_values_win(self):
        merged = CorrelationEngine.merge(
            {"a": 1, "b": "", "c": "keep"}, {"a": 2, "b": 3, "c": "new", "d": None}
        )
        assert merged == {"a": 1, "b": 3, "c": "keep"}


class TestMatching:
    def test_halves_are_joined(self, engine):
        first = engine.process(traffic(net_half(1)))
        assert not first
        assert 1 not in engine
        assert "1" in engine

        second = engine.process(traffic(mac_half(1, ts=T0 + 5)))

        assert second.plain == []
        [merged] = second.correlated_records
        assert merged["src"] == "10.0.0.1"
        assert merged["dst"] == "10.0.0.2"
        assert merged[MAC_FIELD] == "00:11:22:33:44:55"
        assert merged[MAC_STC_FIELD] == "66:77:88:99:aa:bb"
        assert merged["time_generated"] == T0
        assert len(engine) == 0
        assert engine.stats.matched == 1

    def test_order_of_halves_does_not_matter(self, engine):
        engine.process(traffic(mac_half(7)))
        result = engine.process(traffic(net_half(7)))
        assert len(result.correlated_records) == 1

    def test_match_within_one_batch(self, engine):
        result = engine.process(traffic(net_half(1), mac_half(1)))
        assert len(result.correlated_records) == 1
        assert result.correlated[0].log_type == "traffic"

    def test_last_write_wins(self, engine):
        engine.process(traffic(net_half(1, src="10.0.0.1")))
        superseded = engine.process(traffic(net_half(1, src="10.9.9.9", ts=T0 + 1)))

        assert [r["src"] for r in superseded.plain_records] == ["10.0.0.1"]
        assert engine.stats.superseded == 1

        result = engine.process(traffic(mac_half(1, ts=T0 + 2)))
        assert result.correlated_records[0]["src"] == "10.9.9.9"


class TestPassthrough:
    def test_complete_record(self, engine):
        record = {**net_half(1), **mac_half(1)}
        result = engine.process(traffic(record))
        assert result.plain_records == [record]
        assert len(engine) == 0
        assert engine.stats.passthrough == 1

    def test_other_log_type(self, engine):
        record = net_half(1)
        result = engine.process(EventBatch.of("EventService", LogType.THREAT, [record]))
        assert result.plain_records == [record]
        assert result.plain[0].log_type == "threat"
        assert len(engine) == 0

    @pytest.mark.parametrize("session_id", [None, ""])
    def test_missing_session_key(self, engine, session_id):
        result = engine.process(traffic(net_half(session_id)))
        assert len(result.plain_records) == 1
        assert len(engine) == 0

    def test_records_keep_identity(self, engine):
        record = {"session_id": 3, "src": "a", "dst": "b", MAC_FIELD: "m", MAC_STC_FIELD: "n"}
        result = engine.process(traffic(record))
        assert result.plain_records[0] is record


class TestExpiry:
    def test_released_exactly_once(self, engine):
        engine.process(traffic(net_half(1)))
        result = engine.process(traffic(net_half(2, ts=T0 + 121)))

        assert [r["session_id"] for r in result.plain_records] == [1]
        assert engine.stats.expired == 1

        later = engine.process(traffic(net_half(3, ts=T0 + 122)))
        assert all(r["session_id"] != 1 for r in later.plain_records)
        assert {r["session_id"] for r in engine.flush().plain_records} == {2, 3}

    def test_entry_at_window_age_is_kept(self, engine):
        engine.process(traffic(net_half(1)))
        engine.process(traffic(net_half(2, ts=T0 + 120)))
        assert "1" in engine

    def test_expired_counterpart_not_merged(self, engine):
        engine.process(traffic(net_half(1)))
        result = engine.process(traffic(mac_half(1, ts=T0 + 300)))

        assert result.correlated == []
        assert [r["src"] for r in result.plain_records] == ["10.0.0.1"]
        assert "1" in engine
        assert engine.stats.expired == 1

    def test_record_time_ignores_wall_clock(self, engine, clock):
        engine.process(traffic(net_half(1)))
        clock.advance(3600)
        engine.process(traffic())
        assert "1" in engine

    def test_missing_time_falls_back_to_clock(self, clock):
        engine = CorrelationEngine(CorrelationConfig(time_window=10), clock=clock)
        record = net_half(1)
        del record["time_generated"]

        engine.process(traffic(record))
        assert engine.pending()[0].first_seen == clock()

    def test_record_without_time_does_not_break_later_joins(self, engine, clock):
        clock.advance(86400)
        timeless = net_half("z")
        del timeless["time_generated"]

        engine.process(traffic(timeless))
        engine.process(traffic(net_half("x1", ts=T0)))
        result = engine.process(traffic(mac_half("x1", ts=T0 + 5)))

        assert len(result.correlated_records) == 1
        assert all(r["session_id"] != "x1" for r in result.plain_records)
        assert engine.stats.expired == 0

    def test_record_without_time_is_aged_from_feed_time(self, engine, clock):
        engine.process(traffic(net_half(1)))
        clock.advance(86400)
        timeless = net_half(2)
        del timeless["time_generated"]

        engine.process(traffic(timeless))

        assert {e.key: e.first_seen for e in engine.pending()} == {"1": T0, "2": T0}

    def test_passthrough_records_advance_clock(self, engine):
        engine.process(traffic(net_half(1)))
        complete = {**net_half(2, ts=T0 + 121), **mac_half(2, ts=T0 + 121)}

        result = engine.process(traffic(complete))

        assert [r["session_id"] for r in result.plain_records] == [2, 1]
        assert len(engine) == 0
        assert engine.stats.expired == 1

    def test_absolute_time(self, clock):
        engine = CorrelationEngine(CorrelationConfig(absolute_time=True), clock=clock)
        engine.process(traffic(net_half(1, ts=0)))
        assert engine.pending()[0].first_seen == clock()

        clock.advance(121)
        result = engine.process(traffic())

        assert len(result.plain_records) == 1
        assert len(engine) == 0


class TestGarbageCollection:
    def test_evicts_oldest_down_to_threshold(self, clock):
        stats = CorrelationStats()
        engine = CorrelationEngine(
            CorrelationConfig(gc_multiplier=1, expected_size=2), clock=clock, stats=stats
        )

        result = engine.process(traffic(*(net_half(i, ts=T0 + i) for i in range(4))))

        assert [r["session_id"] for r in result.plain_records] == [0, 1]
        assert len(engine) == 2
        assert {"2", "3"} == {e.key for e in engine.pending()}
        assert stats.gc_evicted == 2
        assert stats.gc_runs == 1
        assert stats.buffer_size == 2

    def test_no_gc_under_threshold(self, clock):
        engine = CorrelationEngine(
            CorrelationConfig(gc_multiplier=2, expected_size=2), clock=clock
        )
        engine.process(traffic(*(net_half(i) for i in range(4))))
        assert len(engine) == 4
        assert engine.stats.gc_runs == 0


class TestFlush:
    def test_releases_everything_once(self, engine):
        engine.process(traffic(net_half(1), mac_half(2)))

        flushed = engine.flush()

        assert len(flushed.plain_records) == 2
        assert flushed.correlated == []
        assert len(engine) == 0
        assert engine.stats.flushed == 2
        assert not engine.flush()
        assert engine.stats.flushed == 2

    def test_process_many(self, engine):
        result = engine.process_many([traffic(net_half(1)), traffic(mac_half(1))])
        assert len(result.correlated_records) == 1
        assert engine.stats.processed == 2
