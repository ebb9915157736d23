"""Tests for the CSV event store and the local event sink."""
from datetime import datetime

import pytest
from src.abtesting.event_store import (
    LocalEventSink,
    append_event,
    append_events,
    delete_experiment_events,
    get_experiment_summary,
    read_events,
    variant_counts,
)
from src.abtesting.registry import ExperimentRegistry
from src.abtesting.schema import EventType, ExperimentStatus, TrackingEvent

IMP = EventType.IMPRESSION
CONV = EventType.CONVERSION


def _event(event_type, variant_id="a", visitor="v1", page_load="p1", at=None, experiment_id="exp_1"):
    return TrackingEvent(
        experiment_id=experiment_id,
        variant_id=variant_id,
        event_type=event_type,
        visitor_id=visitor,
        page_load_id=page_load,
        recorded_at=at or datetime.utcnow(),
    )


def test_impression_then_conversion(tmp_path):
    assert append_event(_event(IMP), base_dir=str(tmp_path))
    assert append_event(_event(CONV), base_dir=str(tmp_path))
    assert variant_counts("exp_1", base_dir=str(tmp_path)) == {"a": (1, 1)}


def test_duplicates_dropped(tmp_path):
    """Same visitor, variant, event type and page load counts once."""
    events = [_event(IMP), _event(IMP), _event(IMP, page_load="p2")]
    assert append_events(events, "exp_1", base_dir=str(tmp_path)) == 2
    assert not append_event(_event(IMP), base_dir=str(tmp_path))
    assert variant_counts("exp_1", base_dir=str(tmp_path)) == {"a": (2, 0)}


def test_conversion_without_impression_dropped(tmp_path):
    append_event(_event(IMP, visitor="v1"), base_dir=str(tmp_path))
    assert not append_event(_event(CONV, visitor="v2"), base_dir=str(tmp_path))
    assert not append_event(_event(CONV, variant_id="b"), base_dir=str(tmp_path))
    assert variant_counts("exp_1", base_dir=str(tmp_path)) == {"a": (1, 0)}


def test_anonymous_conversions_bounded(tmp_path):
    """Without visitor ids, conversions never exceed impressions."""
    events = [_event(IMP, visitor=None, page_load=None)] * 2 + [_event(CONV, visitor=None, page_load=None)] * 3
    assert append_events(events, "exp_1", base_dir=str(tmp_path)) == 4
    imp, conv = variant_counts("exp_1", base_dir=str(tmp_path))["a"]
    assert conv <= imp


def test_numeric_ids_stay_strings(tmp_path):
    append_event(_event(IMP, variant_id="1", visitor="42", page_load="7"), base_dir=str(tmp_path))
    assert append_event(_event(CONV, variant_id="1", visitor="42", page_load="7"), base_dir=str(tmp_path))
    assert not append_event(_event(CONV, variant_id="1", visitor="42", page_load="7"), base_dir=str(tmp_path))
    assert variant_counts("exp_1", base_dir=str(tmp_path)) == {"1": (1, 1)}


def test_wrong_experiment_rejected(tmp_path):
    with pytest.raises(ValueError):
        append_events([_event(IMP, experiment_id="exp_2")], "exp_1", base_dir=str(tmp_path))


def test_read_events_time_window(tmp_path):
    events = [
        _event(IMP, visitor=f"v{day}", at=datetime(2024, 1, day))
        for day in (1, 5, 10)
    ]
    append_events(events, "exp_1", base_dir=str(tmp_path))
    df = read_events("exp_1", IMP, start_date=datetime(2024, 1, 2), end_date=datetime(2024, 1, 9),
                     base_dir=str(tmp_path))
    assert list(df["visitor_id"]) == ["v5"]
    counts = variant_counts("exp_1", start_date=datetime(2024, 1, 5), base_dir=str(tmp_path))
    assert counts == {"a": (2, 0)}


def test_summary_and_delete(tmp_path):
    append_events([_event(IMP), _event(CONV), _event(IMP, variant_id="b", visitor="v2")], "exp_1",
                  base_dir=str(tmp_path))
    summary = get_experiment_summary("exp_1", base_dir=str(tmp_path))
    assert summary["n_impressions"] == 2
    assert summary["n_conversions"] == 1
    assert summary["variants"]["b"] == {"impressions": 1, "conversions": 0}

    delete_experiment_events("exp_1", base_dir=str(tmp_path))
    assert variant_counts("exp_1", base_dir=str(tmp_path)) == {}


@pytest.fixture
def registry(tmp_path, make_experiment):
    reg = ExperimentRegistry(tmp_path / "experiments.json")
    reg.save(make_experiment(experiment_id="exp_1"))
    reg.save(make_experiment(experiment_id="exp_stopped", status=ExperimentStatus.STOPPED))
    return reg


def test_sink_records(tmp_path, registry):
    sink = LocalEventSink(base_dir=str(tmp_path), registry=registry)
    assert sink.record_impression("exp_1", "bold", visitor_id="v1", page_load_id="p1")
    assert sink.record_conversion("exp_1", "bold", visitor_id="v1", page_load_id="p1")
    assert variant_counts("exp_1", base_dir=str(tmp_path)) == {"bold": (1, 1)}


def test_sink_refuses_non_running(tmp_path, registry):
    """Stopped experiments take no more events."""
    sink = LocalEventSink(base_dir=str(tmp_path), registry=registry)
    assert not sink.record_impression("exp_stopped", "bold", visitor_id="v1", page_load_id="p1")
    assert variant_counts("exp_stopped", base_dir=str(tmp_path)) == {}


def test_sink_unknown_ids(tmp_path, registry):
    sink = LocalEventSink(base_dir=str(tmp_path), registry=registry)
    with pytest.raises(KeyError):
        sink.record_impression("exp_1", "purple")
    with pytest.raises(KeyError):
        sink.record_impression("exp_missing", "bold")


def test_sink_buffered_flush(tmp_path):
    sink = LocalEventSink(base_dir=str(tmp_path), autoflush=False)
    sink.record_impression("exp_1", "a", visitor_id="v1", page_load_id="p1")
    sink.record_impression("exp_2", "a", visitor_id="v1", page_load_id="p1")
    sink.record_conversion("exp_1", "a", visitor_id="v1", page_load_id="p1")
    assert variant_counts("exp_1", base_dir=str(tmp_path)) == {}
    assert sink.flush() == 3
    assert variant_counts("exp_1", base_dir=str(tmp_path)) == {"a": (1, 1)}
    assert sink.flush() == 0


def test_window_attributes_conversions_to_impressions(tmp_path):
    """Conversions count only for visitors whose impression is inside the window."""
    events = [
        _event(IMP, visitor="early", page_load="p1", at=datetime(2024, 1, 1)),
        _event(IMP, visitor="late", page_load="p2", at=datetime(2024, 1, 3)),
        _event(CONV, visitor="early", page_load="p1", at=datetime(2024, 1, 4)),
        _event(CONV, visitor="late", page_load="p2", at=datetime(2024, 1, 4)),
    ]
    append_events(events, "exp_1", base_dir=str(tmp_path))
    assert variant_counts("exp_1", start_date=datetime(2024, 1, 2), base_dir=str(tmp_path)) == {"a": (1, 1)}
    assert variant_counts("exp_1", end_date=datetime(2024, 1, 3), base_dir=str(tmp_path)) == {"a": (2, 0)}
    assert variant_counts("exp_1", base_dir=str(tmp_path)) == {"a": (2, 2)}
