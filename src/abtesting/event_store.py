"""
Lightweight event store for experiment impressions and conversions.

Writes CSV tables to data/abtesting/<experiment_id>/. Provides functions to
append events (with deduplication and the conversions <= impressions
guard), read them by time window and aggregate per-variant counts.
``LocalEventSink`` adapts the store to the runtime's EventSink interface.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pandas as pd

from .config import Config
from .lifecycle import accepts_conversions
from .schema import EventType, TrackingEvent

logger = logging.getLogger(__name__)

DEFAULT_STORE_DIR = Config.DATA_DIR

EVENT_COLUMNS = ["experiment_id", "variant_id", "visitor_id", "page_load_id", "event_type", "recorded_at"]


def _ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def _events_path(experiment_id: str, event_type: EventType, base_dir: str = DEFAULT_STORE_DIR) -> Path:
    return Path(base_dir) / experiment_id / f"{EventType(event_type).value}s.csv"


def _read_table(path: Path) -> pd.DataFrame:
    if not path.exists():
        return pd.DataFrame(columns=EVENT_COLUMNS)
    return pd.read_csv(path, dtype={c: str for c in EVENT_COLUMNS if c != "recorded_at"})


def _event_to_row(evt: TrackingEvent) -> dict:
    return {
        "experiment_id": evt.experiment_id,
        "variant_id": evt.variant_id,
        "visitor_id": evt.visitor_id or "",
        "page_load_id": evt.page_load_id or "",
        "event_type": evt.event_type.value,
        "recorded_at": evt.recorded_at.isoformat(),
    }


def _keys(df: pd.DataFrame) -> set:
    if df.empty:
        return set()
    sub = df.fillna("")
    return {
        (r.experiment_id, str(r.variant_id), r.visitor_id, r.event_type, r.page_load_id)
        for r in sub.itertuples(index=False)
        if r.visitor_id and r.page_load_id
    }


def append_events(events: List[TrackingEvent], experiment_id: str, base_dir: str = DEFAULT_STORE_DIR) -> int:
    """
    Append events for one experiment.

    Duplicates (same experiment, variant, visitor, event type and page load)
    are dropped. A conversion is dropped when the same visitor has no
    recorded impression for the variant, or for anonymous events when the
    variant's conversions would exceed its impressions.

    Returns:
        Number of events written
    """
    imp_path = _events_path(experiment_id, EventType.IMPRESSION, base_dir)
    conv_path = _events_path(experiment_id, EventType.CONVERSION, base_dir)
    _ensure_dir(imp_path.parent)

    impressions = _read_table(imp_path)
    conversions = _read_table(conv_path)
    seen = _keys(impressions) | _keys(conversions)
    seen_visitors = {
        (str(r.variant_id), r.visitor_id)
        for r in impressions.fillna("").itertuples(index=False)
        if r.visitor_id
    }
    imp_counts = impressions["variant_id"].astype(str).value_counts().to_dict() if not impressions.empty else {}
    conv_counts = conversions["variant_id"].astype(str).value_counts().to_dict() if not conversions.empty else {}

    new_rows: Dict[EventType, List[dict]] = {EventType.IMPRESSION: [], EventType.CONVERSION: []}
    for evt in events:
        if evt.experiment_id != experiment_id:
            raise ValueError(f"Event for {evt.experiment_id} appended to {experiment_id}")
        key = evt.dedup_key
        if key is not None and key in seen:
            logger.debug(f"Duplicate {evt.event_type.value} dropped for {experiment_id}/{evt.variant_id}")
            continue

        if evt.event_type == EventType.IMPRESSION:
            if evt.visitor_id:
                seen_visitors.add((evt.variant_id, evt.visitor_id))
            imp_counts[evt.variant_id] = imp_counts.get(evt.variant_id, 0) + 1
        else:
            if evt.visitor_id:
                allowed = (evt.variant_id, evt.visitor_id) in seen_visitors
            else:
                allowed = conv_counts.get(evt.variant_id, 0) < imp_counts.get(evt.variant_id, 0)
            if not allowed:
                logger.warning(
                    f"Conversion without impression dropped for {experiment_id}/{evt.variant_id}"
                )
                continue
            conv_counts[evt.variant_id] = conv_counts.get(evt.variant_id, 0) + 1

        if key is not None:
            seen.add(key)
        new_rows[evt.event_type].append(_event_to_row(evt))

    written = 0
    for event_type, rows in new_rows.items():
        if not rows:
            continue
        path = _events_path(experiment_id, event_type, base_dir)
        pd.DataFrame(rows, columns=EVENT_COLUMNS).to_csv(
            path, mode="a", header=not path.exists(), index=False
        )
        written += len(rows)
    if written:
        logger.debug(f"Appended {written} events to {imp_path.parent}")
    return written


def append_event(event: TrackingEvent, base_dir: str = DEFAULT_STORE_DIR) -> bool:
    """Append a single event. Returns False if it was dropped."""
    return append_events([event], event.experiment_id, base_dir) == 1


def read_events(
    experiment_id: str,
    event_type: EventType,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    base_dir: str = DEFAULT_STORE_DIR,
) -> pd.DataFrame:
    """
    Read impression or conversion events for an experiment, optionally filtered by time.

    Args:
        experiment_id: Experiment identifier
        event_type: impression or conversion
        start_date: Optional start of time window
        end_date: Optional end of time window
        base_dir: Base directory for experiment data

    Returns:
        DataFrame with one row per event
    """
    df = _read_table(_events_path(experiment_id, event_type, base_dir))
    if not df.empty:
        df["recorded_at"] = pd.to_datetime(df["recorded_at"])
        if start_date:
            df = df[df["recorded_at"] >= start_date]
        if end_date:
            df = df[df["recorded_at"] <= end_date]
    return df


def variant_counts(
    experiment_id: str,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    base_dir: str = DEFAULT_STORE_DIR,
) -> Dict[str, Tuple[int, int]]:
    """
    Aggregate events per variant.

    The window selects impressions. A visitor's conversion counts when that
    visitor has an impression for the variant inside the window, even if
    the conversion itself happened after the window start. Anonymous
    conversions are windowed by their own time. Conversions never exceed
    impressions per variant.

    Returns:
        Dict of variant_id -> (impressions, conversions)
    """
    imp = read_events(experiment_id, EventType.IMPRESSION, start_date, end_date, base_dir)
    conv = read_events(experiment_id, EventType.CONVERSION, None, end_date, base_dir)
    if not conv.empty:
        conv = conv.fillna({"visitor_id": ""})
        imp_pairs = set(
            zip(imp["variant_id"].astype(str), imp["visitor_id"].fillna(""))
        ) if not imp.empty else set()
        identified = conv["visitor_id"] != ""
        attributed = [
            (v, vis) in imp_pairs
            for v, vis in zip(conv["variant_id"].astype(str), conv["visitor_id"])
        ]
        keep = identified & pd.Series(attributed, index=conv.index)
        if start_date:
            keep |= ~identified & (conv["recorded_at"] >= start_date)
        else:
            keep |= ~identified
        conv = conv[keep]

    imp_counts = imp["variant_id"].astype(str).value_counts() if not imp.empty else pd.Series(dtype=int)
    conv_counts = conv["variant_id"].astype(str).value_counts() if not conv.empty else pd.Series(dtype=int)
    variants = sorted(set(imp_counts.index) | set(conv_counts.index))
    counts = {}
    for v in variants:
        n_imp = int(imp_counts.get(v, 0))
        counts[v] = (n_imp, min(int(conv_counts.get(v, 0)), n_imp))
    return counts


def delete_experiment_events(experiment_id: str, base_dir: str = DEFAULT_STORE_DIR) -> None:
    """Remove all recorded events of an experiment."""
    for event_type in EventType:
        path = _events_path(experiment_id, event_type, base_dir)
        if path.exists():
            path.unlink()
    logger.info(f"Deleted events for {experiment_id}")


def get_experiment_summary(experiment_id: str, base_dir: str = DEFAULT_STORE_DIR) -> dict:
    """
    Get summary counts for an experiment.

    Returns:
        Dict with n_impressions, n_conversions and per-variant counts
    """
    counts = variant_counts(experiment_id, base_dir=base_dir)
    return {
        "n_impressions": sum(i for i, _ in counts.values()),
        "n_conversions": sum(c for _, c in counts.values()),
        "variants": {v: {"impressions": i, "conversions": c} for v, (i, c) in counts.items()},
    }


class LocalEventSink:
    """
    EventSink writing to the local event store.

    With a registry, events for unknown experiments, unknown variants or
    experiments that are not running are refused. With ``autoflush=False``
    events are buffered until ``flush()``.
    """

    def __init__(self, base_dir: str = DEFAULT_STORE_DIR, registry=None, autoflush: bool = True):
        self.base_dir = base_dir
        self.registry = registry
        self.autoflush = autoflush
        self._buffer: List[TrackingEvent] = []

    def record_impression(self, experiment_id: str, variant_id: str, **context: str) -> bool:
        return self._record(EventType.IMPRESSION, experiment_id, variant_id, context)

    def record_conversion(self, experiment_id: str, variant_id: str, **context: str) -> bool:
        return self._record(EventType.CONVERSION, experiment_id, variant_id, context)

    def _record(self, event_type: EventType, experiment_id: str, variant_id: str, context: dict) -> bool:
        if self.registry is not None:
            experiment = self.registry.get(experiment_id)
            if experiment.variant(variant_id) is None:
                raise KeyError(f"Variant {variant_id} not found in test {experiment_id}")
            if not accepts_conversions(experiment):
                logger.warning(
                    f"Refusing {event_type.value} for {experiment_id}: status is {experiment.status.value}"
                )
                return False

        event = TrackingEvent(
            experiment_id=experiment_id,
            variant_id=variant_id,
            event_type=event_type,
            visitor_id=context.get("visitor_id"),
            page_load_id=context.get("page_load_id"),
        )
        if not self.autoflush:
            self._buffer.append(event)
            return True
        return append_event(event, self.base_dir)

    def flush(self) -> int:
        """Write buffered events, grouped by experiment. Returns events written."""
        written = 0
        by_experiment: Dict[str, List[TrackingEvent]] = {}
        for evt in self._buffer:
            by_experiment.setdefault(evt.experiment_id, []).append(evt)
        for experiment_id, events in by_experiment.items():
            written += append_events(events, experiment_id, self.base_dir)
        self._buffer = []
        return written
