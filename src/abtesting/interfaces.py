"""Collaborator interfaces consumed by the client-side engine."""

from typing import List, Protocol

from .schema import Experiment


class ExperimentStore(Protocol):
    """Source of experiment definitions."""

    def get_active_experiments(self) -> List[Experiment]:
        """Return only running experiments, with their variants."""
        ...


class EventSink(Protocol):
    """
    Receiver of impression and conversion events.

    Implementations own the counters and are expected to tolerate
    duplicates keyed by (experiment, variant, visitor, event type, page load).
    """

    def record_impression(self, experiment_id: str, variant_id: str, **context: str) -> None:
        ...

    def record_conversion(self, experiment_id: str, variant_id: str, **context: str) -> None:
        ...
