"""
File-backed experiment registry.

Stores experiment definitions as JSON and serves the running ones to the
runtime. The active list is cached for ``cache_ttl`` seconds and
invalidated on every write.
"""

import json
import logging
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from .config import Config
from .event_store import delete_experiment_events, variant_counts
from .lifecycle import transition
from .schema import Experiment, ExperimentStatus

logger = logging.getLogger(__name__)


class ExperimentRegistry:
    """ExperimentStore implementation over a JSON file."""

    def __init__(
        self,
        path: Union[str, Path] = Config.REGISTRY_PATH,
        cache_ttl: float = Config.CACHE_TTL,
        clock=time.monotonic,
    ):
        self.path = Path(path)
        self.cache_ttl = cache_ttl
        self._clock = clock
        self._active_cache: Optional[Tuple[float, List[Experiment]]] = None

    def _load(self) -> Dict[str, dict]:
        if not self.path.exists():
            return {}
        with open(self.path) as f:
            return json.load(f)

    def _dump(self, raw: Dict[str, dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(raw, f, indent=2)
        self._active_cache = None

    def list(self) -> List[Experiment]:
        return [Experiment.from_dict(v) for v in self._load().values()]

    def get(self, experiment_id: str) -> Experiment:
        raw = self._load().get(experiment_id)
        if raw is None:
            raise KeyError(f"A/B test with ID {experiment_id} not found")
        return Experiment.from_dict(raw)

    def save(self, experiment: Experiment) -> Experiment:
        raw = self._load()
        raw[experiment.id] = experiment.to_dict()
        self._dump(raw)
        return experiment

    def delete(self, experiment_id: str, data_dir: Optional[str] = None) -> None:
        """Delete a definition and, when data_dir is given, its recorded events."""
        raw = self._load()
        raw.pop(experiment_id, None)
        self._dump(raw)
        if data_dir is not None:
            delete_experiment_events(experiment_id, base_dir=data_dir)

    def set_status(self, experiment_id: str, status: ExperimentStatus) -> Experiment:
        experiment = transition(self.get(experiment_id), status)
        return self.save(experiment)

    def get_active_experiments(self) -> List[Experiment]:
        """Running experiments, served from cache while fresh."""
        now = self._clock()
        if self._active_cache is not None and now - self._active_cache[0] < self.cache_ttl:
            return list(self._active_cache[1])
        active = [e for e in self.list() if e.status == ExperimentStatus.RUNNING]
        self._active_cache = (now, active)
        return list(active)

    def invalidate(self) -> None:
        self._active_cache = None

    def attach_counts(self, experiment: Experiment, data_dir: str = Config.DATA_DIR) -> Experiment:
        """Fill each variant's impressions/conversions from the event store."""
        counts = variant_counts(experiment.id, base_dir=data_dir)
        for variant in experiment.variants:
            variant.impressions, variant.conversions = counts.get(variant.id, (0, 0))
        return experiment
