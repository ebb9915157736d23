"""
Durable visitor assignment for A/B testing.

Each visitor profile keeps a small key-value store (the browser's local
storage). A variant is drawn once per experiment, persisted under
``ab_test_<experiment_id>`` and returned unchanged on every later page view,
so a visitor keeps seeing the same variant for the life of the experiment.
"""

import json
import logging
import random
import uuid
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from .schema import MalformedExperimentError, StoredAssignment, Variant

logger = logging.getLogger(__name__)

KEY_PREFIX = "ab_test_"
VISITOR_KEY = "ab_visitor_id"


def storage_key(experiment_id: str) -> str:
    return f"{KEY_PREFIX}{experiment_id}"


class MemoryStorage:
    """Non-durable storage with the same interface as JsonFileStorage."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data)


class JsonFileStorage(MemoryStorage):
    """
    Key-value storage persisted to a JSON file, one file per visitor profile.

    Every read goes back to the file and every write re-reads it and merges
    the one changed key, so several instances on the same path (tabs) see
    each other's assignments. Two writers of the same key are last-write-wins.
    """

    def __init__(self, path: Union[str, Path]):
        super().__init__()
        self.path = Path(path)
        self._reload()

    def _reload(self) -> None:
        if not self.path.exists():
            return
        try:
            with open(self.path) as f:
                loaded = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable assignment file {self.path}: {e}")
            return
        if isinstance(loaded, dict):
            self._data = {str(k): str(v) for k, v in loaded.items()}

    def get_item(self, key: str) -> Optional[str]:
        self._reload()
        return super().get_item(key)

    def keys(self) -> List[str]:
        self._reload()
        return super().keys()

    def set_item(self, key: str, value: str) -> None:
        self._reload()
        super().set_item(key, value)
        self._flush()

    def remove_item(self, key: str) -> None:
        self._reload()
        super().remove_item(key)
        self._flush()

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(self._data, f, indent=2)


def choose_variant(variants: Sequence[Variant], rng: Optional[random.Random] = None) -> Variant:
    """
    Draw a variant.

    Equal weights (the default) give a uniform draw; otherwise
    cumulative-weight sampling over ``Variant.weight``.
    """
    if not variants:
        raise MalformedExperimentError("Cannot assign a variant: no variants")
    rng = rng or random.Random()
    weights = [max(v.weight, 0.0) for v in variants]
    total = sum(weights)
    if total <= 0:
        raise MalformedExperimentError("Cannot assign a variant: weights sum to zero")
    if len(set(weights)) == 1:
        return variants[rng.randrange(len(variants))]

    point = rng.random() * total
    cumulative = 0.0
    for variant, weight in zip(variants, weights):
        cumulative += weight
        if point < cumulative:
            return variant
    # floating point edge case
    return variants[-1]


class AssignmentStore:
    """Resolves and persists experiment -> variant assignments for one visitor."""

    def __init__(self, storage: Optional[MemoryStorage] = None, rng: Optional[random.Random] = None):
        self.storage = storage if storage is not None else MemoryStorage()
        self.rng = rng or random.Random()

    @classmethod
    def for_profile(cls, path: Union[str, Path], rng: Optional[random.Random] = None) -> "AssignmentStore":
        return cls(JsonFileStorage(path), rng=rng)

    @property
    def visitor_id(self) -> str:
        """Anonymous visitor id, created on first use and kept with the assignments."""
        vid = self.storage.get_item(VISITOR_KEY)
        if not vid:
            vid = uuid.uuid4().hex
            self.storage.set_item(VISITOR_KEY, vid)
        return vid

    def get(self, experiment_id: str) -> Optional[StoredAssignment]:
        """Return the persisted assignment, or None if absent or unreadable."""
        raw = self.storage.get_item(storage_key(experiment_id))
        if raw is None:
            return None
        try:
            record = json.loads(raw)
            return StoredAssignment(
                experiment_id=experiment_id,
                variant_id=str(record["variantId"]),
                assigned_at=datetime.fromisoformat(record["timestamp"]),
            )
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding corrupt assignment for {experiment_id}: {e}")
            return None

    def get_or_assign(self, experiment_id: str, variants: Sequence[Variant]) -> str:
        """
        Return the visitor's variant id for an experiment, assigning one if needed.

        Args:
            experiment_id: Experiment identifier
            variants: The experiment's variants in display order

        Returns:
            Assigned variant id

        Raises:
            MalformedExperimentError: if there are no variants
        """
        if not variants:
            raise MalformedExperimentError(f"Experiment {experiment_id} has no variants")

        existing = self.get(experiment_id)
        if existing is not None:
            if any(v.id == existing.variant_id for v in variants):
                return existing.variant_id
            logger.warning(
                f"Stored variant {existing.variant_id} no longer exists in {experiment_id}; reassigning"
            )

        variant = choose_variant(variants, self.rng)
        assignment = StoredAssignment(experiment_id=experiment_id, variant_id=variant.id)
        self.storage.set_item(storage_key(experiment_id), json.dumps(assignment.to_dict()))
        logger.info(f"Assigned {experiment_id} -> {variant.id}")
        return variant.id

    def forget(self, experiment_id: str) -> None:
        """Erase the visitor's assignment (experiment deleted or data erasure)."""
        self.storage.remove_item(storage_key(experiment_id))

    def assignments(self) -> List[StoredAssignment]:
        found = []
        for key in self.storage.keys():
            if key.startswith(KEY_PREFIX):
                a = self.get(key[len(KEY_PREFIX):])
                if a is not None:
                    found.append(a)
        return found
