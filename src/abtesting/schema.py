"""
Experiment data models for the A/B testing engine.

Dataclass schemas for experiment definitions, variant change-sets, stored
assignments and analysis results, plus the engine's exception hierarchy.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

ALLOWED_CONFIDENCE_LEVELS = (0.90, 0.95, 0.99)


class ExperimentError(ValueError):
    """Base class for experiment definition and lifecycle errors."""


class MalformedExperimentError(ExperimentError):
    """Experiment definition cannot be run (no variants, bad goal, ...)."""


class InvalidTransitionError(ExperimentError):
    """Requested status change is not allowed by the lifecycle."""


class GoalType(str, Enum):
    """User action counted as a conversion."""
    CLICK = "click"
    FORM_SUBMIT = "form_submit"
    PAGE_VIEW = "page_view"
    CUSTOM = "custom"


class ExperimentStatus(str, Enum):
    """Experiment lifecycle status."""
    DRAFT = "draft"
    RUNNING = "running"
    STOPPED = "stopped"
    COMPLETED = "completed"


class AnalysisOutcome(str, Enum):
    """Terminal outcome of a significance analysis."""
    WINNER = "winner"
    INSUFFICIENT_DATA = "insufficient_data"
    NO_SIGNIFICANT_DIFFERENCE = "no_significant_difference"


# Keys of a stored change dict that are not inline style properties
_RESERVED_CHANGE_KEYS = {
    "text", "content", "html", "attributes", "css", "styles",
    "addClass", "add_classes", "removeClass", "remove_classes",
}


@dataclass(frozen=True)
class ChangeSet:
    """Immutable set of page mutations carried by a variant."""
    text: Optional[str] = None
    html: Optional[str] = None
    styles: Tuple[Tuple[str, str], ...] = ()
    attributes: Tuple[Tuple[str, Optional[str]], ...] = ()
    add_classes: Tuple[str, ...] = ()
    remove_classes: Tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (
            self.text is not None
            or self.html is not None
            or self.styles
            or self.attributes
            or self.add_classes
            or self.remove_classes
        )

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "ChangeSet":
        """
        Build a ChangeSet from the stored JSON shape.

        Accepts ``text``/``content``, ``html``, ``attributes``, ``css``/``styles``,
        ``addClass``/``removeClass`` (or snake_case). Any other scalar key is
        treated as an inline style property, e.g. ``{"backgroundColor": "#fff"}``.
        """
        if not raw:
            return cls()
        if not isinstance(raw, dict):
            raise MalformedExperimentError(f"Variant changes must be an object, got {type(raw).__name__}")

        text = raw.get("text", raw.get("content"))
        html = raw.get("html")

        styles: Dict[str, str] = {}
        for key in ("css", "styles"):
            block = raw.get(key)
            if isinstance(block, dict):
                styles.update({str(k): str(v) for k, v in block.items()})
        for key, value in raw.items():
            if key in _RESERVED_CHANGE_KEYS or isinstance(value, (dict, list)) or value is None:
                continue
            styles[str(key)] = str(value)

        attributes = raw.get("attributes") or {}
        if not isinstance(attributes, dict):
            raise MalformedExperimentError("Variant 'attributes' must be an object")

        add_classes = raw.get("addClass", raw.get("add_classes")) or []
        remove_classes = raw.get("removeClass", raw.get("remove_classes")) or []
        if isinstance(add_classes, str):
            add_classes = add_classes.split()
        if isinstance(remove_classes, str):
            remove_classes = remove_classes.split()

        return cls(
            text=None if text is None else str(text),
            html=None if html is None else str(html),
            styles=tuple(styles.items()),
            attributes=tuple(
                (str(k), None if v is None else str(v)) for k, v in attributes.items()
            ),
            add_classes=tuple(str(c) for c in add_classes),
            remove_classes=tuple(str(c) for c in remove_classes),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        if self.text is not None:
            d["text"] = self.text
        if self.html is not None:
            d["html"] = self.html
        if self.styles:
            d["css"] = dict(self.styles)
        if self.attributes:
            d["attributes"] = dict(self.attributes)
        if self.add_classes:
            d["addClass"] = list(self.add_classes)
        if self.remove_classes:
            d["removeClass"] = list(self.remove_classes)
        return d


@dataclass
class Variant:
    """One treatment within an experiment."""
    id: str
    name: str = ""
    changes: ChangeSet = field(default_factory=ChangeSet)
    is_control: bool = False
    weight: float = 1.0
    impressions: int = 0
    conversions: int = 0

    @property
    def conversion_rate(self) -> Optional[float]:
        if self.impressions <= 0:
            return None
        return self.conversions / self.impressions

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Variant":
        if "id" not in raw:
            raise MalformedExperimentError("Variant is missing 'id'")
        return cls(
            id=str(raw["id"]),
            name=raw.get("name") or str(raw["id"]),
            changes=ChangeSet.from_dict(raw.get("changes")),
            is_control=bool(raw.get("isControl", raw.get("is_control", False))),
            weight=float(1.0 if raw.get("weight") is None else raw["weight"]),
            impressions=int(raw.get("impressions", 0) or 0),
            conversions=int(raw.get("conversions", 0) or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "changes": self.changes.to_dict(),
            "isControl": self.is_control,
            "weight": self.weight,
            "impressions": self.impressions,
            "conversions": self.conversions,
        }


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass
class Experiment:
    """Definition of an A/B experiment."""
    id: str
    element_selector: str
    goal_type: GoalType
    variants: List[Variant] = field(default_factory=list)
    goal_selector: Optional[str] = None
    name: str = ""
    description: str = ""
    min_sample_size: int = 100
    confidence_level: float = 0.95
    status: ExperimentStatus = ExperimentStatus.DRAFT
    winning_variant_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self.status == ExperimentStatus.RUNNING

    @property
    def control_variant(self) -> Optional[Variant]:
        """Variant flagged as control, else the first in display order."""
        for v in self.variants:
            if v.is_control:
                return v
        return self.variants[0] if self.variants else None

    def variant(self, variant_id: str) -> Optional[Variant]:
        for v in self.variants:
            if v.id == variant_id:
                return v
        return None

    def validate(self) -> None:
        """Raise MalformedExperimentError if the definition cannot be run."""
        if not self.variants:
            raise MalformedExperimentError(f"Experiment {self.id} has no variants")
        ids = [v.id for v in self.variants]
        if len(ids) != len(set(ids)):
            raise MalformedExperimentError(f"Experiment {self.id} has duplicate variant ids")
        if not isinstance(self.goal_type, GoalType):
            raise MalformedExperimentError(f"Experiment {self.id} has unknown goal type {self.goal_type!r}")
        # click/form_submit fall back to element_selector when goal_selector is unset
        if self.goal_type == GoalType.PAGE_VIEW and not self.goal_selector:
            raise MalformedExperimentError(f"Experiment {self.id}: page_view goal needs a target path")
        if not self.element_selector:
            raise MalformedExperimentError(f"Experiment {self.id} has no element selector")
        if self.min_sample_size < 1:
            raise MalformedExperimentError(f"Experiment {self.id}: min_sample_size must be >= 1")
        if not any(abs(self.confidence_level - c) < 1e-9 for c in ALLOWED_CONFIDENCE_LEVELS):
            raise MalformedExperimentError(
                f"Experiment {self.id}: confidence level {self.confidence_level} "
                f"not in {ALLOWED_CONFIDENCE_LEVELS}"
            )
        if any(v.weight < 0 for v in self.variants) or sum(v.weight for v in self.variants) <= 0:
            raise MalformedExperimentError(f"Experiment {self.id}: variant weights must be positive")
        for v in self.variants:
            if v.impressions < 0 or v.conversions < 0 or v.conversions > v.impressions:
                raise MalformedExperimentError(
                    f"Experiment {self.id}: variant {v.id} has inconsistent counts "
                    f"({v.conversions} conversions / {v.impressions} impressions)"
                )

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Experiment":
        """Parse the experiment store's JSON shape (camelCase or snake_case keys)."""
        def pick(camel: str, snake: str, default: Any = None) -> Any:
            if camel in raw:
                return raw[camel]
            return raw.get(snake, default)

        goal_raw = pick("goalType", "goal_type")
        try:
            goal_type = GoalType(goal_raw)
        except ValueError:
            raise MalformedExperimentError(f"Unknown goal type {goal_raw!r}")
        try:
            status = ExperimentStatus(raw.get("status", ExperimentStatus.DRAFT.value))
        except ValueError:
            raise MalformedExperimentError(f"Unknown status {raw.get('status')!r}")

        return cls(
            id=str(raw["id"]),
            name=raw.get("name", ""),
            description=raw.get("description") or "",
            element_selector=pick("elementSelector", "element_selector", ""),
            goal_type=goal_type,
            goal_selector=pick("goalSelector", "goal_selector"),
            variants=[Variant.from_dict(v) for v in raw.get("variants") or []],
            min_sample_size=int(pick("minSampleSize", "min_sample_size", 100)),
            confidence_level=float(pick("confidenceLevel", "confidence_level", 0.95)),
            status=status,
            winning_variant_id=pick("winningVariantId", "winning_variant_id"),
            start_date=_parse_datetime(pick("startDate", "start_date")),
            end_date=_parse_datetime(pick("endDate", "end_date")),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON shape served by the experiment store."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "elementSelector": self.element_selector,
            "goalType": self.goal_type.value,
            "goalSelector": self.goal_selector,
            "variants": [v.to_dict() for v in self.variants],
            "minSampleSize": self.min_sample_size,
            "confidenceLevel": self.confidence_level,
            "status": self.status.value,
            "winningVariantId": self.winning_variant_id,
            "startDate": self.start_date.isoformat() if self.start_date else None,
            "endDate": self.end_date.isoformat() if self.end_date else None,
        }


@dataclass
class StoredAssignment:
    """Persisted visitor assignment for a single experiment."""
    experiment_id: str
    variant_id: str
    assigned_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "testId": self.experiment_id,
            "variantId": self.variant_id,
            "timestamp": self.assigned_at.isoformat(),
        }


class EventType(str, Enum):
    IMPRESSION = "impression"
    CONVERSION = "conversion"


@dataclass
class TrackingEvent:
    """Impression or conversion reported to the event sink."""
    experiment_id: str
    variant_id: str
    event_type: EventType
    visitor_id: Optional[str] = None
    page_load_id: Optional[str] = None
    recorded_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def dedup_key(self) -> Optional[Tuple[str, str, str, str, str]]:
        """Key the sink deduplicates on; None when the event is anonymous."""
        if not self.visitor_id or not self.page_load_id:
            return None
        return (self.experiment_id, self.variant_id, self.visitor_id, self.event_type.value, self.page_load_id)


@dataclass
class VariantStats:
    """Per-variant statistics produced by the analysis engine."""
    variant_id: str
    name: str
    impressions: int
    conversions: int
    conversion_rate: Optional[float]
    is_control: bool = False
    rate_ci_low: Optional[float] = None
    rate_ci_high: Optional[float] = None
    relative_improvement: Optional[float] = None  # % vs control
    p_value: Optional[float] = None  # vs best variant
    diff_ci_low: Optional[float] = None
    diff_ci_high: Optional[float] = None
    significant: bool = False


@dataclass
class AnalysisResult:
    """Complete experiment analysis result. Advisory only."""
    experiment_id: str
    outcome: AnalysisOutcome
    rationale: str
    confidence_level: float
    min_sample_size: int
    winning_variant_id: Optional[str] = None
    best_variant_id: Optional[str] = None
    needs_more_data: bool = False
    analysis_timestamp: datetime = field(default_factory=datetime.utcnow)
    variant_stats: List[VariantStats] = field(default_factory=list)

    # SRM
    srm_passed: bool = True
    srm_p_value: Optional[float] = None

    # Planning
    required_sample_size: Optional[int] = None

    @property
    def has_winner(self) -> bool:
        return self.winning_variant_id is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "experiment_id": self.experiment_id,
            "analysis_timestamp": self.analysis_timestamp.isoformat(),
            "outcome": self.outcome.value,
            "rationale": self.rationale,
            "has_winner": self.has_winner,
            "winning_variant_id": self.winning_variant_id,
            "best_variant_id": self.best_variant_id,
            "confidence_level": self.confidence_level,
            "min_sample_size": self.min_sample_size,
            "needs_more_data": self.needs_more_data,
            "srm_passed": self.srm_passed,
            "srm_p_value": self.srm_p_value,
            "required_sample_size": self.required_sample_size,
            "variant_stats": [
                {
                    "variant_id": s.variant_id,
                    "name": s.name,
                    "impressions": s.impressions,
                    "conversions": s.conversions,
                    "conversion_rate": s.conversion_rate,
                    "is_control": s.is_control,
                    "rate_ci_low": s.rate_ci_low,
                    "rate_ci_high": s.rate_ci_high,
                    "relative_improvement": s.relative_improvement,
                    "p_value": s.p_value,
                    "diff_ci_low": s.diff_ci_low,
                    "diff_ci_high": s.diff_ci_high,
                    "significant": s.significant,
                }
                for s in self.variant_stats
            ],
        }
