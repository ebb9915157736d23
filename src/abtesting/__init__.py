"""A/B testing engine: assignment, variant application, goal tracking and analysis."""

from .schema import (
    AnalysisOutcome,
    AnalysisResult,
    ChangeSet,
    Experiment,
    ExperimentError,
    ExperimentStatus,
    GoalType,
    InvalidTransitionError,
    MalformedExperimentError,
    Variant,
)
from .assignment import AssignmentStore, JsonFileStorage, MemoryStorage, choose_variant
from .applier import apply_changes, apply_variant
from .dom import Document, Element
from .goals import GoalState, GoalTracker, custom_signal_name
from .runtime import ExperimentRuntime
from .lifecycle import transition, record_winner
from .event_store import LocalEventSink, variant_counts
from .registry import ExperimentRegistry
from .analyze import analyze, run_analysis
from .report import render_results_summary

__all__ = [
    "AnalysisOutcome",
    "AnalysisResult",
    "ChangeSet",
    "Experiment",
    "ExperimentError",
    "ExperimentStatus",
    "GoalType",
    "InvalidTransitionError",
    "MalformedExperimentError",
    "Variant",
    "AssignmentStore",
    "JsonFileStorage",
    "MemoryStorage",
    "choose_variant",
    "apply_changes",
    "apply_variant",
    "Document",
    "Element",
    "GoalState",
    "GoalTracker",
    "custom_signal_name",
    "ExperimentRuntime",
    "transition",
    "record_winner",
    "LocalEventSink",
    "variant_counts",
    "ExperimentRegistry",
    "analyze",
    "run_analysis",
    "render_results_summary",
]
