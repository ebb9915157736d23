"""Tests for experiment definitions and change-sets."""
import pytest
from src.abtesting.schema import (
    ChangeSet,
    Experiment,
    ExperimentStatus,
    GoalType,
    MalformedExperimentError,
    Variant,
)


STORED_EXPERIMENT = {
    "id": "hero_cta",
    "name": "Hero CTA",
    "elementSelector": ".hero .btn",
    "goalType": "form_submit",
    "goalSelector": "#signup",
    "minSampleSize": 500,
    "confidenceLevel": 0.99,
    "status": "running",
    "variants": [
        {"id": "control", "name": "Original", "isControl": True, "changes": {}},
        {
            "id": "green",
            "name": "Green",
            "weight": 2,
            "changes": {
                "backgroundColor": "#2ecc71",
                "content": "Join now",
                "attributes": {"data-variant": "green", "title": None},
                "addClass": "btn-lg btn-green",
            },
        },
    ],
}


def test_changeset_from_dict_style_keys():
    """Loose scalar keys become inline styles; content is an alias for text."""
    changes = ChangeSet.from_dict(STORED_EXPERIMENT["variants"][1]["changes"])
    assert changes.text == "Join now"
    assert dict(changes.styles) == {"backgroundColor": "#2ecc71"}
    assert dict(changes.attributes) == {"data-variant": "green", "title": None}
    assert changes.add_classes == ("btn-lg", "btn-green")
    assert not changes.is_empty


def test_changeset_css_block():
    """css/styles objects merge into styles."""
    changes = ChangeSet.from_dict({"css": {"color": "red"}, "styles": {"margin": "0"}})
    assert dict(changes.styles) == {"color": "red", "margin": "0"}
    assert ChangeSet.from_dict(None).is_empty


def test_changeset_rejects_non_object():
    with pytest.raises(MalformedExperimentError):
        ChangeSet.from_dict(["text"])


def test_experiment_from_dict():
    """Stored camelCase JSON parses into an Experiment."""
    exp = Experiment.from_dict(STORED_EXPERIMENT)
    assert exp.goal_type == GoalType.FORM_SUBMIT
    assert exp.status == ExperimentStatus.RUNNING
    assert exp.min_sample_size == 500
    assert exp.control_variant.id == "control"
    assert exp.variant("green").weight == 2.0
    exp.validate()


def test_experiment_dict_roundtrip_keeps_changes():
    """to_dict output parses back to the same definition."""
    exp = Experiment.from_dict(STORED_EXPERIMENT)
    again = Experiment.from_dict(exp.to_dict())
    assert again.variant("green").changes == exp.variant("green").changes
    assert again.goal_selector == "#signup"


def test_unknown_goal_type_rejected():
    raw = dict(STORED_EXPERIMENT, goalType="hover")
    with pytest.raises(MalformedExperimentError):
        Experiment.from_dict(raw)


def test_control_defaults_to_first_variant():
    exp = Experiment(id="e", element_selector="#x", goal_type=GoalType.CLICK,
                     variants=[Variant(id="a"), Variant(id="b")])
    assert exp.control_variant.id == "a"


def test_conversion_rate_undefined_without_impressions():
    """No impressions -> rate is None, never 0%."""
    assert Variant(id="a").conversion_rate is None
    assert Variant(id="a", impressions=200, conversions=10).conversion_rate == pytest.approx(0.05)


@pytest.mark.parametrize("overrides", [
    {"variants": []},
    {"variants": [Variant(id="a"), Variant(id="a")]},
    {"goal_type": GoalType.PAGE_VIEW},
    {"element_selector": ""},
    {"min_sample_size": 0},
    {"confidence_level": 0.8},
    {"variants": [Variant(id="a", weight=0), Variant(id="b", weight=0)]},
    {"variants": [Variant(id="a", impressions=10, conversions=11), Variant(id="b")]},
])
def test_validate_rejects(make_experiment, overrides):
    """Definitions that cannot run are rejected."""
    with pytest.raises(MalformedExperimentError):
        make_experiment(**overrides).validate()


def test_click_goal_falls_back_to_element_selector(make_experiment):
    """click/form_submit goals do not need a goal selector."""
    make_experiment(goal_type=GoalType.FORM_SUBMIT, goal_selector=None).validate()
