#!/usr/bin/env python
"""Collection of tests for :mod:`hypersearch.core.worker.description`."""
import copy

import pytest

from hypersearch import testing
from hypersearch.core.utils.exceptions import InvalidParamsError
from hypersearch.core.worker.description import ModelDescription


@pytest.fixture
def description():
    """Description of a moving average model"""
    return ModelDescription.from_dict(copy.deepcopy(testing.base_description))


def test_from_dict(description):
    """Nested dict fields land in the typed attributes"""
    assert description.model_type == "movingaverage"
    assert description.model_params == {"window": 3}
    assert description.predicted_field == testing.PREDICTED_FIELD
    assert description.metrics == [{"metric": "aae", "window": 100}]
    assert description.optimize_key == "aae"
    assert description.iteration_count == -1


def test_defaults():
    """An empty description has sensible defaults"""
    description = ModelDescription.from_dict(None)

    assert description.model_type == "lastvalue"
    assert description.metrics == [{"metric": "aae", "window": 1000}]
    assert description.logged_metrics == [".*"]
    assert description.optimize_key is None


def test_override_dotted_paths(description):
    """Candidate params override the base description"""
    description.override({"model.window": 8, "control.iteration_count": "50"})

    assert description.model_params == {"window": 8}
    assert description.iteration_count == 50


def test_override_nested(description):
    """Nested overrides are accepted too"""
    description.override({"model": {"type": "LastValue"}, "control": {"optimize_key": "rmse"}})

    assert description.model_type == "lastvalue"
    assert description.optimize_key == "rmse"


def test_override_unknown_path(description):
    """Typos in field paths are reported"""
    with pytest.raises(InvalidParamsError) as exc:
        description.override({"control.iteration_cnt": 10})

    assert "control.iteration_cnt" in str(exc.value)


def test_to_dict_round_trip(description):
    """to_dict gives back an equivalent description"""
    assert ModelDescription.from_dict(description.to_dict()) == description


def test_validate_predicted_field():
    """A description needs a predicted field"""
    with pytest.raises(ValueError):
        ModelDescription().validate()


@pytest.mark.parametrize(
    "iteration_count,infer_only,valid",
    [(-1, 0, True), (10, -1, True), (10, 5, True), (5, 5, False), (-1, 5, False)],
)
def test_validate_iteration_counts(iteration_count, infer_only, valid):
    """Inference only iterations must be fewer than the iterations"""
    description = ModelDescription(
        predicted_field="consumption",
        iteration_count=iteration_count,
        iteration_count_infer_only=infer_only,
    )

    if valid:
        description.validate()
    else:
        with pytest.raises(ValueError):
            description.validate()
