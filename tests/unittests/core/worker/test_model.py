#!/usr/bin/env python
"""Collection of tests for :mod:`hypersearch.core.worker.model`."""
import pytest

from hypersearch.core.worker.model import (
    ExponentialSmoothing,
    LastValue,
    ModelResult,
    MovingAverage,
    model_factory,
)


def run(model, values, field="consumption"):
    return [model.run({field: value}) for value in values]


def test_factory():
    """Builtin models are created by name"""
    assert set(model_factory.get_classes()) >= {
        "lastvalue",
        "movingaverage",
        "exponentialsmoothing",
    }
    model = model_factory.create("movingaverage", predicted_field="consumption", window=4)
    assert isinstance(model, MovingAverage)
    assert model.window == 4


def test_last_value():
    """Predicts the last value seen"""
    results = run(LastValue("consumption"), [1.0, 4.0])

    assert [r.inferences["prediction"] for r in results] == [1.0, 4.0]
    assert [r.record_index for r in results] == [0, 1]


def test_moving_average():
    """Predicts the mean over the window"""
    results = run(MovingAverage("consumption", window=2), [1.0, 3.0, 5.0])
    assert [r.inferences["prediction"] for r in results] == [1.0, 2.0, 4.0]


def test_moving_average_invalid_window():
    """Window must be positive"""
    with pytest.raises(ValueError):
        MovingAverage("consumption", window=0)


def test_exponential_smoothing_learning():
    """Level is frozen while learning is disabled"""
    model = ExponentialSmoothing("consumption", alpha=0.5)
    run(model, [2.0, 4.0])
    assert model.predict() == 3.0

    model.disable_learning()
    run(model, [10.0])
    assert model.predict() == 3.0

    model.enable_learning()
    run(model, [5.0])
    assert model.predict() == 4.0


def test_missing_values_not_observed():
    """Non numeric values leave the model unchanged"""
    results = run(LastValue("consumption"), [1.0, None, float("nan")])
    assert [r.inferences["prediction"] for r in results] == [1.0, 1.0, 1.0]


def test_prediction_clipped_to_field_range():
    """Predictions stay in the range of the predicted field"""
    model = LastValue("consumption")
    model.set_field_statistics({"consumption": {"min": 0.0, "max": 2.0}})

    results = run(model, [5.0, -1.0])
    assert [r.inferences["prediction"] for r in results] == [2.0, 0.0]


def test_reset_sequence_states():
    """Sequence reset forgets the last values"""
    model = MovingAverage("consumption", window=3)
    run(model, [1.0, 2.0])
    model.reset_sequence_states()

    assert model.predict() is None


def test_result_to_row():
    """Inputs and inferences are flattened with a prefix"""
    row = ModelResult(
        record_index=3,
        raw_input={"consumption": 1.0, "timestamp": 3},
        inferences={"prediction": 2.0},
        encodings=[1, 2],
        metrics={"m": 1.0},
    ).to_row()

    assert row == {
        "record_index": 3,
        "input.consumption": 1.0,
        "input.timestamp": 3,
        "inference.prediction": 2.0,
    }
