"""
Models
======

Sequence prediction models evaluated by the model runner.

The runner only relies on the interface of :class:`BaseModel`. The builtin
models predict the next value of a numeric field and are meant as baselines
whose hyperparameters can be searched.

"""
from __future__ import annotations

import logging
import numbers
from collections import deque
from dataclasses import dataclass, field

import numpy

from hypersearch.core.utils import GenericFactory

log = logging.getLogger(__name__)


@dataclass
class ModelResult:
    """Output of one step of a model

    Attributes
    ----------
    record_index: int
        Index of the input record in the stream.
    raw_input: dict
        Input record.
    inferences: dict
        Inferences of the model, ``prediction`` holds the predicted next value.
    encodings: object, optional
        Internal representation of the input, dropped before caching.
    metrics: dict
        Metrics computed after this step.

    """

    record_index: int
    raw_input: dict
    inferences: dict = field(default_factory=dict)
    encodings: object = None
    metrics: dict = field(default_factory=dict)

    def to_row(self):
        """Flatten the result into one row of the prediction output"""
        row = {"record_index": self.record_index}
        row.update({f"input.{key}": value for key, value in self.raw_input.items()})
        row.update({f"inference.{key}": value for key, value in self.inferences.items()})
        return row


class BaseModel:
    """Interface of the models run by :class:`hypersearch.core.worker.model_runner.ModelRunner`

    Parameters
    ----------
    predicted_field: str
        Name of the input field to predict.

    """

    def __init__(self, predicted_field):
        self.predicted_field = predicted_field
        self.learning_enabled = True
        self.field_stats = {}
        self._record_index = -1

    def run(self, record) -> ModelResult:
        """Process one record and return the prediction for the next one"""
        self._record_index += 1
        value = record.get(self.predicted_field)
        if isinstance(value, numbers.Number) and not numpy.isnan(value):
            self.observe(float(value))

        return ModelResult(
            record_index=self._record_index,
            raw_input=record,
            inferences={"prediction": self._clip(self.predict())},
            encodings=value,
        )

    def observe(self, value):
        """Update the state of the model with a new value"""
        raise NotImplementedError()

    def predict(self):
        """Return the prediction of the next value, None if unknown"""
        raise NotImplementedError()

    def _clip(self, prediction):
        if prediction is None:
            return None

        stats = self.field_stats.get(self.predicted_field, {})
        low, high = stats.get("min"), stats.get("max")
        if low is not None and high is not None:
            prediction = min(max(prediction, low), high)

        return float(prediction)

    def enable_learning(self):
        """Let the model adapt its parameters to new records"""
        self.learning_enabled = True

    def disable_learning(self):
        """Freeze the learned parameters of the model"""
        self.learning_enabled = False

    def reset_sequence_states(self):
        """Forget the current sequence, keeping learned parameters"""

    def set_field_statistics(self, field_stats):
        """Set ``{field: {'min': ..., 'max': ...}}`` of the input stream"""
        self.field_stats = dict(field_stats)


class LastValue(BaseModel):
    """Predict that the next value equals the last one"""

    def __init__(self, predicted_field):
        super().__init__(predicted_field)
        self._last = None

    def observe(self, value):
        self._last = value

    def predict(self):
        return self._last

    def reset_sequence_states(self):
        self._last = None


class MovingAverage(BaseModel):
    """Predict the mean of the last `window` values"""

    def __init__(self, predicted_field, window=3):
        super().__init__(predicted_field)
        if window < 1:
            raise ValueError(f"window must be at least 1, got {window}")
        self.window = int(window)
        self._values = deque(maxlen=self.window)

    def observe(self, value):
        self._values.append(value)

    def predict(self):
        if not self._values:
            return None

        return float(numpy.mean(self._values))

    def reset_sequence_states(self):
        self._values.clear()


class ExponentialSmoothing(BaseModel):
    """Predict an exponentially smoothed level of the series

    The level is only updated while learning is enabled.
    """

    def __init__(self, predicted_field, alpha=0.5):
        super().__init__(predicted_field)
        if not 0 < alpha <= 1:
            raise ValueError(f"alpha must be in (0, 1], got {alpha}")
        self.alpha = float(alpha)
        self._level = None

    def observe(self, value):
        if self._level is None:
            self._level = value
        elif self.learning_enabled:
            self._level = self.alpha * value + (1 - self.alpha) * self._level

    def predict(self):
        return self._level

    def reset_sequence_states(self):
        log.debug("Sequence reset keeps the smoothed level %s", self._level)


model_factory = GenericFactory(BaseModel)
