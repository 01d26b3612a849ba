"""
Model descriptions
==================

Full description of a candidate model: which model to build with which
hyperparameters, and how to evaluate it.

A job carries a base description; each candidate overrides some of its fields.
Overrides are applied through an explicit table of field paths, so that a
typo in a search space is reported instead of silently ignored.

Example of description, as found under the ``description`` key of job params::

    model:
      type: movingaverage
      window: 3
    control:
      dataset: data/consumption.csv
      predicted_field: consumption
      iteration_count: -1
      iteration_count_infer_only: 0
      metrics:
        - {metric: aae, window: 1000}
      logged_metrics: ['.*']
      optimize_key: 'aae'

"""
from __future__ import annotations

import copy
from dataclasses import dataclass, field

from hypersearch.core.utils.exceptions import InvalidParamsError
from hypersearch.core.utils.flatten import flatten

DEFAULT_METRICS = [{"metric": "aae", "window": 1000}]


def _as_int(value):
    return int(value)


def _as_optional_str(value):
    if value is None:
        return None
    return str(value)


def _as_list(value):
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


@dataclass
class ModelDescription:
    """Typed description of a model and its evaluation"""

    model_type: str = "lastvalue"
    model_params: dict = field(default_factory=dict)
    dataset: str | None = None
    predicted_field: str | None = None
    iteration_count: int = -1
    iteration_count_infer_only: int = 0
    metrics: list = field(default_factory=lambda: copy.deepcopy(DEFAULT_METRICS))
    logged_metrics: list = field(default_factory=lambda: [".*"])
    optimize_key: str | None = None

    @classmethod
    def from_dict(cls, description: dict | None) -> ModelDescription:
        """Build a description from its nested dictionary form"""
        built = cls()
        built.override(description or {})
        return built

    def override(self, params: dict) -> ModelDescription:
        """Apply overrides given as nested dicts or dotted paths

        Raises
        ------
        InvalidParamsError
            If a path does not lead to a field of the description.

        """
        for path, value in flatten(params).items():
            if path in _DESTINATIONS:
                attribute, cast = _DESTINATIONS[path]
                setattr(self, attribute, cast(value))
            elif path.startswith("model.") and len(path) > len("model."):
                self.model_params[path[len("model.") :]] = value
            else:
                raise InvalidParamsError(
                    f"Unknown description field '{path}'. Valid fields are "
                    f"{sorted(_DESTINATIONS)} and model.<hyperparameter>."
                )

        return self

    def validate(self):
        """Check that the description can be run

        Raises
        ------
        ValueError
            If the predicted field is missing or the iteration counts are inconsistent.

        """
        if not self.predicted_field:
            raise ValueError("Model description has no predicted field")

        if self.iteration_count_infer_only > 0 and not (
            self.iteration_count > self.iteration_count_infer_only
        ):
            raise ValueError(
                f"Iteration count ({self.iteration_count}) must be greater than the "
                f"number of inference only iterations ({self.iteration_count_infer_only})"
            )

    def to_dict(self):
        """Return the nested dictionary form"""
        return {
            "model": dict(self.model_params, type=self.model_type),
            "control": {
                "dataset": self.dataset,
                "predicted_field": self.predicted_field,
                "iteration_count": self.iteration_count,
                "iteration_count_infer_only": self.iteration_count_infer_only,
                "metrics": copy.deepcopy(self.metrics),
                "logged_metrics": list(self.logged_metrics),
                "optimize_key": self.optimize_key,
            },
        }


_DESTINATIONS = {
    "model.type": ("model_type", lambda value: str(value).lower()),
    "control.dataset": ("dataset", _as_optional_str),
    "control.predicted_field": ("predicted_field", _as_optional_str),
    "control.iteration_count": ("iteration_count", _as_int),
    "control.iteration_count_infer_only": ("iteration_count_infer_only", _as_int),
    "control.metrics": ("metrics", _as_list),
    "control.logged_metrics": ("logged_metrics", _as_list),
    "control.optimize_key": ("optimize_key", _as_optional_str),
}
