"""
Prediction metrics
==================

Windowed error metrics comparing the prediction made at one record with the
actual value of the predicted field at the next record.

Labels follow ``prediction:{metric}:window={window}:field={field}`` so that
optimize and report keys can select them with regular expressions.

"""
import logging
import numbers
import re
from collections import deque

import numpy

log = logging.getLogger(__name__)


def _aae(errors, actuals):
    return float(numpy.mean(numpy.abs(errors)))


def _rmse(errors, actuals):
    return float(numpy.sqrt(numpy.mean(numpy.square(errors))))


def _mape(errors, actuals):
    total = numpy.sum(numpy.abs(actuals))
    if total == 0:
        return None
    return float(100.0 * numpy.sum(numpy.abs(errors)) / total)


METRICS = {"aae": _aae, "rmse": _rmse, "mape": _mape}


def match_patterns(patterns, labels):
    """Return the labels matching any of the regular expressions, in order"""
    compiled = [re.compile(pattern) for pattern in patterns]
    return [label for label in labels if any(p.search(label) for p in compiled)]


class _WindowedMetric:
    def __init__(self, metric, window, field):
        if metric not in METRICS:
            raise ValueError(
                f"Unknown metric '{metric}'. Available metrics: {sorted(METRICS)}"
            )
        self.function = METRICS[metric]
        self.field = field
        self.label = f"prediction:{metric}:window={window}:field={field}"
        self._errors = deque(maxlen=window)
        self._actuals = deque(maxlen=window)

    def add(self, prediction, actual):
        self._errors.append(prediction - actual)
        self._actuals.append(actual)

    def value(self):
        if not self._errors:
            return None
        return self.function(numpy.array(self._errors), numpy.array(self._actuals))


class MetricsManager:
    """Compute the metrics of a model over its results

    Parameters
    ----------
    metric_specs: list of dict
        ``{'metric': 'aae' | 'rmse' | 'mape', 'window': int}`` with an optional
        ``field``, default is the predicted field.
    predicted_field: str
        Field predicted by the model.

    """

    def __init__(self, metric_specs, predicted_field):
        self.predicted_field = predicted_field
        self._metrics = [
            _WindowedMetric(
                spec["metric"], int(spec.get("window", 1000)), spec.get("field", predicted_field)
            )
            for spec in metric_specs
        ]
        self._previous_predictions = {}

    def update(self, result):
        """Score the previous predictions against the new record and return all metrics"""
        for metric in self._metrics:
            actual = result.raw_input.get(metric.field)
            prediction = self._previous_predictions.get(metric.field)
            if isinstance(actual, numbers.Number) and prediction is not None:
                if not numpy.isnan(actual):
                    metric.add(prediction, float(actual))

        prediction = result.inferences.get("prediction")
        self._previous_predictions = {
            metric.field: prediction for metric in self._metrics
        }

        return self.get_metrics()

    def get_metrics(self):
        """Return ``{label: value}``, values being None until first scored"""
        return {metric.label: metric.value() for metric in self._metrics}

    def get_metric_labels(self):
        """Return the labels of the metrics, in definition order"""
        return [metric.label for metric in self._metrics]
