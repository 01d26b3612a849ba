"""
Model maturity
==============

Policies deciding when the optimized metric of a running model leveled off.

A mature model is stopped unless it holds the best model status of its job.

"""
from collections import deque

import numpy


class MaturityPolicy:
    """Interface of maturity policies fed with ``(record_index, metric)`` points"""

    def add_point(self, x, y):
        """Record the metric `y` observed at record index `x`"""
        raise NotImplementedError()

    def is_mature(self):
        """Return True if the metric leveled off"""
        raise NotImplementedError()


class AveragePctChange(MaturityPolicy):
    """Fit a line over the last points and measure its relative change

    The percent change is the difference between the fitted values at both ends
    of the window, divided by the absolute mean of the metric over the window.

    Parameters
    ----------
    window_size: int
        Number of points in the window. The model can only be mature once the
        window is full.
    max_pct_change: float
        Maximum absolute percent change, as a fraction, of a mature model.

    """

    def __init__(self, window_size=10, max_pct_change=0.005):
        if window_size < 2:
            raise ValueError(f"window_size must be at least 2, got {window_size}")

        self.window_size = window_size
        self.max_pct_change = max_pct_change
        self._window = deque(maxlen=window_size)

    def add_point(self, x, y):
        self._window.append((float(x), float(y)))

    def get_pct_change(self):
        """Return the signed percent change over the window, or None if not full"""
        if len(self._window) < self.window_size:
            return None

        xs, ys = numpy.array(self._window).T
        slope, intercept = numpy.polyfit(xs, ys, 1)
        start, end = slope * xs[0] + intercept, slope * xs[-1] + intercept

        mean = numpy.abs(ys).mean()
        if mean == 0:
            return 0.0 if end == start else numpy.inf

        return float((end - start) / mean)

    def is_mature(self):
        pct_change = self.get_pct_change()
        return pct_change is not None and abs(pct_change) <= self.max_pct_change

    @property
    def window(self):
        """Metric values currently in the window"""
        return [y for _, y in self._window]
