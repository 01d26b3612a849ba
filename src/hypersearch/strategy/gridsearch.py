"""
Grid Search
===========
"""
from __future__ import annotations

import itertools
import logging

from hypersearch.strategy.base import BaseSearchStrategy

log = logging.getLogger(__name__)


class GridSearch(BaseSearchStrategy):
    """Try every combination of the given values

    Parameters
    ----------
    permutations: dict
        Values to try for each description field, ex:
        ``{'model.window': [1, 5, 10], 'control.iteration_count_infer_only': [0, 100]}``.
        Combinations are tried in the order of the cartesian product of the
        fields sorted by name.

    """

    def __init__(self, job_id, permutations=None, **kwargs):
        super().__init__(job_id, **kwargs)
        self.permutations = permutations or {}

        for name, values in self.permutations.items():
            if not isinstance(values, (list, tuple)) or not values:
                raise ValueError(
                    f"Permutations of '{name}' must be a non empty list, got {values!r}"
                )

    def build_candidates(self):
        names = sorted(self.permutations)
        grid = itertools.product(*(self.permutations[name] for name in names))
        candidates = [dict(zip(names, values)) for values in grid]

        if self.max_models is not None and len(candidates) > self.max_models:
            log.warning(
                "Grid of %d candidates capped to max_models=%d",
                len(candidates),
                self.max_models,
            )

        return candidates
