"""
Random Search
=============

Draw candidates from priors defined for each description field.

Priors are single key dictionaries::

    space:
      model.alpha: {loguniform: [0.01, 1]}
      model.window: {randint: [1, 20]}
      model.type: {choices: [movingaverage, lastvalue]}

"""
import logging

import numpy

from hypersearch.strategy.base import BaseSearchStrategy

log = logging.getLogger(__name__)


def _uniform(rng, low, high):
    return float(rng.uniform(low, high))


def _loguniform(rng, low, high):
    if low <= 0:
        raise ValueError(f"loguniform lower bound must be positive, got {low}")
    return float(numpy.exp(rng.uniform(numpy.log(low), numpy.log(high))))


def _randint(rng, low, high):
    """Integer in ``[low, high]``"""
    return int(rng.randint(low, high + 1))


def _choices(rng, *options):
    return options[rng.randint(len(options))]


PRIORS = {
    "uniform": _uniform,
    "loguniform": _loguniform,
    "randint": _randint,
    "choices": _choices,
}


class RandomSearch(BaseSearchStrategy):
    """Sample candidates at random

    Workers of a job share their candidates only if they share the same seed.

    Parameters
    ----------
    space: dict
        Prior of each description field, see the module documentation.
    max_models: int
        Number of candidates to draw.
    seed: None or int
        Seed for the random number generator used to sample candidates.
        Default: ``None``

    """

    def __init__(self, job_id, space=None, max_models=None, seed=None, **kwargs):
        if max_models is None:
            raise ValueError("RandomSearch requires max_models")

        super().__init__(job_id, max_models=max_models, seed=seed, **kwargs)
        self.space = {}
        for name, prior in (space or {}).items():
            if not isinstance(prior, dict) or len(prior) != 1:
                raise ValueError(f"Prior of '{name}' must be a single key dict, got {prior!r}")

            (kind, args), = prior.items()
            if kind not in PRIORS:
                raise ValueError(
                    f"Unknown prior '{kind}' for '{name}'. Available priors: {sorted(PRIORS)}"
                )
            self.space[name] = (kind, list(args))

        self.seed_rng(seed)

    def seed_rng(self, seed):
        """Seed the state of the random number generator.

        :param seed: Integer seed for the random number generator.
        """
        self.rng = numpy.random.RandomState(seed)

    def sample(self):
        """Draw one candidate"""
        return {
            name: PRIORS[kind](self.rng, *args)
            for name, (kind, args) in sorted(self.space.items())
        }

    def build_candidates(self):
        candidates = []
        hashes = set()
        attempts = 0
        while len(candidates) < self.max_models and attempts < 10 * self.max_models:
            attempts += 1
            params = self.sample()
            params_hash = self.compute_params_hash(params)
            if params_hash not in hashes:
                hashes.add(params_hash)
                candidates.append(params)

        if len(candidates) < self.max_models:
            log.warning(
                "Could only draw %d distinct candidates out of %d",
                len(candidates),
                self.max_models,
            )

        return candidates
