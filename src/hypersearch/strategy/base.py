"""
Base search strategy
====================

Formulation of a search strategy as seen by workers. Strategy implementations
must inherit from :class:`BaseSearchStrategy`.

Each worker of a job builds its own strategy instance. Instances never talk
to each other: the worker reports to its strategy every model progress it
observes in the store, including models run by other workers, and the
strategy proposes new candidates from what it knows.

Strategies are created with ``strategy_factory.create()``.

Examples
--------
>>> strategy_factory.create('gridsearch', job_id=1, description=description,
...                         permutations={'model.window': [1, 2, 3]})

"""
from __future__ import annotations

import logging

from hypersearch.core.utils import GenericFactory, compute_identity
from hypersearch.core.worker.run_model import (
    run_dummy_model,
    run_model_given_base_and_params,
)
from hypersearch.storage.base import CMPL_REASON_ORPHAN

log = logging.getLogger(__name__)


class BaseSearchStrategy:
    """Strategy proposing a finite list of candidates

    Subclasses define the candidates in :meth:`build_candidates`. Candidates
    are proposed in order, skipping those already present in the store. The
    strategy is exhausted once every candidate is in the store and completed.

    Parameters
    ----------
    job_id: int
        Job of the strategy.
    description: dict, optional
        Base description of the models of the job, overridden by candidate params.
    dummy_model: dict, optional
        If given, models are run by
        :class:`hypersearch.core.worker.dummy_runner.DummyModelRunner` with these
        parameters, overridden by candidate params.
    max_models: int, optional
        Maximum number of candidates.
    seed: int, optional
        Seed of the random number generator, if the strategy uses one.
    runner_options: dict, optional
        Keyword arguments of the model runners.

    """

    def __init__(
        self,
        job_id: int,
        description: dict | None = None,
        dummy_model: dict | None = None,
        max_models: int | None = None,
        seed: int | None = None,
        runner_options: dict | None = None,
    ):
        if description is None and dummy_model is None:
            raise ValueError("A strategy needs a model description or dummy model params")

        self.job_id = job_id
        self.description = description
        self.dummy_model = dummy_model
        self.max_models = max_models
        self.seed = seed
        self.runner_options = runner_options or {}

        self._candidates = None
        self._models = {}
        self._seen_hashes = set()
        self._completed_hashes = set()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(job_id={self.job_id}, max_models={self.max_models})"

    @staticmethod
    def compute_params_hash(params: dict) -> str:
        """Return the hash identifying a candidate inside its job"""
        return compute_identity(**params)

    def build_candidates(self) -> list[dict]:
        """Return the list of candidate params, in the order to try them"""
        raise NotImplementedError()

    @property
    def candidates(self) -> list[tuple[dict, str]]:
        """``(params, params_hash)`` of all the candidates, capped by `max_models`"""
        if self._candidates is None:
            candidates = []
            hashes = set()
            for params in self.build_candidates():
                params_hash = self.compute_params_hash(params)
                if params_hash in hashes:
                    continue
                hashes.add(params_hash)
                candidates.append((params, params_hash))

            if self.max_models is not None:
                candidates = candidates[: self.max_models]

            self._candidates = candidates
            log.debug("%s built %d candidates", self, len(candidates))

        return self._candidates

    @property
    def is_done(self) -> bool:
        """True once every candidate is in the store and completed"""
        return all(
            params_hash in self._completed_hashes for _, params_hash in self.candidates
        )

    def create_models(self, num_models: int = 1):
        """Propose up to `num_models` candidates not yet in the store

        Returns
        -------
        tuple
            ``(exhausted, [(params, params_hash, particle_hash), ...])``. An empty
            list while not exhausted means that the remaining candidates are
            still running.

        """
        pending = [
            (params, params_hash, None)
            for params, params_hash in self.candidates
            if params_hash not in self._seen_hashes
        ][:num_models]

        if pending:
            return False, pending

        return self.is_done, []

    def record_model_progress(
        self,
        model_id,
        params,
        params_hash,
        results,
        completed,
        completion_reason,
        matured,
        num_records,
    ):
        """Record the progress of a model of the job

        `params` is None when the model was already reported with its params.
        """
        model = self._models.setdefault(model_id, {"params": None})
        if params is not None:
            model["params"] = params
        model.update(
            params_hash=params_hash,
            results=results,
            completed=completed,
            completion_reason=completion_reason,
            matured=matured,
            num_records=num_records,
        )

        self._seen_hashes.add(params_hash)
        if completed:
            self._completed_hashes.add(params_hash)

        log.debug(
            "Model %s progress: completed=%s reason=%s records=%s",
            model_id,
            completed,
            completion_reason,
            num_records,
        )

    @property
    def models(self) -> dict:
        """Progress of every model reported so far, by model id"""
        return self._models

    def get_best_model(self):
        """Return ``(model_id, value)`` of the completed model with the lowest optimized metric"""
        best = (None, None)
        for model_id, model in sorted(self._models.items()):
            if not model["completed"] or not model["results"]:
                continue

            values = [
                value
                for value in model["results"].get("optimized", {}).values()
                if value is not None
            ]
            if values and (best[1] is None or values[0] < best[1]):
                best = (model_id, values[0])

        return best

    def run_model(self, model_id, job_id, params, params_hash, job_store, checkpoint_guid):
        """Run a model owned by this worker, mark it completed and record its progress

        Returns
        -------
        tuple
            ``(completion_reason, completion_msg)``

        """
        if self.dummy_model is not None:
            completion_reason, completion_msg = run_dummy_model(
                model_id,
                job_id,
                dict(self.dummy_model, **params),
                job_store,
                checkpoint_guid,
                **self.runner_options,
            )
        else:
            completion_reason, completion_msg = run_model_given_base_and_params(
                model_id,
                job_id,
                self.description,
                params,
                job_store,
                checkpoint_guid,
                **self.runner_options,
            )

        if completion_reason != CMPL_REASON_ORPHAN:
            job_store.model_set_completed(model_id, completion_reason, completion_msg)

        status = job_store.models_get_result_and_status([model_id])[0]
        self.record_model_progress(
            model_id,
            params,
            params_hash,
            status["results"],
            completed=True,
            completion_reason=completion_reason,
            matured=status["matured"],
            num_records=status["num_records"],
        )

        return completion_reason, completion_msg

    def close(self):
        """Release the resources of the strategy"""
        log.debug("Closing %s", self)


strategy_factory = GenericFactory(BaseSearchStrategy)
