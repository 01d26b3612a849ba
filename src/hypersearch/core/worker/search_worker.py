"""
Search worker
=============

Main loop of a worker process: keep the search strategy informed of the
progress of all the models of the job, claim a candidate and run it, until
the strategy is exhausted.

Workers never talk to each other. Claiming a model is done by inserting it,
the unique index on its params hash letting only one worker win.

"""
from __future__ import annotations

import json
import logging
import signal
import threading
import time

import hypersearch.core
from hypersearch.core.utils.exceptions import InvalidArgumentsError, InvalidParamsError
from hypersearch.core.worker.run_model import mark_job_failed
from hypersearch.storage.base import (
    CMPL_REASON_ERROR,
    CMPL_REASON_SUCCESS,
    STATUS_COMPLETED,
    STATUS_NOTSTARTED,
    STATUS_RUNNING,
)
from hypersearch.strategy.base import strategy_factory

log = logging.getLogger(__name__)


class Interruptible:
    """Turn SIGINT and SIGTERM into a flag checked by model runners

    A second signal is handled by the original handlers.
    """

    def __init__(self, event=None):
        self.event = event if event is not None else threading.Event()
        self.handlers = {}
        self.signal_installed = False

    def __enter__(self):
        """Override the signal handlers with our handler"""
        try:
            self.handlers[signal.SIGINT] = signal.signal(signal.SIGINT, self.handler)
            self.handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, self.handler)
            self.signal_installed = True

        except ValueError:  # ValueError: signal only works in main thread
            log.warning(
                "SIGINT/SIGTERM hooks could not be installed because the worker is "
                "running inside a thread, models will not be marked as orphans"
            )

        return self

    def handler(self, sig, frame):
        """Flag the interruption and let the next signal through"""
        log.warning("Received signal %d, abandoning the current model", sig)
        self.event.set()
        self.restore_handlers()

    def restore_handlers(self):
        """Restore old signal handlers"""
        if not self.signal_installed:
            return

        signal.signal(signal.SIGINT, self.handlers[signal.SIGINT])
        signal.signal(signal.SIGTERM, self.handlers[signal.SIGTERM])
        self.signal_installed = False

    def __exit__(self, *args):
        self.restore_handlers()


class SearchWorker:
    """Worker evaluating the models of one job

    Parameters
    ----------
    job_store: hypersearch.storage.base.BaseJobStore
        Store shared by all the workers of the job.
    job_id: int, optional
        Job to work on. Exactly one of `job_id` and `params` must be given.
    params: dict, optional
        Params of a new job inserted by this worker.
    model_id: int, optional
        Only run this model, once, then exit.
    worker_id: str, optional
        Name of the worker in logs.
    clear_models: bool
        Delete all the models of the store before starting.
    reset_job_status: bool
        Clear the cancel flag and the worker completion fields of the job
        before starting. The job status and the saved best results are kept.
    batch_size: int, optional
        Number of candidates asked to the strategy at once, default is
        ``worker.batch_size`` of the global configuration.
    poll_interval: float, optional
        Seconds to wait when the strategy has no candidate yet, default is
        ``worker.poll_interval`` of the global configuration.
    interrupted: threading.Event, optional
        Event set when the worker is asked to stop.
    runner_options: dict, optional
        Keyword arguments of the model runners.

    """

    def __init__(
        self,
        job_store,
        job_id=None,
        params=None,
        model_id=None,
        worker_id=None,
        clear_models=False,
        reset_job_status=False,
        batch_size=None,
        poll_interval=None,
        interrupted=None,
        runner_options=None,
    ):
        if (job_id is None) == (params is None):
            raise InvalidArgumentsError()

        self.job_store = job_store
        self.job_id = job_id
        self.params = params
        self.model_id = model_id
        self.worker_id = worker_id
        self.clear_models = clear_models
        self.reset_job_status = reset_job_status

        if batch_size is None:
            batch_size = hypersearch.core.config.worker.batch_size
        self.batch_size = batch_size

        if poll_interval is None:
            poll_interval = hypersearch.core.config.worker.poll_interval
        self.poll_interval = poll_interval

        self.interrupted = interrupted if interrupted is not None else threading.Event()
        self.runner_options = dict(runner_options or {}, interrupted=self.interrupted)

        self.strategy = None
        self.model_id_ctr_list = []
        self.num_models_total = 0

    def __repr__(self) -> str:
        return f"SearchWorker(worker_id={self.worker_id}, job_id={self.job_id})"

    def run(self):
        """Work on the job until its strategy is exhausted

        Returns
        -------
        int
            Id of the job.

        """
        if self.params is not None:
            self.job_id = self.job_store.job_insert(
                client=hypersearch.core.config.worker.client,
                cmd_line="",
                params=self.params,
                already_running=True,
            )
            log.info("%s inserted job %s", self, self.job_id)

        try:
            self._run_job()
        except Exception as e:
            log.exception("%s failed", self)
            mark_job_failed(self.job_store, self.job_id, f"{type(e).__name__}: {e}")
            if self.params is not None:
                self.job_store.job_set_completed(self.job_id, CMPL_REASON_ERROR, str(e))
            raise

        if self.params is not None:
            self.job_store.job_set_completed(self.job_id, CMPL_REASON_SUCCESS)

        log.info("%s ran %d models", self, self.num_models_total)
        return self.job_id

    def _load_job_params(self):
        raw = self.job_store.job_get_fields(self.job_id, ["params"])[0]
        params = raw if isinstance(raw, dict) else json.loads(raw)
        if not isinstance(params, dict) or "strategy" not in params:
            raise InvalidParamsError(f"Job {self.job_id} params have no strategy section")

        return params

    def _create_strategy(self, job_params):
        strategy_config = dict(job_params["strategy"])
        strategy_type = strategy_config.pop("type", "gridsearch")

        return strategy_factory.create(
            strategy_type,
            job_id=self.job_id,
            description=job_params.get("description"),
            dummy_model=job_params.get("dummy_model"),
            runner_options=self.runner_options,
            **strategy_config,
        )

    def _run_job(self):
        if self.clear_models:
            self.job_store.models_clear_all()

        if self.reset_job_status:
            self.job_store.job_set_fields(
                self.job_id,
                dict(
                    cancel=False,
                    worker_completion_reason=CMPL_REASON_SUCCESS,
                    worker_completion_msg=None,
                ),
                ignore_unchanged=True,
            )

        job_info = self.job_store.job_info(self.job_id)
        if job_info["status"] == STATUS_NOTSTARTED:
            self.job_store.job_set_field_if_equal(
                self.job_id, "status", STATUS_NOTSTARTED, STATUS_RUNNING
            )

        self.strategy = self._create_strategy(self._load_job_params())
        log.info("%s searching with %s", self, self.strategy)

        try:
            if self.model_id is not None:
                self._run_single_model(job_info)
            else:
                self._run_claim_loop(job_info)
        finally:
            self.strategy.close()

    def _complete_job(self):
        """Mark the job completed, once among all the workers"""
        if self.job_store.job_set_field_if_equal(
            self.job_id, "status", STATUS_RUNNING, STATUS_COMPLETED
        ):
            self.job_store.job_set_completed(self.job_id, CMPL_REASON_SUCCESS)

    def _checkpoint_guid(self, job_info, model_id):
        return f"{job_info['client']}_{self.job_id}_{model_id}"

    def _run_claim_loop(self, job_info):
        while not self.interrupted.is_set():
            self.process_updated_models()

            if self.job_store.job_get_fields(self.job_id, ["cancel"])[0]:
                log.info("%s: job %s canceled", self, self.job_id)
                break

            exhausted, candidates = self.strategy.create_models(self.batch_size)
            if exhausted:
                log.info("%s: search strategy exhausted", self)
                self._complete_job()
                break

            if not candidates:
                if self.poll_interval:
                    time.sleep(self.poll_interval)
                continue

            claimed = self._claim_model(candidates)
            if claimed is None:
                continue

            model_id, params, params_hash = claimed
            self.strategy.run_model(
                model_id,
                self.job_id,
                params,
                params_hash,
                self.job_store,
                self._checkpoint_guid(job_info, model_id),
            )
            self.num_models_total += 1

    def _claim_model(self, candidates):
        """Insert candidates until one is ours, report the others to the strategy

        Returns
        -------
        tuple or None
            ``(model_id, params, params_hash)`` of the claimed model, None if all
            candidates were already owned by other workers.

        """
        for params, params_hash, particle_hash in candidates:
            model_id, owned_by_us = self.job_store.model_insert_and_start(
                self.job_id, params, params_hash, particle_hash
            )
            if owned_by_us:
                log.info("%s claimed model %s", self, model_id)
                return model_id, params, params_hash

            log.debug("%s lost the race for model %s", self, model_id)
            stored_params = self.job_store.models_get_params([model_id])[0]
            status = self.job_store.models_get_result_and_status([model_id])[0]
            self.strategy.record_model_progress(
                model_id,
                stored_params["params"],
                stored_params["params_hash"],
                status["results"],
                completed=status["status"] == STATUS_COMPLETED,
                completion_reason=status["completion_reason"],
                matured=status["matured"],
                num_records=status["num_records"],
            )

        return None

    def _run_single_model(self, job_info):
        stored_params = self.job_store.models_get_params([self.model_id])
        if not stored_params:
            raise InvalidParamsError(f"Model {self.model_id} not found")

        self.job_store.model_set_fields(
            self.model_id,
            dict(
                worker_conn_id=self.job_store.get_connection_id(),
                status=STATUS_RUNNING,
                completion_reason=None,
                completion_msg=None,
            ),
            ignore_unchanged=True,
        )

        self.process_updated_models()
        self.strategy.run_model(
            self.model_id,
            self.job_id,
            stored_params[0]["params"],
            stored_params[0]["params_hash"],
            self.job_store,
            self._checkpoint_guid(job_info, self.model_id),
        )
        self.num_models_total += 1

    def process_updated_models(self):
        """Report to the strategy the models that progressed since the last call

        Returns
        -------
        tuple
            ``(changed_ids, new_ids)``, both sorted.

        """
        current = sorted(self.job_store.models_get_update_counters(self.job_id))
        cached = dict(self.model_id_ctr_list)

        changed = [
            model_id
            for model_id, counter in current
            if model_id in cached and cached[model_id] != counter
        ]
        new = [model_id for model_id, _ in current if model_id not in cached]

        if changed:
            for status in self.job_store.models_get_result_and_status(changed):
                self._record_status(status, params=None)

        if new:
            params = {
                entry["model_id"]: entry["params"]
                for entry in self.job_store.models_get_params(new)
            }
            for status in self.job_store.models_get_result_and_status(new):
                self._record_status(status, params=params[status["model_id"]])

        # Counters read above may be older than the statuses, next call sees the rest.
        self.model_id_ctr_list = current
        log.debug("%s: %d changed, %d new models", self, len(changed), len(new))

        return changed, new

    def _record_status(self, status, params):
        self.strategy.record_model_progress(
            status["model_id"],
            params,
            status["params_hash"],
            status["results"],
            completed=status["status"] == STATUS_COMPLETED,
            completion_reason=status["completion_reason"],
            matured=status["matured"],
            num_records=status["num_records"],
        )
