"""
Model runner
============

Evaluate one model of a job over its input stream and take part in the
election of the best model of the job.

The runner processes one record per iteration. Between records, a
:class:`hypersearch.core.worker.periodic.PeriodicActivityManager` runs the
bookkeeping activities: writing model results to the store, publishing the
model as provisional best, checking stop requests and maturity.

The ``results`` field of the job holds the best model. It is only ever
written with a conditional write comparing the full serialized value, and at
most one model per job is marked as ``saved`` at any time.

"""
import logging
import math
import threading

import hypersearch.core
from hypersearch.core.io.checkpoints import CheckpointStore
from hypersearch.core.io.predictions import PredictionWriter
from hypersearch.core.io.record_stream import CSVRecordStream
from hypersearch.core.utils.exceptions import (
    STREAM_READING_ERROR,
    InvalidRecordError,
    JobFailError,
)
from hypersearch.core.worker.job_results import JobResults
from hypersearch.core.worker.maturity import AveragePctChange
from hypersearch.core.worker.metrics import MetricsManager, match_patterns
from hypersearch.core.worker.model import model_factory
from hypersearch.core.worker.periodic import (
    PeriodicActivityManager,
    PeriodicActivityRequest,
)
from hypersearch.storage.base import (
    CMPL_REASON_EOF,
    CMPL_REASON_KILLED,
    CMPL_REASON_ORPHAN,
    CMPL_REASON_STOPPED,
    STOP_REASON_KILLED,
    STOP_REASON_STOPPED,
)

log = logging.getLogger(__name__)

ORPHAN_MESSAGE = "Killed by Scheduler"


def get_optimized_metric_label(optimize_key, labels):
    """Return the only metric label matched by the optimize key

    A missing optimize key selects the first metric.

    Raises
    ------
    ValueError
        If the key matches no label or more than one.

    """
    if optimize_key is None:
        if not labels:
            raise ValueError("No metric defined to optimize")
        return labels[0]

    matches = match_patterns([optimize_key], labels)
    if len(matches) != 1:
        raise ValueError(
            f"Optimize key '{optimize_key}' must match exactly one metric label, "
            f"matched {matches} among {labels}"
        )

    return matches[0]


class ModelRunner:
    """Run one model over its stream and report its results

    Parameters
    ----------
    model_id: int
        Id of the model in the store.
    job_id: int
        Id of the job of the model.
    description: hypersearch.core.worker.description.ModelDescription
        Full description of the model, its data and its metrics.
    job_store: hypersearch.storage.base.BaseJobStore
        Store shared with the other workers.
    checkpoint_guid: str
        Identifier of the checkpoint of this model, unique across jobs.
    stream: hypersearch.core.io.record_stream.RecordStream, optional
        Input records. Default reads the CSV file ``description.dataset``.
    model: hypersearch.core.worker.model.BaseModel, optional
        Model to evaluate. Default is built from ``description.model_type``.
    checkpoint_store: CheckpointStore, optional
        Default uses ``worker.checkpoint_dir`` of the global configuration.
    prediction_writer: PredictionWriter, optional
        Default uses ``worker.output_dir`` of the global configuration.
    interrupted: threading.Event, optional
        Set by the owner of the runner to abandon the model as orphan.
    runner_config: dict, optional
        Periods and maturity settings, default is ``runner`` of the global
        configuration.
    maturity_policy: hypersearch.core.worker.maturity.MaturityPolicy, optional
        Default is :class:`AveragePctChange` with the configured window and threshold.

    """

    def __init__(
        self,
        model_id,
        job_id,
        description,
        job_store,
        checkpoint_guid,
        stream=None,
        model=None,
        checkpoint_store=None,
        prediction_writer=None,
        interrupted=None,
        runner_config=None,
        maturity_policy=None,
    ):
        self.model_id = model_id
        self.job_id = job_id
        self.description = description
        self.checkpoint_guid = checkpoint_guid

        self._job_store = job_store
        self._stream = stream
        self._model = model

        if checkpoint_store is None:
            checkpoint_store = CheckpointStore(hypersearch.core.config.worker.checkpoint_dir)
        self._checkpoint_store = checkpoint_store

        if prediction_writer is None:
            prediction_writer = PredictionWriter(
                hypersearch.core.config.worker.output_dir, job_id
            )
        self._prediction_writer = prediction_writer

        self._interrupted = interrupted if interrupted is not None else threading.Event()

        if runner_config is None:
            runner_config = hypersearch.core.config.runner.to_dict()
        self._config = runner_config

        if maturity_policy is None:
            maturity_policy = AveragePctChange(
                window_size=self._config["maturity_num_points"],
                max_pct_change=self._config["maturity_max_change"],
            )
        self._maturity_policy = maturity_policy

        self._metrics_manager = None
        self._optimized_metric_label = None
        self._report_metric_labels = []
        self._periodic = None
        self._prediction_cache = []
        self._current_record_index = -1

        self._cmpl_reason = CMPL_REASON_EOF
        self._is_killed = False
        self._is_canceled = False
        self._is_orphan = False
        self._is_mature = False
        self._is_best_model = False
        self._is_best_model_stored = False

    def __repr__(self):
        return f"{type(self).__name__}(model_id={self.model_id}, job_id={self.job_id})"

    @property
    def completion_reason(self):
        """Reason the model stopped, ``eof`` until something else happens"""
        return self._cmpl_reason

    @property
    def is_best_model(self):
        """True if this model published itself as the best of the job"""
        return self._is_best_model

    @property
    def is_mature(self):
        """True once the optimized metric of the model leveled off"""
        return self._is_mature

    @property
    def current_record_index(self):
        """Index of the last record processed, -1 before the first one"""
        return self._current_record_index

    def run(self):
        """Run the model until the end of its stream or until it is stopped

        Returns
        -------
        tuple
            ``(completion_reason, completion_msg)``

        Raises
        ------
        JobFailError
            If reading the stream failed. The whole job should be canceled.
        ValueError
            If the description is invalid.

        """
        log.info("Starting %s", self)
        self.description.validate()

        if self._stream is None:
            if self.description.dataset is None:
                raise ValueError(f"No dataset defined for model {self.model_id}")
            self._stream = CSVRecordStream(self.description.dataset)

        try:
            if self._model is None:
                self._model = model_factory.create(
                    self.description.model_type,
                    predicted_field=self.description.predicted_field,
                    **self.description.model_params,
                )
            self._model.set_field_statistics(self._stream.get_field_stats())

            self._metrics_manager = MetricsManager(
                self.description.metrics, self.description.predicted_field
            )
            labels = self._metrics_manager.get_metric_labels()
            self._optimized_metric_label = get_optimized_metric_label(
                self.description.optimize_key, labels
            )
            self._report_metric_labels = match_patterns(
                self.description.logged_metrics, labels
            )

            self._periodic = PeriodicActivityManager(self._init_periodic_activities())

            learning_off_at = None
            infer_only = self.description.iteration_count_infer_only
            if infer_only == -1:
                self._model.disable_learning()
            elif infer_only > 0:
                learning_off_at = self.description.iteration_count - infer_only

            self._run_task_main_loop(self.description.iteration_count, learning_off_at)
        finally:
            self._stream.close()

        self._finalize()

        log.info("%s completed with reason %s", self, self._cmpl_reason)
        return self._cmpl_reason, None

    def _init_periodic_activities(self):
        activities = [
            PeriodicActivityRequest(
                True, self._config["model_update_period"], self._update_model_db_results
            ),
            PeriodicActivityRequest(
                False,
                self._config["first_job_results_period"],
                self._update_job_results_periodic,
            ),
            PeriodicActivityRequest(
                True, self._config["job_results_period"], self._update_job_results_periodic
            ),
            PeriodicActivityRequest(
                True, self._config["cancel_check_period"], self._check_cancellation
            ),
        ]

        if self._config["enable_maturity"]:
            activities.append(
                PeriodicActivityRequest(
                    True, self._config["maturity_check_period"], self._check_maturity
                )
            )

        return activities

    def _run_task_main_loop(self, num_iters, learning_off_at=None):
        self._model.reset_sequence_states()
        self._current_record_index = -1

        while True:
            if self._is_killed:
                break

            if self._is_canceled:
                break

            if self._interrupted.is_set():
                self._set_as_orphaned()
                break

            if self._is_mature:
                if not self._is_best_model:
                    self._cmpl_reason = CMPL_REASON_STOPPED
                    break

                self._cmpl_reason = CMPL_REASON_EOF

            if learning_off_at is not None and self._current_record_index == learning_off_at:
                log.info("Disabling learning of model %s", self.model_id)
                self._model.disable_learning()

            try:
                record = self._stream.get_next_record()
            except Exception as e:
                raise JobFailError(STREAM_READING_ERROR, str(e)) from e

            if record is None:
                self._cmpl_reason = CMPL_REASON_EOF
                break

            if not record:
                raise InvalidRecordError(
                    f"Got an empty record from the input stream of model {self.model_id}"
                )

            result = self._model.run(record)
            self._current_record_index = result.record_index
            result.metrics = self._metrics_manager.update(result)
            result.encodings = None

            self._prediction_cache.append(result)
            if self._is_best_model:
                self._flush_prediction_cache()

            self._periodic.tick()

            if num_iters >= 0 and self._current_record_index >= num_iters - 1:
                break

    def _finalize(self):
        self._update_model_db_results()

        if self._is_orphan:
            self._delete_output_cache(self.model_id)
        elif not self._is_killed:
            self._update_job_results()
        else:
            self._delete_output_cache(self.model_id)

    def _get_metrics(self):
        return self._metrics_manager.get_metrics()

    def _get_optimized_metric_value(self):
        """Return the optimized metric, +inf while it is not computed yet"""
        value = self._get_metrics()[self._optimized_metric_label]
        if value is None:
            return math.inf

        return value

    def _update_model_db_results(self):
        metrics = self._get_metrics()
        for label in self._report_metric_labels:
            log.debug("Model %s %s: %s", self.model_id, label, metrics[label])

        value = metrics[self._optimized_metric_label]
        results = {
            "metrics": metrics,
            "optimized": {self._optimized_metric_label: value},
        }
        self._job_store.model_update_results(
            self.model_id,
            results=results,
            metric_value=value,
            num_records=self._current_record_index + 1,
        )

    def _check_if_best_completed_model(self):
        """Compare the metric of this model with the saved best model of the job

        Returns
        -------
        tuple
            ``(is_best, job_results)``, `job_results` keeping the raw value read
            for the conditional write.

        """
        raw = self._job_store.job_get_fields(self.job_id, ["results"])[0]
        job_results = JobResults.parse(raw)

        current = self._get_optimized_metric_value()
        is_best = not job_results.saved or current < job_results.best_value

        return is_best, job_results

    def _update_job_results(self):
        """Try to become the saved best model of the job, once the model completed"""
        is_saved = False

        while True:
            is_best, job_results = self._check_if_best_completed_model()

            if not is_best:
                log.info("Model %s is not the best of job %s", self.model_id, self.job_id)
                self._delete_output_cache(self.model_id)
                self._job_store.model_update_timestamp(self.model_id)
                self._delete_model_checkpoint(self.model_id)
                self._job_store.model_update_timestamp(self.model_id)
                break

            if not is_saved:
                self._flush_prediction_cache()
                self._job_store.model_update_timestamp(self.model_id)
                self._create_model_checkpoint()
                self._job_store.model_update_timestamp(self.model_id)
                is_saved = True

            prev_best = job_results.best_model
            prev_was_saved = job_results.saved
            if prev_was_saved and prev_best == self.model_id:
                raise RuntimeError(
                    f"Model {self.model_id} is already saved as best of job {self.job_id}"
                )

            new_results = JobResults(
                best_model=self.model_id,
                best_value=self._get_optimized_metric_value(),
                metrics=self._get_metrics(),
                saved=True,
            )
            updated = self._job_store.job_set_field_if_equal(
                self.job_id, "results", job_results.raw, new_results.serialize()
            )
            if not updated:
                log.debug("Job %s results changed, retrying", self.job_id)
                continue

            log.info("Model %s saved as best of job %s", self.model_id, self.job_id)
            if prev_was_saved:
                self._delete_output_cache(prev_best)
                self._job_store.model_update_timestamp(self.model_id)
                self._delete_model_checkpoint(prev_best)
                self._job_store.model_update_timestamp(self.model_id)
            break

    def _update_job_results_periodic(self):
        """Publish this model as provisional best while it is running

        Only the first model to publish gets the status, other models stop
        trying once any model published.
        """
        if self._is_best_model_stored and not self._is_best_model:
            return

        while True:
            raw = self._job_store.job_get_fields(self.job_id, ["results"])[0]
            if raw is not None:
                self._is_best_model_stored = True
                if not self._is_best_model:
                    return

            job_results = JobResults.parse(raw)
            if job_results.best_model is not None and job_results.best_model != self.model_id:
                self._is_best_model = False
                return

            self._flush_prediction_cache()
            self._job_store.model_update_timestamp(self.model_id)

            new_raw = JobResults(
                best_model=self.model_id,
                best_value=self._get_optimized_metric_value(),
                metrics=self._get_metrics(),
                saved=False,
            ).serialize()
            updated = self._job_store.job_set_field_if_equal(
                self.job_id, "results", raw, new_raw
            )
            if updated or new_raw == raw:
                if not self._is_best_model:
                    log.info(
                        "Model %s published as best of job %s", self.model_id, self.job_id
                    )
                self._is_best_model = True
                break

    def _check_cancellation(self):
        cancel = self._job_store.job_get_fields(self.job_id, ["cancel"])[0]
        if cancel:
            log.info("Job %s canceled, stopping model %s", self.job_id, self.model_id)
            self._cmpl_reason = CMPL_REASON_KILLED
            self._is_canceled = True
            return

        stop_reason = self._job_store.models_get_fields(self.model_id, ["stop"])[0]
        if stop_reason is None:
            return

        if stop_reason == STOP_REASON_KILLED:
            log.info("Model %s killed", self.model_id)
            self._cmpl_reason = CMPL_REASON_KILLED
            self._is_killed = True
        elif stop_reason == STOP_REASON_STOPPED:
            log.info("Model %s stopped", self.model_id)
            self._cmpl_reason = CMPL_REASON_STOPPED
            self._is_canceled = True
        else:
            raise RuntimeError(
                f"Unexpected stop reason '{stop_reason}' for model {self.model_id}"
            )

    def _check_maturity(self):
        if self._current_record_index + 1 < self._config["best_model_min_records"]:
            return

        if self._is_mature:
            return

        value = self._get_metrics()[self._optimized_metric_label]
        if value is None:
            return

        self._maturity_policy.add_point(self._current_record_index, value)
        if self._maturity_policy.is_mature():
            log.info(
                "Model %s matured at record %s", self.model_id, self._current_record_index
            )
            self._job_store.model_set_fields(self.model_id, {"matured": True})
            self._cmpl_reason = CMPL_REASON_STOPPED
            self._is_mature = True

    def _set_as_orphaned(self):
        log.info("Model %s interrupted, marking it as orphan", self.model_id)
        self._cmpl_reason = CMPL_REASON_ORPHAN
        self._is_orphan = True
        self._job_store.model_set_completed(
            self.model_id, CMPL_REASON_ORPHAN, ORPHAN_MESSAGE
        )

    def _flush_prediction_cache(self):
        if not self._prediction_cache:
            return

        rows = [result.to_row() for result in self._prediction_cache]
        self._prediction_writer.write_records(
            self.model_id,
            rows,
            progress_callback=lambda: self._job_store.model_update_timestamp(
                self.model_id
            ),
        )
        self._prediction_cache = []

    def _delete_output_cache(self, model_id):
        if model_id == self.model_id:
            self._prediction_cache = []

        if self._prediction_writer.delete(model_id):
            log.debug("Deleted predictions of model %s", model_id)

    def _create_model_checkpoint(self):
        self._checkpoint_store.save(self.checkpoint_guid, self._model)
        self._job_store.model_set_fields(
            self.model_id, {"checkpoint_id": self.checkpoint_guid}, ignore_unchanged=True
        )

    def _delete_model_checkpoint(self, model_id):
        checkpoint_id = self._job_store.models_get_fields(model_id, ["checkpoint_id"])[0]
        if checkpoint_id is None:
            return

        try:
            self._checkpoint_store.delete(checkpoint_id)
        except FileNotFoundError:
            log.warning(
                "Checkpoint %s of model %s already deleted", checkpoint_id, model_id
            )

        self._job_store.model_set_fields(
            model_id, {"checkpoint_id": None}, ignore_unchanged=True
        )
