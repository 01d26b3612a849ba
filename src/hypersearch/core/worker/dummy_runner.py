"""
Dummy model runner
==================

Runner driven by a dictionary of parameters instead of a real model and data
stream. It goes through the same periodic activities and best model election
as :class:`hypersearch.core.worker.model_runner.ModelRunner`, which makes it
handy to test the coordination of workers.

Supported parameters:

- ``metric_value``: constant value of the optimized metric.
- ``metric_functions``: ``{'intercept': a, 'slope': b, 'floor': c}``, metric is
  ``max(c, a + b * record_index)``. Overrides ``metric_value``.
- ``iterations``: number of records to process, default 1.
- ``delay``: seconds to sleep at each record.
- ``final_delay``: seconds to sleep after the last record.
- ``wait_time``: seconds to sleep before starting.
- ``sys_exit_model_range``: ``[low, high)`` model indexes exiting the process.
- ``err_model_range``: ``[low, high)`` model indexes raising an error.
- ``delay_model_range``: ``[low, high)`` model indexes applying ``delay``,
  others never sleep. Default is every model.
- ``sleep_model_range``: ``[low, high, seconds]`` model indexes sleeping before starting.
- ``job_fail_err``: raise a job fatal error.
- ``make_checkpoint``: save checkpoints when elected, default True.
- ``finalize``: write results and take part in the election, default True.

Model indexes are positions of the model among the models of its job, by id.

"""
import logging
import sys
import time

from hypersearch.core.io.record_stream import ListRecordStream
from hypersearch.core.utils.exceptions import JobFailError
from hypersearch.core.worker.description import ModelDescription
from hypersearch.core.worker.model import BaseModel, ModelResult
from hypersearch.core.worker.model_runner import ModelRunner
from hypersearch.core.worker.periodic import PeriodicActivityManager

log = logging.getLogger(__name__)

DUMMY_FIELD = "dummy"
DUMMY_METRIC_LABEL = f"prediction:dummy:window=1:field={DUMMY_FIELD}"

DEFAULT_PARAMS = dict(
    metric_value=1.0,
    metric_functions=None,
    iterations=1,
    delay=None,
    final_delay=None,
    wait_time=None,
    sys_exit_model_range=None,
    err_model_range=None,
    delay_model_range=None,
    sleep_model_range=None,
    job_fail_err=False,
    make_checkpoint=True,
    finalize=True,
)


def _in_range(index, model_range):
    if model_range is None:
        return False

    low, high = model_range[:2]
    return low <= index < high


class DummyModel(BaseModel):
    """Model echoing its input, sleeping `delay` seconds per record"""

    def __init__(self, predicted_field=DUMMY_FIELD, delay=None):
        super().__init__(predicted_field)
        self.delay = delay

    def run(self, record):
        if self.delay:
            time.sleep(self.delay)

        self._record_index += 1
        return ModelResult(
            record_index=self._record_index,
            raw_input=record,
            inferences={"prediction": record.get(self.predicted_field)},
        )

    def observe(self, value):
        pass

    def predict(self):
        return None


class _DummyMetrics:
    def __init__(self, metric_value, metric_functions):
        self.metric_value = metric_value
        self.metric_functions = metric_functions
        self._value = None

    def update(self, result):
        if self.metric_functions:
            value = self.metric_functions.get("intercept", 0.0) + self.metric_functions.get(
                "slope", 0.0
            ) * result.record_index
            floor = self.metric_functions.get("floor")
            if floor is not None:
                value = max(floor, value)
            self._value = float(value)
        else:
            self._value = self.metric_value

        return self.get_metrics()

    def get_metrics(self):
        return {DUMMY_METRIC_LABEL: self._value}

    def get_metric_labels(self):
        return [DUMMY_METRIC_LABEL]


class DummyModelRunner(ModelRunner):
    """Runner simulating a model from parameters

    Parameters
    ----------
    params: dict
        Behavior of the dummy model, see the module documentation.

    Other parameters are those of :class:`ModelRunner`, except `description`,
    `stream` and `model`.

    """

    def __init__(self, model_id, job_id, params, job_store, checkpoint_guid, **kwargs):
        unknown = set(params or {}) - set(DEFAULT_PARAMS)
        if unknown:
            raise ValueError(f"Unknown dummy model parameters: {sorted(unknown)}")

        self.params = dict(DEFAULT_PARAMS, **(params or {}))
        iterations = int(self.params["iterations"])

        description = ModelDescription(
            model_type="dummymodel",
            predicted_field=DUMMY_FIELD,
            dataset=None,
            iteration_count=iterations,
            metrics=[],
        )
        stream = ListRecordStream(
            [{DUMMY_FIELD: float(i)} for i in range(max(iterations, 0))], [DUMMY_FIELD]
        )
        super().__init__(
            model_id,
            job_id,
            description,
            job_store,
            checkpoint_guid,
            stream=stream,
            model=DummyModel(),
            **kwargs,
        )

    def _get_model_index(self):
        model_ids = [
            model_id
            for model_id, _ in self._job_store.models_get_update_counters(self.job_id)
        ]
        return model_ids.index(self.model_id)

    def run(self):
        if self.params["wait_time"]:
            time.sleep(self.params["wait_time"])

        model_index = self._get_model_index()
        log.debug("Dummy model %s has index %s", self.model_id, model_index)

        if _in_range(model_index, self.params["sys_exit_model_range"]):
            log.warning("Dummy model %s exiting the process", self.model_id)
            sys.exit(1)

        if _in_range(model_index, self.params["sleep_model_range"]):
            time.sleep(self.params["sleep_model_range"][2])

        if self.params["delay_model_range"] is None or _in_range(
            model_index, self.params["delay_model_range"]
        ):
            self._model.delay = self.params["delay"]

        if _in_range(model_index, self.params["err_model_range"]):
            raise RuntimeError(
                f"Dummy model {self.model_id} failing because of err_model_range"
            )

        if self.params["job_fail_err"]:
            raise JobFailError("E10000", f"Dummy model {self.model_id} failed the job")

        self._metrics_manager = _DummyMetrics(
            self.params["metric_value"], self.params["metric_functions"]
        )
        self._optimized_metric_label = DUMMY_METRIC_LABEL
        self._report_metric_labels = [DUMMY_METRIC_LABEL]
        self._periodic = PeriodicActivityManager(self._init_periodic_activities())

        try:
            self._run_task_main_loop(int(self.params["iterations"]))
        finally:
            self._stream.close()

        if self.params["final_delay"]:
            time.sleep(self.params["final_delay"])

        if self.params["finalize"]:
            self._finalize()

        log.info("%s completed with reason %s", self, self._cmpl_reason)
        return self._cmpl_reason, None

    def _create_model_checkpoint(self):
        if self.params["make_checkpoint"]:
            super()._create_model_checkpoint()
