"""
Model execution helpers
=======================

Build a runner for a candidate model and turn its failures into a completion
reason for the model.

"""
import logging
import traceback

from hypersearch.core.utils.exceptions import JobFailError
from hypersearch.core.worker.description import ModelDescription
from hypersearch.core.worker.dummy_runner import DummyModelRunner
from hypersearch.core.worker.model_runner import ModelRunner
from hypersearch.storage.base import CMPL_REASON_ERROR, CMPL_REASON_SUCCESS

log = logging.getLogger(__name__)


def mark_job_failed(job_store, job_id, message):
    """Cancel a job and record why, unless a worker already recorded its outcome

    The worker completion reason is switched from ``success`` to ``error`` with a
    conditional write, so that racing workers never overwrite each other.

    Returns
    -------
    bool
        True if this call marked the job as failed.

    """
    marked = job_store.job_set_field_if_equal(
        job_id, "worker_completion_reason", CMPL_REASON_SUCCESS, CMPL_REASON_ERROR
    )
    if not marked:
        log.info("Job %s already marked as failed by another worker", job_id)
        return False

    job_store.job_set_fields(
        job_id,
        {"cancel": True, "worker_completion_msg": message},
        ignore_unchanged=True,
    )
    log.error("Job %s canceled: %s", job_id, message)
    return True


def handle_model_runner_exception(job_id, model_id, job_store, exception):
    """Return ``(completion_reason, completion_msg)`` of a model that raised `exception`

    A :class:`hypersearch.core.utils.exceptions.JobFailError` also cancels the job.
    """
    formatted = "".join(
        traceback.format_exception(type(exception), exception, exception.__traceback__)
    )
    log.error("Exception while running model %s of job %s:\n%s", model_id, job_id, formatted)

    if isinstance(exception, JobFailError):
        mark_job_failed(job_store, job_id, f"{exception.error_code}: {exception.message}")

    return CMPL_REASON_ERROR, f"{type(exception).__name__}: {exception}\n{formatted}"


def run_model_given_base_and_params(
    model_id,
    job_id,
    base_description,
    params,
    job_store,
    checkpoint_guid,
    **runner_options,
):
    """Run a candidate model described by a base description and its params

    Parameters
    ----------
    model_id: int
        Model to run, already inserted and owned by this worker.
    job_id: int
        Job of the model.
    base_description: dict
        Description shared by all the models of the job.
    params: dict
        Overrides of the candidate, as nested dicts or dotted field paths.
    job_store: hypersearch.storage.base.BaseJobStore
        Shared store.
    checkpoint_guid: str
        Identifier of the checkpoint of the model.
    **runner_options
        Passed to :class:`hypersearch.core.worker.model_runner.ModelRunner`.

    Returns
    -------
    tuple
        ``(completion_reason, completion_msg)``. Errors raised by the model are
        reported as reason ``error`` instead of propagating.

    """
    try:
        description = ModelDescription.from_dict(base_description).override(params or {})
        runner = ModelRunner(
            model_id, job_id, description, job_store, checkpoint_guid, **runner_options
        )
        return runner.run()
    except Exception as e:
        return handle_model_runner_exception(job_id, model_id, job_store, e)


def run_dummy_model(
    model_id, job_id, dummy_params, job_store, checkpoint_guid, **runner_options
):
    """Run a :class:`hypersearch.core.worker.dummy_runner.DummyModelRunner`

    Same return values and error handling as :func:`run_model_given_base_and_params`.
    """
    try:
        runner = DummyModelRunner(
            model_id, job_id, dummy_params, job_store, checkpoint_guid, **runner_options
        )
        return runner.run()
    except Exception as e:
        return handle_model_runner_exception(job_id, model_id, job_store, e)
