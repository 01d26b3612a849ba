#!/usr/bin/env python
"""
Module running a search worker
==============================

Claims and evaluates the models of a job until its search strategy is exhausted.

"""
import logging
import threading

import hypersearch.core
from hypersearch.core.cli import base as cli
from hypersearch.core.worker.search_worker import Interruptible, SearchWorker

log = logging.getLogger(__name__)
SHORT_DESCRIPTION = "Runs a search worker on a job"
DESCRIPTION = """
This command starts a worker evaluating candidate models of a job. Many workers can
run on the same job concurrently, they coordinate through the job store only. With
--params, the worker first inserts a new job and completes it when done.

The id of the job run is printed on stdout. The exit code only reports success.
"""


def add_subparser(parser):
    """Add the subparser that needs to be used for this command"""
    worker_parser = parser.add_parser(
        "worker", help=SHORT_DESCRIPTION, description=DESCRIPTION
    )

    cli.get_storage_args_group(worker_parser)

    job_group = worker_parser.add_mutually_exclusive_group(required=True)
    job_group.add_argument(
        "--jobID", dest="job_id", type=int, help="id of the job to work on"
    )
    job_group.add_argument(
        "--params",
        type=str,
        help="params of a new job, as a JSON string or a YAML/JSON file",
    )

    worker_parser.add_argument(
        "--modelID",
        dest="model_id",
        type=int,
        help="only run this model, then exit",
    )
    worker_parser.add_argument(
        "--workerID", dest="worker_id", type=str, help="name of the worker in logs"
    )
    worker_parser.add_argument(
        "--clearModels",
        dest="clear_models",
        action="store_true",
        help="delete all the models of the store before starting",
    )
    worker_parser.add_argument(
        "--resetJobStatus",
        dest="reset_job_status",
        action="store_true",
        help="reset the cancel and completion fields of the job before starting",
    )

    worker_args_group = worker_parser.add_argument_group(
        "Worker arguments (optional)",
        description="Override the worker section of the configuration.",
    )
    hypersearch.core.config.worker.add_arguments(worker_args_group)

    worker_parser.set_defaults(func=main)

    return worker_parser


def _apply_worker_args(args):
    for key in hypersearch.core.config.worker.to_dict():
        value = args.pop(key, None)
        if value is not None:
            hypersearch.core.config.worker[key] = value


def run_worker(args):
    """Run a worker with the command line arguments and return the id of its job"""
    job_store = cli.setup_store(args)
    _apply_worker_args(args)

    params = None
    if args.get("params") is not None:
        params = cli.load_params(args["params"])

    interrupted = threading.Event()
    worker = SearchWorker(
        job_store,
        job_id=args.get("job_id"),
        params=params,
        model_id=args.get("model_id"),
        worker_id=args.get("worker_id"),
        clear_models=args.get("clear_models", False),
        reset_job_status=args.get("reset_job_status", False),
        interrupted=interrupted,
    )

    with Interruptible(interrupted):
        job_id = worker.run()

    if interrupted.is_set():
        raise KeyboardInterrupt()

    return job_id


def main(args):
    """Run the worker and print the id of its job

    The id is reported on stdout only, the command exits with 0 on success.
    """
    job_id = run_worker(args)
    print(job_id)
