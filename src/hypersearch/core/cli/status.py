#!/usr/bin/env python
"""
Module to status jobs
=====================

List the models of a job with their status and optimized metric.

"""
import logging

import tabulate

from hypersearch.core.cli import base as cli
from hypersearch.core.worker.job_results import JobResults

log = logging.getLogger(__name__)
SHORT_DESCRIPTION = "Gives an overview of jobs and their models"
DESCRIPTION = """
This command outputs the status of jobs. Without --jobID, it lists all jobs. With --jobID,
it outlines every model of the job, its status and its optimized metric. The best model of
the job is marked with a star, followed by `saved` once it completed.
"""


def add_subparser(parser):
    """Add the subparser that needs to be used for this command"""
    status_parser = parser.add_parser(
        "status", help=SHORT_DESCRIPTION, description=DESCRIPTION
    )

    cli.get_storage_args_group(status_parser)

    status_parser.add_argument(
        "--jobID", dest="job_id", type=int, help="id of the job to outline"
    )

    status_parser.set_defaults(func=main)

    return status_parser


def main(args):
    """Fetch config and status jobs"""
    job_store = cli.setup_store(args)

    if args.get("job_id") is None:
        print_jobs(job_store)
    else:
        print_job_models(job_store, args["job_id"])


def print_jobs(job_store):
    """Print one line per job"""
    jobs = job_store.jobs_info()
    if not jobs:
        print("No job found")
        return

    rows = [
        [
            job["_id"],
            job["client"],
            job["status"],
            job["completion_reason"],
            job["worker_completion_reason"],
            job["cancel"],
        ]
        for job in jobs
    ]
    print(
        tabulate.tabulate(
            rows,
            headers=["id", "client", "status", "reason", "worker reason", "cancel"],
        )
    )


def format_models(models, job_results):
    """Return the table rows of the models of a job"""
    rows = []
    for model in models:
        best = ""
        if model["_id"] == job_results.best_model:
            best = "* saved" if job_results.saved else "*"

        rows.append(
            [
                model["_id"],
                model["status"],
                model["completion_reason"],
                model["num_records"],
                model["optimized_metric"],
                model["matured"],
                best,
            ]
        )

    return rows


def print_job_models(job_store, job_id):
    """Print the models of a job"""
    job = job_store.job_info(job_id)
    job_results = JobResults.parse(job["results"])
    models = job_store.job_get_models(job_id)

    title = f"job {job_id} ({job['status']})"
    print(title)
    print("=" * len(title))

    if not models:
        print("No model found")
        return

    print(
        tabulate.tabulate(
            format_models(models, job_results),
            headers=["id", "status", "reason", "records", "metric", "matured", "best"],
        )
    )
