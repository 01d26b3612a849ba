#!/usr/bin/env python
"""
Module to insert new jobs
=========================

Insert creates a new job from a params file, for workers to run with --jobID.

"""
import logging

import hypersearch.core
from hypersearch.core.cli import base as cli
from hypersearch.core.utils.exceptions import InvalidParamsError

log = logging.getLogger(__name__)

SHORT_DESCRIPTION = "Inserts a new job"
DESCRIPTION = """
Insert a new job in the store and print its id. The params must hold a `strategy` section
and either a model `description` or `dummy_model` params.
"""


def add_subparser(parser):
    """Add the subparser that needs to be used for this command"""
    insert_parser = parser.add_parser(
        "insert", help=SHORT_DESCRIPTION, description=DESCRIPTION
    )

    cli.get_storage_args_group(insert_parser)

    insert_parser.add_argument(
        "params", type=str, help="YAML or JSON file, or inline JSON, of the job params"
    )
    insert_parser.add_argument(
        "--client",
        type=str,
        help="name of the client inserting the job "
        f"(default: {hypersearch.core.config.worker.client})",
    )
    insert_parser.add_argument(
        "--max-workers", type=int, default=1, help="maximum number of workers of the job"
    )

    insert_parser.set_defaults(func=main)

    return insert_parser


def validate_params(params):
    """Check the sections of job params

    Raises
    ------
    InvalidParamsError

    """
    if "strategy" not in params:
        raise InvalidParamsError("Job params must have a `strategy` section")

    if "description" not in params and "dummy_model" not in params:
        raise InvalidParamsError(
            "Job params must have a model `description` or `dummy_model` section"
        )


def main(args):
    """Insert the job and print its id"""
    job_store = cli.setup_store(args)

    params = cli.load_params(args["params"])
    validate_params(params)

    job_id = job_store.job_insert(
        client=args.get("client") or hypersearch.core.config.worker.client,
        cmd_line="hypersearch worker --jobID",
        params=params,
        maximum_workers=args["max_workers"],
    )
    print(job_id)
