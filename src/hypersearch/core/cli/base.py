"""
Base class and function utilities for cli
=========================================
"""
import argparse
import logging
import os
import sys
import textwrap

import yaml

import hypersearch.core
from hypersearch.core.io.database import DatabaseError
from hypersearch.core.utils.exceptions import InvalidParamsError, NoJobError
from hypersearch.storage.base import FailedUpdate, setup_storage

CLI_DOC_HEADER = "hypersearch CLI for distributed hyperparameter search"

log = logging.getLogger(__name__)


class HypersearchArgsParser:
    """Parser object handling the upper-level parsing of hypersearch's arguments."""

    def __init__(self, description=CLI_DOC_HEADER):
        """Create the pre-command arguments"""
        self.description = description

        self.parser = argparse.ArgumentParser(
            formatter_class=argparse.RawDescriptionHelpFormatter,
            description=textwrap.dedent(description),
        )

        self.parser.add_argument(
            "-V",
            "--version",
            action="version",
            version="hypersearch " + hypersearch.core.__version__,
        )

        self.parser.add_argument(
            "-v",
            "--verbose",
            action="count",
            default=0,
            help="logging levels of information about the process (-v: INFO. -vv: DEBUG)",
        )

        self.parser.add_argument(
            "-d",
            "--debug",
            action="store_true",
            help="Use debugging mode with EphemeralDB.",
        )

        self.subparsers = self.parser.add_subparsers(dest="command")

    def get_subparsers(self):
        """Return the subparser object for this parser."""
        return self.subparsers

    def parse(self, argv):
        """Call argparse and generate a dictionary of arguments' value"""
        args = vars(self.parser.parse_args(argv))

        levels = {0: logging.WARNING, 1: logging.INFO, 2: logging.DEBUG}
        logging.basicConfig(
            format="%(asctime)-15s::%(levelname)s::%(name)s::%(message)s",
            level=levels.get(args["verbose"], logging.DEBUG),
        )

        if args["command"] is None:
            self.parser.parse_args(["--help"])

        function = args.pop("func", None)
        if function is None:
            self.parser.parse_args([args["command"], "--help"])

        return args, function

    def execute(self, argv):
        """Execute main function of the subparser"""
        args = {}
        try:
            args, function = self.parse(argv)
            returncode = function(args)
        except (
            DatabaseError,
            FailedUpdate,
            NoJobError,
            InvalidParamsError,
        ) as e:
            print("Error:", e, file=sys.stderr)

            if args.get("verbose", 0) >= 2:
                raise e

            return 1

        except KeyboardInterrupt:
            print("hypersearch is interrupted.")
            return 130

        return 0 if returncode is None else returncode


def get_storage_args_group(parser):
    """Return the arguments selecting the job store, for any command."""
    storage_group = parser.add_argument_group(
        "Storage arguments", description="These arguments determine where jobs are stored"
    )

    storage_group.add_argument(
        "-c",
        "--config",
        type=argparse.FileType("r"),
        metavar="path-to-config",
        help="hypersearch configuration file, overriding the global configuration",
    )

    return storage_group


def setup_store(args):
    """Load the configuration file given in `args` and create the job store"""
    config_file = args.pop("config", None)
    if config_file is not None:
        with config_file:
            config = yaml.safe_load(config_file) or {}
        # pylint: disable=protected-access
        hypersearch.core.config._load_yaml_dict(config)
        log.debug("Loaded configuration from %s", config_file.name)

    return setup_storage(debug=args.get("debug", False))


def load_params(value):
    """Load job params from a YAML or JSON file, or from an inline JSON string

    Raises
    ------
    InvalidParamsError
        If the params cannot be parsed or are not a mapping.

    """
    try:
        if os.path.isfile(value):
            with open(value, encoding="utf8") as f:
                params = yaml.safe_load(f)
        else:
            params = yaml.safe_load(value)
    except yaml.YAMLError as e:
        raise InvalidParamsError(f"Could not parse job params: {e}") from e

    if not isinstance(params, dict):
        raise InvalidParamsError(f"Job params must be a mapping, got {params!r}")

    return params
