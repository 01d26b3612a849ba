#!/usr/bin/env python
"""
Functions that define console scripts
=====================================

Entry point of the ``hypersearch`` command.

"""
import logging

from hypersearch.core.cli.base import HypersearchArgsParser
from hypersearch.core.utils import module_import

log = logging.getLogger(__name__)


def load_modules_parser(main_parser):
    """Search through the `cli` folder for any module containing a `add_subparser` function"""
    modules = module_import.load_modules_in_path(
        "hypersearch.core.cli", lambda m: hasattr(m, "add_subparser")
    )
    for module in modules:
        add_subparser = getattr(module, "add_subparser")
        add_subparser(main_parser.get_subparsers())


def main(argv=None):
    """Entry point for `hypersearch.core` functionality."""
    main_parser = HypersearchArgsParser()

    load_modules_parser(main_parser)

    return main_parser.execute(argv)


if __name__ == "__main__":
    returncode = main()
    if returncode > 0:
        raise SystemExit(returncode)
