#!/usr/bin/env python
"""Collection of tests for :mod:`hypersearch.core.cli.base`."""
import json

import pytest

from hypersearch.core.cli.base import HypersearchArgsParser, load_params
from hypersearch.core.utils.exceptions import InvalidParamsError, NoJobError


def run(args):
    behavior = args["behavior"]
    if behavior == "code":
        return 3
    if behavior == "nojob":
        raise NoJobError(42)
    if behavior == "interrupt":
        raise KeyboardInterrupt()
    if behavior == "bug":
        raise ZeroDivisionError()

    return None


@pytest.fixture
def parser():
    """Parser with a `run` command behaving as asked on the command line"""
    parser = HypersearchArgsParser()
    run_parser = parser.get_subparsers().add_parser("run")
    run_parser.add_argument("behavior")
    run_parser.set_defaults(func=run)

    return parser


@pytest.mark.parametrize("behavior,returncode", [("ok", 0), ("code", 3), ("nojob", 1)])
def test_execute_returncode(parser, behavior, returncode):
    """Known errors return 1, other return values pass through"""
    assert parser.execute(["run", behavior]) == returncode


def test_execute_error_message(parser, capsys):
    """Known errors are printed on stderr"""
    parser.execute(["run", "nojob"])
    assert "Error: No job found with id 42." in capsys.readouterr().err


def test_execute_verbose_raises(parser):
    """Known errors are raised in debug verbosity"""
    with pytest.raises(NoJobError):
        parser.execute(["-vv", "run", "nojob"])


def test_execute_interrupted(parser, capsys):
    """Interruptions return 130"""
    assert parser.execute(["run", "interrupt"]) == 130
    assert "interrupted" in capsys.readouterr().out


def test_execute_unknown_error(parser):
    """Unexpected errors propagate"""
    with pytest.raises(ZeroDivisionError):
        parser.execute(["run", "bug"])


def test_no_command(parser):
    """Without command the help is printed"""
    with pytest.raises(SystemExit) as exc:
        parser.execute([])

    assert exc.value.code == 0


def test_load_params_inline():
    """Inline JSON params"""
    params = {"strategy": {"type": "gridsearch"}, "dummy_model": {}}
    assert load_params(json.dumps(params)) == params


def test_load_params_file(tmp_path):
    """Params from a YAML file"""
    path = tmp_path / "params.yaml"
    path.write_text("strategy:\n  type: randomsearch\n  max_models: 3\ndummy_model: {}\n")

    assert load_params(str(path)) == {
        "strategy": {"type": "randomsearch", "max_models": 3},
        "dummy_model": {},
    }


@pytest.mark.parametrize("value", ["{strategy: [", "3", "missing_file.yaml"])
def test_load_params_invalid(value):
    """Unparsable params or params other than mappings are errors"""
    with pytest.raises(InvalidParamsError):
        load_params(value)
