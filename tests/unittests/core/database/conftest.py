#!/usr/bin/env python
"""Collection of fixtures used in the database tests."""
import pytest

from hypersearch.core.io.database.ephemeraldb import EphemeralDB
from hypersearch.core.io.database.mongodb import MongoDB
from hypersearch.core.io.database.pickleddb import PickledDB

_DB_TYPES = ["ephemeraldb", "mongodb", "pickleddb"]

TEST_COLLECTIONS = ["test_collection", "counters", "concurrent"]


@pytest.fixture(scope="module", params=_DB_TYPES)
def db_type(pytestconfig, request):
    """Return the string identifier of a supported database type based on the
    --mongodb option

    If `--mongodb` is active, only MongoDB tests will be run. Otherwise,
    all non-MongoDB will be run.
    """
    if request.param == "mongodb" and not pytestconfig.getoption("--mongodb"):
        pytest.skip(f"{request.param} tests disabled")
    elif request.param != "mongodb" and pytestconfig.getoption("--mongodb"):
        pytest.skip(f"{request.param} tests disabled")
    yield request.param


@pytest.fixture()
def hypersearch_db(db_type, tmp_path):
    """Return an empty database of the current type"""
    if db_type == "ephemeraldb":
        database = EphemeralDB()
    elif db_type == "mongodb":
        database = MongoDB(name="hypersearch_test")
        for name in TEST_COLLECTIONS:
            database._db.drop_collection(name)
    elif db_type == "pickleddb":
        database = PickledDB(host=str(tmp_path / "hypersearch_db.pkl"))
    else:
        raise ValueError("Invalid database type")

    yield database

    if db_type == "mongodb":
        for name in TEST_COLLECTIONS:
            database._db.drop_collection(name)
        database.close_connection()


@pytest.fixture()
def test_collection(hypersearch_db):
    """Insert three documents in `test_collection` and return them"""
    documents = [
        {"_id": 1, "field0": "same0", "field1": "same1", "unique_field": "unique0", "value": 1},
        {"_id": 2, "field0": "same0", "field1": "diff1", "unique_field": "unique1", "value": 2},
        {"_id": 3, "field0": "diff0", "field1": "same1", "unique_field": "unique2", "value": 3},
    ]
    hypersearch_db.write("test_collection", [dict(document) for document in documents])

    return documents
