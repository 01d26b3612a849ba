"""
Non permanent database
======================

In-memory implementation of :class:`hypersearch.core.io.database.Database`.

Documents are flat dictionaries. Only top-level fields can be queried,
selected, set and incremented, which is all the job store needs.

"""
import copy
from collections import defaultdict

from hypersearch.core.io.database import Database, DatabaseError, DuplicateKeyError

OPERATORS = {
    "$ne": (lambda a, b: a != b),
    "$in": (lambda a, b: a in b),
    "$gte": (lambda a, b: a is not None and a >= b),
    "$gt": (lambda a, b: a is not None and a > b),
    "$lte": (lambda a, b: a is not None and a <= b),
    "$lt": (lambda a, b: a is not None and a < b),
}


def _index_name(keys):
    if keys == ("_id",):
        return "_id_"

    return "_".join(f"{key}_1" for key in keys)


def _normalize_keys(keys):
    if not isinstance(keys, (list, tuple)):
        keys = [(keys, None)]

    return tuple(key for key, _ in keys)


def match(document, query=None):
    """Test if a document corresponds to a given query

    A query value is either compared for equality or, when it is a dictionary of
    operators, tested against each of them.
    """
    for key, condition in (query or {}).items():
        value = document.get(key)
        if isinstance(condition, dict) and condition and all(
            k.startswith("$") for k in condition
        ):
            for operator, operand in condition.items():
                if operator not in OPERATORS:
                    raise ValueError(
                        f"Operator '{operator}' is not supported by EphemeralDB"
                    )
                if key not in document or not OPERATORS[operator](value, operand):
                    return False
        elif key not in document or value != condition:
            return False

    return True


def select(document, selection=None):
    """Return a copy of the document restricted to the selection

    Selections either include fields (1) or exclude them (0), with the exception
    of ``_id`` which is always included unless explicitly excluded.
    """
    if not selection:
        return copy.deepcopy(document)

    others = {key: value for key, value in selection.items() if key != "_id"}
    if len(set(others.values())) > 1:
        raise ValueError(f"Cannot mix selection with 1 and 0s except for _id: {selection}")

    keep_id = selection.get("_id", 1)
    if not others:
        selected = dict(document)
    elif not next(iter(others.values())):
        selected = {key: value for key, value in document.items() if key not in others}
    else:
        selected = {key: document.get(key) for key in others}
        selected["_id"] = document["_id"]

    if not keep_id:
        selected.pop("_id", None)

    return copy.deepcopy(selected)


# pylint: disable=too-many-public-methods
class EphemeralDB(Database):
    """Non permanent database

    Only lives through one execution. Used for debugging, for tests and as the
    in-memory image of :class:`hypersearch.core.io.database.pickleddb.PickledDB`.

    .. seealso:: :class:`hypersearch.core.io.database.Database` for more on attributes.

    """

    def __repr__(self) -> str:
        return f"{type(self).__qualname__}()"

    @property
    def is_connected(self):
        """Return true, always."""
        return True

    def initiate_connection(self):
        """Create the dictionary which serve as an ephemeral database"""
        self._db = defaultdict(EphemeralCollection)

    def close_connection(self):
        """Remove the dictionary"""
        self._db = None

    def ensure_index(self, collection_name, keys, unique=False):
        """Create given indexes if they do not already exist in database.

        Indexes are only created if `unique` is True.
        """
        self._db[collection_name].create_index(keys, unique=unique)

    def index_information(self, collection_name):
        """Return dict of names and sorting order of indexes"""
        return self._db[collection_name].index_information()

    def drop_index(self, collection_name, name):
        """Remove index from the database"""
        self._db[collection_name].drop_index(name)

    def write(self, collection_name, data, query=None, increment=None):
        """Write new information to a collection. Perform insert or update.

        .. seealso:: :meth:`hypersearch.core.io.database.Database.write`

        """
        collection = self._db[collection_name]

        if query is None:
            if not isinstance(data, (list, tuple)):
                data = [data]
            return collection.insert_many(data)

        return collection.update_many(query, data, increment)

    def read(self, collection_name, query=None, selection=None):
        """Read a collection and return a value according to the query.

        .. seealso:: :meth:`hypersearch.core.io.database.Database.read`

        """
        return self._db[collection_name].find(query, selection)

    def read_and_write(self, collection_name, query, data, selection=None, increment=None):
        """Atomically update the first document matching the query and return it.

        .. seealso:: :meth:`hypersearch.core.io.database.Database.read_and_write`

        """
        return self._db[collection_name].find_one_and_update(
            query, data, increment, selection
        )

    def count(self, collection_name, query=None):
        """Count the number of documents in a collection which match the `query`."""
        return len(self._db[collection_name].find(query))

    def remove(self, collection_name, query):
        """Delete from a collection document[s] which match the `query`."""
        return self._db[collection_name].delete_many(query)

    @classmethod
    def get_defaults(cls):
        """No arguments needed."""
        return {}


class EphemeralCollection:
    """Non permanent collection of flat documents with unique indexes.

    .. seealso:: :class:`hypersearch.core.io.database.ephemeraldb.EphemeralDB`

    """

    def __init__(self):
        self._documents = []
        self._indexes = {}
        self.create_index("_id", unique=True)

    def create_index(self, keys, unique=False):
        """Create given index if it does not already exist for this collection.

        Only unique indexes have an effect.
        """
        keys = _normalize_keys(keys)
        name = _index_name(keys)
        if not unique or name in self._indexes:
            return

        values = set()
        for document in self._documents:
            value = tuple(document.get(key) for key in keys)
            if value in values:
                raise DuplicateKeyError(
                    f"Duplicate key error: index={name} value={value}"
                )
            values.add(value)

        self._indexes[name] = keys

    def index_information(self):
        """Return dict of index names, all unique"""
        return {name: True for name in self._indexes}

    def drop_index(self, name):
        """Remove index from the collection"""
        if name not in self._indexes:
            raise DatabaseError(f"index not found with name {name}")

        del self._indexes[name]

    def _check_unique(self, candidate, ignore=None):
        for name, keys in self._indexes.items():
            value = tuple(candidate.get(key) for key in keys)
            for document in self._documents:
                if document is ignore:
                    continue
                if tuple(document.get(key) for key in keys) == value:
                    raise DuplicateKeyError(
                        f"Duplicate key error: index={name} value={value}"
                    )

    def _get_new_id(self):
        """Return max integer id + 1, starting at 1"""
        ids = [doc["_id"] for doc in self._documents if isinstance(doc["_id"], int)]
        return max(ids, default=0) + 1

    def find(self, query=None, selection=None):
        """Return copies of the documents matching the query."""
        return [
            select(document, selection)
            for document in self._documents
            if match(document, query)
        ]

    def insert_many(self, documents):
        """Add new documents to the collection.

        Documents without `_id` get the max integer id + 1, which is also set on
        the given dictionaries.

        Raises
        ------
        DuplicateKeyError
            If a document duplicates the values of a unique index.

        """
        for document in documents:
            if "_id" not in document:
                document["_id"] = self._get_new_id()
            new_document = copy.deepcopy(document)
            self._check_unique(new_document)
            self._documents.append(new_document)

        return len(documents)

    def _apply(self, document, data, increment):
        updated = dict(document)
        updated.update(copy.deepcopy(data or {}))
        for key, step in (increment or {}).items():
            updated[key] = (updated.get(key) or 0) + step

        self._check_unique(updated, ignore=document)
        document.clear()
        document.update(updated)

    def update_many(self, query, data, increment=None):
        """Set and increment fields of the documents matching the query.

        Returns the number of matched documents.
        """
        matched = [document for document in self._documents if match(document, query)]
        for document in matched:
            self._apply(document, data, increment)

        return len(matched)

    def find_one_and_update(self, query, data, increment=None, selection=None):
        """Update the first document matching the query and return its new version."""
        for document in self._documents:
            if match(document, query):
                self._apply(document, data, increment)
                return select(document, selection)

        return None

    def delete_many(self, query=None):
        """Delete the documents matching the query and return how many were deleted."""
        retained = [doc for doc in self._documents if not match(doc, query)]
        deleted = len(self._documents) - len(retained)
        self._documents = retained

        return deleted

    def drop(self):
        """Drop the collection, removing all documents and indexes."""
        self._documents = []
        self._indexes = {}
        self.create_index("_id", unique=True)
