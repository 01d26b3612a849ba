"""
Wrapper for MongoDB
===================

Updates are single ``update_many``/``find_one_and_update`` calls combining
``$set`` and ``$inc``, atomic per document on the server side.

"""
import functools

import pymongo

from hypersearch.core.io.database import (
    Database,
    DatabaseError,
    DatabaseTimeout,
    DuplicateKeyError,
)

AUTH_FAILED_MESSAGES = ["auth failed", "Authentication failed."]

INDEX_OP_ERROR_MESSAGES = ["index not found with name"]

DUPLICATE_KEY_MESSAGES = ["duplicate key error"]


def mongodb_exception_wrapper(method):
    """Convert pymongo exceptions to the generic exception types of
    :mod:`hypersearch.core.io.database`.

    pymongo.errors.{ExecutionTimeout, NetworkTimeout, WTimeoutError} -> DatabaseTimeout
    pymongo.errors.DuplicateKeyError -> DuplicateKeyError
    pymongo.errors.BulkWriteError[DUPLICATE_KEY_MESSAGES] -> DuplicateKeyError
    pymongo.errors.ConnectionFailure -> DatabaseError
    pymongo.errors.OperationFailure(AUTH_FAILED_MESSAGES) -> DatabaseError
    """

    @functools.wraps(method)
    def _decorator(self, *args, **kwargs):
        try:
            rval = method(self, *args, **kwargs)
        except (
            pymongo.errors.ExecutionTimeout,
            pymongo.errors.NetworkTimeout,
            pymongo.errors.WTimeoutError,
        ) as e:
            raise DatabaseTimeout(str(e)) from e
        except pymongo.errors.DuplicateKeyError as e:
            raise DuplicateKeyError(str(e)) from e
        except pymongo.errors.BulkWriteError as e:
            for error in e.details["writeErrors"]:
                if any(m in error["errmsg"] for m in DUPLICATE_KEY_MESSAGES):
                    raise DuplicateKeyError(error["errmsg"]) from e
            raise
        except pymongo.errors.ConnectionFailure as e:
            raise DatabaseError(
                "Connection Failure: database not found on specified uri"
            ) from e
        except pymongo.errors.OperationFailure as e:
            if any(m in str(e) for m in AUTH_FAILED_MESSAGES):
                raise DatabaseError("Authentication Failure: bad credentials") from e
            if any(m in str(e) for m in INDEX_OP_ERROR_MESSAGES):
                raise DatabaseError(str(e)) from e
            raise

        return rval

    return _decorator


def _update_document(data, increment):
    update = {}
    if data:
        update["$set"] = data
    if increment:
        update["$inc"] = increment

    return update


# pylint: disable=too-many-public-methods
class MongoDB(Database):
    """Wrap MongoDB with the operations of :class:`hypersearch.core.io.database.Database`.

    Attributes
    ----------
    host : str
       Hostname or MongoDB compliant full credentials+address+database
       specification.

    .. seealso:: :class:`hypersearch.core.io.database.Database` for more on attributes.

    """

    def __init__(
        self,
        host="",
        name=None,
        port=None,
        username=None,
        password=None,
        serverSelectionTimeoutMS=5000,
    ):
        self.uri = None
        port = int(port) if port is not None else pymongo.MongoClient.PORT

        super().__init__(
            host or "localhost",
            name,
            port,
            username,
            password,
            serverSelectionTimeoutMS=serverSelectionTimeoutMS,
        )

    def __repr__(self) -> str:
        return f"{type(self).__qualname__}(host={self.host}, name={self.name}, port={self.port})"

    def __getstate__(self):
        return {
            key: getattr(self, key)
            for key in ["host", "name", "port", "username", "password", "options"]
        }

    def __setstate__(self, state):
        for key, value in state.items():
            setattr(self, key, value)
        self.uri = None
        self._conn = None
        self._db = None
        self.initiate_connection()

    @mongodb_exception_wrapper
    def initiate_connection(self):
        """Connect to database, unless MongoDB `is_connected`.

        :raises :exc:`hypersearch.core.io.database.DatabaseError`: if connection or
            authentication fails

        """
        if self.is_connected:
            return

        self._sanitize_attrs()
        self.options.setdefault("authSource", self.name)

        self._conn = pymongo.MongoClient(
            self.uri if self.uri else self.host,
            port=self.port,
            username=self.username,
            password=self.password,
            **self.options,
        )
        self._db = self._conn[self.name]
        self._db.command("ping")

    @property
    def is_connected(self):
        """True, if practical connection has been achieved."""
        try:
            self._db.command("ping")
        except (
            pymongo.errors.ConnectionFailure,
            pymongo.errors.OperationFailure,
            TypeError,
            AttributeError,
        ):
            return False

        return True

    def close_connection(self):
        """Disconnect from database."""
        self._conn.close()

    def ensure_index(self, collection_name, keys, unique=False):
        """Create given indexes if they do not already exist in database.

        MongoDB's `create_index()` is idempotent.
        """
        self._db[collection_name].create_index(
            self._convert_index_keys(keys), unique=unique, background=True
        )

    def index_information(self, collection_name):
        """Return dict of names and whether indexes are unique"""
        return {
            index: specs.get("unique", False) or index == "_id_"
            for index, specs in self._db[collection_name].index_information().items()
        }

    @mongodb_exception_wrapper
    def drop_index(self, collection_name, name):
        """Remove index from the database"""
        self._db[collection_name].drop_index(name)

    def _convert_index_keys(self, keys):
        if not isinstance(keys, (list, tuple)):
            keys = [(keys, self.ASCENDING)]

        orders = {self.ASCENDING: pymongo.ASCENDING, self.DESCENDING: pymongo.DESCENDING}
        converted_keys = []
        for key, sort_order in keys:
            if sort_order not in orders:
                raise RuntimeError(f"Invalid database sort order {str(sort_order)}")
            converted_keys.append((key, orders[sort_order]))

        return converted_keys

    @mongodb_exception_wrapper
    def write(self, collection_name, data, query=None, increment=None):
        """Write new information to a collection. Perform insert or update.

        .. seealso:: :meth:`hypersearch.core.io.database.Database.write`

        """
        dbcollection = self._db[collection_name]

        if query is None:
            if not isinstance(data, (list, tuple)):
                data = [data]
            result = dbcollection.insert_many(documents=data)
            return len(result.inserted_ids)

        result = dbcollection.update_many(
            filter=query, update=_update_document(data, increment), upsert=False
        )
        return result.matched_count

    def read(self, collection_name, query=None, selection=None):
        """Read a collection and return a value according to the query."""
        return list(self._db[collection_name].find(query, selection))

    @mongodb_exception_wrapper
    def read_and_write(self, collection_name, query, data, selection=None, increment=None):
        """Atomically update the first document matching the query and return it."""
        return self._db[collection_name].find_one_and_update(
            query,
            _update_document(data, increment),
            projection=selection,
            return_document=pymongo.ReturnDocument.AFTER,
        )

    def count(self, collection_name, query=None):
        """Count the number of documents in a collection which match the `query`."""
        return self._db[collection_name].count_documents(filter=query or {})

    @mongodb_exception_wrapper
    def remove(self, collection_name, query):
        """Delete from a collection document[s] which match the `query`."""
        return self._db[collection_name].delete_many(filter=query).deleted_count

    def _sanitize_attrs(self):
        """Sanitize attributes using MongoDB's 'uri_parser' module."""
        try:
            settings = pymongo.uri_parser.parse_uri(self.host, default_port=self.port)
        except pymongo.errors.InvalidURI:
            return

        self.uri = self.host
        self.host, port = settings["nodelist"][0]
        if settings["database"] is not None:
            self.name = settings["database"]
        if port is not None:
            self.port = port
        if settings["username"] is not None:
            self.username = settings["username"]
        if settings["password"] is not None:
            self.password = settings["password"]
        self.options["authSource"] = settings["options"].get("authsource", self.name)

    @classmethod
    def get_defaults(cls):
        """Get database arguments needed to create a database instance."""
        return {"name": "hypersearch", "host": "localhost"}
