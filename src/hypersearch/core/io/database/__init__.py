"""
Wrappers for database frameworks
================================

Contains :class:`AbstractDB`, the interface of the document databases the
job store is built on, and the errors every implementation raises.
Currently, implemented wrappers:

   - :class:`hypersearch.core.io.database.ephemeraldb.EphemeralDB`
   - :class:`hypersearch.core.io.database.pickleddb.PickledDB`
   - :class:`hypersearch.core.io.database.mongodb.MongoDB`

Updates are expressed as documents of fields to set, plus optional counters
to increment in the same atomic operation. An update query doubles as a
guard: nothing is written when no document matches, which is what the job
store relies on for compare-and-set writes.

"""
import logging
from abc import ABCMeta, abstractmethod

from hypersearch.core.utils import GenericFactory


# pylint: disable=too-many-public-methods
class AbstractDB(metaclass=ABCMeta):
    """Base class for database framework wrappers.

    Attributes
    ----------
    host : str
       It can be either:
          1. Known hostname or IP address in which database server resides.
          2. URI: A database framework specific connection string.
          3. A file path for file based databases.
    name : str
       Name of database containing jobs and models.
    port : int
       Port that database server listens to for requests.
    username : str
        Name of user with write/read permissions to database with name `name`.
    password : str
        Secret phrase of user, `username`.

    """

    ASCENDING = 0
    DESCENDING = 1

    def __init__(
        self, host=None, name=None, port=None, username=None, password=None, **kwargs
    ):
        defaults = self.get_defaults()
        self.host = host or defaults.get("host", None)
        self.name = name or defaults.get("name", None)
        self.port = port
        self.username = username
        self.password = password
        self.options = kwargs

        self._db = None
        self._conn = None
        self.initiate_connection()

    @property
    @abstractmethod
    def is_connected(self):
        """True, if practical connection has been achieved."""

    @abstractmethod
    def initiate_connection(self):
        """Connect to database, unless `AbstractDB` `is_connected`.

        Raises
        ------
        DatabaseError
            If connection or authentication fails

        """

    @abstractmethod
    def close_connection(self):
        """Disconnect from database, if `AbstractDB` `is_connected`."""

    @abstractmethod
    def ensure_index(self, collection_name, keys, unique=False):
        """Create given indexes if they do not already exist in database.

        Parameters
        ----------
        collection_name : str
           A collection inside database, a table.
        keys: str or list of tuples
           Can be a string representing a key to index, or a list of tuples
           with the structure `[(key_name, sort_order)]`. `key_name` must be a
           string and sort_order can be either ``AbstractDB.ASCENDING`` or
           ``AbstractDB.DESCENDING``.
        unique: bool, optional
           Ensure each document have a different key value. If not, operations
           like `write()` will raise `DuplicateKeyError`.
           Defaults to False.

        """

    @abstractmethod
    def index_information(self, collection_name):
        """Return dict of index names and whether they are unique"""

    @abstractmethod
    def drop_index(self, collection_name, name):
        """Remove index from the database, `name` being in the format {key}_{order}"""

    @abstractmethod
    def write(self, collection_name, data, query=None, increment=None):
        """Write new information to a collection. Perform insert or update.

        Parameters
        ----------
        collection_name : str
           A collection inside database, a table.
        data : dict or list of dicts
           New data that will **be inserted** or fields that will be **set** on
           matching entries.
        query : dict, optional
           Assumes an update operation: filter entries in collection to be updated.
        increment : dict, optional
           Only for updates. Numeric fields to increment, with the increment as value.

        Returns
        -------
        int
            Number of new documents if no query, otherwise number of documents
            matched by the query.

        Raises
        ------
        DuplicateKeyError
            If the operation is creating duplicate keys in two different documents.
            Only occurs if the keys have unique indexes.

        """

    @abstractmethod
    def read(self, collection_name, query=None, selection=None):
        """Read a collection and return a value according to the query.

        Parameters
        ----------
        collection_name : str
           A collection inside database, a table.
        query : dict, optional
           Filter entries in collection. Values can be operators
           ``$ne``, ``$in``, ``$gt``, ``$gte``, ``$lt`` or ``$lte``.
        selection : dict, optional
           Elements of matched entries to return, the projection.

        Returns
        -------
        list
            List of matched document[s]

        """

    @abstractmethod
    def read_and_write(self, collection_name, query, data, selection=None, increment=None):
        """Atomically update the first document matching the query and return it.

        Parameters
        ----------
        collection_name : str
           A collection inside database, a table.
        query : dict
           Filter entries in collection.
        data : dict
           Fields to set on the entry.
        selection : dict, optional
           Elements of matched entries to return, the projection.
        increment : dict, optional
           Numeric fields to increment, with the increment as value.

        Returns
        -------
        dict or None
            Updated first matched document or None if nothing found

        """

    @abstractmethod
    def count(self, collection_name, query=None):
        """Count the number of documents in a collection which match the `query`."""

    @abstractmethod
    def remove(self, collection_name, query):
        """Delete from a collection document[s] which match the `query`.

        Returns
        -------
        int
            Number of documents removed

        """

    @classmethod
    @abstractmethod
    def get_defaults(cls):
        """Get database arguments needed to create a database instance.

        Returns
        -------
        dict
            A dictionary mapping an argument name to a default value.

        """


class DatabaseError(RuntimeError):
    """Exception type used to delegate responsibility from any database
    implementation's own Exception types.
    """


class DuplicateKeyError(DatabaseError):
    """Exception type used when a write attempt is made but the new document
    have an index already contained in the database.
    """


class DatabaseTimeout(DatabaseError):
    """Exception type used when there is a timeout during database operations."""


# pylint: disable=abstract-method
class Database(AbstractDB):
    """Base class of the database implementations created by `database_factory`."""


database_factory = GenericFactory(Database)


# set per-module log level
logging.getLogger("filelock").setLevel("ERROR")
