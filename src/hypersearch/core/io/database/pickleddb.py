"""
Pickled Database
================

Permanent version of :class:`hypersearch.core.io.database.ephemeraldb.EphemeralDB`.

Every operation loads the pickled database from disk under a file lock, runs
on the in-memory image and dumps it back if it wrote anything. The lock makes
each operation atomic across the worker processes sharing the file, which is
what compare-and-set writes of the job store need.

"""
import logging
import os
import pickle
from contextlib import contextmanager

import psutil
from filelock import FileLock, SoftFileLock, Timeout

import hypersearch.core
from hypersearch.core.io.database import Database, DatabaseTimeout
from hypersearch.core.io.database.ephemeraldb import EphemeralDB

log = logging.getLogger(__name__)

DEFAULT_HOST = os.path.join(hypersearch.core.DIRS.user_data_dir, "hypersearch_db.pkl")

TIMEOUT_ERROR_MESSAGE = """\
Could not acquire lock for PickledDB after {} seconds.

Many workers are likely querying the same file at once, or the filesystem is
slow. Reduce the number of workers, move the database to a faster partition or
use the MongoDB backend.
"""


# pylint: disable=too-many-public-methods
class PickledDB(Database):
    """Pickled EphemeralDB shared by processes through a file

    Parameters
    ----------
    host: str
        File path of the pickled database. Default is
        ``{user data dir}/hypersearch_db.pkl``.
    timeout: int
        Maximum number of seconds to wait for the lock before raising DatabaseTimeout.
        Default is 60.

    """

    # pylint: disable=unused-argument
    def __init__(self, host="", timeout=60, *args, **kwargs):
        super().__init__(host or DEFAULT_HOST)

        self.host = os.path.abspath(self.host)
        self.timeout = timeout

        os.makedirs(os.path.dirname(self.host), exist_ok=True)

    def __repr__(self) -> str:
        return f"{type(self).__qualname__}(host={self.host}, timeout={self.timeout})"

    @property
    def is_connected(self):
        """Return true, always."""
        return True

    def initiate_connection(self):
        """Do nothing"""

    def close_connection(self):
        """Do nothing"""

    def ensure_index(self, collection_name, keys, unique=False):
        """Create given indexes if they do not already exist in database."""
        with self.locked_database() as database:
            database.ensure_index(collection_name, keys, unique=unique)

    def index_information(self, collection_name):
        """Return dict of names and sorting order of indexes"""
        with self.locked_database(write=False) as database:
            return database.index_information(collection_name)

    def drop_index(self, collection_name, name):
        """Remove index from the database"""
        with self.locked_database() as database:
            database.drop_index(collection_name, name)

    def write(self, collection_name, data, query=None, increment=None):
        """Write new information to a collection. Perform insert or update.

        .. seealso:: :meth:`hypersearch.core.io.database.Database.write`

        """
        with self.locked_database() as database:
            return database.write(collection_name, data, query=query, increment=increment)

    def read(self, collection_name, query=None, selection=None):
        """Read a collection and return a value according to the query.

        .. seealso:: :meth:`hypersearch.core.io.database.Database.read`

        """
        with self.locked_database(write=False) as database:
            return database.read(collection_name, query=query, selection=selection)

    def read_and_write(self, collection_name, query, data, selection=None, increment=None):
        """Atomically update the first document matching the query and return it.

        .. seealso:: :meth:`hypersearch.core.io.database.Database.read_and_write`

        """
        with self.locked_database() as database:
            return database.read_and_write(
                collection_name,
                query=query,
                data=data,
                selection=selection,
                increment=increment,
            )

    def count(self, collection_name, query=None):
        """Count the number of documents in a collection which match the `query`."""
        with self.locked_database(write=False) as database:
            return database.count(collection_name, query=query)

    def remove(self, collection_name, query):
        """Delete from a collection document[s] which match the `query`."""
        with self.locked_database() as database:
            return database.remove(collection_name, query=query)

    def _get_database(self):
        """Read fresh DB state from pickled file"""
        if not os.path.exists(self.host) or os.path.getsize(self.host) == 0:
            return EphemeralDB()

        with open(self.host, "rb") as f:
            return pickle.load(f)

    def _dump_database(self, database):
        """Write pickled DB on disk, replacing the file atomically"""
        tmp_file = self.host + ".tmp"

        with open(tmp_file, "wb") as f:
            pickle.dump(database, f)

        os.replace(tmp_file, self.host)

    @contextmanager
    def locked_database(self, write=True):
        """Lock database file during wrapped operation call."""
        lock = _create_lock(self.host + ".lock")

        try:
            with lock.acquire(timeout=self.timeout):
                database = self._get_database()

                yield database

                if write:
                    self._dump_database(database)
        except Timeout as e:
            raise DatabaseTimeout(TIMEOUT_ERROR_MESSAGE.format(self.timeout)) from e

    @classmethod
    def get_defaults(cls):
        """Get database arguments needed to create a database instance."""
        return {"host": DEFAULT_HOST}


LOCAL_FILE_SYSTEMS = ["ext2", "ext3", "ext4", "ntfs", "xfs", "btrfs", "apfs", "tmpfs"]


def _fs_support_globalflock(file_system):
    if file_system.fstype == "lustre":
        return ("flock" in file_system.opts) and ("localflock" not in file_system.opts)

    if file_system.fstype == "beegfs":
        return "tuneUseGlobalFileLocks" in file_system.opts

    if file_system.fstype == "gpfs":
        return True

    if file_system.fstype == "nfs":
        return False

    return file_system.fstype in LOCAL_FILE_SYSTEMS


def _find_mount_point(path):
    """Finds the mount point used to access `path`."""
    path = os.path.abspath(path)
    while not os.path.ismount(path):
        path = os.path.dirname(path)

    return path


def _get_fs(path):
    """Gets info about the filesystem on which `path` lives."""
    mount = _find_mount_point(path)

    for file_system in psutil.disk_partitions(True):
        if file_system.mountpoint == mount:
            return file_system

    return None


def _create_lock(path):
    """Create a flock based lock if the file system supports it, a soft lock otherwise"""
    file_system = _get_fs(path)
    if file_system is not None and _fs_support_globalflock(file_system):
        log.debug("Using flock on %s filesystem.", file_system.fstype)
        return FileLock(path)

    log.debug("Cannot use flock. Falling back to SoftFileLock.")
    return SoftFileLock(path)
