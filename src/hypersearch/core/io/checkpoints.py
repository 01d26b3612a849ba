"""
Model checkpoints
=================

Pickled snapshots of best models, keyed by a checkpoint identifier unique
across jobs and workers.

"""
import logging
import os
import pickle

log = logging.getLogger(__name__)


class CheckpointStore:
    """Save and delete model checkpoints in a directory

    Parameters
    ----------
    checkpoint_dir: str
        Directory of the checkpoint files.

    """

    def __init__(self, checkpoint_dir):
        self.checkpoint_dir = checkpoint_dir

    def path(self, checkpoint_id):
        """Return the path of a checkpoint file"""
        return os.path.join(self.checkpoint_dir, f"{checkpoint_id}.pkl")

    def save(self, checkpoint_id, model):
        """Pickle the model, replacing any previous checkpoint with the same id"""
        os.makedirs(self.checkpoint_dir, exist_ok=True)
        path = self.path(checkpoint_id)
        tmp_path = path + ".tmp"

        with open(tmp_path, "wb") as f:
            pickle.dump(model, f)

        os.replace(tmp_path, path)
        log.debug("Saved checkpoint %s", path)

    def load(self, checkpoint_id):
        """Return the model of a checkpoint"""
        with open(self.path(checkpoint_id), "rb") as f:
            return pickle.load(f)

    def exists(self, checkpoint_id):
        """Return True if the checkpoint file exists"""
        return os.path.exists(self.path(checkpoint_id))

    def delete(self, checkpoint_id):
        """Delete a checkpoint

        Raises
        ------
        FileNotFoundError
            If the checkpoint does not exist.

        """
        os.remove(self.path(checkpoint_id))
        log.debug("Deleted checkpoint %s", checkpoint_id)
