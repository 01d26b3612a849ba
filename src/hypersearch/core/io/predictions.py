"""
Prediction outputs
==================

Durable storage of the predictions of models, one CSV file per model.

Only the best model of a job keeps its file. Deleting outputs tolerates files
already deleted by another worker.

"""
import logging
import os

import pandas

log = logging.getLogger(__name__)


class PredictionWriter:
    """Append predictions of the models of a job to CSV files

    Parameters
    ----------
    output_dir: str
        Root directory of the predictions. Files are written to
        ``{output_dir}/job_{job_id}/model_{model_id}.csv``.
    job_id: int
        Job of the models.

    """

    def __init__(self, output_dir, job_id):
        self.output_dir = output_dir
        self.job_id = job_id

    def path(self, model_id):
        """Return the path of the prediction file of a model"""
        return os.path.join(self.output_dir, f"job_{self.job_id}", f"model_{model_id}.csv")

    def write_records(self, model_id, rows, progress_callback=None, batch_size=1000):
        """Append rows of predictions to the file of a model

        Parameters
        ----------
        model_id: int
            Model the predictions belong to.
        rows: list of dict
            One flat dictionary per prediction.
        progress_callback: callable, optional
            Called after each batch of rows, to keep the model heartbeat alive
            during long writes.

        """
        if not rows:
            return

        path = self.path(model_id)
        os.makedirs(os.path.dirname(path), exist_ok=True)

        for start in range(0, len(rows), batch_size):
            frame = pandas.DataFrame(rows[start : start + batch_size])
            frame.to_csv(
                path, mode="a", header=not os.path.exists(path), index=False
            )
            if progress_callback is not None:
                progress_callback()

        log.debug("Wrote %d predictions of model %s to %s", len(rows), model_id, path)

    def read_records(self, model_id):
        """Return the predictions written for a model, as a list of dicts"""
        path = self.path(model_id)
        if not os.path.exists(path):
            return []

        return pandas.read_csv(path).to_dict("records")

    def delete(self, model_id):
        """Delete the prediction file of a model, return False if it did not exist"""
        try:
            os.remove(self.path(model_id))
        except FileNotFoundError:
            log.debug("No predictions to delete for model %s", model_id)
            return False

        return True
