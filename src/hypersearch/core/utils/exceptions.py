"""
Custom exceptions for hypersearch
=================================

"""


STREAM_READING_ERROR = "streamReading"

NO_JOB_FOUND = """\
No job found with id {job_id}."""

INVALID_ARGUMENTS = """\
Exactly one of --jobID or --params must be given."""


class JobFailError(Exception):
    """Raised when an error is fatal to the whole job and not only to one model.

    The job is canceled and the message is recorded in it, unless another
    worker already completed it successfully.

    Parameters
    ----------
    error_code: str
        Short identifier of the kind of failure, ex: ``streamReading``.
    message: str
        Explanation recorded in the job.

    """

    def __init__(self, error_code, message):
        super().__init__(f"{error_code}: {message}")
        self.error_code = error_code
        self.message = message


class InvalidRecordError(Exception):
    """Raised when the input stream returns a present but empty record."""


class NoJobError(Exception):
    """Raised when the requested job does not exist in the store."""

    def __init__(self, job_id):
        super().__init__(NO_JOB_FOUND.format(job_id=job_id))
        self.job_id = job_id


class InvalidParamsError(Exception):
    """Raised when job or model parameters are invalid."""


class InvalidArgumentsError(InvalidParamsError):
    """Raised when the worker command line arguments are inconsistent."""

    def __init__(self, message=INVALID_ARGUMENTS):
        super().__init__(message)
