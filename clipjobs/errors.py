"""Exceptions raised by the clip job orchestrator."""


class ClipJobError(Exception):
    """Base class for clip job errors."""


class ClipJobValidationError(ClipJobError):
    """A job request was rejected before anything was persisted."""


class InvalidJobType(ClipJobValidationError):
    def __init__(self, job_type: str):
        self.job_type = job_type
        super().__init__(f"Cannot create {job_type.lower()} job from clips")


class TranscoderError(ClipJobError):
    """The transcoding service could not be reached or refused a request."""


class ClipRequestError(ClipJobError):
    """A gateway could not be asked to upload clips."""
