"""
Error taxonomy for the design pipeline.

Only FatalPipelineError (and anything else unexpected) ends a job as
failed. The rest are recorded against a single variation or video task.
"""


class PipelineError(Exception):
    """Base class for pipeline errors."""


class TransportError(PipelineError):
    """An external service could not be reached or answered with an HTTP error."""


class ServiceContentError(PipelineError):
    """The service answered but produced no usable output."""


class VideoTaskFailed(PipelineError):
    """The video service reported the task as failed."""


class VideoTaskTimeout(VideoTaskFailed):
    """The poll loop ran out of attempts before the task finished."""


class FatalPipelineError(PipelineError):
    """An error that aborts the whole job."""


class JobStateError(FatalPipelineError):
    """An illegal job state transition was attempted."""
