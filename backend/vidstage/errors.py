"""Failure taxonomy shared by handlers, gates and caller operations."""


class PipelineError(Exception):
    """Base class for all pipeline failures."""


class TransientExternalFailure(PipelineError):
    """A collaborator call failed; retried according to the stage policy."""


class NotFoundFailure(PipelineError):
    """A referenced ledger row or asset does not exist. Never retried."""


class ValidationFailure(PipelineError):
    """Input is not processable (e.g. no transcript). Skipped, not an error."""


class InvalidStateError(PipelineError):
    """A caller operation was requested for a video in the wrong state."""
