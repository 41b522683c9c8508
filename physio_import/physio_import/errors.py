from __future__ import annotations


class PipelineError(Exception):
    """Base class for errors surfaced to the operator as a message."""


class FileValidationError(PipelineError):
    pass


class AnalysisError(PipelineError):
    pass


class ImportTransportError(PipelineError):
    """The persistence service could not be reached at all."""


class ImportRejectedError(PipelineError):
    """The persistence service answered with a non-success HTTP status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidDecisionError(PipelineError, ValueError):
    pass


class WizardBusyError(PipelineError):
    pass


class SandboxPathError(ValueError):
    pass
