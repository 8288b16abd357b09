"""Errors raised while triggering and running the call pipeline.

Fatal errors end the run with the call marked ``failed``; non-fatal errors
are logged and the run continues with core fields only.
"""


class PipelineError(Exception):
    """Base class for call pipeline errors."""

    fatal = True

    def __init__(self, message: str, call_id: int | None = None, cause: Exception | None = None):
        self.call_id = call_id
        self.cause = cause
        super().__init__(message)


class CallNotFound(PipelineError):
    def __init__(self, call_id: int):
        super().__init__(f"Call {call_id} not found", call_id)


class CallBusy(PipelineError):
    """Raised when a trigger arrives while a run is already in flight."""

    def __init__(self, call_id: int, status: str):
        self.status = status
        super().__init__(
            f"Call {call_id} is already being processed (status '{status}')", call_id
        )


class StaleRun(PipelineError):
    """Raised inside a run whose attempt has been superseded by a newer trigger."""

    def __init__(self, call_id: int, attempt: int):
        self.attempt = attempt
        super().__init__(f"Run attempt {attempt} of call {call_id} is no longer current", call_id)


class MissingAudio(PipelineError):
    MESSAGE = "No audio URL found"

    def __init__(self, call_id: int):
        super().__init__(self.MESSAGE, call_id)


class TranscriptionFailure(PipelineError):
    pass


class ExtractionFailure(PipelineError):
    pass


class PersistenceFailure(PipelineError):
    pass


class PipelineTimeout(PipelineError):
    def __init__(self, call_id: int | None, seconds: float, stage: str | None = None):
        self.seconds = seconds
        self.stage = stage
        super().__init__(f"Processing timed out after {int(seconds)} seconds", call_id)


class TemplateError(PipelineError):
    """Template problems never fail the run."""

    fatal = False


class TemplateNotFound(TemplateError):
    def __init__(self, call_id: int, template_id: int):
        self.template_id = template_id
        super().__init__(f"Template {template_id} not found", call_id)


class TemplateUnauthorized(TemplateError):
    def __init__(self, call_id: int, template_id: int, user_id: int):
        self.template_id = template_id
        self.user_id = user_id
        super().__init__(
            f"User {user_id} does not have access to template {template_id}", call_id
        )


class TemplateEmpty(TemplateError):
    def __init__(self, call_id: int, template_id: int):
        self.template_id = template_id
        super().__init__(f"Template {template_id} has no fields", call_id)


class TemplateExtractionFailure(TemplateError):
    pass
