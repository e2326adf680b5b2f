"""Error types surfaced by the capture and synthesis services."""


class CloneError(Exception):
    """Base error. Rendered to clients as ``{"error": message}``."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class InvalidRequestError(CloneError):
    """Malformed or missing request fields. Raised before any external call."""

    status_code = 400


class MissingCredentialError(InvalidRequestError):
    """No per-request API key and no configured default."""

    def __init__(self, message: str = "Missing OpenAI API key"):
        super().__init__(message)


class CaptureError(CloneError):
    """Page capture failed."""

    pass


class NavigationError(CaptureError):
    """Both navigation strategies failed."""

    pass


class EmptyContentError(CaptureError):
    """The rendered page produced no HTML."""

    def __init__(self, message: str = "Page content is empty or failed to load."):
        super().__init__(message)


class SynthesisError(CloneError):
    """Clone generation failed."""

    pass


class ProviderError(SynthesisError):
    """The model provider rejected or failed the request."""

    pass
