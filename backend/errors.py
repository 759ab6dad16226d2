"""Error types shared by the clients, the gateway and the HTTP layer.

Each error carries a short human-readable message and the HTTP status the
API reports it with. None of them are fatal to the process.
"""


class DiaryError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthError(DiaryError):
    """No credential, or a credential that maps to no user."""

    status_code = 401


class ValidationError(DiaryError):
    """Input rejected locally, before any network or store call."""

    status_code = 400


class UpstreamError(DiaryError):
    """A third-party service answered with a failure."""

    status_code = 502

    def __init__(self, message: str, body: str = ""):
        super().__init__(message)
        self.body = body


class TranscriptionError(UpstreamError):
    pass


class ExtractionError(UpstreamError):
    pass


class StoreError(DiaryError):
    pass


class RecordNotFound(StoreError):
    status_code = 404
