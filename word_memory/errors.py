from __future__ import annotations


class WordMemoryError(Exception):
    status_code = 500
    retryable = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InputError(WordMemoryError, ValueError):
    """Bad input from the user: no file, empty payload, unknown media type."""

    status_code = 400


class UnsupportedMediaType(InputError):
    pass


class DocumentNotSupported(UnsupportedMediaType):
    """Declared document types that have no extraction path yet."""

    status_code = 501


class UpstreamError(WordMemoryError, RuntimeError):
    """The analysis model failed or answered with something unusable. Safe to resubmit."""

    status_code = 500
    retryable = True


class UpstreamAnalysisFailure(UpstreamError):
    pass


class MalformedResponse(UpstreamError):
    pass


class QuizProtocolError(WordMemoryError, RuntimeError):
    """A quiz session was driven out of order, e.g. answering with no question outstanding."""

    status_code = 409
