from __future__ import annotations


class NiftyAIError(Exception):
    """Base class for errors surfaced to the scan banner."""


class ParseError(NiftyAIError):
    """The completion text did not carry a usable market analysis payload.

    ``reason`` tells the two failure modes apart: ``"no_structured_data"`` when
    the model ignored the output format entirely, ``"malformed"`` when it
    emitted an object that does not decode.
    """

    NO_STRUCTURED_DATA = "no_structured_data"
    MALFORMED = "malformed"

    def __init__(self, message: str, reason: str = MALFORMED) -> None:
        super().__init__(message)
        self.reason = reason


class TransportError(NiftyAIError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ScanInProgressError(NiftyAIError):
    pass
