"""Foundation layer: errors, configuration, transport value types and test doubles."""

from .errors import ErrorKind, KaitenError, KaitenException, RequestCancelled, classify
from .http import Response, Transport, TransportFailure
from .types import JsonDict, JsonValue

__all__ = [
    "ErrorKind", "KaitenError", "KaitenException", "RequestCancelled", "classify",
    "Response", "Transport", "TransportFailure",
    "JsonDict", "JsonValue",
]
