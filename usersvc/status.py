"""Machine-readable status codes returned with every service response."""

from enum import IntEnum


class Code(IntEnum):
    """Status codes, numbered as in the gRPC code set."""

    OK = 0
    CANCELLED = 1
    UNKNOWN = 2
    INVALID_ARGUMENT = 3
    DEADLINE_EXCEEDED = 4
    NOT_FOUND = 5
    ALREADY_EXISTS = 6
    PERMISSION_DENIED = 7
    RESOURCE_EXHAUSTED = 8
    FAILED_PRECONDITION = 9
    ABORTED = 10
    OUT_OF_RANGE = 11
    UNIMPLEMENTED = 12
    INTERNAL = 13
    UNAVAILABLE = 14
    DATA_LOSS = 15
    UNAUTHENTICATED = 16


HTTP_200_OK = 200
HTTP_201_CREATED = 201
HTTP_400_BAD_REQUEST = 400
HTTP_401_UNAUTHORIZED = 401
HTTP_403_FORBIDDEN = 403
HTTP_404_NOT_FOUND = 404
HTTP_409_CONFLICT = 409
HTTP_410_GONE = 410
HTTP_500_INTERNAL_SERVER_ERROR = 500
HTTP_501_NOT_IMPLEMENTED = 501
HTTP_503_SERVICE_UNAVAILABLE = 503

_HTTP_STATUS = {
    Code.OK: HTTP_200_OK,
    Code.INVALID_ARGUMENT: HTTP_400_BAD_REQUEST,
    Code.OUT_OF_RANGE: HTTP_400_BAD_REQUEST,
    Code.FAILED_PRECONDITION: HTTP_400_BAD_REQUEST,
    Code.UNAUTHENTICATED: HTTP_401_UNAUTHORIZED,
    Code.PERMISSION_DENIED: HTTP_403_FORBIDDEN,
    Code.NOT_FOUND: HTTP_404_NOT_FOUND,
    Code.ALREADY_EXISTS: HTTP_409_CONFLICT,
    Code.ABORTED: HTTP_409_CONFLICT,
    Code.DEADLINE_EXCEEDED: HTTP_410_GONE,
    Code.UNIMPLEMENTED: HTTP_501_NOT_IMPLEMENTED,
    Code.UNAVAILABLE: HTTP_503_SERVICE_UNAVAILABLE,
}


def http_status(code: Code) -> int:
    """Get the HTTP status that corresponds to a service status code."""
    return _HTTP_STATUS.get(code, HTTP_500_INTERNAL_SERVER_ERROR)
