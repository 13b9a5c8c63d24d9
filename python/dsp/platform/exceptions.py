"""
The exceptions raised by platform services to report a failure back to the client.

Each :py:class:`RestException` carries the HTTP status it should be reported with, a short
``kind`` label (e.g. "BadRequest"), a human-readable message, and optionally an application
error code and a ``context`` object with extra machine-readable detail.  The web front end 
renders these as JSON error responses; anything else that escapes a service is treated as an
internal error.
"""
from collections.abc import Mapping

from dsp.base import DSPException

__all__ = [ "RestException", "BadRequest", "Unauthorized", "Forbidden", "NotFound",
            "InternalError" ]

class RestException(DSPException):
    """
    a base exception for failures that should be reported to a REST client
    """
    status = 500
    kind = "RestException"

    def __init__(self, message: str=None, code: int=None, context: Mapping=None, cause=None):
        """
        :param str  message:  a description of the problem suitable for the client
        :param int     code:  an application-specific error code; defaults to the HTTP status
        :param Mapping context:  additional data describing the error (e.g. a list of per-record
                              errors from a batch operation)
        :param Exception cause:  an underlying exception that led to this one
        """
        super(RestException, self).__init__(message, cause)
        self.code = code if code is not None else self.status
        self.context = context

    def to_dict(self):
        """
        return a dictionary description of this error suitable for encoding into a response
        """
        out = {
            "kind": self.kind,
            "code": self.code,
            "message": self.message
        }
        if self.context is not None:
            out["context"] = self.context
        return out

class BadRequest(RestException):
    """
    the request was malformed, was missing required input, or requested an operation not
    supported on the addressed resource
    """
    status = 400
    kind = "BadRequest"

class Unauthorized(RestException):
    """
    the request requires an authenticated user, or the presented credentials were not valid
    """
    status = 401
    kind = "Unauthorized"

class Forbidden(RestException):
    """
    the requesting user is not permitted to perform the requested action
    """
    status = 403
    kind = "Forbidden"

class NotFound(RestException):
    """
    the addressed resource or record does not exist
    """
    status = 404
    kind = "NotFound"

class InternalError(RestException):
    """
    an unexpected failure occurred, typically within a backing store
    """
    status = 500
    kind = "InternalError"
