"""
Support for JSON-formatted error content for HTTP responses.

Clients should use the HTTP status of a response to determine if a request resulted in an error;
however, DSP services also return a JSON body that describes what went wrong in more detail and in
a machine-readable form.  The body is an object with a single ``error`` property whose value
contains:

``kind``
     a short label for the type of error (e.g. "BadRequest", "NotFound")

``code``
     a numeric error code.  This is usually the HTTP status, but a service may report a more
     specific application code.

``message``
     a message explaining what went wrong.

``context``
     (optional) additional data describing the error, such as the per-record errors from a batch
     request.

The function :py:func:`is_error_msg` can be used by clients to recognize a response message that
conforms to the above model.
"""
import json
from logging import Logger
from collections import OrderedDict
from typing import Mapping, Callable

from .base import Handler

__all__ = [ "is_error_msg", "make_message", "FatalError", "ErrorHandling", "HandlerWithJSON" ]

ERROR_WRAPPER = "error"

_status_kinds = {
    400: "BadRequest",
    401: "Unauthorized",
    403: "Forbidden",
    404: "NotFound",
    405: "MethodNotAllowed",
    406: "NotAcceptable",
    500: "InternalError",
    503: "ServiceUnavailable"
}

def kind_for_status(status: int) -> str:
    """
    return the default error kind label for an HTTP status
    """
    kind = _status_kinds.get(status)
    if not kind:
        kind = (status >= 500 and "InternalError") or "BadRequest"
    return kind

def is_error_msg(msgobj: Mapping):
    """
    return True if the given dictionary represents a JSON-formatted error message
    """
    if not isinstance(msgobj, Mapping) or not isinstance(msgobj.get(ERROR_WRAPPER), Mapping):
        return False
    return "code" in msgobj[ERROR_WRAPPER] and "message" in msgobj[ERROR_WRAPPER]

def make_message(code: int, kind: str, message: str, context: Mapping=None):
    """
    create a compliant error message object from the inputs
    """
    err = OrderedDict([
        ("kind", kind),
        ("code", code),
        ("message", message)
    ])
    if context is not None:
        err["context"] = context
    return { ERROR_WRAPPER: err }

class FatalError(Exception):
    """
    an exception that can be used to send data to be returned to the web client as an error
    JSON message object up the call stack.
    """
    def __init__(self, status: int, reason: str, explain=None, context=None, kind=None, code=None):
        """
        :param int  status:  the HTTP status to respond with
        :param str  reason:  the reason to return as the HTTP status message
        :param str explain:  the more extensive explanation as to the reason for the error;
                             this is returned only in the body of the message
        :param dict context:  additional data to include in the output message object.
        :param str    kind:  the error kind label; if not given, it is chosen based on the status
        :param int    code:  the error code to report in the body (default: the status)
        """
        if not explain:
            explain = reason or ''
        super(FatalError, self).__init__(explain)
        self.status = status
        self.reason = reason
        self.explain = explain
        self.data = context
        self.kind = kind or kind_for_status(status)
        self.code = code if code is not None else status

    def to_dict(self):
        return make_message(self.code, self.kind, self.explain, self.data)

    def to_json(self, indent=None):
        return json.dumps(self.to_dict(), indent=indent)

class ErrorHandling:
    """
    a Handler mixin class that provides extra methods for returning error message objects to
    web clients.
    """

    def __init__(self):
        pass

    def send_error_obj(self, status: int, reason: str, explain=None, context=None, ashead=False,
                       contenttype="application/json"):
        """
        send a JSON-formatted error message back to the web client
        :param int  status:  the HTTP status to respond with
        :param str  reason:  the reason to return as the HTTP status message
        :param str explain:  the more extensive explanation as to the reason for the error;
                             this is returned only in the body of the message
        :param dict context:  additional data to include in the output message object.
        """
        return self.send_fatal_error(FatalError(status, reason, explain, context), ashead,
                                     contenttype)

    def send_fatal_error(self, fatalex: FatalError, ashead=False, contenttype="application/json"):
        """
        report a FatalError as a JSON-formatted error message back to the web client
        :param FatalError fatalex:  the error data as a FatalError exception
        :param bool        ashead:  True if the HTTP request was a HEAD request
        :param str    contenttype:  The JSON mime-type to affix to the response as the message
                                    content type.  Default: "application/json"
        """
        return self.send_error(fatalex.status, fatalex.reason, fatalex.to_json(indent=2),
                               contenttype, ashead)

class HandlerWithJSON(Handler, ErrorHandling):
    """
    a Handler that provides extra methods for returning to web clients error responses formatted in
    JSON.
    """

    def __init__(self, path: str, wsgienv: dict, start_resp: Callable, who=None,
                 config: dict={}, log: Logger=None, app=None):
        Handler.__init__(self, path, wsgienv, start_resp, who, config, log, app)
