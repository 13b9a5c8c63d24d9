"""
The per-request context passed through the dispatch core and the utilities used to build it
from the raw request inputs.
"""
import time, random, hashlib
from collections import namedtuple
from collections.abc import Mapping
from copy import deepcopy
from types import MappingProxyType

from . import RECORD_WRAPPER
from .exceptions import BadRequest

__all__ = [ "RequestContext", "make_context", "parse_bool", "get_option", "wrap_records_payload",
            "create_record_id" ]

_true_values = ("true", "1", "yes", "on", "y", "t")
_false_values = ("false", "0", "no", "off", "n", "f", "")

def parse_bool(value, default: bool=False) -> bool:
    """
    interpret a request parameter value as a boolean.  Strings like "true", "1", "yes", and
    "on" (any case) are True; "false", "0", "no", "off", and the empty string are False.
    :param default:  the value to return if ``value`` is None
    :raises BadRequest:  if the value is a string that cannot be interpreted as a boolean
    """
    if value is None:
        return default
    if isinstance(value, str):
        v = value.strip().lower()
        if v in _true_values:
            return True
        if v in _false_values:
            return False
        raise BadRequest("Not a boolean value: " + value)
    return bool(value)

def get_option(name: str, payload: Mapping, query: Mapping, default=None):
    """
    return the value of a request option which may be given either as a query parameter or
    in the payload; the query parameter takes precedence.
    """
    if query and name in query:
        return query[name]
    if isinstance(payload, Mapping) and name in payload:
        return payload[name]
    return default

class RequestContext(namedtuple("_RequestContext", ["action", "verb", "path", "payload", "extras",
                                                    "single_record_amnesty", "who"])):
    """
    the fully normalized description of a single request.  It is built once at the start of
    dispatch and is not changed afterward: ``payload`` and ``extras`` are read-only views.

    ``action``
        the canonical :py:class:`~dsp.platform.verbs.Action`, or None if the verb is not one
    ``verb``
        the verb after alias resolution (as a string)
    ``path``
        the :py:class:`~dsp.platform.resource.ResourcePath` being addressed
    ``payload``
        the normalized request payload; lists of records appear under the record envelope key
    ``extras``
        the options gathered from the payload and query parameters
    ``single_record_amnesty``
        True if the client sent a single unwrapped record and expects a single record back
    ``who``
        the :py:class:`~dsp.platform.access.Identity` of the requester, or None for a trusted,
        in-process caller
    """
    __slots__ = ()

    @property
    def resource(self) -> str:
        return self.path.resource

    @property
    def resource_id(self) -> str:
        return self.path.resource_id

    @property
    def records(self) -> list:
        """
        the records given in the payload's record envelope (possibly empty)
        """
        recs = self.payload.get(RECORD_WRAPPER)
        if isinstance(recs, Mapping):
            return [recs]
        return list(recs or [])

def make_context(action, verb: str, path, payload: Mapping, extras: Mapping,
                 single_record_amnesty: bool=False, who=None) -> RequestContext:
    """
    create a RequestContext, freezing the payload and extras so that they are not changed
    during dispatch.  The inputs are copied.
    """
    return RequestContext(action, verb, path, MappingProxyType(deepcopy(dict(payload or {}))),
                          MappingProxyType(deepcopy(dict(extras or {}))),
                          bool(single_record_amnesty), who)

def wrap_records_payload(payload, has_resource_id: bool, wrap_single: bool):
    """
    normalize a posted payload so that any records it carries appear as a list under the
    record envelope key.

    :param payload:  the posted data: a mapping, a list of records, or None
    :param bool has_resource_id:  True if the request path addressed a specific record; a
                       posted mapping is then taken to be that one record
    :param bool wrap_single:  True if a mapping that lacks the record envelope should be taken
                       as a single record (as is done for create and update requests)
    :return:  a tuple of the normalized payload (a new dict) and a boolean indicating whether
              a single, unwrapped record was found
    """
    if payload is None:
        return {}, False
    if isinstance(payload, (list, tuple)):
        return { RECORD_WRAPPER: list(payload) }, False
    if not isinstance(payload, Mapping):
        raise BadRequest("Posted data must be a JSON object or array")

    payload = dict(payload)
    if not payload:
        return payload, False
    if RECORD_WRAPPER in payload:
        if isinstance(payload[RECORD_WRAPPER], Mapping):
            payload[RECORD_WRAPPER] = [payload[RECORD_WRAPPER]]
        return payload, False
    if has_resource_id:
        return { RECORD_WRAPPER: [payload] }, False
    if wrap_single:
        return { RECORD_WRAPPER: [payload] }, True
    return payload, False

def create_record_id(table: str) -> str:
    """
    generate a pseudo-random identifier for a new record in the given table.  The result is a
    32-character hexadecimal hash followed by two decimal digits.

    This is only a fallback for stores that require an id when the client did not provide one:
    it is not cryptographically secure, and uniqueness is likely but not guaranteed.
    """
    t = max(int(time.time()), 1)
    r1 = random.randint(1, t)
    r2 = random.randint(1, 2000000000)
    hsh = hashlib.md5(("%d%s%d%d" % (r1, table, t, r2)).encode('utf-8')).hexdigest().lower()
    return hsh + str(random.randint(10, 99))
