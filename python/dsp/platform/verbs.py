"""
HTTP verb handling: normalization of inbound verbs into canonical actions via a service's verb
alias table.

Some services only implement a subset of the standard verbs (e.g. a push service can create
messages but has no notion of replacing one); a verb alias table lets such a service accept all
the standard verbs by mapping the ones it does not implement onto ones it does.  Aliasing is
applied before any other processing of the request.
"""
from enum import Enum
from collections.abc import Mapping
from types import MappingProxyType
from typing import Optional

from .exceptions import BadRequest

__all__ = [ "Action", "GET", "POST", "PUT", "PATCH", "MERGE", "DELETE", "HEAD", "OPTIONS",
            "DEFAULT_DB_ALIASES", "DEFAULT_PUSH_ALIASES", "normalize_verb", "resolve_aliases",
            "to_action" ]

GET = "GET"
POST = "POST"
PUT = "PUT"
PATCH = "PATCH"
MERGE = "MERGE"
DELETE = "DELETE"
HEAD = "HEAD"
OPTIONS = "OPTIONS"

class Action(Enum):
    """
    the canonical actions that a request can be dispatched to
    """
    GET = GET
    POST = POST
    PUT = PUT
    PATCH = PATCH
    DELETE = DELETE

DEFAULT_DB_ALIASES = MappingProxyType({ MERGE: PATCH })
DEFAULT_PUSH_ALIASES = MappingProxyType({ PUT: POST, MERGE: PATCH })

def _clean(verb: str) -> str:
    return (verb or '').strip().upper()

def resolve_aliases(configured: Optional[Mapping], default: Mapping=None) -> Mapping:
    """
    return the verb alias table a service should use.  The configured table is always used when
    one is given, even if it is empty; the default is only used when no table was configured.
    The returned table is read-only with verbs upper-cased.
    """
    table = configured if configured is not None else (default or {})
    return MappingProxyType(dict((_clean(k), _clean(v)) for k, v in table.items()))

def normalize_verb(verb: str, aliases: Mapping=None) -> str:
    """
    convert an inbound HTTP verb into the canonical verb it should be handled as.  Verbs that
    are not recognized are returned (upper-cased) unchanged.
    :param str     verb:  the verb as requested
    :param Mapping aliases:  the service's verb alias table
    """
    verb = _clean(verb)
    if aliases:
        return aliases.get(verb, verb)
    return verb

def to_action(verb: str) -> Action:
    """
    return the :py:class:`Action` for a canonical verb
    :raises BadRequest:  if the verb does not correspond to a supported action
    """
    try:
        return Action(_clean(verb))
    except ValueError:
        raise BadRequest("The action '%s' is not supported." % verb)
