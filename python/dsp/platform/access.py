"""
The model of a requesting user's identity and the role-based check of whether that user may
perform an action on a service (or a component of it).

A user is granted access to services through a *role*.  A role lists service access entries, each
of the form:

.. code-block::

   { "service": "db", "component": "widgets", "access": "Read and Write" }

where ``component`` may be empty or "*" to cover all of the service's resources, and ``service``
may be "*" to cover all services.  A system administrator bypasses these checks.
"""
from collections.abc import Mapping
from typing import List, Tuple, Sequence, Union

from . import verbs as vb

__all__ = [ "Identity", "READ_ONLY", "WRITE_ONLY", "READ_WRITE", "FULL_ACCESS", "ANONYMOUS",
            "convert_access_to_verbs", "is_allowed", "get_service_access",
            "get_service_permissions", "evaluate_service_access" ]

ANONYMOUS = "anonymous"

READ_ONLY = "Read Only"
WRITE_ONLY = "Write Only"
READ_WRITE = "Read and Write"
FULL_ACCESS = "Full Access"

_access_verbs = {
    READ_ONLY:   (vb.GET,),
    WRITE_ONLY:  (vb.POST,),
    READ_WRITE:  (vb.GET, vb.POST, vb.PUT, vb.PATCH),
    FULL_ACCESS: (vb.GET, vb.POST, vb.PUT, vb.PATCH, vb.DELETE)
}

# synonyms for actions as they may be passed in by callers
_action_synonyms = {
    vb.GET: vb.GET,       "READ": vb.GET,
    vb.POST: vb.POST,     "CREATE": vb.POST,
    vb.PUT: vb.PUT,       "UPDATE": vb.PUT,
    vb.PATCH: vb.PATCH,   vb.MERGE: vb.PATCH,
    vb.DELETE: vb.DELETE
}

class Identity(object):
    """
    a description of the user making a request: who they are and the role that governs which
    services they may access.
    """
    INVALID = "invalid"

    def __init__(self, user_id: str=None, is_sys_admin: bool=False, role: Mapping=None,
                 email: str=None, display_name: str=None, invalid_reason: str=None, **props):
        """
        :param str user_id:  the user's identifier; if None, the user is anonymous
        :param bool is_sys_admin:  True if the user is a system administrator
        :param Mapping role:  a description of the user's role; its ``services`` property lists
                              the service access entries granted to the user
        :param str   email:  the user's email address
        :param str invalid_reason:  if set, the credentials presented by the user could not be
                              validated for this reason, and the user is treated as anonymous
        """
        self._id = user_id or ANONYMOUS
        self._admin = bool(is_sys_admin) and not invalid_reason and bool(user_id)
        self._role = dict(role) if role else None
        self.email = email
        self.display_name = display_name
        self.invalid_reason = invalid_reason
        self._props = dict(props)

    @classmethod
    def anonymous(cls, invalid_reason: str=None):
        return cls(None, invalid_reason=invalid_reason)

    @property
    def user_id(self) -> str:
        return self._id

    @property
    def is_anonymous(self) -> bool:
        return self._id == ANONYMOUS

    @property
    def is_valid(self) -> bool:
        return not self.invalid_reason

    @property
    def is_sys_admin(self) -> bool:
        return self._admin

    @property
    def role(self) -> Mapping:
        return self._role

    @property
    def services(self) -> List[Mapping]:
        """
        the list of service access entries granted by the user's role
        """
        if not self._role:
            return []
        return [s for s in (self._role.get('services') or []) if isinstance(s, Mapping)]

    def get_prop(self, name, default=None):
        """
        return a named property of the user that was provided at construction time
        """
        return self._props.get(name, default)

    def to_claims(self) -> dict:
        """
        return the data describing this identity as a JWT claim set
        """
        out = { "sub": self._id, "is_sys_admin": self._admin }
        if self._role:
            out['role'] = self._role
        if self.email:
            out['email'] = self.email
        if self.display_name:
            out['name'] = self.display_name
        return out

    def __str__(self):
        return "Identity(%s%s)" % (self._id, self._admin and ", admin" or "")

def convert_access_to_verbs(access: str) -> List[str]:
    """
    return the verbs granted by a named level of access (e.g. "Read Only").  An unrecognized
    level grants nothing.
    """
    return list(_access_verbs.get(access, ()))

def is_allowed(action: str, allowed_verbs: Sequence[str]) -> bool:
    """
    return True if the given action is among the allowed verbs.  Besides verbs, the action can
    be given as one of the synonyms "read", "create", or "update"; MERGE is treated as PATCH.
    """
    action = _action_synonyms.get((action or '').upper())
    return bool(action) and action in allowed_verbs

def _matches(name: str, pattern: str) -> bool:
    return (name or '').lower() == (pattern or '').lower()

def _is_wildcard(value: str) -> bool:
    return not value or value == '*'

def get_service_access(who: Identity, service: str, component: str=None) -> Union[bool, Mapping]:
    """
    return the service access entry from the user's role that applies to the given service
    and component.  True is returned if the user is a system administrator; False, if the role
    has no applicable entry.  An entry specific to the component takes precedence over a
    service-wide entry, which in turn takes precedence over an all-services entry.
    """
    if who is None or who.is_sys_admin:
        return True

    svcfound = None
    allfound = None
    for entry in who.services:
        esvc = entry.get('service', '')
        ecomp = entry.get('component')
        if _matches(service, esvc):
            if component and _matches(component, ecomp):
                return entry
            if _is_wildcard(ecomp):
                svcfound = entry
        elif _is_wildcard(esvc):
            allfound = entry

    return svcfound or allfound or False

def get_service_permissions(who: Identity, service: str, component: str=None) -> List[str]:
    """
    return the verbs the user is allowed to use on the given service component
    """
    access = get_service_access(who, service, component)
    if access is True:
        return list(_access_verbs[FULL_ACCESS])
    if not access:
        return []
    return convert_access_to_verbs(access.get('access'))

def evaluate_service_access(who: Identity, action: str, service: str,
                            component: str=None) -> Tuple[bool, str]:
    """
    determine whether a user may perform an action on a service component.  This is the
    permission gate used by platform services before acting on a resource.

    :param Identity who:  the requesting user; None represents a trusted, in-process caller
    :param str   action:  the canonical verb (or action synonym) being requested
    :param str  service:  the ``api_name`` of the service
    :param str component: the resource within the service; may be None to ask about the
                          service as a whole
    :return:  a 2-tuple: a boolean that is True if access is allowed, and a message explaining
              why access was denied (None if allowed)
    """
    if who is None or who.is_sys_admin:
        return (True, None)

    if not who.role:
        return (False, "A valid user role or system administrator is required to access services.")

    svcallowed = allallowed = None
    for entry in who.services:
        esvc = entry.get('service', '')
        ecomp = entry.get('component')
        verbs = convert_access_to_verbs(entry.get('access', ''))

        if _matches(service, esvc):
            if component and _matches(component, ecomp):
                # a component-specific entry is decisive
                if is_allowed(action, verbs):
                    return (True, None)
                svcallowed = allallowed = False
                break
            if _is_wildcard(ecomp):
                svcallowed = is_allowed(action, verbs)
        elif _is_wildcard(esvc):
            allallowed = is_allowed(action, verbs)

    if svcallowed is not None:
        if svcallowed:
            return (True, None)
    elif allallowed:
        return (True, None)

    msg = "%s access to " % action
    if component:
        msg += "component '%s' of " % component
    msg += "service '%s' is not allowed by this user's role." % service
    return (False, msg)
