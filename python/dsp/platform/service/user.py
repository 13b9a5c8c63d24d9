"""
A platform service that lets users manage their own sessions, profiles, and custom settings.

The service's resources are themselves REST dispatchers:

``session``
    ``POST`` logs a user in (given ``email`` and ``password``) and returns the session data,
    including a signed ``session_token`` (a JWT) and a short-lived ``ticket``; ``GET`` returns
    the session data for the requesting user (or for the user identified by a ``ticket``
    parameter); ``DELETE`` logs out.
``profile``
    ``GET`` returns the user's profile attributes; ``POST`` (or ``PUT``, ``PATCH``, ``MERGE``)
    updates them.
``custom``
    ``GET custom[/name]`` returns the user's custom settings (or just the named one);
    ``POST`` (or ``PUT``, ``PATCH``, ``MERGE``) merges new settings in; ``DELETE custom/name``
    removes a setting.

User accounts are kept as records in a table (``user`` by default) of a
:py:class:`~dsp.platform.store.base.RecordStore`.  Passwords are stored as Argon2id hashes.
"""
import time
from datetime import datetime, timezone
from logging import Logger
from collections.abc import Mapping
from typing import List

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from dsp.base.config import ConfigurationException
from ..exceptions import BadRequest, Unauthorized, Forbidden, NotFound
from ..verbs import PUT, PATCH, MERGE, POST
from ..resource import resolve_path
from ..request import RequestContext, get_option
from ..access import Identity
from ..events import EventHook
from ..store.base import RecordStore
from .base import RestService

__all__ = [ "UserService", "UserDirectory", "SessionManager", "SessionResource",
            "ProfileResource", "CustomSettingsResource", "hash_password", "verify_password" ]

PROFILE_ALIASES = { PUT: POST, PATCH: POST, MERGE: POST }

DEF_PROFILE_ATTRIBUTES = [ "email", "first_name", "last_name", "display_name", "phone",
                           "security_question", "default_app_id" ]

_hasher = PasswordHasher()

def hash_password(password: str) -> str:
    """
    return a salted Argon2id hash of a password suitable for storing in a user record
    """
    return _hasher.hash(password)

def verify_password(password: str, hashed: str) -> bool:
    """
    return True if the password matches the stored hash
    """
    if not hashed or not isinstance(hashed, str):
        return False
    try:
        return _hasher.verify(hashed, password or '')
    except (VerifyMismatchError, InvalidHashError, VerificationError):
        return False

class UserDirectory(object):
    """
    access to the user account records in a RecordStore table
    """

    def __init__(self, store: RecordStore, table: str="user"):
        self.store = store
        self.table = table

    def _all(self):
        try:
            return self.store.retrieve_records_by_filter(self.table, None, None, { "fields": "*" })
        except NotFound:
            return []

    def find_by_email(self, email: str) -> Mapping:
        """
        return the user record with the given email address, or None if there isn't one
        """
        recs = self._all()
        if isinstance(recs, Mapping):
            recs = recs.get('record', [])
        email = (email or '').lower()
        for rec in recs:
            if (rec.get('email') or '').lower() == email:
                return rec
        return None

    def get(self, user_id) -> Mapping:
        """
        return the user record with the given identifier
        :raises NotFound:  if the user does not exist
        """
        try:
            return self.store.retrieve_record_by_id(self.table, user_id, { "fields": "*" })
        except NotFound:
            raise NotFound("The user for the current session was not found in the system.")

    def update(self, user_id, data: Mapping) -> Mapping:
        """
        merge the given data into the user's record
        """
        return self.store.patch_record_by_id(self.table, dict(data), user_id, { "fields": "*" })

    def add_user(self, email: str, password: str, **props) -> Mapping:
        """
        create a new user account
        """
        if self.find_by_email(email):
            raise BadRequest("A user with email '%s' already exists." % email)
        rec = dict(props)
        rec['email'] = email
        rec['password'] = hash_password(password)
        rec.setdefault('is_active', True)
        return self.store.create_records(self.table, [rec], { "fields": "*", "create_id": True })[0]

class SessionManager(object):
    """
    the issuer and validator of session tokens and tickets.

    A session token is a JWT encoding the user's identity (as understood by
    :py:func:`dsp.web.rest.authenticate_via_jwt`).  A ticket is a JWT that identifies a user
    for a short time (5 minutes by default) and can be passed as a query parameter to retrieve
    that user's session data.

    The configuration may include:

    ``jwt_secret``
        (required) the key used to sign tokens
    ``jwt_algorithm``
        the signing algorithm (default: "HS256")
    ``lifetime``
        the number of seconds a session token remains valid (default: 3600)
    ``ticket_lifetime``
        the number of seconds a ticket remains valid (default: 300)
    """

    def __init__(self, config: Mapping):
        self.secret = config.get('jwt_secret')
        if not self.secret:
            raise ConfigurationException("SessionManager: missing required 'jwt_secret' parameter")
        self.algorithm = config.get('jwt_algorithm', "HS256")
        self.lifetime = int(config.get('lifetime', 3600))
        self.ticket_lifetime = int(config.get('ticket_lifetime', 300))

    def issue_token(self, who: Identity, duration: int=0) -> str:
        now = int(time.time())
        claims = who.to_claims()
        claims.update({ "iat": now, "exp": now + (duration or self.lifetime) })
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)

    def generate_ticket(self, user_id) -> str:
        now = int(time.time())
        return jwt.encode({ "sub": str(user_id), "tkt": True, "iat": now,
                            "exp": now + self.ticket_lifetime },
                          self.secret, algorithm=self.algorithm)

    def validate_ticket(self, ticket: str) -> str:
        """
        return the identifier of the user that a ticket was issued to
        :raises Unauthorized:  if the ticket is empty, invalid, or expired
        """
        if not ticket:
            raise Unauthorized("Session authorization ticket can not be empty.")
        try:
            claims = jwt.decode(ticket, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError as ex:
            raise Unauthorized("Session authorization ticket has expired.", cause=ex)
        except jwt.InvalidTokenError as ex:
            raise Unauthorized("Invalid session authorization ticket.", cause=ex)
        if not claims.get('tkt') or not claims.get('sub'):
            raise Unauthorized("Invalid session authorization ticket.")
        return claims['sub']

def _require_user(ctx: RequestContext) -> Identity:
    if ctx.who is None or ctx.who.is_anonymous:
        raise Unauthorized("There is no valid session for the current request.")
    return ctx.who

class UserResource(RestService):
    """
    a base class for the resources of the user service.  These resources are addressed with
    paths whose first segment is the resource's name.
    """
    resource_name = None

    def __init__(self, api_name: str, users: UserDirectory, config: Mapping=None,
                 log: Logger=None, events: EventHook=None):
        super(UserResource, self).__init__(api_name, "user", config, log, events)
        self.users = users

    def check_permission(self, ctx: RequestContext):
        # users always have access to their own account data
        return (True, None)

class SessionResource(UserResource):
    """
    the resource for logging in and out and for retrieving session data
    """
    resource_name = "session"

    def __init__(self, api_name: str, users: UserDirectory, sessions: SessionManager,
                 config: Mapping=None, log: Logger=None, events: EventHook=None):
        super(SessionResource, self).__init__(api_name, users, config, log, events)
        self.sessions = sessions

    def gather_extras(self, payload: Mapping, query: Mapping, verb: str) -> dict:
        extras = super(SessionResource, self).gather_extras(payload, query, verb)
        extras['ticket'] = get_option('ticket', payload, query)
        return extras

    def identity_for(self, user: Mapping) -> Identity:
        return Identity(str(user.get(self.users.store.id_field)), user.get('is_sys_admin', False),
                        user.get('role'), user.get('email'), user.get('display_name'))

    def session_data(self, user: Mapping, duration: int=0) -> dict:
        """
        return the data describing a session for the given user record
        """
        if not user.get('is_active', True):
            raise Forbidden("The user '%s' is not currently active." % user.get('email'))
        who = self.identity_for(user)
        if not who.is_sys_admin and not who.role:
            raise Forbidden("The user '%s' has not been assigned a role." % user.get('email'))

        out = dict((k, v) for k, v in user.items() if k not in ("password", "user_data"))
        out['id'] = who.user_id
        out['session_token'] = self.sessions.issue_token(who, duration)
        out['ticket'] = self.sessions.generate_ticket(who.user_id)
        out['ticket_expiry'] = int(time.time()) + self.sessions.ticket_lifetime
        return out

    def handle_get(self, ctx: RequestContext):
        if ctx.extras.get('ticket'):
            user_id = self.sessions.validate_ticket(ctx.extras['ticket'])
        else:
            user_id = _require_user(ctx).user_id
        return self.session_data(self.users.get(user_id))

    def handle_post(self, ctx: RequestContext):
        email = ctx.payload.get('email')
        password = ctx.payload.get('password')
        if not email:
            raise BadRequest("Login request is missing required email.")
        if not password:
            raise BadRequest("Login request is missing required password.")

        user = self.users.find_by_email(email)
        if not user or not verify_password(password, user.get('password')):
            self.log.info("Failed login attempt for %s", email)
            raise Unauthorized("Invalid user name and password combination.")

        try:
            duration = int(ctx.payload.get('duration') or 0)
        except (TypeError, ValueError):
            raise BadRequest("Session duration must be an integer number of seconds")

        out = self.session_data(user, duration)
        self.users.update(user[self.users.store.id_field],
                          { "last_login_date": datetime.now(timezone.utc).isoformat() })
        self.log.info("User %s logged in", email)
        return out

    def handle_delete(self, ctx: RequestContext):
        return { "success": True }

class ProfileResource(UserResource):
    """
    the resource for viewing and updating a user's profile.

    The configuration may include ``profile_attributes``, the list of user record properties
    that make up the profile and that the user may update.
    """
    resource_name = "profile"
    default_aliases = PROFILE_ALIASES

    def __init__(self, api_name: str, users: UserDirectory, config: Mapping=None,
                 log: Logger=None, events: EventHook=None):
        super(ProfileResource, self).__init__(api_name, users, config, log, events)
        self.attributes = list(self.cfg.get('profile_attributes', DEF_PROFILE_ATTRIBUTES))

    def handle_get(self, ctx: RequestContext):
        user = self.users.get(_require_user(ctx).user_id)
        return dict((a, user.get(a)) for a in self.attributes)

    def handle_post(self, ctx: RequestContext):
        who = _require_user(ctx)
        for key in ctx.payload:
            if key not in self.attributes:
                raise BadRequest("Attribute '%s' can not be updated through profile change." % key)
        self.users.get(who.user_id)
        if ctx.payload:
            self.users.update(who.user_id, dict(ctx.payload))
        return { "success": True }

class CustomSettingsResource(UserResource):
    """
    the resource for managing a user's custom settings (arbitrary name-value data)
    """
    resource_name = "custom"
    default_aliases = PROFILE_ALIASES
    settings_field = "user_data"

    def handle_get(self, ctx: RequestContext):
        user = self.users.get(_require_user(ctx).user_id)
        data = user.get(self.settings_field) or {}
        if ctx.resource_id:
            return { ctx.resource_id: data.get(ctx.resource_id) }
        return data

    def handle_post(self, ctx: RequestContext):
        if ctx.resource_id:
            raise BadRequest("Setting individual custom setting is not currently supported.")
        who = _require_user(ctx)
        data = dict(self.users.get(who.user_id).get(self.settings_field) or {})
        data.update(dict(ctx.payload))
        self.users.update(who.user_id, { self.settings_field: data })
        return { "success": True }

    def handle_delete(self, ctx: RequestContext):
        if not ctx.resource_id:
            raise BadRequest("Deleting all custom settings is not currently supported.")
        who = _require_user(ctx)
        data = dict(self.users.get(who.user_id).get(self.settings_field) or {})
        data.pop(ctx.resource_id, None)
        self.users.update(who.user_id, { self.settings_field: data })
        return { "success": True }

class UserService(RestService):
    """
    the user self-service: it routes each request to the resource (``session``, ``profile``,
    or ``custom``) named by the first segment of the path.

    The configuration may include:

    ``user_table``
        the name of the table holding user records (default: "user")
    ``session``
        the configuration for the :py:class:`SessionManager`
    ``profile_attributes``
        the user properties that make up a profile
    """

    def __init__(self, api_name: str, store: RecordStore, config: Mapping=None, log: Logger=None,
                 events: EventHook=None, svctype: str="user"):
        super(UserService, self).__init__(api_name, svctype, config, log, events)
        self.users = UserDirectory(store, self.cfg.get('user_table', 'user'))
        self.sessions = SessionManager(self.cfg.get('session', {}))

        rescfg = { "profile_attributes": self.cfg.get('profile_attributes', DEF_PROFILE_ATTRIBUTES) }
        resources = [
            SessionResource(api_name, self.users, self.sessions, {}, self.log, self.events),
            ProfileResource(api_name, self.users, rescfg, self.log, self.events),
            CustomSettingsResource(api_name, self.users, {}, self.log, self.events)
        ]
        self.resources = dict((r.resource_name, r) for r in resources)

    def list_resources(self, ctx: RequestContext) -> List[Mapping]:
        return [{ "name": n } for n in self.resources]

    def process_request(self, verb: str, path: str="", payload=None, query: Mapping=None,
                        who: Identity=None):
        respath = resolve_path(path, self.schema_resource)
        if not respath.resource:
            return super(UserService, self).process_request(verb, path, payload, query, who)

        res = self.resources.get(respath.resource)
        if not res:
            raise NotFound('Resource "%s" not found for service "%s".' %
                           (respath.resource, self.api_name))
        return res.process_request(verb, path, payload, query, who)
