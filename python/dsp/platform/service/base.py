r"""
The base classes for platform services, including the REST dispatch core,
:py:class:`RestService`.

A request to a service passes through the following stages:

  1. the verb is normalized using the service's verb alias table
     (:py:func:`~dsp.platform.verbs.normalize_verb`);
  2. the path is resolved into a sub-resource and record identifiers
     (:py:func:`~dsp.platform.resource.resolve_path`);
  3. the payload is normalized and request options ("extras") are gathered from it and the
     query parameters; the results are frozen into a
     :py:class:`~dsp.platform.request.RequestContext`;
  4. the request is dispatched according to what was addressed:

     * the service itself (empty path):  only GET is allowed, returning the list of the
       service's resources as ``{"resource": [...]}``;
     * the schema sentinel resource:  the request is passed to :py:meth:`~RestService.handle_schema`
       without a permission check;
     * any other resource:  the requesting user's permission to apply the action to the
       resource is checked, and the request is passed to the handler method registered for the
       action (e.g. :py:meth:`handle_get`).

  5. observers registered with the service's :py:class:`~dsp.platform.events.EventHook` are
     notified before and after the action.

Subclasses provide handler methods named ``handle_``\ *action* (e.g. ``handle_post``) for the
actions they support; an action without a handler is rejected as a bad request.
"""
from logging import Logger
from collections.abc import Mapping
from types import MappingProxyType
from typing import List, Tuple

from .. import system, RECORD_WRAPPER, RESOURCE_WRAPPER, META_KEY, SCHEMA_RESOURCE
from ..exceptions import BadRequest, Forbidden
from ..verbs import Action, GET, normalize_verb, resolve_aliases, to_action
from ..resource import ResourcePath, resolve_path
from ..request import RequestContext, make_context, parse_bool, get_option
from ..access import Identity, evaluate_service_access
from ..events import EventHook, PlatformEvent, PRE_PROCESS, POST_PROCESS, make_event_name

__all__ = [ "PlatformService", "RestService", "wrap_records" ]

def wrap_records(result) -> Mapping:
    """
    wrap a multi-record result into the response envelope.  If the result is a mapping (as
    returned by a store reporting metadata), its record list is taken from the envelope key and
    its ``meta`` is hoisted to be a sibling of the records.
    """
    if isinstance(result, Mapping):
        out = { RECORD_WRAPPER: list(result.get(RECORD_WRAPPER) or []) }
        if result.get(META_KEY) is not None:
            out[META_KEY] = result[META_KEY]
        return out
    return { RECORD_WRAPPER: list(result or []) }

class PlatformService(object):
    """
    a named, addressable service endpoint.

    A service is configured with a mapping that may include the following parameters:

    ``name``
        a display name for the service (defaults to the ``api_name``)
    ``description``
        a brief description of the service
    ``is_active``
        False if the service should not accept requests (default: True)
    ``native_format``
        the output format responses should be serialized to by default (default: "json")
    """

    def __init__(self, api_name: str, svctype: str, config: Mapping=None, log: Logger=None):
        """
        :param str api_name:  the name the service is addressed by
        :param str  svctype:  the type of service (e.g. "db")
        :param Mapping config:  the service's configuration
        :param Logger   log:  the logger to use; if None, a logger named after the ``api_name``
                              is used
        """
        if not api_name:
            raise ValueError("PlatformService: api_name must be a non-empty string")
        if config is None:
            config = {}
        self.cfg = config
        self.api_name = api_name
        self.type = svctype
        self.name = config.get('name', api_name)
        self.description = config.get('description', '')
        self.is_active = parse_bool(config.get('is_active', True))
        self.native_format = config.get('native_format', 'json')
        if not log:
            log = system.getSysLogger().getChild(api_name)
        self.log = log

    def describe(self) -> Mapping:
        """
        return a description of this service suitable for clients
        """
        return {
            "name": self.name,
            "api_name": self.api_name,
            "type": self.type,
            "is_active": self.is_active,
            "description": self.description
        }

class RestService(PlatformService):
    """
    a platform service that dispatches REST requests on its resources to handler methods.

    In addition to the parameters recognized by :py:class:`PlatformService`, the configuration
    may include:

    ``verb_aliases``
        a mapping of alternate verbs to the canonical verbs they should be handled as (e.g.
        ``{"MERGE": "PATCH"}``).  If not set, the class's ``default_aliases`` are used; an
        explicitly configured table (even an empty one) replaces the default entirely.
    """
    default_aliases = None
    schema_resource = SCHEMA_RESOURCE

    def __init__(self, api_name: str, svctype: str, config: Mapping=None, log: Logger=None,
                 events: EventHook=None):
        """
        :param EventHook events:  the hook for notifying observers of handled requests; if
                                  None, one with no observers is created
        """
        super(RestService, self).__init__(api_name, svctype, config, log)
        self.verb_aliases = resolve_aliases(self.cfg.get('verb_aliases'), self.default_aliases)
        if events is None:
            events = EventHook(self.log)
        self.events = events

        handlers = {}
        for action in Action:
            hdlr = getattr(self, "handle_" + action.name.lower(), None)
            if callable(hdlr):
                handlers[action] = hdlr
        self._handlers = MappingProxyType(handlers)

    def supported_verbs(self) -> List[str]:
        """
        return the HTTP verbs this service can respond to: the canonical verbs it has handlers
        for plus any alias verbs that map to one of those
        """
        canon = [a.value for a in Action if a in self._handlers]
        aliased = [v for v, c in self.verb_aliases.items() if c in canon and v not in canon]
        return canon + sorted(aliased)

    def describe(self) -> Mapping:
        out = super(RestService, self).describe()
        out['verbs'] = self.supported_verbs()
        return out

    def process_request(self, verb: str, path: str="", payload=None, query: Mapping=None,
                        who: Identity=None):
        """
        handle a request on this service and return the result.

        :param str     verb:  the HTTP verb as requested
        :param str     path:  the resource path, relative to the service
        :param      payload:  the request body data: a mapping, a list of records, or None
        :param Mapping query: the query parameters (with single values)
        :param Identity who:  the requesting user; None indicates a trusted, in-process caller
        :return:  the JSON-compatible result
        :raises RestException:  if the request cannot be fulfilled; errors raised by backing
                                stores are passed through unchanged
        """
        verb = normalize_verb(verb, self.verb_aliases)
        respath = resolve_path(path, self.schema_resource)
        ctx = self.build_context(verb, respath, payload, query or {}, who)
        self.log.debug("%s %s/%s requested by %s", verb, self.api_name, respath.path,
                       (who and who.user_id) or "(internal)")

        if not respath.resource:
            return self._handle_service_request(ctx)
        if respath.is_schema:
            return self.handle_schema(ctx)
        return self._handle_resource_request(ctx)

    def build_context(self, verb: str, respath: ResourcePath, payload, query: Mapping,
                      who: Identity=None) -> RequestContext:
        """
        normalize the request inputs into a RequestContext
        """
        try:
            action = to_action(verb)
        except BadRequest:
            action = None
        payload, amnesty = self.normalize_payload(payload, query, verb, respath)
        extras = self.gather_extras(payload, query, verb)
        return make_context(action, verb, respath, payload, extras, amnesty, who)

    def normalize_payload(self, payload, query: Mapping, verb: str,
                          respath: ResourcePath) -> Tuple[dict, bool]:
        """
        convert the request payload into a mapping.  This implementation wraps a list payload
        under the record envelope key and otherwise leaves it unchanged.
        :return:  a 2-tuple containing the normalized payload and a boolean indicating whether
                  the payload was a single unwrapped record
        """
        if payload is None:
            return {}, False
        if isinstance(payload, (list, tuple)):
            return { RECORD_WRAPPER: list(payload) }, False
        if not isinstance(payload, Mapping):
            raise BadRequest("Posted data must be a JSON object or array")
        return dict(payload), False

    def gather_extras(self, payload: Mapping, query: Mapping, verb: str) -> dict:
        """
        extract request options from the payload and the query parameters.  This implementation
        extracts the ``batch`` flag (the query parameter overrides the payload).  Subclasses
        should call this method first and then add their own options.
        """
        return { "batch": parse_bool(get_option('batch', payload, query)) }

    def _not_supported(self, ctx: RequestContext, detail: str=None):
        msg = '%s requests for resource "%s" are not currently supported by the "%s" service.' % \
              (ctx.verb, ctx.path.path, self.api_name)
        return BadRequest(msg, context=(detail and { "operation": detail }) or None)

    def _handle_service_request(self, ctx: RequestContext):
        if ctx.verb != GET:
            raise BadRequest("Currently only GET is supported for this API resource.")
        self._fire(PRE_PROCESS, ctx)
        result = self.list_service(ctx)
        self._fire(POST_PROCESS, ctx, result)
        return result

    def _handle_resource_request(self, ctx: RequestContext):
        if ctx.action is None:
            raise self._not_supported(ctx)

        allowed, why = self.check_permission(ctx)
        if not allowed:
            self.log.info("Permission denied to %s: %s", str(ctx.who), why)
            raise Forbidden(why)

        handler = self._handlers.get(ctx.action)
        if not handler:
            raise self._not_supported(ctx)

        self._fire(PRE_PROCESS, ctx)
        try:
            result = handler(ctx)
        except NotImplementedError as ex:
            raise self._not_supported(ctx, str(ex) or None)
        self._fire(POST_PROCESS, ctx, result)
        return result

    def _fire(self, phase: str, ctx: RequestContext, result=None):
        if not self.events.observer_count:
            return
        self.events.fire(PlatformEvent(make_event_name(self.api_name, ctx.resource, ctx.verb),
                                       phase, self.api_name, ctx.resource, ctx.verb,
                                       dict(ctx.payload), result))

    def check_permission(self, ctx: RequestContext) -> Tuple[bool, str]:
        """
        determine whether the requesting user may apply the request's action to the addressed
        resource.  This is called before the request is passed to its handler.
        :return:  a 2-tuple: True if access is allowed, and the reason if it is not
        """
        return evaluate_service_access(ctx.who, ctx.verb, self.api_name, ctx.resource)

    def list_service(self, ctx: RequestContext) -> Mapping:
        """
        return the response to a GET on the service itself.  This implementation returns the
        list from :py:meth:`list_resources` as ``{"resource": [...]}``.
        """
        return { RESOURCE_WRAPPER: self.list_resources(ctx) }

    def list_resources(self, ctx: RequestContext) -> list:
        """
        return the list of resources available from this service.  This implementation returns
        an empty list; subclasses should override it.
        """
        return []

    def handle_schema(self, ctx: RequestContext):
        """
        handle a request on the schema-description resource.  This implementation reports that
        schema descriptions are not supported.
        """
        raise self._not_supported(ctx)
