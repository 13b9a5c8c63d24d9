"""
The web front end for DSP platform services: a WSGI application that exposes a configured set of
:py:class:`~dsp.platform.service.base.RestService` instances under a common base endpoint.

Resources are addressed with paths of the form:

   /_base_ep_/_api_name_/_resource_/_ids_

where _api_name_ selects the service and the remainder of the path is passed to the service to
be resolved (see :py:func:`~dsp.platform.resource.resolve_path`).  A GET on the base endpoint
itself returns descriptions of the active services.

The configuration expected by :py:class:`PlatformApp` is an object with the following
properties:

``base_ep``
    (str) _optional_.  the URL resource path where the base of the service suite is accessed.
    The default value is "/api/v2/".
``services``
    (list) _required_.  a list of service configuration objects; each must include an
    ``api_name`` and a ``type`` (see :py:func:`~dsp.platform.service.create_service`).
``authentication``
    (object) _optional_.  the JWT-authentication configuration (see
    :py:func:`~dsp.web.rest.base.authenticate_via_jwt`).  If not set, all client users are
    considered anonymous.
``anonymous_role``
    (object) _optional_.  a role (with a ``services`` list) that is granted to anonymous
    users.  If not set, anonymous users may only list the services.
``notifier``
    (object) _optional_.  if set, events from all services are broadcast to a websocket server
    (see :py:class:`~dsp.platform.notifier.WebSocketEventNotifier`).
``include_headers``
    (object) _optional_.  HTTP headers to include in every response.

Each service's responses are serialized in the format requested by the client, either via the
``format`` query parameter or the ``Accept`` header; the service's ``native_format`` is used by
default.  Errors are returned as JSON error objects (see :py:mod:`dsp.web.rest.jsonerr`).
"""
import json
from logging import Logger
from collections.abc import Mapping
from copy import deepcopy
from http import HTTPStatus
from urllib.parse import parse_qs
from typing import Callable, List

from dsp.base.config import ConfigurationException
from dsp.web.rest.base import (Handler, ServiceApp, WSGIAppSuite, Identity,
                               authenticate_via_jwt)
from dsp.web.rest.jsonerr import ErrorHandling, FatalError
from dsp.web.formats import PlatformFormatSupport, UnsupportedFormat, Unacceptable, render
from . import system, RECORD_WRAPPER, RESOURCE_WRAPPER
from .exceptions import RestException
from .events import EventHook
from .notifier import WebSocketEventNotifier
from .service import RestService, create_service

__all__ = [ "RestServiceHandler", "PlatformServiceApp", "ServiceListApp", "PlatformApp", "app" ]

log = system.getSysLogger().getChild('wsgi')

DEF_BASE_PATH = "/api/v2/"
FORMAT_QP = "format"

def _reason(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Error"

class RestServiceHandler(Handler, ErrorHandling):
    """
    a handler for requests on the resources of a single platform service.  The request is
    translated into a call to the service's
    :py:meth:`~dsp.platform.service.base.RestService.process_request` method, and the result is
    returned in the format requested by the client.
    """

    def __init__(self, service: RestService, path: str, wsgienv: Mapping, start_resp: Callable,
                 who=None, config: Mapping={}, log: Logger=None, app=None):
        Handler.__init__(self, path, wsgienv, start_resp, who, config, log, app)
        self.service = service
        self._set_default_format_support(PlatformFormatSupport(service.native_format))
        self._set_format_qp(FORMAT_QP)

    def get_query(self) -> Mapping:
        """
        return the request's query parameters (other than the format parameter) as a dictionary.
        If a parameter is given more than once, the last value is used.
        """
        params = parse_qs(self._env.get('QUERY_STRING', ''), keep_blank_values=True)
        return dict((k, v[-1]) for k, v in params.items() if k != self.format_qp)

    def get_json_body(self):
        """
        read and parse the request body as JSON.  None is returned if the request has no body.
        :raises FatalError:  if the body is not parseable as JSON
        """
        try:
            clen = int(self._env.get('CONTENT_LENGTH') or 0)
        except ValueError:
            clen = 0
        bodyin = self._env.get('wsgi.input')
        if clen <= 0 or not bodyin:
            return None

        body = bodyin.read(clen)
        if not body.strip():
            return None
        try:
            return json.loads(body)
        except (ValueError, TypeError) as ex:
            if self.log:
                self.log.info("Failed to parse input: %s", str(ex))
            raise FatalError(400, "Input not parseable as JSON",
                             "Input document is not parse-able as JSON: " + str(ex))

    def send_rest_error(self, ex: RestException, ashead=False):
        """
        report an exception raised by a service as a JSON error message
        """
        return self.send_fatal_error(FatalError(ex.status, _reason(ex.status), ex.message,
                                                ex.context, ex.kind, ex.code), ashead)

    def dispatch(self, verb: str, path: str, ashead: bool=False, withbody: bool=False):
        """
        pass the request to the service and send its result back to the client
        """
        try:
            fmt = self.select_format(path=path, meth=verb)
        except UnsupportedFormat as ex:
            return self.send_error_obj(400, "Unsupported Format", str(ex), ashead=ashead)
        except Unacceptable as ex:
            return self.send_error_obj(406, "Not Acceptable", str(ex), ashead=ashead)

        try:
            body = None
            if withbody:
                body = self.get_json_body()
            result = self.service.process_request(verb, path, body, self.get_query(), self.who)
            content = render(result, fmt, RECORD_WRAPPER)

        except FatalError as ex:
            return self.send_fatal_error(ex, ashead)
        except RestException as ex:
            if ex.status >= 500:
                self.log.error("%s %s/%s failed: %s", verb, self.service.api_name, path,
                               ex.message)
            return self.send_rest_error(ex, ashead)
        except UnsupportedFormat as ex:
            return self.send_error_obj(400, "Unsupported Format", str(ex), ashead=ashead)
        except Exception as ex:
            self.log.exception("Unexpected failure handling %s %s/%s: %s",
                               verb, self.service.api_name, path, str(ex))
            return self.send_error_obj(500, "Internal Server Error",
                                       "An unexpected error occurred while processing request",
                                       ashead=ashead)

        return self.send_ok(content, fmt.ctype, ashead=ashead)

    def do_GET(self, path, ashead=False):
        return self.dispatch("GET", path, ashead)

    def do_POST(self, path):
        return self.dispatch("POST", path, withbody=True)

    def do_PUT(self, path):
        return self.dispatch("PUT", path, withbody=True)

    def do_PATCH(self, path):
        return self.dispatch("PATCH", path, withbody=True)

    def do_MERGE(self, path):
        return self.dispatch("MERGE", path, withbody=True)

    def do_DELETE(self, path):
        return self.dispatch("DELETE", path, withbody=True)

    def do_OPTIONS(self, path):
        meths = self.service.supported_verbs()
        if "GET" in meths:
            meths.append("HEAD")
        return self.send_options(meths, self._env.get('HTTP_ORIGIN'))

class PlatformServiceApp(ServiceApp):
    """
    a ServiceApp that provides web access to a single platform service
    """

    def __init__(self, service: RestService, log: Logger=None, config: Mapping=None):
        if not log:
            log = service.log
        super(PlatformServiceApp, self).__init__(service.api_name, log, config)
        self.service = service

    def create_handler(self, env: dict, start_resp: Callable, path: str, who: Identity) -> Handler:
        return RestServiceHandler(self.service, path, env, start_resp, who, self.cfg, self.log, self)

class ServiceListApp(ServiceApp):
    """
    a ServiceApp that responds to a GET on the base endpoint with descriptions of the active
    services.  Requests for any other path (i.e. an unrecognized service) return 404.
    """

    def __init__(self, services: List[RestService], log: Logger, config: Mapping=None):
        super(ServiceListApp, self).__init__("services", log, config)
        self.services = services

    class _Handler(Handler, ErrorHandling):

        def handle(self):
            svcname = self._path.strip('/').split('/')[0]
            if svcname:
                return self.send_error_obj(404, "Not Found",
                                           'Service "%s" not found.' % svcname)
            return super().handle()

        def do_GET(self, path, ashead=False):
            return self.send_json({ RESOURCE_WRAPPER: [s.describe() for s in self._app.services
                                                       if s.is_active] }, ashead=ashead)

        def do_OPTIONS(self, path):
            return self.send_options(["GET", "HEAD"], self._env.get('HTTP_ORIGIN'))

    def create_handler(self, env: dict, start_resp: Callable, path: str, who: Identity) -> Handler:
        return self._Handler(path, env, start_resp, who, self.cfg, self.log, self)

class PlatformApp(WSGIAppSuite):
    """
    a complete WSGI App providing access to the suite of configured platform services
    """

    def __init__(self, config: Mapping, base_ep: str=None, events: EventHook=None,
                 services: Mapping=None):
        """
        initialize the App
        :param Mapping  config:  the collected configuration for the App (see the
                                 :py:mod:`module documentation <dsp.platform.wsgi>`)
        :param str     base_ep:  the resource path to assume as the base of all services; if not
                                 provided, the ``base_ep`` configuration parameter is used
        :param EventHook events: the hook that services should fire their events on; if not
                                 provided, a new one is created.
        :param Mapping services: pre-built services to include, by ``api_name``, in addition to
                                 those in the configuration
        """
        if base_ep is None:
            base_ep = config.get('base_ep', DEF_BASE_PATH)

        if events is None:
            events = EventHook(log.getChild("events"))
        self.events = events
        if config.get('notifier'):
            notifier = WebSocketEventNotifier.from_config(config['notifier'],
                                                          log.getChild("notifier"))
            notifier.subscribe_to(self.events)

        authcfg = config.get('authentication')
        if not authcfg:
            log.warning("JWT Authentication is not configured")
        else:
            if not isinstance(authcfg, Mapping):
                raise ConfigurationException("Config param, authentication, not a dictionary: "+
                                             str(authcfg))
            if not authcfg.get('require_expiration', True):
                log.warning("JWT Authentication: token expiration is not required")

        self.services = dict(services or {})
        for svccfg in config.get('services', []):
            svc = create_service(self._service_config(svccfg, authcfg),
                                 log.getChild(svccfg.get('api_name') or 'service'), self.events)
            if svc.api_name in self.services:
                raise ConfigurationException("Duplicate service api_name: " + svc.api_name)
            self.services[svc.api_name] = svc
        if not self.services:
            raise ConfigurationException("No platform services configured "+
                                         "(missing 'services' parameter)")

        appcfg = { "include_headers": config.get("include_headers") }
        svcapps = dict((name, PlatformServiceApp(svc, config=appcfg))
                       for name, svc in self.services.items() if svc.is_active)
        svcapps[''] = ServiceListApp(list(self.services.values()), log, appcfg)

        super(PlatformApp, self).__init__(config, svcapps, log, base_ep)

    def _service_config(self, svccfg: Mapping, authcfg: Mapping) -> Mapping:
        # user services sign session tokens with the key used to authenticate requests
        svccfg = deepcopy(svccfg)
        if svccfg.get('type') == "user" and authcfg and authcfg.get('key'):
            sesscfg = svccfg.setdefault('session', {})
            sesscfg.setdefault('jwt_secret', authcfg['key'])
            sesscfg.setdefault('jwt_algorithm', authcfg.get('algorithm', "HS256"))
        return svccfg

    def authenticate_user(self, env: Mapping) -> Identity:
        """
        determine the authenticated user
        """
        authcfg = self.cfg.get('authentication')
        if authcfg:
            who = authenticate_via_jwt("dsp", env, authcfg, self.log)
        else:
            who = Identity.anonymous()

        if who.is_anonymous and who.is_valid and self.cfg.get('anonymous_role'):
            who = Identity(None, role=self.cfg['anonymous_role'])
        return who

app = PlatformApp
