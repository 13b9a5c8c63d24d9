"""
The base REST framework classes
"""
import re, json
from abc import ABCMeta, abstractmethod
from functools import reduce
from logging import Logger
from urllib.parse import parse_qs
from typing import Mapping, List, Callable, Union

import jwt

from wsgiref.headers import Headers

from ..utils import order_accepts
from ..formats import Unacceptable, UnsupportedFormat, FormatSupport
from dsp.base.config import ConfigurationException
from dsp.platform.access import Identity

__all__ = ["Handler", "NotFoundHandler", "ServiceApp", "Unauthenticated", "WSGIApp",
           "AuthenticatedWSGIApp", "WSGIAppSuite", "Identity",
           "authenticate_via_jwt", "make_identity_from_claimset" ]

class Handler(object):
    """
    a default web request handler that also serves as a base class for the handlers specialized
    for particular resource paths.  Key features built into this class include:
      * the ``who`` property that holds the identity of the remote user making the request
      * content negotiation support (see :py:meth:`select_format`)
      * short-cut methods for sending responses (e.g. :py:meth:`send_json`)
    """

    def __init__(self, path: str, wsgienv: dict, start_resp: Callable, who=None,
                 config: dict={}, log: Logger=None, app=None):
        self._path = path
        self._env = wsgienv
        self._start = start_resp
        self._hdr = Headers([])
        self._code = 0
        self._msg = "unknown status"
        self.cfg = config
        self.log = log

        self._app = app
        if self._app and hasattr(app, 'include_headers'):
            self._hdr = Headers(list(app.include_headers.items()))
        if not who:
            who = Identity.anonymous()
        self.who = who

        # the output formats supported by this Handler; set via _set_default_format_support()
        self._fmtsup = None

        # the name of the query parameter for requesting a named format (e.g. "format")
        self._format_qp = None

        self._meth = self._env.get('REQUEST_METHOD', 'GET')

    @property
    def app(self):
        """
        the ServiceApp instance that created this handler
        """
        return self._app

    @property
    def format_qp(self):
        """
        the name of the query parameter that clients can use to request a named output format,
        or None if such a parameter is not supported.
        """
        return self._format_qp

    def _set_format_qp(self, qpname):
        self._format_qp = qpname

    def send_error(self, code, message, content=None, contenttype=None, ashead=None, encoding='utf-8'):
        """
        respond to the client with an error of a given code and reason

        :param int code:        the HTTP response code to assign
        :param str message:     the briefly-stated reason to give for the error; this text
                                is sent as the message that accompanies the code in the HTTP
                                response header
        :param content:         Content to return as the body (str or bytes or a list of either)
        :param str contenttype: the MIME type to associate with the returned content.
        :param bool ashead:     True if the content should be withheld as for a HEAD request; if
                                not provided, it is True if the requested method is "HEAD"
        :param str encoding:    The encoding required to turn str content into bytes
        """
        return self._send(code, message, content, contenttype, ashead, encoding)

    def send_unauthorized(self, message="Unauthorized", content=None, contenttype=None, ashead=None,
                          encoding='utf-8'):
        return self.send_error(401, message, content, contenttype, ashead, encoding)

    def send_ok(self, content=None, contenttype=None, message="OK", code=200, ashead=None, encoding='utf-8'):
        """
        respond to the client with a successful response.

        :param content:         Content to return as the body.  If not provided, the body will be
                                empty.
        :param str contenttype: the MIME type to associate with the returned content.
        :param str message:     the message to accompany the code in the response header
        :param int code:        the HTTP response code to assign (default: 200)
        """
        return self._send(code, message, content, contenttype, ashead, encoding)

    def send_json(self, data, message="OK", code=200, ashead=False, encoding='utf-8'):
        """
        Send some data formatted as JSON.
        :param data:     the data to encode in JSON
                         :type data: dict, list, or string
        """
        return self._send(code, message, json.dumps(data, indent=2), "application/json", ashead, encoding)

    def send_options(self, allowed_methods: List[str]=None, origin: str=None, extra=None,
                     forcors: bool=True):
        """
        send a response to an OPTIONS request (typically, a CORS preflight request)
        :param List[str] allowed_methods:   the HTTP methods that are allowed for the resource
        :param str                origin:   the origin to allow
        :param dict|Headers        extra:   extra headers to include in the output, as a mapping
                                            or a list of 2-tuples
        """
        meths = list(allowed_methods or [])
        if 'OPTIONS' not in meths:
            meths.append('OPTIONS')
        self.add_header('Allow', ", ".join(meths))
        if forcors:
            self.add_header('Access-Control-Allow-Methods', ", ".join(meths))
            if origin:
                self.add_header('Access-Control-Allow-Origin', origin)
            self.add_header('Access-Control-Allow-Headers', "Content-Type, Authorization")
        if isinstance(extra, Mapping):
            for k,v in extra.items():
                self.add_header(k, v)
        elif isinstance(extra, (list, tuple)):
            for k,v in extra:
                self.add_header(k, v)

        return self.send_ok(message="No Content")

    def _send(self, code, message, content, contenttype, ashead, encoding):
        if ashead is None:
            ashead = self._meth.upper() == "HEAD"
        self.set_response(code, message)

        if content:
            if not isinstance(content, list):
                content = [ content ]
            badtype = [type(c) for c in content if not isinstance(c, (str, bytes))]
            if badtype:
                raise TypeError("send_*: non-str/bytes found in content")
            if not contenttype:
                contenttype = (isinstance(content[0], str) and "text/plain") or "application/octet-stream"
        elif content is None:
            content = []
        content = [(isinstance(c, str) and c.encode(encoding)) or c for c in content]

        if contenttype:
            self.add_header("Content-Type", contenttype)
        if len(content) > 0:
            self.add_header("Content-Length", str(reduce(lambda x, t: x+len(t), content, 0)))

        self.end_headers()
        return (not ashead and content) or []

    def add_header(self, name, value):
        """
        record a name-value pair to be sent as part of the response header.

        :raises UnicodeEncodeError:  if name or value includes non-Latin-1 characters (see PEP 333)
        """
        e = "ISO-8859-1"
        (name.encode(e), value.encode(e))

        self._hdr.add_header(name, value)

    def set_response(self, code, message):
        """
        record the response code and message to be sent when the response is triggered to push out.
        """
        self._code = code
        self._msg = message

    def end_headers(self):
        """
        trigger the delivery of the response's header to the web client.  This should be
        preceded with a call to :py:meth:`set_response`.
        """
        status = "{0} {1}".format(str(self._code), self._msg)
        self._start(status, self._hdr.items(), None)

    def handle(self):
        """
        handle the request encapsulated in this Handler.

        The default implementation looks for a Handler method of the form, `do_`METH(), where METH
        is the HTTP method requested (e.g. GET, HEAD, etc.; the ``X-HTTP-Method-Override`` header
        takes precedence over the actual method) and calls it with the requested path.  If the
        requested method is HEAD and there is no ``do_HEAD()``, ``do_GET()`` is called with
        ``ashead=True``.
        """
        meth = self._meth
        if self._env.get('HTTP_X_HTTP_METHOD_OVERRIDE'):
            meth = self._env.get('HTTP_X_HTTP_METHOD_OVERRIDE').upper()
            self._meth = meth

        meth_handler = 'do_'+meth

        if not self.preauthorize():
            return self.send_unauthorized()

        try:
            if hasattr(self, meth_handler):
                return getattr(self, meth_handler)(self._path)
            elif meth == "HEAD":
                return self.do_GET(self._path, ashead=True)
            else:
                return self.send_error(405, meth + " not supported on this resource")
        except Exception as ex:
            if self.log:
                self.log.exception("Unexpected failure: "+str(ex))
            return self.send_error(500, "Server failure")

    def preauthorize(self):
        """
        do an initial test to see if the client identity is authorized to access this service,
        before the method-specific function (e.g. ``do_GET()``) is called.  This implementation
        always returns True.
        """
        return True

    def get_accepts(self):
        """
        return the requested content types as a list ordered by their q-values.  An empty list
        is returned if no types were specified.
        """
        accepts = self._env.get('HTTP_ACCEPT')
        if not accepts:
            return []
        return order_accepts(accepts)

    def get_requested_formats(self):
        """
        return the formats requested via the format query parameter (named by ``self.format_qp``)
        """
        format = []
        if self.format_qp and 'QUERY_STRING' in self._env:
            params = parse_qs(self._env['QUERY_STRING'])
            if self.format_qp in params:
                format = params[self.format_qp]
        return format

    def select_format(self, format: str=None, path: str=None, meth: str="GET"):
        """
        determine the best output format for the request, based on the client's preferences
        expressed via the format query parameter and the ``Accept`` header.

        :param str format:   the name of a format that was programmatically asked for; it
                             overrides any preferences specified by the client.
        :param str   path:   the requested path (passed to :py:meth:`get_format_support`)
        :param str   meth:   the requested HTTP method (passed to :py:meth:`get_format_support`)
        :raises UnsupportedFormat:  if the requested format is not supported
        :raises Unacceptable:  if no supported format is acceptable to the client
        """
        if isinstance(format, str):
            fmt = self._fmtsup.match(format)
            if not fmt:
                raise UnsupportedFormat(f"{format} not a supported format")
            return fmt

        format = None
        fmtsup = self.get_format_support(path, meth)
        if fmtsup:
            format = fmtsup.select_format(self.get_requested_formats(), self.get_accepts())
            if not format:
                format = fmtsup.default_format()

        return format

    def get_format_support(self, path: str, method: str="GET") -> FormatSupport:
        """
        return the FormatSupport instance that applies to a requested path and method.  This
        implementation returns the instance set with :py:meth:`_set_default_format_support`.
        """
        return self._fmtsup

    def _set_default_format_support(self, fmtsup: FormatSupport):
        self._fmtsup = fmtsup

class NotFoundHandler(Handler):
    """
    a request Handler that always returns 404 Not Found.
    """
    def do_GET(self, path, ashead=False, format=None):
        return self.send_error(404, "Not Found")

    def do_OPTIONS(self, path):
        return self.send_options(["GET"])


class ServiceApp(metaclass=ABCMeta):
    """
    a base class WSGI implementation intended to run as a delegate handling a particular path
    (and its descendent paths) within another WSGI application.

    The configuration may include ``include_headers``, a set of HTTP headers (as a mapping or a
    list of name-value pairs) to include in every response.
    """

    def __init__(self, appname: str, log: Logger, config: Mapping=None):
        self.log = log
        if config is None:
            config = {}
        self.cfg = config
        self._name = appname

        self.include_headers = Headers()
        if config.get("include_headers"):
            try:
                if isinstance(config.get("include_headers"), Mapping):
                    self.include_headers = Headers(list(config.get("include_headers").items()))
                elif isinstance(config.get("include_headers"), list):
                    self.include_headers = Headers([tuple(h) for h in config.get("include_headers")])
                else:
                    raise TypeError("Not a list of 2-tuples")
            except (TypeError, ValueError) as ex:
                raise ConfigurationException("include_headers: must be either a dict or a list of "+
                                             "name-value pairs")

    @property
    def name(self):
        """
        a name for the service provided by this ServiceApp instance
        """
        return self._name

    @abstractmethod
    def create_handler(self, env: dict, start_resp: Callable, path: str, who: Identity) -> Handler:
        """
        return a handler instance to handle a particular request to a path
        :param Mapping env:  the WSGI environment containing the request
        :param Callable start_resp:  the start_resp function to use initiate the response
        :param str path:     the path to the resource being requested, relative to the path
                             this ServiceApp is configured to handle
        :param Identity who: the requesting user
        """
        raise NotImplementedError()

    def handle_path_request(self, env: dict, start_resp: Callable, path: str=None, who: Identity=None):
        """
        respond to a request on a particular (relative) URL path.
        :param str path:     the path to the resource being requested.  If None, the value of
                             env['PATH_INFO'] is assumed.
        """
        if path is None:
            path = env.get('PATH_INFO', '')
        return self.create_handler(env, start_resp, path, who).handle()

    def __call__(self, env, start_resp):
        return self.handle_path_request(env, start_resp)

class Unauthenticated(Exception):
    """
    An exception indicating that a service client did not successfully authenticate itself,
    either because credentials are required but were not provided or because the credentials
    presented were not valid.
    """
    pass

class WSGIApp(metaclass=ABCMeta):
    """
    A WSGI application base class for wrapping one or more ServiceApp classes.  It provides a
    common authentication check.

    This base implementation will leverage two parameters from the configuration:

    ``base_ep``
        _str_.  The base endpoint URL for the web app given as a path starting with a forward
                slash, ``/``.  All resource path requests must start with this path.
    ``name``
        _str_.  A short name to use to identify this web app (e.g. in log messages)
    """

    def __init__(self, config: Mapping, log: Logger, base_ep: str = None, name: str = None):
        self.log = log
        self.cfg = config
        self.name = name
        if not self.name:
            self.name = self.cfg.get("name", "")
        self.base_ep = None
        if not base_ep:
            base_ep = self.cfg.get("base_ep", "")
        base_ep = base_ep.strip('/')
        if base_ep:
            self.base_ep = '/%s/' % base_ep

    def authenticate(self, env) -> Union[Identity,None]:
        """
        determine and return the identity of the client.  This implementation returns None,
        reflecting that by default authentication is not supported.

        :raises Unauthenticated:  if the authentication process fails.  An implementation may
                  instead return an identity that represents an unauthenticated user.
        """
        return None

    def handle_request(self, env: Mapping, start_resp: Callable):
        path = re.sub(r'/+', '/', env.get('PATH_INFO', '/'))

        # determine who is making the request
        try:
            who = self.authenticate(env)
        except Unauthenticated as ex:
            self.log.debug("Authentication failure: %s", str(ex))
            return Handler(path, env, start_resp).send_error(401, "Authentication Failure")
        except Exception as ex:
            self.log.error("Unexpected failure while authenticating: %s", str(ex))
            return Handler(path, env, start_resp).send_error(500, "Internal Server Error")

        if self.base_ep:
            if path.startswith(self.base_ep):
                path = path[len(self.base_ep):]

            elif self.base_ep == path+'/':
                path = ''

            elif self.base_ep.startswith(path.rstrip('/')+'/'):
                # client asked for a parent resource of the base_ep
                return Handler(path, env, start_resp).send_error(403, "Forbidden")

            else:
                return Handler(path, env, start_resp).send_error(404, "Not Found")

        return self.handle_path_request(path.strip('/'), env, start_resp, who)

    @abstractmethod
    def handle_path_request(self, path: str, env: Mapping, start_resp: Callable, who = None):
        """
        Dispatch a request on a resource path to a handler.
        :param str path:  the requested path, relative to the base endpoint path for the app and
                          without a leading slash
        :param dict env:  the WSGI environment containing all request information
        :param func start_resp:  the start-response function provided by the WSGI engine.
        :param Identity who:  the requesting user
        """
        raise NotImplementedError()

    def __call__(self, env, start_resp):
        return self.handle_request(env, start_resp)

class AuthenticatedWSGIApp(WSGIApp):
    """
    a WSGIApp base class that represents the client user as an
    :py:class:`~dsp.platform.access.Identity`.  Subclasses provide a specific authentication
    mechanism via the :py:meth:`authenticate_user` method.

    The ``authentication`` configuration parameter holds an object whose sub-parameters control
    the authentication process.  This base class recognizes:

    ``raise_on_invalid``
        set to True if an exception should be raised if the credentials presented are found to
        be invalid.  The default False will cause an invalid anonymous identity to be returned.
    ``raise_on_anonymous``
        set to True if an exception should be raised if user credentials are not provided by
        the client.  The default False will cause an anonymous identity to be returned.
    """

    def authenticate(self, env) -> Identity:
        return self.authenticate_user(env)

    def authenticate_user(self, env: Mapping) -> Identity:
        """
        determine the authenticated user.  This implementation returns an anonymous identity;
        subclasses requiring user authentication should override this method (e.g. by calling
        :py:func:`authenticate_via_jwt`).
        :raises Unauthenticated:  if the authentication process fails.
        """
        if self.cfg.get('authentication', {}).get('raise_on_anonymous'):
            raise Unauthenticated("Unauthenticated by default")
        return Identity.anonymous()


def authenticate_via_jwt(svcname: str, env: Mapping, jwtcfg: Mapping, log: Logger,
                         claim_to_identity_func: Callable=None) -> Identity:
    """
    authenticate the remote user assuming a JWT was provided as an Authorization Bearer token.

    This function will look for the following properties in the provided configuration dictionary:

    ``key``
        (str) _required_.  The secret key shared with the token generator used to sign the token.

    ``algorithm``
        (str) _optional_.  The name of the signing algorithm (default: "HS256").

    ``require_expiration``
        (bool) _optional_.  If True (default), any JWT token that does not include an expiration
        time will be rejected, and the client user will be set to anonymous.

    ``raise_on_anonymous``, ``raise_on_invalid``
        (bool) _optional_.  If True, an :py:class:`Unauthenticated` exception is raised if,
        respectively, no token or an invalid token was provided.

    :param str   svcname: the name of the service doing the authentication (for messages)
    :param dict      env: the WSGI environment containing the request data
    :param dict   jwtcfg: the JWT decoding configuration (see above)
    :param Logger    log: the logger that can be used to record messages
    :param function claim_to_identity_func:  a function that takes a service name, a JWT claimset
                          dictionary, and a Logger and returns an Identity instance.  If not
                          provided, :py:func:`make_identity_from_claimset` will be used.
    :returns:  an :py:class:`~dsp.platform.access.Identity` instance representing the user
    """
    auth = env.get('HTTP_AUTHORIZATION', "x").split()
    if len(auth) < 2 or auth[0] != "Bearer":
        log.debug("%s: client did not provide an authentication token", svcname)
        if jwtcfg.get('raise_on_anonymous'):
            raise Unauthenticated("JWT token not provided")
        return Identity.anonymous()

    try:
        userinfo = jwt.decode(auth[1], jwtcfg.get("key", ""),
                              algorithms=[jwtcfg.get("algorithm", "HS256")])
    except jwt.InvalidTokenError as ex:
        log.warning("Invalid token can not be decoded: %s", str(ex))
        if jwtcfg.get('raise_on_invalid'):
            raise Unauthenticated("Undecodable JWT token")
        return Identity.anonymous("Invalid token can not be decoded")

    # expiration was checked implicitly by jwt.decode() if present
    if jwtcfg.get('require_expiration', True) and not userinfo.get('exp'):
        log.warning("Rejecting non-expiring token for user %s", userinfo.get('sub', "(unknown)"))
        if jwtcfg.get('raise_on_invalid'):
            raise Unauthenticated("Non-expiring JWT token")
        return Identity.anonymous("non-expiring token rejected")

    if not claim_to_identity_func:
        claim_to_identity_func = make_identity_from_claimset
    return claim_to_identity_func(svcname, userinfo, log)

def make_identity_from_claimset(svcname: str, userinfo: Mapping, log: Logger) -> Identity:
    """
    Create an Identity representing the end user from a JWT claim set (as issued by the user
    service's session resource)
    :param str   svcname:  the name of the service doing the authentication (for messages)
    :param dict userinfo:  a dictionary containing the JWT claimset data
    :param Logger    log:  a Logger object that should be used to record warning messages
    """
    subj = userinfo.get('sub')
    if not subj:
        log.warning("%s: user token is missing subject identifier; defaulting to anonymous", svcname)
        return Identity.anonymous()

    props = dict((k,v) for k,v in userinfo.items()
                 if k not in ["sub", "is_sys_admin", "role", "email", "name"])
    return Identity(subj, userinfo.get('is_sys_admin', False), userinfo.get('role'),
                    userinfo.get('email'), userinfo.get('name'), **props)


class WSGIAppSuite(AuthenticatedWSGIApp):
    """
    A WSGI application class that aggregates one or more :py:class:`ServiceApp` instances, each
    serving its own resource path beneath the suite's base endpoint.
    """

    def __init__(self, config: Mapping, svcapps: Mapping[str, ServiceApp], log: Logger,
                 base_ep: str = None):
        """
        :param dict  config:  the configuration for the suite of services
        :param dict svcapps:  a mapping of resource paths (relative to the base endpoint URL)
                              to the ServiceApp instances that should serve them.
        :param Logger   log:  the base logger to use among the suite
        :param str  base_ep:  the base endpoint URL for the suite; if not provided, it is set by
                              the ``base_ep`` configuration parameter.
        """
        super(WSGIAppSuite, self).__init__(config, log, base_ep)
        self.svcapps = dict(svcapps.items())

    def handle_path_request(self, path: str, env: Mapping, start_resp: Callable, who = None):
        # find the ServiceApp registered for the longest leading portion of the path
        base = re.sub(r'/+', '/', path)
        apppath = ''
        svcapp = None
        isaparent = False
        while not svcapp:
            svcapp = self.svcapps.get(base)
            if svcapp:
                continue

            if not base:
                if isaparent:
                    return Handler(path, env, start_resp).send_error(403, "Forbidden")
                else:
                    return Handler(path, env, start_resp).send_error(404, "Not Found")

            elif not isaparent:
                isaparent = any([p.startswith(base+'/') for p in self.svcapps.keys()])

            parts = base.rsplit('/', 1)
            if len(parts) < 2:
                parts = ['', base]
            apppath = "/".join([parts[1], apppath]).strip('/')
            base = parts[0]

        return svcapp.handle_path_request(env, start_resp, apppath, who)

