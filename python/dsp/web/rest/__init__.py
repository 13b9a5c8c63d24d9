"""
Framework classes for creating REST web interfaces via WSGI

The small framework provided by this module provides foundation classes for the RESTful web APIs
that front DSP platform services.  It features:
  *  a resource-based model for handling requests.  The :py:class:`~dsp.web.rest.base.Handler`
     class is implemented to handle a single resource (given by a path).
  *  the ability to compose multiple resources into a single WSGI application via the
     :py:class:`~dsp.web.rest.base.ServiceApp` class.
  *  full but simple control over the returned HTTP status for proper error handling
  *  support for client-specified return formats either via query-parameters or the ``Accept``
     HTTP request header.
  *  JSON-formatted error responses (:py:mod:`~dsp.web.rest.jsonerr`)

As with other DSP components, the web layer is a thin wrapper around a business service class
(here, a :py:class:`~dsp.platform.service.base.RestService`) that knows nothing of the web.  A
:py:class:`~dsp.web.rest.base.ServiceApp` subclass wraps around the service and creates a
:py:class:`~dsp.web.rest.base.Handler` for each request.  Several ``ServiceApp`` instances are
combined into a single WSGI application with :py:class:`~dsp.web.rest.base.WSGIAppSuite`, which
also authenticates the requesting user.
"""
from .base import *
