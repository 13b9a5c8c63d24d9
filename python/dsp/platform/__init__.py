"""
dsp.platform:  the REST dispatch core for DSP platform services.

A *platform service* is a named endpoint (its ``api_name``) that exposes one or more resources
via a REST interface.  The heart of this package is the
:py:class:`~dsp.platform.service.base.RestService` class which translates an inbound request
(an HTTP verb, a resource path, a payload, and query parameters) into a call on one of a small
set of handler methods.  Along the way, it:

  * normalizes the verb using the service's verb alias table (:py:mod:`~dsp.platform.verbs`),
  * resolves the path into a sub-resource and record identifiers (:py:mod:`~dsp.platform.resource`),
  * normalizes the payload and gathers request options ("extras") (:py:mod:`~dsp.platform.request`),
  * checks that the requesting user is allowed to act on the resource (:py:mod:`~dsp.platform.access`),
  * and notifies interested observers of the outcome (:py:mod:`~dsp.platform.events`).

Database services delegate all storage to a :py:class:`~dsp.platform.store.base.RecordStore`; 
the web front end is provided by :py:mod:`dsp.platform.wsgi`.
"""
from dsp.base import DSPException, SystemInfoMixin

try:
    from .version import __version__
except ImportError:
    __version__ = "(unset)"

_DSPSYSNAME = "DSP Services Platform"
_DSPSYSABBREV = "DSP"

class PlatformSystem(SystemInfoMixin):
    """
    A SystemInfoMixin representing the DSP services platform
    """
    def __init__(self, subsysname="", subsysabbrev=""):
        super(PlatformSystem, self).__init__(_DSPSYSNAME, _DSPSYSABBREV,
                                             subsysname, subsysabbrev, __version__)

system = PlatformSystem()

RECORD_WRAPPER = "record"
RESOURCE_WRAPPER = "resource"
SCHEMA_RESOURCE = "_schema"
META_KEY = "meta"
MAX_RECORDS_RETURNED = 1000
