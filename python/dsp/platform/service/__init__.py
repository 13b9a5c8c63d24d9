"""
The platform service implementations and a factory for creating them from configuration.

Each service is configured by a mapping that includes at least:

``api_name``
    (required) the name the service is addressed by
``type``
    the service type: one of "db" (default), "nosql_db", "push", "script", or "user"

plus the parameters recognized by the service type (see the individual service classes).
Database and user services are also configured with a ``store`` parameter describing their
record store (see :py:func:`~dsp.platform.store.create_record_store`); push services with a
``provider`` parameter whose ``type`` is "inmem" (default) or "webhook".
"""
from logging import Logger
from collections.abc import Mapping

from dsp.base.config import ConfigurationException
from ..events import EventHook
from ..store import create_record_store
from .base import PlatformService, RestService, wrap_records
from .db import DbService
from .nosql import NoSqlDbService
from .push import PushService, PushProvider, InMemoryPushProvider, WebhookPushProvider
from .script import ScriptService
from .user import UserService

__all__ = [ "PlatformService", "RestService", "DbService", "NoSqlDbService", "PushService",
            "ScriptService", "UserService", "create_service", "create_push_provider",
            "service_types" ]

def create_push_provider(config: Mapping) -> PushProvider:
    """
    create a PushProvider from its configuration
    """
    ptype = config.get('type', 'inmem')
    if ptype == "inmem":
        return InMemoryPushProvider(config.get('topics'))
    if ptype == "webhook":
        return WebhookPushProvider(config)
    raise ConfigurationException("Unsupported push provider type: " + str(ptype))

def _db(api_name, config, log, events):
    return DbService(api_name, create_record_store(config.get('store', {})), config, log, events)

def _nosql(api_name, config, log, events):
    return NoSqlDbService(api_name, create_record_store(config.get('store', {})), config, log,
                          events)

def _push(api_name, config, log, events):
    return PushService(api_name, create_push_provider(config.get('provider', {})), config, log,
                       events)

def _script(api_name, config, log, events):
    return ScriptService(api_name, config, log, events)

def _user(api_name, config, log, events):
    return UserService(api_name, create_record_store(config.get('store', {})), config, log, events)

service_types = {
    "db":       _db,
    "nosql_db": _nosql,
    "push":     _push,
    "script":   _script,
    "user":     _user
}

def create_service(config: Mapping, log: Logger=None, events: EventHook=None) -> RestService:
    """
    create a platform service from its configuration
    :param Mapping config:  the service configuration
    :param Logger     log:  the logger the service should use; if None, a default based on the
                            ``api_name`` is used
    :param EventHook events:  the hook to notify of handled requests
    :raises ConfigurationException:  if the configuration is missing required parameters or
                            requests an unsupported service type
    """
    api_name = config.get('api_name')
    if not api_name:
        raise ConfigurationException("Service configuration is missing required api_name")
    factory = service_types.get(config.get('type', 'db'))
    if not factory:
        raise ConfigurationException("Service %s: unsupported service type: %s" %
                                     (api_name, config.get('type')))
    return factory(api_name, config, log, events)
