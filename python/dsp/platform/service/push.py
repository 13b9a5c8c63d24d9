"""
A platform service for sending push notifications.  The service's resources are the *topics*
that messages can be published to; the actual delivery is delegated to a
:py:class:`PushProvider`.

=====================  =====================================================================
``GET``                list the topics the requesting user can access
``GET topic``          describe a topic
``POST topic``         publish the posted message to the topic (PUT is accepted as an alias)
=====================  =====================================================================
"""
import uuid, time
from abc import ABC, abstractmethod
from logging import Logger
from collections.abc import Mapping
from typing import List

import requests

from dsp.base.config import ConfigurationException
from ..exceptions import BadRequest, NotFound, InternalError
from ..verbs import DEFAULT_PUSH_ALIASES
from ..request import RequestContext, parse_bool, get_option
from ..access import get_service_permissions
from ..events import EventHook
from .base import RestService

__all__ = [ "PushService", "PushProvider", "InMemoryPushProvider", "WebhookPushProvider" ]

class PushProvider(ABC):
    """
    an interface to a push-notification gateway
    """

    @abstractmethod
    def list_topics(self) -> List[Mapping]:
        """
        return descriptions of the available topics.  Each description must include a ``name``
        property.
        """
        raise NotImplementedError()

    def retrieve_topic(self, topic: str) -> Mapping:
        """
        return a description of the named topic
        :raises NotFound:  if the topic does not exist
        """
        for t in self.list_topics():
            if t.get('name') == topic:
                return dict(t)
        raise NotFound("Topic '%s' not found." % topic)

    @abstractmethod
    def push_message(self, topic: str, message: Mapping) -> Mapping:
        """
        publish a message to a topic and return a description of the result (including a
        ``message_id``)
        """
        raise NotImplementedError()

class InMemoryPushProvider(PushProvider):
    """
    a PushProvider that simply collects the messages pushed to it.  This is intended for testing
    and development.
    """

    def __init__(self, topics: List[str]=None, auto_create: bool=True):
        """
        :param list topics:  the names of the topics to start with
        :param bool auto_create:  if True, a topic is created when a message is first pushed to it
        """
        self.auto_create = auto_create
        self.messages = dict((t, []) for t in (topics or []))

    def list_topics(self) -> List[Mapping]:
        return [{ "name": t, "message_count": len(m) } for t, m in sorted(self.messages.items())]

    def push_message(self, topic: str, message: Mapping) -> Mapping:
        if topic not in self.messages:
            if not self.auto_create:
                raise NotFound("Topic '%s' not found." % topic)
            self.messages[topic] = []
        msgid = str(uuid.uuid4())
        self.messages[topic].append({ "message_id": msgid, "time": time.time(),
                                      "message": dict(message) })
        return { "message_id": msgid }

class WebhookPushProvider(PushProvider):
    """
    a PushProvider that publishes a message by POSTing it as JSON to a URL configured for
    the topic.

    The configuration is a mapping that includes:

    ``topics``
        (required) a mapping of topic names to the URLs messages should be POSTed to
    ``headers``
        a mapping of HTTP headers to include with each request (e.g. for authorization)
    ``timeout``
        the number of seconds to wait for the endpoint to respond (default: 10)
    """

    def __init__(self, config: Mapping):
        topics = config.get('topics')
        if not isinstance(topics, Mapping):
            raise ConfigurationException("WebhookPushProvider: missing or bad 'topics' parameter")
        self._topics = dict(topics)
        self._headers = dict(config.get('headers', {}))
        self._timeout = config.get('timeout', 10)

    def list_topics(self) -> List[Mapping]:
        return [{ "name": t } for t in sorted(self._topics)]

    def push_message(self, topic: str, message: Mapping) -> Mapping:
        url = self._topics.get(topic)
        if not url:
            raise NotFound("Topic '%s' not found." % topic)

        msgid = str(uuid.uuid4())
        hdrs = { "Content-type": "application/json", "X-Message-Id": msgid }
        hdrs.update(self._headers)
        try:
            resp = requests.post(url, json=dict(message), headers=hdrs, timeout=self._timeout)
        except requests.RequestException as ex:
            raise InternalError("Failed to push message to topic '%s': %s" % (topic, str(ex)),
                                cause=ex)

        if resp.status_code >= 300:
            raise InternalError("Push to topic '%s' failed: %s %s" %
                                (topic, resp.status_code, resp.reason),
                                context={ "status": resp.status_code })
        return { "message_id": msgid, "status": resp.status_code }

class PushService(RestService):
    """
    a REST service for publishing messages to topics via a :py:class:`PushProvider`
    """
    default_aliases = DEFAULT_PUSH_ALIASES

    def __init__(self, api_name: str, provider: PushProvider, config: Mapping=None,
                 log: Logger=None, events: EventHook=None, svctype: str="push"):
        super(PushService, self).__init__(api_name, svctype, config, log, events)
        self.provider = provider

    def gather_extras(self, payload: Mapping, query: Mapping, verb: str) -> dict:
        extras = super(PushService, self).gather_extras(payload, query, verb)
        for key in ('names_only', 'as_access_components'):
            extras[key] = parse_bool(get_option(key, payload, query))
        return extras

    def list_resources(self, ctx: RequestContext) -> list:
        """
        return the topics the requesting user can access.  The ``names_only`` and
        ``as_access_components`` options are supported as for database services.
        """
        ascomps = ctx.extras.get('as_access_components')
        namesonly = ascomps or ctx.extras.get('names_only')

        out = ['', '*'] if ascomps else []
        for topic in self.provider.list_topics():
            name = topic.get('name')
            if not name:
                continue
            access = get_service_permissions(ctx.who, self.api_name, name)
            if not access:
                continue
            if namesonly:
                out.append(name)
            else:
                topic = dict(topic)
                topic['access'] = access
                out.append(topic)
        return out

    def handle_get(self, ctx: RequestContext):
        return self.provider.retrieve_topic(ctx.resource)

    def handle_post(self, ctx: RequestContext):
        if not ctx.payload:
            raise BadRequest("No post detected in request.")
        return self.provider.push_message(ctx.resource, dict(ctx.payload))
