"""
An extension point allowing observers to react to the requests handled by platform services
(e.g. for auditing or for triggering webhooks).

A service fires a ``pre_process`` event just before it executes an action on a resource and a
``post_process`` event after the action succeeds.  Observers are called synchronously, in the
order they subscribed; an exception raised by an observer is logged and otherwise ignored so
that observers can never change the outcome of a request.
"""
import logging, fnmatch
from collections import namedtuple
from copy import deepcopy
from logging import Logger
from typing import Callable

__all__ = [ "PRE_PROCESS", "POST_PROCESS", "PlatformEvent", "EventHook", "make_event_name" ]

PRE_PROCESS = "pre_process"
POST_PROCESS = "post_process"

deflog = logging.getLogger("DSP").getChild("events")

PlatformEvent = namedtuple("PlatformEvent",
                           ["name", "phase", "service", "resource", "action", "request", "response"])
PlatformEvent.__doc__ = """
a description of a request handled (or about to be handled) by a service

``name``
    the event name, of the form "{api_name}.{resource}.{verb}" (e.g. "db.widgets.post"), or
    "{api_name}.list" when the service's resources were listed
``phase``
    either ``pre_process`` or ``post_process``
``service``
    the ``api_name`` of the service handling the request
``resource``
    the resource being acted on (an empty string for the service itself)
``action``
    the canonical verb
``request``
    a copy of the normalized request payload
``response``
    a copy of the result (None for ``pre_process`` events)
"""

def make_event_name(api_name: str, resource: str, verb: str) -> str:
    """
    return the name to give an event for an action on a service resource
    """
    if not resource:
        return "%s.list" % api_name
    return "%s.%s.%s" % (api_name, resource, verb.lower())

class EventHook(object):
    """
    a registry of observers that should be notified of service events.  An observer is any
    callable that accepts a :py:class:`PlatformEvent` as its only argument.
    """

    def __init__(self, log: Logger=None):
        if not log:
            log = deflog
        self.log = log
        self._observers = []

    def subscribe(self, observer: Callable, name_pattern: str="*", phase: str=POST_PROCESS):
        """
        register an observer.
        :param Callable observer:  the function to call with matching events
        :param str name_pattern:   a glob-style pattern that the event name must match
                                   (e.g. "db.*.post"); the default matches all events
        :param str        phase:   the phase of events to receive; if None, events from
                                   all phases are delivered
        """
        self._observers.append((observer, name_pattern, phase))

    def unsubscribe(self, observer: Callable):
        """
        remove all registrations of the given observer
        """
        self._observers = [o for o in self._observers if o[0] is not observer]

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def fire(self, event: PlatformEvent) -> int:
        """
        deliver an event to all interested observers.  Each observer receives its own copy
        of the event's request and response data.  Observer failures are logged and do not
        prevent delivery to the remaining observers.
        :return:  the number of observers that handled the event without error
        """
        handled = 0
        for observer, pattern, phase in list(self._observers):
            if phase and phase != event.phase:
                continue
            if not fnmatch.fnmatchcase(event.name, pattern):
                continue
            try:
                observer(event._replace(request=deepcopy(event.request),
                                        response=deepcopy(event.response)))
                handled += 1
            except Exception as ex:
                self.log.exception("Event observer failed while handling %s (%s): %s",
                                   event.name, event.phase, str(ex))
        return handled
