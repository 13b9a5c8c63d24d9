"""
An event observer that broadcasts service events to listening clients via a websocket server.

The observer plays the role of a message "broadcaster": it connects to the websocket server,
identifies itself with a broadcast key, and sends a short JSON description of each event it
receives.  The server relays the message to its listening clients.
"""
import asyncio, json
import logging
from logging import Logger

import websockets

from .events import PlatformEvent, EventHook, POST_PROCESS

deflog = logging.getLogger("DSP").getChild("notifier")

class WebSocketEventNotifier(object):
    """
    a :py:class:`~dsp.platform.events.EventHook` observer that relays events over a websocket
    """

    def __init__(self, uri: str, broadcast_key: str=None, logger: Logger=None,
                 include_response: bool=False):
        """
        :param str uri:  the websocket server address (e.g. "ws://localhost:8765")
        :param str broadcast_key:  a key identifying this client to the server as a broadcaster
        :param bool include_response:  if True, include the action's result in the message
        """
        self.uri = uri
        self.api_key = broadcast_key
        if not logger:
            logger = deflog
        self.log = logger
        self.include_response = include_response
        self._pending = set()

    @classmethod
    def from_config(cls, config, logger: Logger=None):
        """
        create a notifier from a configuration with ``service_endpoint`` and ``broadcast_key``
        properties
        """
        return cls(config['service_endpoint'], config.get('broadcast_key'), logger,
                   config.get('include_response', False))

    def subscribe_to(self, hook: EventHook, name_pattern: str="*"):
        """
        register this notifier with an EventHook for post-process events
        """
        hook.subscribe(self, name_pattern, POST_PROCESS)

    def format_message(self, event: PlatformEvent) -> str:
        msg = {
            "event": event.name,
            "service": event.service,
            "resource": event.resource,
            "action": event.action
        }
        if self.include_response:
            msg['response'] = event.response
        return json.dumps(msg)

    def __call__(self, event: PlatformEvent):
        self.notify(self.format_message(event))

    def notify(self, message: str):
        """
        send a message to the websocket server.  If an event loop is already running, the
        message is sent asynchronously on it; otherwise, this call blocks until it is sent.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop and loop.is_running():
            task = loop.create_task(self._send_notification(message))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            self.log.debug("Notification scheduled on running event loop: %s", task)
        else:
            asyncio.run(self._send_notification(message))

    async def _send_notification(self, message: str):
        self.log.debug("Connecting to WebSocket server at %s...", self.uri)
        try:
            async with websockets.connect(self.uri) as websocket:
                if self.api_key:
                    message = "%s,%s" % (self.api_key, message)
                await websocket.send(message)
                self.log.debug("WebSocket message sent: %s", message)
        except Exception as ex:
            self.log.error("Error sending WebSocket message: %s", str(ex))
