import os, sys, pdb, json, logging, tempfile, asyncio
import unittest as test
from unittest.mock import patch, MagicMock, AsyncMock

from dsp.platform import notifier
from dsp.platform.events import EventHook, PlatformEvent, POST_PROCESS, PRE_PROCESS

tmpdir = tempfile.TemporaryDirectory(prefix="_test_notifier.")
loghdlr = None
rootlog = None
def setUpModule():
    global loghdlr
    global rootlog
    rootlog = logging.getLogger()
    loghdlr = logging.FileHandler(os.path.join(tmpdir.name,"test_notifier.log"))
    loghdlr.setLevel(logging.DEBUG)
    rootlog.addHandler(loghdlr)

def tearDownModule():
    global loghdlr
    if loghdlr:
        if rootlog:
            rootlog.removeHandler(loghdlr)
            loghdlr.flush()
            loghdlr.close()
        loghdlr = None
    tmpdir.cleanup()

def make_event():
    return PlatformEvent("db.widgets.post", POST_PROCESS, "db", "widgets", "POST",
                         {"record": [{"id": 1}]}, {"id": 1})

class TestWebSocketEventNotifier(test.TestCase):

    def setUp(self):
        self.ws = AsyncMock()
        self.conn = MagicMock()
        self.conn.__aenter__.return_value = self.ws
        self.notr = notifier.WebSocketEventNotifier("ws://localhost:8765", "secret", rootlog)

    def test_from_config(self):
        notr = notifier.WebSocketEventNotifier.from_config({
            "service_endpoint": "ws://localhost:9999", "include_response": True })
        self.assertEqual(notr.uri, "ws://localhost:9999")
        self.assertIsNone(notr.api_key)
        self.assertTrue(notr.include_response)

        with self.assertRaises(KeyError):
            notifier.WebSocketEventNotifier.from_config({})

    def test_format_message(self):
        msg = json.loads(self.notr.format_message(make_event()))
        self.assertEqual(msg, { "event": "db.widgets.post", "service": "db",
                                "resource": "widgets", "action": "POST" })

        self.notr.include_response = True
        msg = json.loads(self.notr.format_message(make_event()))
        self.assertEqual(msg['response'], {"id": 1})

    def test_notify(self):
        with patch.object(notifier.websockets, "connect", return_value=self.conn) as connect:
            self.notr.notify("hello")
            connect.assert_called_once_with("ws://localhost:8765")
        self.ws.send.assert_awaited_once_with("secret,hello")

    def test_notify_in_running_loop(self):
        async def run():
            self.notr.notify("hello")
            self.assertEqual(len(self.notr._pending), 1)
            await asyncio.gather(*list(self.notr._pending))
            await asyncio.sleep(0)
            self.assertEqual(self.notr._pending, set())

        with patch.object(notifier.websockets, "connect", return_value=self.conn):
            asyncio.run(run())
        self.ws.send.assert_awaited_once_with("secret,hello")

    def test_notify_failure(self):
        with patch.object(notifier.websockets, "connect", side_effect=OSError("refused")):
            # failures are logged, not raised
            self.notr.notify("hello")

    def test_subscribe_to(self):
        hook = EventHook(rootlog)
        self.notr.subscribe_to(hook, "db.*")
        with patch.object(notifier.websockets, "connect", return_value=self.conn):
            self.assertEqual(hook.fire(make_event()), 1)
            self.assertEqual(hook.fire(make_event()._replace(phase=PRE_PROCESS)), 0)
        self.ws.send.assert_awaited_once()
        sent = self.ws.send.await_args[0][0]
        self.assertTrue(sent.startswith("secret,"))
        self.assertEqual(json.loads(sent[len("secret,"):])['event'], "db.widgets.post")


if __name__ == '__main__':
    test.main()
