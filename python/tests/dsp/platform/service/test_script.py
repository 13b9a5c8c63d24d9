import os, sys, pdb, json, logging, tempfile
import unittest as test

from dsp.platform.service.script import ScriptService
from dsp.platform.exceptions import BadRequest, NotFound, InternalError

tmpdir = tempfile.TemporaryDirectory(prefix="_test_script.")
loghdlr = None
rootlog = None
def setUpModule():
    global loghdlr
    global rootlog
    rootlog = logging.getLogger()
    loghdlr = logging.FileHandler(os.path.join(tmpdir.name,"test_script.log"))
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

echo_script = """
import sys, json
data = json.load(sys.stdin)
print("Hello, %s!" % data.get("name", "world"))
"""

fail_script = """
import sys
sys.stderr.write("oops")
sys.exit(3)
"""

class TestScriptService(test.TestCase):

    def setUp(self):
        self.scriptdir = os.path.join(tmpdir.name, "scripts")
        self.svc = ScriptService("scripts", {
            "script_dir": self.scriptdir, "extension": ".py",
            "engine": { "command": [sys.executable], "timeout": 20 }
        }, rootlog)

    def tearDown(self):
        if os.path.isdir(self.scriptdir):
            for f in os.listdir(self.scriptdir):
                os.remove(os.path.join(self.scriptdir, f))
            os.rmdir(self.scriptdir)

    def test_ctor(self):
        self.assertEqual(self.svc.type, "script")
        self.assertEqual(self.svc.extension, ".py")
        self.assertEqual(self.svc.engine['timeout'], 20)
        self.assertEqual(self.svc.supported_verbs(), ["GET", "POST", "PUT", "DELETE"])

        svc = ScriptService("scripts", {}, rootlog)
        self.assertEqual(svc.extension, ".js")
        self.assertEqual(svc.engine, {"command": ["node"], "timeout": 30})
        with self.assertRaises(BadRequest):
            svc.process_request("GET", "")

    def test_save_and_list(self):
        self.assertEqual(self.svc.process_request("GET", ""), {"resource": []})

        out = self.svc.process_request("PUT", "hello", {"script_body": echo_script})
        self.assertEqual(out['script_id'], "hello")
        self.assertTrue(os.path.isfile(os.path.join(self.scriptdir, "hello.py")))
        self.assertEqual(self.svc.process_request("GET", ""), {"resource": ["hello"]})

        out = self.svc.process_request("GET", "hello")
        self.assertEqual(out, {"script_id": "hello", "script_body": echo_script})

        with self.assertRaises(BadRequest):
            self.svc.process_request("PUT", "hello", {"script_body": ""})
        with self.assertRaises(BadRequest):
            self.svc.process_request("PUT", "hello", {"script_id": "bye", "script_body": "x"})
        with self.assertRaises(BadRequest):
            self.svc.process_request("PUT", "..", {"script_body": "x"})

        self.assertEqual(self.svc.process_request("DELETE", "hello"), {"script_id": "hello"})
        self.assertEqual(self.svc.process_request("GET", ""), {"resource": []})
        with self.assertRaises(NotFound):
            self.svc.process_request("GET", "hello")
        with self.assertRaises(NotFound):
            self.svc.process_request("DELETE", "hello")

    def test_run(self):
        self.svc.process_request("PUT", "hello", {"script_body": echo_script})
        out = self.svc.process_request("POST", "hello", {"name": "Fed"})
        self.assertEqual(out, {"response": "Hello, Fed!\n"})

        self.svc.process_request("PUT", "fail", {"script_body": fail_script})
        with self.assertRaises(InternalError) as cm:
            self.svc.process_request("POST", "fail", {})
        self.assertEqual(cm.exception.context['exit_code'], 3)
        self.assertEqual(cm.exception.context['stderr'], "oops")

        with self.assertRaises(NotFound):
            self.svc.process_request("POST", "goob", {})

    def test_no_engine(self):
        svc = ScriptService("scripts", {
            "script_dir": self.scriptdir, "extension": ".py",
            "engine": { "command": [os.path.join(tmpdir.name, "no-such-engine")] }
        }, rootlog)
        svc.process_request("PUT", "hello", {"script_body": echo_script})
        with self.assertRaises(InternalError) as cm:
            svc.process_request("POST", "hello", {})
        self.assertEqual(cm.exception.message, "This system does not support server-side scripts.")


if __name__ == '__main__':
    test.main()
