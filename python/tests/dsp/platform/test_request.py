import os, sys, pdb, json, logging, re
import unittest as test

from dsp.platform import request as req
from dsp.platform.verbs import Action
from dsp.platform.resource import resolve_path
from dsp.platform.exceptions import BadRequest

class TestFunctions(test.TestCase):

    def test_parse_bool(self):
        for v in ("true", "TRUE", "1", "yes", "on", " t ", True, 1):
            self.assertTrue(req.parse_bool(v), repr(v))
        for v in ("false", "0", "No", "off", "", False, 0):
            self.assertFalse(req.parse_bool(v), repr(v))
        self.assertFalse(req.parse_bool(None))
        self.assertTrue(req.parse_bool(None, True))
        with self.assertRaises(BadRequest):
            req.parse_bool("goober")

    def test_get_option(self):
        payload = { "limit": 5, "fields": "id" }
        query = { "limit": "10" }
        self.assertEqual(req.get_option("limit", payload, query), "10")
        self.assertEqual(req.get_option("fields", payload, query), "id")
        self.assertIsNone(req.get_option("order", payload, query))
        self.assertEqual(req.get_option("order", payload, query, "id"), "id")
        self.assertEqual(req.get_option("limit", [{"limit": 3}], None), None)

    def test_wrap_records_payload(self):
        self.assertEqual(req.wrap_records_payload(None, False, True), ({}, False))
        self.assertEqual(req.wrap_records_payload({}, False, True), ({}, False))

        recs = [{"id": 1}, {"id": 2}]
        self.assertEqual(req.wrap_records_payload(recs, False, True),
                         ({"record": recs}, False))
        self.assertEqual(req.wrap_records_payload({"record": recs, "fields": "*"}, False, True),
                         ({"record": recs, "fields": "*"}, False))
        self.assertEqual(req.wrap_records_payload({"record": {"id": 1}}, False, True),
                         ({"record": [{"id": 1}]}, False))

        # a single, unwrapped record
        self.assertEqual(req.wrap_records_payload({"name": "gurn"}, False, True),
                         ({"record": [{"name": "gurn"}]}, True))
        self.assertEqual(req.wrap_records_payload({"name": "gurn"}, True, True),
                         ({"record": [{"name": "gurn"}]}, False))
        self.assertEqual(req.wrap_records_payload({"filter": "a=1"}, False, False),
                         ({"filter": "a=1"}, False))

        with self.assertRaises(BadRequest):
            req.wrap_records_payload("goober", False, True)

    def test_create_record_id(self):
        rid = req.create_record_id("widgets")
        self.assertTrue(re.match(r'^[0-9a-f]{32}\d{2}$', rid), rid)
        self.assertNotEqual(rid, req.create_record_id("widgets"))

class TestRequestContext(test.TestCase):

    def test_make_context(self):
        payload = { "record": [{"id": 1, "tags": ["a"]}] }
        extras = { "batch": False }
        ctx = req.make_context(Action.POST, "POST", resolve_path("widgets/1"), payload, extras,
                               True, None)
        self.assertEqual(ctx.action, Action.POST)
        self.assertEqual(ctx.verb, "POST")
        self.assertEqual(ctx.resource, "widgets")
        self.assertEqual(ctx.resource_id, "1")
        self.assertEqual(ctx.records, [{"id": 1, "tags": ["a"]}])
        self.assertTrue(ctx.single_record_amnesty)
        self.assertIsNone(ctx.who)

        # the context is frozen and independent of its inputs
        with self.assertRaises(TypeError):
            ctx.payload['record'] = []
        with self.assertRaises(TypeError):
            ctx.extras['batch'] = True
        with self.assertRaises(AttributeError):
            ctx.verb = "GET"
        payload['record'][0]['tags'].append("b")
        self.assertEqual(ctx.records[0]['tags'], ["a"])

    def test_records(self):
        ctx = req.make_context(Action.GET, "GET", resolve_path("widgets"), {}, {})
        self.assertEqual(ctx.records, [])
        self.assertFalse(ctx.single_record_amnesty)

        ctx = req.make_context(Action.GET, "GET", resolve_path("widgets"),
                               {"record": {"id": 3}}, {})
        self.assertEqual(ctx.records, [{"id": 3}])


if __name__ == '__main__':
    test.main()
