import os, sys, pdb, json, logging, re
import unittest as test

from dsp.web import utils

class TestFunctions(test.TestCase):

    def test_is_content_type(self):
        self.assertTrue(utils.is_content_type("goob/gurn"))
        self.assertTrue(utils.is_content_type("text/csv"))
        self.assertTrue(utils.is_content_type("application/x-yaml"))

        self.assertFalse(utils.is_content_type("json"))
        self.assertFalse(utils.is_content_type("csv"))

    def test_match_accept(self):
        self.assertEqual(utils.match_accept("text/csv", "text/csv"), "text/csv")
        self.assertEqual(utils.match_accept("text/*", "text/csv"), "text/csv")
        self.assertEqual(utils.match_accept("text/csv", "text/*"), "text/csv")
        self.assertEqual(utils.match_accept("text/*", "text/*"), "text/*")
        self.assertIsNone(utils.match_accept("text/csv", "text/yaml"))

    def test_acceptable(self):
        self.assertEqual(utils.acceptable("text/csv", ["application/json", "text/csv", "text/*"]),
                         "text/csv")
        self.assertEqual(utils.acceptable("text/*", ["application/json","text/csv","text/*"]),
                         "text/csv")
        self.assertEqual(utils.acceptable("text/*", ["application/json","text/*","text/csv"]),
                         "text/*")
        self.assertIsNone(utils.acceptable("app/html", ["application/json","text/*"]))
        self.assertEqual(utils.acceptable("text/csv", []), "text/csv")

    def test_order_accepts(self):
        ordrd = utils.order_accepts("text/csv, application/json;q=0.9, text/yaml, */*;q=0.8")
        self.assertEqual(ordrd, "text/csv text/yaml application/json */*".split())

        self.assertEqual(utils.order_accepts(["text/csv,text/yaml",
                                              "application/json;q=0.9",
                                              "*/*;q=0.5"]),
                         "text/csv text/yaml application/json */*".split())

        self.assertEqual(utils.order_accepts("text/csv;q=0, application/json"),
                         ["application/json"])


if __name__ == '__main__':
    test.main()
