import os, sys, pdb, json, logging
import unittest as test

from dsp.platform.store import mongo
from dsp.platform.exceptions import NotFound, BadRequest
from dsp.base.config import ConfigurationException

dburl = None
if os.environ.get('MONGO_TESTDB_URL'):
    dburl = os.environ.get('MONGO_TESTDB_URL')

testrecs = [
    { "id": 1, "name": "gurn", "color": "red", "size": 3 },
    { "id": 2, "name": "goob", "color": "blue", "size": 1 },
    { "id": 3, "name": "gomer", "color": "red", "size": 2 }
]

class TestMongoRecordStoreCtor(test.TestCase):

    def test_bad_url(self):
        with self.assertRaises(ConfigurationException):
            mongo.MongoRecordStore("http://localhost/goob")
        with self.assertRaises(ConfigurationException):
            mongo.MongoRecordStore(None)

    def test_ctor(self):
        store = mongo.MongoRecordStore("mongodb://localhost:27017/testdsp", {"id_field": "key"})
        self.assertEqual(store.id_field, "key")
        self.assertEqual(store._projection(None), {"key": True, "_id": False})
        self.assertEqual(store._projection("*"), {"_id": False})
        self.assertEqual(store._projection("name, color"),
                         {"name": True, "color": True, "key": True, "_id": False})
        self.assertEqual(store._sort("name DESC, size"),
                         [("name", mongo.DESCENDING), ("size", mongo.ASCENDING)])
        self.assertIsNone(store._sort(None))
        with self.assertRaises(BadRequest):
            store._sort("name sideways")

    def test_id_query(self):
        store = mongo.MongoRecordStore("mongodb://localhost:27017/testdsp")
        self.assertEqual(store._id_query("5"), {"id": {"$in": ["5", 5]}})
        self.assertEqual(store._id_query(5), {"id": {"$in": [5, "5"]}})
        self.assertEqual(store._id_query("-2"), {"id": {"$in": ["-2", -2]}})
        self.assertEqual(store._id_query("a5"), {"id": {"$in": ["a5"]}})

@test.skipIf(not os.environ.get('MONGO_TESTDB_URL'), "test mongodb not available")
class TestMongoRecordStore(test.TestCase):

    def setUp(self):
        self.store = mongo.MongoRecordStore(dburl)
        self.store.create_records("widgets", testrecs, {})

    def tearDown(self):
        for table in self.store.list_resources():
            self.store.native.drop_collection(table)
        self.store.disconnect()

    def test_list_describe(self):
        self.assertIn("widgets", self.store.list_resources())
        desc = self.store.describe_table("widgets")
        self.assertEqual(desc['count'], 3)
        with self.assertRaises(NotFound):
            self.store.describe_table("goobers")

    def test_retrieve(self):
        recs = self.store.retrieve_records_by_ids("widgets", [3, 1], {})
        self.assertEqual([r['name'] for r in recs], ["gomer", "gurn"])
        recs = self.store.retrieve_records_by_filter("widgets", '{"color": "red"}', None,
                                                     {"order": "size", "fields": "name"})
        self.assertEqual(recs, [{"id": 3, "name": "gomer"}, {"id": 1, "name": "gurn"}])
        out = self.store.retrieve_records_by_filter("widgets", None, None,
                                                    {"include_count": True, "limit": 1})
        self.assertEqual(out['meta'], {"count": 3})
        with self.assertRaises(NotFound):
            self.store.retrieve_records_by_ids("widgets", [9], {})

    def test_string_ids(self):
        recs = self.store.retrieve_records_by_ids("widgets", ["3", "1"], {})
        self.assertEqual([r['id'] for r in recs], [3, 1])
        with self.assertRaises(NotFound):
            self.store.retrieve_records_by_ids("widgets", ["3", "9"], {})

        rec = self.store.patch_record_by_id("widgets", {"size": 7}, "2", {"fields": "*"})
        self.assertEqual(rec, {"id": 2, "name": "goob", "color": "blue", "size": 7})
        rec = self.store.delete_record_by_id("widgets", "2", {})
        self.assertEqual(rec, {"id": 2})
        with self.assertRaises(NotFound):
            self.store.retrieve_record_by_id("widgets", 2, {})

    def test_paging(self):
        recs = self.store.retrieve_records_by_filter("widgets", None, None, {"limit": -1})
        self.assertEqual(len(recs), 3)
        with self.assertRaises(BadRequest):
            self.store.retrieve_records_by_filter("widgets", None, None, {"limit": "ten"})

    def test_create(self):
        with self.assertRaises(BadRequest):
            self.store.create_records("widgets", [{"id": 1}], {})
        recs = self.store.create_records("widgets", [{"name": "new"}], {"create_id": True})
        self.assertEqual(len(recs[0]['id']), 34)

    def test_update_patch_delete(self):
        rec = self.store.update_record_by_id("widgets", {"name": "jim"}, 2, {"fields": "*"})
        self.assertEqual(rec, {"id": 2, "name": "jim"})
        rec = self.store.patch_record_by_id("widgets", {"size": 9}, 1, {"fields": "*"})
        self.assertEqual(rec, {"id": 1, "name": "gurn", "color": "red", "size": 9})
        recs = self.store.delete_records_by_filter("widgets", {"color": "red"}, None, {})
        self.assertEqual(sorted(r['id'] for r in recs), [1, 3])
        self.assertEqual(self.store.truncate_table("widgets", {}), {"success": True})
        self.assertEqual(self.store.describe_table("widgets")['count'], 0)


if __name__ == '__main__':
    test.main()
