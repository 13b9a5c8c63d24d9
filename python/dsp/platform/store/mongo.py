"""
An implementation of the :py:class:`~dsp.platform.store.base.RecordStore` interface that uses a
MongoDB database as its backend.  Each table is a MongoDB collection.
"""
import re
from copy import deepcopy
from collections.abc import Mapping
from typing import List, Sequence

from pymongo import MongoClient, ASCENDING, DESCENDING
from pymongo.errors import PyMongoError, DuplicateKeyError, BulkWriteError

from dsp.base.config import ConfigurationException
from .. import RECORD_WRAPPER, META_KEY, MAX_RECORDS_RETURNED
from ..exceptions import NotFound, BadRequest, InternalError
from ..request import create_record_id, parse_bool
from .base import RecordStore, Records, parse_filter, parse_paging, parse_order

__all__ = [ "MongoRecordStore" ]

_dburl_re = re.compile(r"^mongodb://(\w+(:\S+)?@)?\w+(\.\w+)*(:\d+)?/\w+(\?\w.*)?$")

class MongoRecordStore(RecordStore):
    """
    a RecordStore backed by a MongoDB database.

    In addition to the parameters supported by all RecordStores, the configuration may include
    ``max_records_returned`` (default: 1000).
    """

    def __init__(self, dburl: str, config: Mapping=None):
        """
        :param str   dburl:  the URL of MongoDB database in the form,
                             'mongodb://USER:PW@HOST:PORT/DBNAME'
        """
        if not _dburl_re.match(dburl or ''):
            raise ConfigurationException("MongoRecordStore: Bad dburl format (need "
                                         "'mongodb://[USER:PASS@]HOST[:PORT]/DBNAME'): " + str(dburl))
        super(MongoRecordStore, self).__init__(config)
        self._dburl = dburl
        self._mngocli = None
        self._native = None

    def connect(self):
        """
        establish a connection to the database
        """
        self._mngocli = MongoClient(self._dburl)
        self._native = self._mngocli.get_database()

    def disconnect(self):
        """
        close the connection to the database
        """
        if self._mngocli:
            try:
                self._mngocli.close()
            finally:
                self._mngocli = None
                self._native = None

    @property
    def native(self):
        """
        the pymongo database object.  Accessing this property will implicitly connect to the
        database.
        """
        if self._native is None:
            self.connect()
        return self._native

    def _coll(self, table: str, must_exist: bool=True):
        db = self.native
        if must_exist and table not in db.list_collection_names():
            raise NotFound("Table '%s' does not exist in the database." % table)
        return db[table]

    def _projection(self, fields, default_all: bool=False):
        if not fields:
            fields = '*' if default_all else self.id_field
        if fields == '*':
            return { "_id": False }
        if isinstance(fields, str):
            fields = [f.strip() for f in fields.split(',')]
        out = dict((f, True) for f in fields)
        out[self.id_field] = True
        out["_id"] = False
        return out

    def _sort(self, order):
        sort = [(fld, DESCENDING if desc else ASCENDING) for fld, desc in parse_order(order)]
        return sort or None

    def _id_forms(self, id) -> list:
        # identifiers from a URL path arrive as strings; match them against numeric ids, too
        forms = [id]
        if isinstance(id, str) and id.lstrip('-').isdigit():
            forms.append(int(id))
        elif isinstance(id, int) and not isinstance(id, bool):
            forms.append(str(id))
        return forms

    def _id_query(self, id) -> Mapping:
        return { self.id_field: { "$in": self._id_forms(id) } }

    def _wrap(self, func, what: str):
        try:
            return func()
        except (NotFound, BadRequest):
            raise
        except DuplicateKeyError as ex:
            raise BadRequest("Record already exists: %s" % str(ex), cause=ex)
        except PyMongoError as ex:
            raise InternalError("Failed to %s: %s" % (what, str(ex)), cause=ex)

    def list_resources(self) -> List[str]:
        return self._wrap(lambda: sorted(c for c in self.native.list_collection_names()
                                         if not c.startswith("system.")),
                          "list tables")

    def describe_table(self, table: str) -> Mapping:
        def describe():
            coll = self._coll(table)
            return { "name": table, "count": coll.count_documents({}),
                     "index": list(coll.index_information().keys()) }
        return self._wrap(describe, "describe table " + table)

    def retrieve_records(self, table: str, records: Sequence[Mapping], extras: Mapping) -> Records:
        ids = []
        for i, rec in enumerate(records):
            if not isinstance(rec, Mapping) or rec.get(self.id_field) in (None, ''):
                raise BadRequest("Required id field(s) not found in record %d: %s" % (i, self.id_field))
            ids.append(rec[self.id_field])
        return self.retrieve_records_by_ids(table, ids, extras)

    def retrieve_records_by_ids(self, table: str, ids: Sequence, extras: Mapping) -> Records:
        def retrieve():
            coll = self._coll(table)
            forms = [f for i in ids for f in self._id_forms(i)]
            found = dict((str(r[self.id_field]), r) for r in
                         coll.find({ self.id_field: { "$in": forms } },
                                   self._projection(extras.get('fields'), True)))
            missing = [str(i) for i in ids if str(i) not in found]
            if missing:
                raise NotFound("Record(s) not found in table '%s': %s" % (table, ", ".join(missing)))
            return [found[str(i)] for i in ids]
        return self._wrap(retrieve, "retrieve records from " + table)

    def retrieve_records_by_filter(self, table: str, filter, params: Mapping,
                                   extras: Mapping) -> Records:
        def retrieve():
            coll = self._coll(table)
            query = dict(parse_filter(filter) or {})
            offset, limit = parse_paging(extras, self.cfg.get('max_records_returned',
                                                              MAX_RECORDS_RETURNED))
            cursor = coll.find(query, self._projection(extras.get('fields'), True),
                               skip=offset, limit=limit)
            sort = self._sort(extras.get('order'))
            if sort:
                cursor = cursor.sort(sort)
            recs = list(cursor)
            if parse_bool(extras.get('include_count')):
                return { RECORD_WRAPPER: recs, META_KEY: { "count": coll.count_documents(query) } }
            return recs
        return self._wrap(retrieve, "retrieve records from " + table)

    def create_records(self, table: str, records: Sequence[Mapping], extras: Mapping) -> List[Mapping]:
        create_id = parse_bool(extras.get('create_id'))
        recs = []
        for i, rec in enumerate(records):
            if not isinstance(rec, Mapping):
                raise BadRequest("Record %d is not an object" % i)
            rec = deepcopy(dict(rec))
            if rec.get(self.id_field) in (None, '') and create_id:
                rec[self.id_field] = create_record_id(table)
            if rec.get(self.id_field) in (None, ''):
                raise BadRequest("Required id field(s) not found in record %d: %s" % (i, self.id_field))
            recs.append(rec)

        def create():
            coll = self._coll(table, False)
            if coll.count_documents({ self.id_field: { "$in": [r[self.id_field] for r in recs] } }):
                raise BadRequest("One or more records already exist in table '%s'" % table)
            if parse_bool(extras.get('batch')):
                try:
                    coll.insert_many(deepcopy(recs), ordered=not parse_bool(extras.get('continue')))
                except BulkWriteError as ex:
                    raise BadRequest("Batch Error: Not all records could be created.",
                                     context={ "errors": ex.details.get('writeErrors', []) }, cause=ex)
            else:
                for rec in recs:
                    coll.insert_one(deepcopy(rec))
            return [self._project(r, extras.get('fields')) for r in recs]
        return self._wrap(create, "create records in " + table)

    def _project(self, rec: Mapping, fields) -> Mapping:
        proj = self._projection(fields)
        if len(proj) == 1:
            return dict((k, v) for k, v in rec.items() if k != "_id")
        return dict((k, v) for k, v in rec.items() if k in proj and k != "_id")

    def _change(self, table: str, id, data: Mapping, merge: bool, extras: Mapping) -> Mapping:
        coll = self._coll(table)
        current = coll.find_one(self._id_query(id), { self.id_field: True, "_id": False })
        if current is None:
            raise NotFound("Record with identifier '%s' not found." % id)
        id = current[self.id_field]
        data = dict((k, v) for k, v in data.items() if k != "_id")
        data[self.id_field] = id
        if merge:
            result = coll.update_one({ self.id_field: id }, { "$set": data })
        else:
            result = coll.replace_one({ self.id_field: id }, data)
        if result.matched_count == 0:
            raise NotFound("Record with identifier '%s' not found." % id)
        return coll.find_one({ self.id_field: id }, self._projection(extras.get('fields')))

    def _change_records(self, table, records, extras, merge):
        def change():
            out = []
            for i, rec in enumerate(records):
                if not isinstance(rec, Mapping) or rec.get(self.id_field) in (None, ''):
                    raise BadRequest("Required id field(s) not found in record %d: %s" %
                                     (i, self.id_field))
                out.append(self._change(table, rec[self.id_field], rec, merge, extras))
            return out
        return self._wrap(change, "update records in " + table)

    def _change_by_ids(self, table, record, ids, extras, merge):
        return self._wrap(lambda: [self._change(table, i, record, merge, extras) for i in ids],
                          "update records in " + table)

    def _ids_for_filter(self, table, filter):
        return self._wrap(lambda: [r[self.id_field] for r in
                                   self._coll(table).find(dict(parse_filter(filter) or {}),
                                                          { self.id_field: True, "_id": False })],
                          "select records from " + table)

    def update_records(self, table: str, records: Sequence[Mapping], extras: Mapping) -> List[Mapping]:
        return self._change_records(table, records, extras, False)

    def update_record_by_id(self, table: str, record: Mapping, id, extras: Mapping) -> Mapping:
        return self._change_by_ids(table, record, [id], extras, False)[0]

    def update_records_by_ids(self, table: str, record: Mapping, ids: Sequence,
                              extras: Mapping) -> List[Mapping]:
        return self._change_by_ids(table, record, ids, extras, False)

    def update_records_by_filter(self, table: str, record: Mapping, filter, params: Mapping,
                                 extras: Mapping) -> List[Mapping]:
        return self._change_by_ids(table, record, self._ids_for_filter(table, filter), extras, False)

    def patch_records(self, table: str, records: Sequence[Mapping], extras: Mapping) -> List[Mapping]:
        return self._change_records(table, records, extras, True)

    def patch_record_by_id(self, table: str, record: Mapping, id, extras: Mapping) -> Mapping:
        return self._change_by_ids(table, record, [id], extras, True)[0]

    def patch_records_by_ids(self, table: str, record: Mapping, ids: Sequence,
                             extras: Mapping) -> List[Mapping]:
        return self._change_by_ids(table, record, ids, extras, True)

    def patch_records_by_filter(self, table: str, record: Mapping, filter, params: Mapping,
                                extras: Mapping) -> List[Mapping]:
        return self._change_by_ids(table, record, self._ids_for_filter(table, filter), extras, True)

    def delete_records_by_ids(self, table: str, ids: Sequence, extras: Mapping) -> List[Mapping]:
        def delete():
            coll = self._coll(table)
            proj = self._projection(extras.get('fields'))
            out = []
            for id in ids:
                rec = coll.find_one_and_delete(self._id_query(id), projection=proj)
                if rec is None:
                    raise NotFound("Record with identifier '%s' not found." % id)
                out.append(rec)
            return out
        return self._wrap(delete, "delete records from " + table)

    def delete_record_by_id(self, table: str, id, extras: Mapping) -> Mapping:
        return self.delete_records_by_ids(table, [id], extras)[0]

    def delete_records(self, table: str, records: Sequence[Mapping], extras: Mapping) -> List[Mapping]:
        ids = []
        for i, rec in enumerate(records):
            if not isinstance(rec, Mapping) or rec.get(self.id_field) in (None, ''):
                raise BadRequest("Required id field(s) not found in record %d: %s" % (i, self.id_field))
            ids.append(rec[self.id_field])
        return self.delete_records_by_ids(table, ids, extras)

    def delete_records_by_filter(self, table: str, filter, params: Mapping,
                                 extras: Mapping) -> List[Mapping]:
        return self.delete_records_by_ids(table, self._ids_for_filter(table, filter), extras)

    def truncate_table(self, table: str, extras: Mapping) -> Mapping:
        self._wrap(lambda: self._coll(table).delete_many({}), "truncate " + table)
        return { "success": True }
