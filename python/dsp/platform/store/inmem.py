"""
An implementation of the :py:class:`~dsp.platform.store.base.RecordStore` interface based on a
simple in-memory look-up.

This is provided primarily for testing and development purposes.  Tables are created on demand
when records are first added to them (unless ``auto_create_tables`` is configured as False).
"""
from copy import deepcopy
from collections.abc import Mapping, MutableMapping
from typing import List, Sequence, Iterator

from .. import RECORD_WRAPPER, META_KEY, MAX_RECORDS_RETURNED
from ..exceptions import NotFound, BadRequest
from ..request import create_record_id, parse_bool
from .base import RecordStore, Records, parse_filter, parse_paging, parse_order

__all__ = [ "InMemoryRecordStore" ]

class InMemoryRecordStore(RecordStore):
    """
    a RecordStore that keeps its tables in memory.

    The following configuration parameters are supported:

    ``id_field``
        the name of the field holding a record's identifier (default: "id")
    ``auto_create_tables``
        if True (default), a table is created when records are first created in it
    ``max_records_returned``
        the maximum number of records returned by a single retrieval (default: 1000)
    """

    def __init__(self, data: Mapping=None, config: Mapping=None):
        """
        :param Mapping data:  initial data: a mapping of table names to lists of records
        """
        super(InMemoryRecordStore, self).__init__(config)
        self._db = {}
        if data:
            for table, recs in data.items():
                self._db[table] = {}
                for rec in recs:
                    self._db[table][rec[self.id_field]] = deepcopy(rec)

    def list_resources(self) -> List[str]:
        return sorted(self._db.keys())

    def describe_table(self, table: str) -> Mapping:
        tbl = self._table(table)
        fields = []
        for rec in tbl.values():
            fields.extend(f for f in rec if f not in fields)
        return { "name": table, "field": fields, "count": len(tbl) }

    def _table(self, table: str, create: bool=False) -> MutableMapping:
        if table not in self._db:
            if not create or not self.cfg.get('auto_create_tables', True):
                raise NotFound("Table '%s' does not exist in the database." % table)
            self._db[table] = {}
        return self._db[table]

    def _project(self, rec: Mapping, fields, default_all: bool=False) -> Mapping:
        if not fields:
            fields = '*' if default_all else self.id_field
        if fields == '*':
            return deepcopy(rec)
        if isinstance(fields, str):
            fields = [f.strip() for f in fields.split(',')]
        out = { self.id_field: rec.get(self.id_field) }
        for f in fields:
            if f in rec:
                out[f] = deepcopy(rec[f])
        return out

    def _get_id(self, rec: Mapping, index: int=0):
        if not isinstance(rec, Mapping):
            raise BadRequest("Record %d is not an object" % index)
        id = rec.get(self.id_field)
        if id is None or id == '':
            raise BadRequest("Required id field(s) not found in record %d: %s" % (index, self.id_field))
        return id

    def _key(self, tbl: Mapping, id):
        # identifiers from a URL path arrive as strings
        if id in tbl or not isinstance(id, str):
            return id
        for k in tbl:
            if str(k) == id:
                return k
        return id

    def _select(self, tbl: Mapping, filter) -> Iterator[Mapping]:
        filter = parse_filter(filter) or {}
        for rec in tbl.values():
            if all(rec.get(k) == v for k, v in filter.items()):
                yield rec

    def _order(self, recs: List[Mapping], order) -> List[Mapping]:
        for fld, desc in reversed(parse_order(order)):
            try:
                recs.sort(key=lambda r: (r.get(fld) is None, r.get(fld)), reverse=desc)
            except TypeError:
                raise BadRequest("Unable to order records by field '%s': values are not "
                                 "comparable" % fld)
        return recs

    def retrieve_records(self, table: str, records: Sequence[Mapping], extras: Mapping) -> Records:
        ids = [self._get_id(r, i) for i, r in enumerate(records)]
        return self.retrieve_records_by_ids(table, ids, extras)

    def retrieve_records_by_ids(self, table: str, ids: Sequence, extras: Mapping) -> Records:
        tbl = self._table(table)
        ids = [self._key(tbl, i) for i in ids]
        missing = [str(i) for i in ids if i not in tbl]
        if missing:
            raise NotFound("Record(s) not found in table '%s': %s" % (table, ", ".join(missing)))
        fields = extras.get('fields')
        return [self._project(tbl[i], fields, True) for i in ids]

    def retrieve_records_by_filter(self, table: str, filter, params: Mapping,
                                   extras: Mapping) -> Records:
        tbl = self._table(table)
        recs = self._order(list(self._select(tbl, filter)), extras.get('order'))
        total = len(recs)

        offset, limit = parse_paging(extras, self.cfg.get('max_records_returned',
                                                          MAX_RECORDS_RETURNED))
        recs = recs[offset:offset+limit]

        fields = extras.get('fields')
        recs = [self._project(r, fields, True) for r in recs]
        if parse_bool(extras.get('include_count')):
            return { RECORD_WRAPPER: recs, META_KEY: { "count": total } }
        return recs

    def _apply(self, table: str, records: Sequence, extras: Mapping, func, create: bool=False):
        # apply func to each record, honoring the rollback and continue options
        tbl = self._table(table, create)
        rollback = parse_bool(extras.get('rollback'))
        cont = parse_bool(extras.get('continue'))
        saved = deepcopy(tbl) if rollback else None

        out = []
        errors = []
        for i, rec in enumerate(records):
            try:
                out.append(func(tbl, rec, i))
            except (BadRequest, NotFound) as ex:
                if rollback:
                    self._db[table] = saved
                    raise
                if not cont:
                    raise
                errors.append(i)
                out.append({ "error": ex.to_dict() })

        if errors:
            raise BadRequest("Batch Error: Not all records could be processed.",
                             context={ "errors": errors, RECORD_WRAPPER: out })
        return out

    def create_records(self, table: str, records: Sequence[Mapping], extras: Mapping) -> List[Mapping]:
        fields = extras.get('fields')
        create_id = parse_bool(extras.get('create_id'))

        def create(tbl, rec, i):
            if not isinstance(rec, Mapping):
                raise BadRequest("Record %d is not an object" % i)
            rec = deepcopy(dict(rec))
            if rec.get(self.id_field) in (None, '') and create_id:
                rec[self.id_field] = create_record_id(table)
            id = self._get_id(rec, i)
            if id in tbl:
                raise BadRequest("Record with identifier '%s' already exists." % id)
            tbl[id] = rec
            return self._project(rec, fields)

        return self._apply(table, records, extras, create, True)

    def _replace(self, tbl, id, data: Mapping, merge: bool, fields):
        id = self._key(tbl, id)
        if id not in tbl:
            raise NotFound("Record with identifier '%s' not found." % id)
        if merge:
            rec = tbl[id]
            rec.update(deepcopy(dict(data)))
        else:
            rec = deepcopy(dict(data))
        rec[self.id_field] = id
        tbl[id] = rec
        return self._project(rec, fields)

    def _change_records(self, table, records, extras, merge):
        fields = extras.get('fields')
        return self._apply(table, records, extras,
                           lambda tbl, rec, i: self._replace(tbl, self._get_id(rec, i), rec,
                                                             merge, fields))

    def _change_by_ids(self, table, record, ids, extras, merge):
        fields = extras.get('fields')
        return self._apply(table, ids, extras,
                           lambda tbl, id, i: self._replace(tbl, id, record, merge, fields))

    def _change_by_filter(self, table, record, filter, extras, merge):
        ids = [r[self.id_field] for r in self._select(self._table(table), filter)]
        return self._change_by_ids(table, record, ids, extras, merge)

    def update_records(self, table: str, records: Sequence[Mapping], extras: Mapping) -> List[Mapping]:
        return self._change_records(table, records, extras, False)

    def update_record_by_id(self, table: str, record: Mapping, id, extras: Mapping) -> Mapping:
        return self._change_by_ids(table, record, [id], extras, False)[0]

    def update_records_by_ids(self, table: str, record: Mapping, ids: Sequence,
                              extras: Mapping) -> List[Mapping]:
        return self._change_by_ids(table, record, ids, extras, False)

    def update_records_by_filter(self, table: str, record: Mapping, filter, params: Mapping,
                                 extras: Mapping) -> List[Mapping]:
        return self._change_by_filter(table, record, filter, extras, False)

    def patch_records(self, table: str, records: Sequence[Mapping], extras: Mapping) -> List[Mapping]:
        return self._change_records(table, records, extras, True)

    def patch_record_by_id(self, table: str, record: Mapping, id, extras: Mapping) -> Mapping:
        return self._change_by_ids(table, record, [id], extras, True)[0]

    def patch_records_by_ids(self, table: str, record: Mapping, ids: Sequence,
                             extras: Mapping) -> List[Mapping]:
        return self._change_by_ids(table, record, ids, extras, True)

    def patch_records_by_filter(self, table: str, record: Mapping, filter, params: Mapping,
                                extras: Mapping) -> List[Mapping]:
        return self._change_by_filter(table, record, filter, extras, True)

    def _remove(self, tbl, id, fields):
        id = self._key(tbl, id)
        if id not in tbl:
            raise NotFound("Record with identifier '%s' not found." % id)
        return self._project(tbl.pop(id), fields)

    def delete_records(self, table: str, records: Sequence[Mapping], extras: Mapping) -> List[Mapping]:
        fields = extras.get('fields')
        return self._apply(table, records, extras,
                           lambda tbl, rec, i: self._remove(tbl, self._get_id(rec, i), fields))

    def delete_record_by_id(self, table: str, id, extras: Mapping) -> Mapping:
        return self.delete_records_by_ids(table, [id], extras)[0]

    def delete_records_by_ids(self, table: str, ids: Sequence, extras: Mapping) -> List[Mapping]:
        fields = extras.get('fields')
        return self._apply(table, ids, extras, lambda tbl, id, i: self._remove(tbl, id, fields))

    def delete_records_by_filter(self, table: str, filter, params: Mapping,
                                 extras: Mapping) -> List[Mapping]:
        ids = [r[self.id_field] for r in self._select(self._table(table), filter)]
        return self.delete_records_by_ids(table, ids, extras)

    def truncate_table(self, table: str, extras: Mapping) -> Mapping:
        self._table(table).clear()
        return { "success": True }
