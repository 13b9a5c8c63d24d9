"""
The abstract interface to the storage backing a database service.

A :py:class:`RecordStore` organizes records into named *tables* (collections).  A record is an
opaque mapping of field names to values; the only field the platform interprets is the one
holding the record's identifier (``id`` by default).

Every operation takes the table name followed by operation-specific arguments and an ``extras``
mapping that carries the request options gathered by the service (see
:py:meth:`dsp.platform.service.db.DbService.gather_extras`), including:

``batch``
    True if the records should be handled together as a batch rather than one at a time
``create_id``
    True if the store may generate an identifier for new records that lack one
``fields``
    the fields to return: "*" for all, or a comma-separated list
``limit``, ``offset``, ``order``, ``include_count``
    paging and sorting controls for retrievals
``rollback``, ``continue``
    how to handle a failure on one record of a multi-record request

Operations return a list of records, or a single record for the ``*_by_id`` forms.  A retrieval
may instead return a mapping with the list under the ``record`` key and a ``meta`` mapping
holding aggregate information (e.g. a count).  Failures are signaled by raising
:py:class:`~dsp.platform.exceptions.NotFound`, :py:class:`~dsp.platform.exceptions.BadRequest`,
or :py:class:`~dsp.platform.exceptions.InternalError`.

The retrieval and creation operations are required.  The update, patch, and delete operations
are optional: the default implementations raise ``NotImplementedError``, which a service
reports to its client as an unsupported request.
"""
import json
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import List, Union, Sequence, Tuple

from .. import RECORD_WRAPPER
from ..exceptions import NotFound, BadRequest

__all__ = [ "RecordStore", "Records", "parse_filter", "parse_paging", "parse_order" ]

Records = Union[List[Mapping], Mapping]

def parse_filter(filter) -> Mapping:
    """
    return a filter as a mapping of field names to required values.  The filter may be given as
    a mapping or as a string containing a JSON object (as it would be given in a query
    parameter).  None is returned if no filter is given.
    :raises BadRequest:  if the filter is not in a supported form
    """
    if filter is None or filter == '':
        return None
    if isinstance(filter, str):
        try:
            filter = json.loads(filter)
        except ValueError as ex:
            raise BadRequest("Filter is not a valid JSON object: " + str(ex))
    if not isinstance(filter, Mapping):
        raise BadRequest("Filter must be an object mapping field names to values")
    return filter

def parse_paging(extras: Mapping, max_records: int) -> Tuple[int, int]:
    """
    return the offset and limit requested for a retrieval as integers.  A missing, zero or
    negative limit means no limit beyond ``max_records``.
    :raises BadRequest:  if either value is not an integer or the offset is negative
    """
    try:
        offset = int(extras.get('offset') or 0)
        limit = int(extras.get('limit') or 0)
    except (ValueError, TypeError):
        raise BadRequest("Invalid paging values: limit=%s, offset=%s" %
                         (extras.get('limit'), extras.get('offset')))
    if offset < 0:
        raise BadRequest("Invalid paging values: offset must not be negative")
    if limit <= 0 or limit > max_records:
        limit = max_records
    return offset, limit

def parse_order(order) -> List[Tuple[str, bool]]:
    """
    return an ordering request as a list of (field, descending) pairs.  The order may be given
    as a comma-separated string or a list of clauses of the form "field [ASC|DESC]".
    :raises BadRequest:  if a clause is not in this form
    """
    if not order:
        return []
    if isinstance(order, str):
        order = order.split(',')
    out = []
    for clause in order:
        parts = str(clause).split()
        if not parts:
            continue
        if len(parts) > 2 or (len(parts) == 2 and parts[1].upper() not in ("ASC", "DESC")):
            raise BadRequest("Invalid order clause: " + str(clause))
        out.append((parts[0], len(parts) == 2 and parts[1].upper() == "DESC"))
    return out

class RecordStore(ABC):
    """
    an abstract interface to a store of records organized into tables
    """

    def __init__(self, config: Mapping=None):
        if config is None:
            config = {}
        self.cfg = config
        self.id_field = config.get('id_field', 'id')

    @abstractmethod
    def list_resources(self) -> List[str]:
        """
        return the names of the tables available in this store
        """
        raise NotImplementedError()

    def describe_database(self) -> List[Mapping]:
        """
        return descriptions of all of the tables in this store
        """
        return [self.describe_table(t) for t in self.list_resources()]

    def describe_table(self, table: str) -> Mapping:
        """
        return a description of the named table
        :raises NotFound:  if the table does not exist
        """
        if table not in self.list_resources():
            raise NotFound("Table '%s' does not exist in the database." % table)
        return { "name": table }

    @abstractmethod
    def retrieve_records(self, table: str, records: Sequence[Mapping], extras: Mapping) -> Records:
        """
        return the current versions of the given records.  Each input record must include its
        identifier; other fields are ignored.
        """
        raise NotImplementedError()

    @abstractmethod
    def retrieve_records_by_ids(self, table: str, ids: Sequence, extras: Mapping) -> Records:
        """
        return the records with the given identifiers
        :raises NotFound:  if any of the records do not exist
        """
        raise NotImplementedError()

    @abstractmethod
    def retrieve_records_by_filter(self, table: str, filter, params: Mapping,
                                   extras: Mapping) -> Records:
        """
        return the records matching a filter
        :param filter:  the filter constraints (see :py:func:`parse_filter`); None selects all
                        records
        :param params:  values to substitute into a filter, for stores whose filters support
                        parameters
        """
        raise NotImplementedError()

    def retrieve_record_by_id(self, table: str, id, extras: Mapping) -> Mapping:
        """
        return the record with the given identifier
        :raises NotFound:  if the record does not exist
        """
        recs = self.retrieve_records_by_ids(table, [id], extras)
        if isinstance(recs, Mapping):
            recs = recs.get(RECORD_WRAPPER, [])
        if not recs:
            raise NotFound("Record with identifier '%s' not found." % id)
        return recs[0]

    @abstractmethod
    def create_records(self, table: str, records: Sequence[Mapping], extras: Mapping) -> List[Mapping]:
        """
        add new records to a table and return them as saved
        """
        raise NotImplementedError()

    def update_records(self, table: str, records: Sequence[Mapping], extras: Mapping) -> List[Mapping]:
        """
        replace the given records (identified by their id field)
        """
        raise NotImplementedError("update records")

    def update_record_by_id(self, table: str, record: Mapping, id, extras: Mapping) -> Mapping:
        """
        replace the record having the given identifier
        """
        raise NotImplementedError("update record by id")

    def update_records_by_ids(self, table: str, record: Mapping, ids: Sequence,
                              extras: Mapping) -> List[Mapping]:
        """
        replace the content of each of the identified records with the given record data
        """
        raise NotImplementedError("update records by ids")

    def update_records_by_filter(self, table: str, record: Mapping, filter, params: Mapping,
                                 extras: Mapping) -> List[Mapping]:
        """
        replace the content of each record matching the filter with the given record data
        """
        raise NotImplementedError("update records by filter")

    def patch_records(self, table: str, records: Sequence[Mapping], extras: Mapping) -> List[Mapping]:
        """
        merge the given field values into the records identified by their id field
        """
        raise NotImplementedError("patch records")

    def patch_record_by_id(self, table: str, record: Mapping, id, extras: Mapping) -> Mapping:
        """
        merge the given field values into the record having the given identifier
        """
        raise NotImplementedError("patch record by id")

    def patch_records_by_ids(self, table: str, record: Mapping, ids: Sequence,
                             extras: Mapping) -> List[Mapping]:
        raise NotImplementedError("patch records by ids")

    def patch_records_by_filter(self, table: str, record: Mapping, filter, params: Mapping,
                                extras: Mapping) -> List[Mapping]:
        raise NotImplementedError("patch records by filter")

    def delete_records(self, table: str, records: Sequence[Mapping], extras: Mapping) -> List[Mapping]:
        """
        delete the given records (identified by their id field), returning them
        """
        raise NotImplementedError("delete records")

    def delete_record_by_id(self, table: str, id, extras: Mapping) -> Mapping:
        raise NotImplementedError("delete record by id")

    def delete_records_by_ids(self, table: str, ids: Sequence, extras: Mapping) -> List[Mapping]:
        raise NotImplementedError("delete records by ids")

    def delete_records_by_filter(self, table: str, filter, params: Mapping,
                                 extras: Mapping) -> List[Mapping]:
        raise NotImplementedError("delete records by filter")

    def truncate_table(self, table: str, extras: Mapping) -> Mapping:
        """
        delete all records from a table
        """
        raise NotImplementedError("truncate table")
