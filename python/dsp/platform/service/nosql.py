"""
A database service for schema-less (document) stores.
"""
from logging import Logger
from collections.abc import Mapping

from ..verbs import POST
from ..request import parse_bool, get_option
from ..events import EventHook
from ..store.base import RecordStore
from .db import DbService

__all__ = [ "NoSqlDbService" ]

class NoSqlDbService(DbService):
    """
    a :py:class:`~dsp.platform.service.db.DbService` for document stores.  When creating
    records, a client may set the ``create_id`` option to have the store generate identifiers
    for records that lack one.
    """

    def __init__(self, api_name: str, store: RecordStore, config: Mapping=None, log: Logger=None,
                 events: EventHook=None, svctype: str="nosql_db"):
        super(NoSqlDbService, self).__init__(api_name, store, config, log, events, svctype)

    def gather_extras(self, payload: Mapping, query: Mapping, verb: str) -> dict:
        extras = super(NoSqlDbService, self).gather_extras(payload, query, verb)
        if verb == POST:
            extras['create_id'] = parse_bool(get_option('create_id', payload, query))
        return extras
