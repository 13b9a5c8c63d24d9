"""
A platform service providing REST access to the records in a database, where each of the
service's resources is a table.  All storage operations are delegated to a
:py:class:`~dsp.platform.store.base.RecordStore`.

Record requests take the following forms (where *t* is a table name):

=========================  ================================================================
``GET t/ID``               return the record with the given identifier
``GET t/ID1,ID2``          return the records with the given identifiers
``GET t?ids=ID1,ID2``      the same
``GET t`` + records        return the current versions of the given records
``GET t?filter={...}``     return the records matching a filter (all records if no filter)
``POST t``                 create the given record(s)
``PUT t``, ``PATCH t``     replace or update records, addressed by id, ``ids``, ``filter``, or
                           by the id fields of the given records
``DELETE t``               delete records addressed by id, ``ids``, records, or ``filter``;
                           deleting all records requires ``force=true``
``GET ?names=t1,t2``       describe the named tables (``include_properties=true``: all tables)
``GET _schema[/t]``        describe the database or a table
=========================  ================================================================

Multi-record results are returned as ``{"record": [...]}`` (plus a ``meta`` object when the store
reports one).  When a client creates or updates a single record without wrapping it in the
``record`` envelope, the single resulting record is returned unwrapped.
"""
from logging import Logger
from collections.abc import Mapping
from typing import Tuple

from .. import RECORD_WRAPPER, RESOURCE_WRAPPER
from ..exceptions import BadRequest, Forbidden
from ..verbs import GET, POST, PUT, PATCH, MERGE, DEFAULT_DB_ALIASES
from ..resource import ResourcePath, split_ids
from ..request import RequestContext, parse_bool, wrap_records_payload
from ..access import get_service_permissions, evaluate_service_access
from ..events import EventHook
from ..store.base import RecordStore, parse_filter
from .base import RestService, wrap_records

__all__ = [ "DbService" ]

TABLE_WRAPPER = "table"

_query_aliases = (("top", "limit"), ("skip", "offset"), ("sort", "order"))
_passed_options = ("fields", "filter", "params", "limit", "offset", "order", "include_count",
                   "id_field")

class DbService(RestService):
    """
    a REST service for the tables of a database.

    Besides the parameters supported by all :py:class:`~dsp.platform.service.base.RestService`
    instances, the configuration for this service is passed to its record store.
    """
    default_aliases = DEFAULT_DB_ALIASES

    def __init__(self, api_name: str, store: RecordStore, config: Mapping=None, log: Logger=None,
                 events: EventHook=None, svctype: str="db"):
        """
        :param RecordStore store:  the store holding the database's tables
        """
        super(DbService, self).__init__(api_name, svctype, config, log, events)
        self.store = store

    def normalize_payload(self, payload, query: Mapping, verb: str,
                          respath: ResourcePath) -> Tuple[dict, bool]:
        """
        wrap posted records under the record envelope key and merge in the query parameters.
        A single record posted without the envelope to create or update records is wrapped and
        flagged for single-record amnesty.
        """
        payload, amnesty = wrap_records_payload(payload, respath.resource_id is not None,
                                                verb in (POST, PUT, PATCH, MERGE))

        # posted values take precedence over query parameters
        for key, val in query.items():
            if key != RECORD_WRAPPER:
                payload.setdefault(key, val)
        for alias, name in _query_aliases:
            if alias in payload:
                val = payload.pop(alias)
                payload.setdefault(name, val)

        if verb == GET:
            payload.setdefault('fields', '*')
        return payload, amnesty

    def gather_extras(self, payload: Mapping, query: Mapping, verb: str) -> dict:
        extras = super(DbService, self).gather_extras(payload, query, verb)
        for key in _passed_options:
            if payload.get(key) is not None:
                extras[key] = payload[key]
        extras['ids'] = split_ids(payload.get('ids'))
        for key in ("continue", "rollback", "force"):
            extras[key] = parse_bool(payload.get(key))
        if extras['continue'] and extras['rollback']:
            raise BadRequest("Rollback and continue operations can not be requested at the same time.")
        return extras

    def list_service(self, ctx: RequestContext) -> Mapping:
        """
        list the tables available to the requesting user.  If ``names`` (a comma-separated list
        of tables) or ``include_properties`` is requested, the descriptions of the tables are
        returned as ``{"table": [...]}`` instead.
        """
        names = ctx.payload.get('names')
        if names or parse_bool(ctx.payload.get('include_properties')):
            return self._describe_tables(ctx, names)
        return super(DbService, self).list_service(ctx)

    def _describe_tables(self, ctx: RequestContext, names) -> Mapping:
        if names:
            names = split_ids(names)
            for name in names:
                allowed, why = evaluate_service_access(ctx.who, GET, self.api_name, name)
                if not allowed:
                    raise Forbidden(why)
        else:
            names = [n for n in self.store.list_resources()
                     if get_service_permissions(ctx.who, self.api_name, n)]
        return { TABLE_WRAPPER: [self.store.describe_table(n) for n in names] }

    def list_resources(self, ctx: RequestContext) -> list:
        """
        return the tables that the requesting user can access.  The ``names_only`` option
        returns just the names; ``include_schemas`` adds the schema description resources.
        With ``as_access_components``, the names are returned preceded by the names that
        can be used in a role to cover the whole service ("" and "*").
        """
        names = list(self.store.list_resources())
        if parse_bool(ctx.payload.get('include_schemas')):
            names = [self.schema_resource] + names + \
                    ["%s/%s" % (self.schema_resource, n) for n in names]
        ascomps = parse_bool(ctx.payload.get('as_access_components'))
        namesonly = ascomps or parse_bool(ctx.payload.get('names_only'))

        out = ['', '*'] if ascomps else []
        for name in names:
            access = get_service_permissions(ctx.who, self.api_name, name)
            if not access:
                continue
            out.append(name if namesonly else { "name": name, "access": access })
        return out

    def handle_schema(self, ctx: RequestContext):
        if ctx.verb != GET:
            raise self._not_supported(ctx)
        if ctx.resource_id is None:
            if ctx.payload.get('names'):
                return { TABLE_WRAPPER: [self.store.describe_table(n)
                                         for n in split_ids(ctx.payload['names'])] }
            return { RESOURCE_WRAPPER: self.store.describe_database() }
        return self.store.describe_table(ctx.resource_id)

    def _path_ids(self, ctx: RequestContext) -> list:
        if not ctx.path.ids:
            raise BadRequest("Invalid record identifier given: " + ctx.resource_id)
        return ctx.path.ids

    def _respond(self, result, ctx: RequestContext):
        if ctx.single_record_amnesty:
            recs = result.get(RECORD_WRAPPER) if isinstance(result, Mapping) else result
            if recs and len(recs) == 1:
                return recs[0]
        return wrap_records(result)

    def handle_get(self, ctx: RequestContext):
        table = ctx.resource
        if ctx.resource_id is not None:
            ids = self._path_ids(ctx)
            if not ctx.path.is_array:
                return self.store.retrieve_record_by_id(table, ids[0], ctx.extras)
            return wrap_records(self.store.retrieve_records_by_ids(table, ids, ctx.extras))

        if ctx.extras.get('ids'):
            return wrap_records(self.store.retrieve_records_by_ids(table, ctx.extras['ids'],
                                                                   ctx.extras))
        if ctx.records:
            return wrap_records(self.store.retrieve_records(table, ctx.records, ctx.extras))

        return wrap_records(self.store.retrieve_records_by_filter(table, ctx.extras.get('filter'),
                                                                  ctx.extras.get('params'),
                                                                  ctx.extras))

    def handle_post(self, ctx: RequestContext):
        if ctx.resource_id is not None:
            raise BadRequest("Create record by identifier not currently supported.")
        records = ctx.records
        if not records:
            raise BadRequest("No record(s) detected in request.")
        return self._respond(self.store.create_records(ctx.resource, records, ctx.extras), ctx)

    def _change(self, ctx: RequestContext, merge: bool):
        st = self.store
        by_id, by_ids, by_filter, plain = \
            (st.patch_record_by_id, st.patch_records_by_ids, st.patch_records_by_filter,
             st.patch_records) if merge else \
            (st.update_record_by_id, st.update_records_by_ids, st.update_records_by_filter,
             st.update_records)

        table = ctx.resource
        extras = ctx.extras
        records = ctx.records
        if ctx.resource_id is not None or extras.get('ids') or parse_filter(extras.get('filter')):
            if not records:
                raise BadRequest("No record detected in request.")
            if ctx.resource_id is not None:
                ids = self._path_ids(ctx)
                if not ctx.path.is_array:
                    return by_id(table, records[0], ids[0], extras)
                return wrap_records(by_ids(table, records[0], ids, extras))
            if extras.get('ids'):
                return wrap_records(by_ids(table, records[0], extras['ids'], extras))
            return wrap_records(by_filter(table, records[0], extras['filter'],
                                          extras.get('params'), extras))

        if not records:
            raise BadRequest("No record(s) detected in request.")
        return self._respond(plain(table, records, extras), ctx)

    def handle_put(self, ctx: RequestContext):
        return self._change(ctx, False)

    def handle_patch(self, ctx: RequestContext):
        return self._change(ctx, True)

    def handle_delete(self, ctx: RequestContext):
        table = ctx.resource
        extras = ctx.extras
        if ctx.resource_id is not None:
            ids = self._path_ids(ctx)
            if not ctx.path.is_array:
                return self.store.delete_record_by_id(table, ids[0], extras)
            return wrap_records(self.store.delete_records_by_ids(table, ids, extras))

        if extras.get('ids'):
            return wrap_records(self.store.delete_records_by_ids(table, extras['ids'], extras))
        if ctx.records:
            return wrap_records(self.store.delete_records(table, ctx.records, extras))
        if parse_filter(extras.get('filter')):
            return wrap_records(self.store.delete_records_by_filter(table, extras['filter'],
                                                                    extras.get('params'), extras))
        if extras.get('force'):
            return self.store.truncate_table(table, extras)

        raise BadRequest("No filter or records given for delete request.")
