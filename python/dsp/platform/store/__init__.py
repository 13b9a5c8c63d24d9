"""
Record stores: the storage collaborators behind database services.

:py:class:`~dsp.platform.store.base.RecordStore` defines the CRUD contract the dispatch core
relies on; :py:class:`~dsp.platform.store.inmem.InMemoryRecordStore` and 
:py:class:`~dsp.platform.store.mongo.MongoRecordStore` implement it.
"""
from dsp.base.config import ConfigurationException
from .base import RecordStore, parse_filter, parse_paging, parse_order
from .inmem import InMemoryRecordStore
from .mongo import MongoRecordStore

def create_record_store(config, dburl: str=None) -> RecordStore:
    """
    create a RecordStore according to a store configuration.  The ``type`` parameter selects the
    implementation: "inmem" (the default) or "mongo"; the latter requires a database URL, given 
    either as ``dburl`` or via the ``db_url`` configuration parameter.
    """
    stype = config.get('type', 'inmem')
    if stype == "inmem":
        return InMemoryRecordStore(config.get('data'), config)
    if stype == "mongo":
        if not dburl:
            dburl = config.get('db_url')
        if not dburl:
            raise ConfigurationException("Mongo record store: missing required db_url parameter")
        return MongoRecordStore(dburl, config)
    raise ConfigurationException("Unsupported record store type: " + str(stype))
