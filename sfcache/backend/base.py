# django-salesforce-cache
#
# by Phil Christensen
# (c) 2012-2013 Freelancers Union (http://www.freelancersunion.org)
# See LICENSE.md for details
#

"""
SalesforceConnection - the adapter with the query cache and invalidation signals

Reads go through the query cache, writes go directly to the adapter and send
signals from sfcache.signals that invalidate the cache.
Errors of remote operations are logged and re-raised if
SALESFORCE_THROW_EXCEPTIONS, otherwise a safe default value is returned.
"""
import logging
import threading

from django.core.cache import caches
from django.utils.module_loading import import_string

from sfcache import conf, signals
from sfcache.backend.bulk import BulkMutator, BulkResult
from sfcache.backend.compiler import CompiledQuery
from sfcache.backend.logs import handle_salesforce_exception
from sfcache.backend.results import iter_records, normalize
from sfcache.backend.subselect import extract_aggregate, extract_entity
from sfcache.cache.query_cache import QueryCache
from sfcache.dbapi.exceptions import Error

log = logging.getLogger(__name__)

thread_connections = threading.local()

# fields that are not reported by describe() of some objects, but can be queried
DEFAULT_FIELDS = ('Id', 'CreatedDate', 'LastModifiedDate')


class SalesforceConnection(object):
    """
    parameters:
        alias:  name of the connection, the auth token is shared by all
                connections with the same alias
        adapter: an adapter instance, default settings.SALESFORCE_ADAPTER
        query_cache: a QueryCache, default a new QueryCache for every
                operation (by current settings)
    """

    def __init__(self, alias='default', adapter=None, query_cache=None):
        self.alias = alias
        self._adapter = adapter
        self._query_cache = query_cache

    @property
    def adapter(self):
        if self._adapter is None:
            self._adapter = import_string(conf.adapter_class_path())(alias=self.alias)
        return self._adapter

    @property
    def query_cache(self):
        return self._query_cache or QueryCache()

    # -- reading

    def select(self, compiled, options=None):
        """All rows of a CompiledQuery, from the cache if possible"""
        # queryAll can return more rows than query by the same SOQL
        cache_text = ('queryall:' if compiled.query_all else '') + compiled.soql
        try:
            return self.query_cache.remember(
                cache_text, lambda: self.execute_query(compiled), options,
                entity=compiled.entity, aggregate=compiled.aggregate or False)
        except Error as exc:
            handle_salesforce_exception(exc, 'query')
            return []

    def select_raw(self, soql, options=None, query_all=False):
        """All rows of a SOQL text, from the cache if possible"""
        compiled = CompiledQuery(soql, extract_entity(soql), extract_aggregate(soql), query_all)
        return self.select(compiled, options)

    def execute_query(self, compiled):
        """Rows from the adapter, all pages, without cache"""
        if conf.query_log_enabled():
            log.debug("SOQL query: %s", compiled.soql)
        response = self._fetch(compiled)
        return normalize(response, self.adapter.next, compiled.aggregate)

    def cursor(self, compiled):
        """Lazy iterator over rows of all pages, without cache"""
        try:
            response = self._fetch(compiled)
            for row in iter_records(response, self.adapter.next):
                yield row
        except Error as exc:
            handle_salesforce_exception(exc, 'query')

    def _fetch(self, compiled):
        if compiled.query_all:
            return self.adapter.query_all(compiled.soql)
        return self.adapter.query(compiled.soql)

    def describe(self, entity):
        """Object metadata, cached for SALESFORCE_METADATA_CACHE_TTL seconds"""
        ttl = conf.metadata_cache_ttl()
        if not ttl:
            return self.adapter.describe(entity)
        cache = caches[conf.query_cache_settings().cache_alias]
        key = 'salesforce_describe_%s' % entity.lower()
        described = cache.get(key)
        if described is None:
            described = self.adapter.describe(entity)
            cache.set(key, described, ttl)
        return described

    def resolve_fields(self, entity, columns):
        """Expand '*' in columns to default fields and all fields of the object"""
        out = []
        for column in columns:
            if column != '*':
                out.append(column)
                continue
            out.extend(DEFAULT_FIELDS)
            if entity not in conf.no_soft_deletes():
                out.append('IsDeleted')
            out.extend(x['name'] for x in self.describe(entity).get('fields', ()))
        uniq = []
        for column in out:
            if column.lower() not in [x.lower() for x in uniq]:
                uniq.append(column)
        return uniq

    # -- writing

    def create(self, entity, data):
        """Create a record, return {'id':.., 'success':.., 'errors': [...]} or None"""
        try:
            result = self.adapter.create(entity, data)
        except Error as exc:
            handle_salesforce_exception(exc, 'create')
            return None
        record_id = (result or {}).get('id')
        self._send(signals.record_created, entity, [record_id] if record_id else [])
        return result

    def update(self, entity, record_id, data):
        try:
            self.adapter.update(entity, record_id, data)
        except Error as exc:
            handle_salesforce_exception(exc, 'update')
            return False
        self._send(signals.record_updated, entity, [record_id])
        return True

    def delete(self, entity, record_id):
        try:
            deleted = self.adapter.delete(entity, record_id)
        except Error as exc:
            handle_salesforce_exception(exc, 'delete')
            return False
        self._send(signals.record_deleted, entity, [record_id])
        return deleted

    def bulk_create(self, entity, records, all_or_none=False):
        """Create records by chunks, return BulkResult of created records"""
        if not records:
            return BulkResult()
        mutator = BulkMutator(self.adapter)
        return mutator.bulk_insert(
            entity, records, all_or_none,
            on_chunk=lambda results: self._send(signals.record_created, entity,
                                                [x.get('id') for x in results if x.get('id')]))

    def bulk_delete(self, entity, record_ids, all_or_none=False):
        """Delete records by chunks, return BulkResult of deleted records"""
        if not record_ids:
            return BulkResult()
        mutator = BulkMutator(self.adapter)
        return mutator.bulk_delete(
            entity, list(record_ids), all_or_none,
            on_chunk=lambda results: self._send(signals.record_deleted, entity,
                                                [x['id'] for x in results]))

    def _send(self, signal, entity, record_ids):
        signal.send(sender=SalesforceConnection, entity=entity, record_ids=record_ids, connection=self)


def get_connection(alias='default'):
    """SalesforceConnection of the current thread"""
    if not hasattr(thread_connections, alias):
        setattr(thread_connections, alias, SalesforceConnection(alias))
    return getattr(thread_connections, alias)
