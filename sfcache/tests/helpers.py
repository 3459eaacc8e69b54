"""
Fake adapter and helpers for tests without network
"""
from django.core.cache import caches

from sfcache.backend.base import SalesforceConnection
from sfcache.cache.query_cache import QueryCache
from sfcache.dbapi.driver import BaseAdapter


def query_response(records, total_size=None, next_records_url=None, entity='Account'):
    """REST query response with the usual 'attributes' of records"""
    return {
        'totalSize': len(records) if total_size is None else total_size,
        'done': next_records_url is None,
        'nextRecordsUrl': next_records_url,
        'records': [dict(x, attributes={'type': entity, 'url': '/services/data/v52.0/sobjects/%s/%s'
                                                               % (entity, x.get('Id'))})
                    for x in records],
    }


class FakeAdapter(BaseAdapter):
    """Adapter with canned responses that records all calls

    responses: dict {soql: response} or a callable(soql) -> response
    """

    def __init__(self, responses=None, pages=None, describe=None, bulk_results=None, errors=None):
        self.responses = responses or {}
        self.pages = pages or {}
        self.described = describe or {}
        self.bulk_results = list(bulk_results or [])
        self.errors = dict(errors or {})
        self.calls = []

    def _call(self, method, *args):
        self.calls.append((method,) + args)
        error = self.errors.get(method)
        if isinstance(error, list):
            error = error.pop(0) if error else None
        if error:
            raise error

    def queries(self):
        return [x[1] for x in self.calls if x[0] in ('query', 'query_all')]

    def query(self, soql):
        self._call('query', soql)
        return self._response(soql)

    def query_all(self, soql):
        self._call('query_all', soql)
        return self._response(soql)

    def _response(self, soql):
        if callable(self.responses):
            return self.responses(soql)
        return self.responses.get(soql, query_response([]))

    def next(self, next_records_url):
        self._call('next', next_records_url)
        return self.pages[next_records_url]

    def describe(self, entity):
        self._call('describe', entity)
        return self.described[entity]

    def create(self, entity, data):
        self._call('create', entity, data)
        return {'id': '001000000000001AAA', 'success': True, 'errors': []}

    def update(self, entity, record_id, data):
        self._call('update', entity, record_id, data)
        return True

    def delete(self, entity, record_id):
        self._call('delete', entity, record_id)
        return True

    def bulk_create(self, entity, records, all_or_none=False):
        self.check_bulk_limit('create', records)
        self._call('bulk_create', entity, list(records), all_or_none)
        return self._bulk_response(records)

    def bulk_delete(self, entity, record_ids, all_or_none=False):
        self.check_bulk_limit('delete', record_ids)
        self._call('bulk_delete', entity, list(record_ids), all_or_none)
        return self._bulk_response(record_ids, ids=record_ids)

    def _bulk_response(self, items, ids=None):
        if self.bulk_results:
            return self.bulk_results.pop(0)
        ids = ids or ['001%015d' % i for i, _ in enumerate(items)]
        return {'results': [{'id': x, 'success': True, 'errors': []} for x in ids]}


def fresh_query_cache(**config_changes):
    """QueryCache over an empty cache with the current settings (and changes)"""
    cache = caches['default']
    cache.clear()
    query_cache = QueryCache(cache=cache)
    if config_changes:
        query_cache.config = query_cache.config._replace(**config_changes)
    return query_cache


def fake_connection(adapter=None, query_cache=None, **config_changes):
    adapter = adapter or FakeAdapter()
    return SalesforceConnection('test', adapter=adapter,
                                query_cache=query_cache or fresh_query_cache(**config_changes))
