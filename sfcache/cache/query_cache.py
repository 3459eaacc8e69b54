"""
Cache of Salesforce query results

    cache = QueryCache()
    rows = cache.remember(soql, lambda: run_query(soql), CacheOptions(ttl=60))

The key is a hash of the lower case SOQL with collapsed whitespace. Every
cached result is registered under tags:
    salesforce_queries            - all cached queries
    sf_object_<object>            - queries from the object (lower case)
    sf_record_<object>_<Id>       - queries whose result contains the record
                                    (only with the 'record' invalidation strategy)
    any custom tags from CacheOptions.tags
A tag is a set of cache keys in KeySetIndex, flushing a tag deletes all its
keys. Aggregate queries are never cached.
"""
import hashlib
import logging
from collections import namedtuple

from django.core.cache import caches

from sfcache.backend.results import record_ids
from sfcache.backend.subselect import extract_aggregate, extract_entity
from sfcache.cache.keysets import KeySetIndex
from sfcache.cache.stats import CacheStatistics
from sfcache.conf import STRATEGY_RECORD, query_cache_settings, query_log_enabled
from sfcache.utils import normalize_record_id

log = logging.getLogger(__name__)

GLOBAL_TAG = 'salesforce_queries'
KEY_PREFIX = 'sf_query_'

_MISSING = object()


class CacheOptions(namedtuple('CacheOptions', 'skip refresh ttl tags')):
    """Per call options of QueryCache.remember()

    skip:    do not use the cache at all
    refresh: recompute and store even if a cached value exists
    ttl:     explicit TTL in seconds, it wins over TTL_OVERRIDES and DEFAULT_TTL
    tags:    additional tags for flush_tags()
    """
    __slots__ = ()

    def __new__(cls, skip=False, refresh=False, ttl=None, tags=()):
        return super(CacheOptions, cls).__new__(cls, skip, refresh, ttl, tuple(tags))


DEFAULT_OPTIONS = CacheOptions()


def normalize_soql(soql):
    return ' '.join(soql.lower().split())


def cache_key(soql):
    """Same key for queries that differ only by letter case and whitespace"""
    return KEY_PREFIX + hashlib.sha256(normalize_soql(soql).encode('utf-8')).hexdigest()


def object_tag(entity):
    return 'sf_object_%s' % entity.lower()


def record_tag(entity, record_id):
    return 'sf_record_%s_%s' % (entity.lower(), normalize_record_id(record_id))


class QueryCache(object):
    """
    Parameters:
        config: QueryCacheSettings, default from settings.SALESFORCE_QUERY_CACHE
        cache: Django cache backend, default caches[config.cache_alias]
        statistics: CacheStatistics
    """

    def __init__(self, config=None, cache=None, statistics=None):
        self.config = config or query_cache_settings()
        self.cache = cache if cache is not None else caches[self.config.cache_alias]
        self.statistics = statistics or CacheStatistics(self.cache)
        self.index = KeySetIndex(self.cache, 'sf_tags')

    @property
    def enabled(self):
        return self.config.enabled

    @property
    def invalidation_strategy(self):
        return self.config.invalidation_strategy

    @property
    def index_timeout(self):
        """Tag sets live at least as long as any entry they can contain"""
        return max([self.config.default_ttl] + list(self.config.ttl_overrides.values()))

    def remember(self, soql, compute, options=None, entity=None, aggregate=None):
        """Get cached rows of `soql` or compute, store and return them.

        entity, aggregate: the root object and the aggregate function if they
            are known from the query tree, otherwise they are parsed from soql
        """
        options = options or DEFAULT_OPTIONS
        if not self.enabled or options.skip:
            return compute()
        if aggregate is None:
            aggregate = extract_aggregate(soql)
        if aggregate:
            return compute()
        key = cache_key(soql)
        track = query_log_enabled()
        if not options.refresh:
            cached = self.cache.get(key, _MISSING)
            if cached is not _MISSING:
                if track:
                    self.statistics.hit()
                    log.debug("Salesforce cache hit %s: %s", key, soql)
                return cached
        result = compute()
        entity = entity or extract_entity(soql)
        ttl = self.resolve_ttl(entity, options.ttl)
        tags = self.resolve_tags(entity, options.tags, result)
        self.cache.set(key, result, ttl)
        timeout = max(ttl, self.index_timeout)
        for tag in tags:
            self.index.add(tag, key, timeout)
        if track:
            self.statistics.miss()
            log.debug("Salesforce cache miss %s: %s (ttl=%d, tags=%d)", key, soql, ttl, len(tags))
        return result

    def resolve_ttl(self, entity, ttl=None):
        if ttl is not None:
            return int(ttl)
        if entity and entity.lower() in self.config.ttl_overrides:
            return self.config.ttl_overrides[entity.lower()]
        return self.config.default_ttl

    def resolve_tags(self, entity, tags=(), rows=None):
        out = [GLOBAL_TAG]
        if entity:
            out.append(object_tag(entity))
        out.extend(x for x in tags if x not in out)
        if entity and rows and self.invalidation_strategy == STRATEGY_RECORD:
            out.extend(record_tag(entity, x) for x in record_ids(rows))
        return out

    # -- invalidation

    def forget(self, soql):
        self.cache.delete(cache_key(soql))

    def _flush_tags(self, tags):
        keys = self.index.pop_members(tags)
        if keys:
            self.cache.delete_many(list(keys))
        return len(keys)

    def flush_object(self, entities):
        """Delete all cached queries from an object or from a list of objects"""
        if isinstance(entities, str):
            entities = [entities]
        count = self._flush_tags([object_tag(x) for x in entities])
        if query_log_enabled():
            log.info("Flushed Salesforce cache for object: %s (%d entries)", ', '.join(entities), count)
        return count

    def flush_tags(self, *tags):
        return self._flush_tags(tags)

    def flush_all(self):
        count = self._flush_tags([GLOBAL_TAG])
        if query_log_enabled():
            log.info("Flushed all Salesforce query cache (%d entries)", count)
        return count

    def invalidate_by_record_ids(self, entity, ids):
        """Delete cached queries whose results contain any of the records.

        It is an object-level flush with the 'object' strategy.
        """
        if self.invalidation_strategy != STRATEGY_RECORD:
            return self.flush_object(entity)
        count = self._flush_tags([record_tag(entity, x) for x in ids if x])
        if query_log_enabled():
            log.info("Invalidated Salesforce cache for %s records %s (%d entries)",
                     entity, ', '.join(str(x) for x in ids), count)
        return count

    def invalidate_record(self, entity, record_id):
        return self.invalidate_by_record_ids(entity, [record_id])

    # -- statistics

    def get_statistics(self):
        if not query_log_enabled():
            return {
                'enabled': False,
                'message': 'Cache analytics not enabled. Set SALESFORCE_ENABLE_QUERY_LOG to True.',
            }
        stats = {'enabled': True}
        stats.update(self.statistics.snapshot())
        return stats

    def reset_statistics(self):
        self.statistics.reset()
