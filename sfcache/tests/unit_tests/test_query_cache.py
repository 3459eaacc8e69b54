from unittest import mock

from django.core.exceptions import ImproperlyConfigured
from django.test import SimpleTestCase, override_settings

from sfcache.cache.query_cache import (
    GLOBAL_TAG, CacheOptions, QueryCache, cache_key, object_tag, record_tag)
from sfcache.conf import STRATEGY_OBJECT, query_cache_settings
from sfcache.dbapi.exceptions import SalesforceError
from sfcache.tests.helpers import fresh_query_cache

SOQL_1 = "select Id, Name from Account where Name = 'A'"
SOQL_2 = "select Id, Name from Account where Name = 'B'"
ROWS_1 = [{'Id': '001A000001h5wLPIAY', 'Name': 'A'}]
ROWS_2 = [{'Id': '001A000001h5wLQIAY', 'Name': 'B'}]


class CacheKeyTest(SimpleTestCase):
    def test_letter_case_and_whitespace(self):
        self.assertEqual(cache_key("SELECT Id FROM Account"), cache_key("select  id\n  from ACCOUNT "))
        self.assertNotEqual(cache_key(SOQL_1), cache_key(SOQL_2))
        self.assertTrue(cache_key(SOQL_1).startswith('sf_query_'))

    def test_tags(self):
        self.assertEqual(object_tag('Account'), 'sf_object_account')
        # a short Id is normalized to the long form
        self.assertEqual(record_tag('Account', '001A000001h5wLP'), 'sf_record_account_001A000001h5wLPIAY')


class SettingsTest(SimpleTestCase):
    @override_settings(SALESFORCE_QUERY_CACHE={'INVALIDATION_STRATEGY': 'tag'})
    def test_invalid_strategy(self):
        self.assertRaises(ImproperlyConfigured, query_cache_settings)

    @override_settings(SALESFORCE_QUERY_CACHE={'TTL': 1})
    def test_unknown_key(self):
        self.assertRaises(ImproperlyConfigured, query_cache_settings)

    @override_settings(SALESFORCE_QUERY_CACHE={})
    def test_defaults(self):
        config = query_cache_settings()
        self.assertFalse(config.enabled)
        self.assertEqual(config.default_ttl, 3600)
        self.assertEqual(config.invalidation_strategy, 'record')


class RememberTest(SimpleTestCase):
    def setUp(self):
        self.query_cache = fresh_query_cache()

    def test_cached(self):
        compute = mock.Mock(return_value=ROWS_1)
        self.assertEqual(self.query_cache.remember(SOQL_1, compute), ROWS_1)
        self.assertEqual(self.query_cache.remember(SOQL_1.upper(), compute), ROWS_1)
        self.assertEqual(compute.call_count, 1)

    def test_empty_result_is_cached(self):
        compute = mock.Mock(return_value=[])
        self.query_cache.remember(SOQL_1, compute)
        self.query_cache.remember(SOQL_1, compute)
        self.assertEqual(compute.call_count, 1)

    def test_aggregate_is_never_cached(self):
        compute = mock.Mock(return_value=[{'aggregate': 150}])
        self.query_cache.remember("select COUNT() from Account", compute)
        self.query_cache.remember("select COUNT() from Account", compute)
        self.query_cache.remember("select Id from Account", compute, aggregate='SUM')
        self.assertEqual(compute.call_count, 3)
        self.assertEqual(self.query_cache.index.members(GLOBAL_TAG), set())

    def test_error_is_not_cached(self):
        compute = mock.Mock(side_effect=[SalesforceError('timeout'), ROWS_1])
        self.assertRaises(SalesforceError, self.query_cache.remember, SOQL_1, compute)
        self.assertEqual(self.query_cache.remember(SOQL_1, compute), ROWS_1)

    def test_skip(self):
        compute = mock.Mock(return_value=ROWS_1)
        options = CacheOptions(skip=True)
        self.query_cache.remember(SOQL_1, compute, options)
        self.query_cache.remember(SOQL_1, compute, options)
        self.assertEqual(compute.call_count, 2)
        self.assertIsNone(self.query_cache.cache.get(cache_key(SOQL_1)))

    def test_refresh(self):
        self.query_cache.remember(SOQL_1, lambda: ROWS_1)
        self.assertEqual(self.query_cache.remember(SOQL_1, lambda: ROWS_2, CacheOptions(refresh=True)), ROWS_2)
        self.assertEqual(self.query_cache.remember(SOQL_1, lambda: ROWS_1), ROWS_2)

    def test_disabled(self):
        query_cache = fresh_query_cache(enabled=False)
        compute = mock.Mock(return_value=ROWS_1)
        query_cache.remember(SOQL_1, compute)
        query_cache.remember(SOQL_1, compute)
        self.assertEqual(compute.call_count, 2)

    def test_ttl_precedence(self):
        self.assertEqual(self.query_cache.resolve_ttl('Contact'), 3600)
        self.assertEqual(self.query_cache.resolve_ttl('account'), 600)
        self.assertEqual(self.query_cache.resolve_ttl('Account', 5), 5)

    def test_ttl_is_used(self):
        with mock.patch.object(self.query_cache.cache, 'set', wraps=self.query_cache.cache.set) as cache_set:
            self.query_cache.remember(SOQL_1, lambda: ROWS_1)
            self.query_cache.remember("select Id from Contact", lambda: [], CacheOptions(ttl=42))
        ttls = [x[0][2] for x in cache_set.call_args_list if x[0][0].startswith('sf_query_')]
        self.assertEqual(ttls, [600, 42])

    def test_tags(self):
        self.query_cache.remember(SOQL_1, lambda: ROWS_1, CacheOptions(tags=['dashboard']))
        key = cache_key(SOQL_1)
        for tag in (GLOBAL_TAG, 'sf_object_account', 'dashboard', 'sf_record_account_001A000001h5wLPIAY'):
            self.assertEqual(self.query_cache.index.members(tag), {key}, tag)

    def test_no_record_tags_with_object_strategy(self):
        query_cache = fresh_query_cache(invalidation_strategy=STRATEGY_OBJECT)
        query_cache.remember(SOQL_1, lambda: ROWS_1)
        self.assertEqual(query_cache.index.members(record_tag('Account', ROWS_1[0]['Id'])), set())


class InvalidationTest(SimpleTestCase):
    def setUp(self):
        self.query_cache = fresh_query_cache()
        self.query_cache.remember(SOQL_1, lambda: ROWS_1)
        self.query_cache.remember(SOQL_2, lambda: ROWS_2)
        self.query_cache.remember("select Id from Contact", lambda: [{'Id': '003A000000wJICkIAO'}])

    def is_cached(self, soql):
        return self.query_cache.cache.get(cache_key(soql)) is not None

    def test_record_level(self):
        count = self.query_cache.invalidate_by_record_ids('Account', ['001A000001h5wLP'])
        self.assertEqual(count, 1)
        self.assertFalse(self.is_cached(SOQL_1))
        self.assertTrue(self.is_cached(SOQL_2))
        self.assertTrue(self.is_cached("select Id from Contact"))

    def test_overlapping_results(self):
        shared = {'Id': '001A000001h5wLRIAY', 'Name': 'C'}
        both_1 = "select Id, Name from Account where Name in ('A', 'C')"
        both_2 = "select Id, Name from Account where Name in ('B', 'C')"
        self.query_cache.remember(both_1, lambda: ROWS_1 + [shared])
        self.query_cache.remember(both_2, lambda: ROWS_2 + [shared])
        count = self.query_cache.invalidate_record('Account', '001A000001h5wLR')
        self.assertEqual(count, 2)
        self.assertFalse(self.is_cached(both_1))
        self.assertFalse(self.is_cached(both_2))
        self.assertTrue(self.is_cached(SOQL_1))
        self.assertTrue(self.is_cached(SOQL_2))

    def test_record_level_is_idempotent(self):
        self.query_cache.invalidate_record('Account', '001A000001h5wLPIAY')
        self.assertEqual(self.query_cache.invalidate_record('Account', '001A000001h5wLPIAY'), 0)
        self.assertTrue(self.is_cached(SOQL_2))

    def test_unknown_record(self):
        self.assertEqual(self.query_cache.invalidate_by_record_ids('Account', ['001000000000000AAA']), 0)
        self.assertTrue(self.is_cached(SOQL_1))

    def test_object_strategy(self):
        self.query_cache.config = self.query_cache.config._replace(invalidation_strategy=STRATEGY_OBJECT)
        self.query_cache.invalidate_by_record_ids('Account', ['001A000001h5wLPIAY'])
        self.assertFalse(self.is_cached(SOQL_1))
        self.assertFalse(self.is_cached(SOQL_2))
        self.assertTrue(self.is_cached("select Id from Contact"))

    def test_flush_object(self):
        self.assertEqual(self.query_cache.flush_object(['Account', 'Contact']), 3)
        self.assertFalse(self.is_cached("select Id from Contact"))

    def test_flush_all(self):
        self.query_cache.flush_all()
        self.assertFalse(any(self.is_cached(x) for x in (SOQL_1, SOQL_2, "select Id from Contact")))

    def test_forget(self):
        self.query_cache.forget(SOQL_1.upper())
        self.assertFalse(self.is_cached(SOQL_1))
        self.assertTrue(self.is_cached(SOQL_2))


class StatisticsTest(SimpleTestCase):
    def test_hits_and_misses(self):
        query_cache = fresh_query_cache()
        for _ in range(3):
            query_cache.remember(SOQL_1, lambda: ROWS_1)
        self.assertEqual(query_cache.get_statistics(), {
            'enabled': True, 'hits': 2, 'misses': 1, 'total': 3, 'hit_rate_percentage': 66.67})
        query_cache.reset_statistics()
        self.assertEqual(query_cache.get_statistics()['total'], 0)

    @override_settings(SALESFORCE_ENABLE_QUERY_LOG=False)
    def test_disabled(self):
        query_cache = QueryCache()
        query_cache.remember(SOQL_1, lambda: ROWS_1)
        self.assertEqual(query_cache.get_statistics(), {
            'enabled': False,
            'message': 'Cache analytics not enabled. Set SALESFORCE_ENABLE_QUERY_LOG to True.'})
