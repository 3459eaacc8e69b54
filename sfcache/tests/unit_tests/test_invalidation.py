from django.test import SimpleTestCase, override_settings

from sfcache import signals
from sfcache.backend.base import SalesforceConnection
from sfcache.cache.invalidation import (
    OBJECT_LEVEL, RECORD_LEVEL, CacheInvalidationObserver, InvalidChangeEvent,
    parse_change_event, process_change_event)
from sfcache.cache.query_cache import cache_key
from sfcache.conf import STRATEGY_OBJECT
from sfcache.tests.helpers import FakeAdapter, fresh_query_cache

ACCOUNT_ID = '001A000001h5wLPIAY'
SOQL_1 = "select Id from Account where Name = 'A'"
SOQL_2 = "select Id from Account where Name = 'B'"


def cdc_body(entity='Account', record_ids=(ACCOUNT_ID,), change_type='UPDATE'):
    return {'payload': {'ChangeEventHeader': {
        'entityName': entity, 'recordIds': list(record_ids), 'changeType': change_type}}}


class ParseChangeEventTest(SimpleTestCase):
    def test_valid(self):
        event = parse_change_event(cdc_body())
        self.assertEqual(event.entity, 'Account')
        self.assertEqual(event.record_ids, [ACCOUNT_ID])
        self.assertEqual(event.change_type, 'UPDATE')

    def test_missing_header(self):
        with self.assertRaisesMessage(InvalidChangeEvent, 'missing ChangeEventHeader'):
            parse_change_event({'payload': {}})
        with self.assertRaisesMessage(InvalidChangeEvent, 'missing ChangeEventHeader'):
            parse_change_event([])

    def test_missing_entity(self):
        with self.assertRaisesMessage(InvalidChangeEvent, 'missing entityName'):
            parse_change_event({'payload': {'ChangeEventHeader': {'recordIds': []}}})

    def test_wrong_field_types(self):
        with self.assertRaisesMessage(InvalidChangeEvent, 'changeType must be a string'):
            parse_change_event({'payload': {'ChangeEventHeader': {'entityName': 'Account', 'changeType': 5}}})
        with self.assertRaisesMessage(InvalidChangeEvent, 'recordIds must be a list of strings'):
            parse_change_event({'payload': {'ChangeEventHeader': {'entityName': 'Account', 'recordIds': 7}}})
        with self.assertRaisesMessage(InvalidChangeEvent, 'recordIds must be a list of strings'):
            parse_change_event({'payload': {'ChangeEventHeader': {'entityName': 'Account',
                                                                  'recordIds': [{'id': 1}]}}})

    def test_unknown_change_type(self):
        with self.assertLogs('sfcache.cache.invalidation', 'INFO'):
            event = parse_change_event(cdc_body(change_type='SOMETHING_NEW'))
        self.assertEqual(event.change_type, 'SOMETHING_NEW')


class ProcessChangeEventTest(SimpleTestCase):
    def setUp(self):
        self.query_cache = fresh_query_cache()
        self.query_cache.remember(SOQL_1, lambda: [{'Id': ACCOUNT_ID}])
        self.query_cache.remember(SOQL_2, lambda: [{'Id': '001A000001h5wLQIAY'}])

    def is_cached(self, soql):
        return self.query_cache.cache.get(cache_key(soql)) is not None

    def test_record_level(self):
        mode = process_change_event(parse_change_event(cdc_body()), self.query_cache)
        self.assertEqual(mode, RECORD_LEVEL)
        self.assertFalse(self.is_cached(SOQL_1))
        self.assertTrue(self.is_cached(SOQL_2))

    def test_without_ids_is_object_level(self):
        mode = process_change_event(parse_change_event(cdc_body(record_ids=())), self.query_cache)
        self.assertEqual(mode, OBJECT_LEVEL)
        self.assertFalse(self.is_cached(SOQL_2))

    def test_object_strategy(self):
        self.query_cache.config = self.query_cache.config._replace(invalidation_strategy=STRATEGY_OBJECT)
        self.assertEqual(process_change_event(parse_change_event(cdc_body()), self.query_cache), OBJECT_LEVEL)
        self.assertFalse(self.is_cached(SOQL_2))

    def test_other_object_is_kept(self):
        process_change_event(parse_change_event(cdc_body(entity='Contact', record_ids=())), self.query_cache)
        self.assertTrue(self.is_cached(SOQL_1))

    def test_repeated_event(self):
        event = parse_change_event(cdc_body())
        process_change_event(event, self.query_cache)
        self.assertEqual(process_change_event(event, self.query_cache), RECORD_LEVEL)
        self.assertTrue(self.is_cached(SOQL_2))


class ObserverTest(SimpleTestCase):
    def setUp(self):
        self.query_cache = fresh_query_cache()
        self.query_cache.remember(SOQL_1, lambda: [{'Id': ACCOUNT_ID}])
        self.query_cache.remember(SOQL_2, lambda: [{'Id': '001A000001h5wLQIAY'}])
        self.connection = SalesforceConnection('test', adapter=FakeAdapter(), query_cache=self.query_cache)

    def is_cached(self, soql):
        return self.query_cache.cache.get(cache_key(soql)) is not None

    def test_create_is_object_level(self):
        self.assertEqual(CacheInvalidationObserver(self.query_cache).created('Account', ['001x']), OBJECT_LEVEL)
        self.assertFalse(self.is_cached(SOQL_2))

    def test_update_by_connection(self):
        self.assertTrue(self.connection.update('Account', ACCOUNT_ID, {'Name': 'X'}))
        self.assertFalse(self.is_cached(SOQL_1))
        self.assertTrue(self.is_cached(SOQL_2))

    def test_delete_by_connection(self):
        self.connection.delete('Account', '001A000001h5wLQ')
        self.assertTrue(self.is_cached(SOQL_1))
        self.assertFalse(self.is_cached(SOQL_2))

    def test_create_by_connection(self):
        self.connection.create('Account', {'Name': 'New'})
        self.assertFalse(self.is_cached(SOQL_1))
        self.assertFalse(self.is_cached(SOQL_2))

    def test_restored_signal(self):
        signals.record_restored.send(sender=SalesforceConnection, entity='Account',
                                     record_ids=[ACCOUNT_ID], connection=self.connection)
        self.assertFalse(self.is_cached(SOQL_1))
        self.assertTrue(self.is_cached(SOQL_2))

    def test_auto_invalidate_off(self):
        self.query_cache.config = self.query_cache.config._replace(auto_invalidate=False)
        self.connection.update('Account', ACCOUNT_ID, {'Name': 'X'})
        self.assertTrue(self.is_cached(SOQL_1))
        self.assertIsNone(CacheInvalidationObserver(self.query_cache).deleted('Account', [ACCOUNT_ID]))

    @override_settings(SALESFORCE_ENABLE_QUERY_LOG=True)
    def test_invalidation_is_logged(self):
        with self.assertLogs('sfcache.cache.invalidation', 'INFO') as logs:
            self.connection.update('Account', ACCOUNT_ID, {'Name': 'X'})
        self.assertIn(RECORD_LEVEL, logs.output[-1])
