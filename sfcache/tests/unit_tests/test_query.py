from decimal import Decimal

from django.core.paginator import EmptyPage
from django.test import SimpleTestCase, override_settings

from sfcache.backend.query import SalesforceQuerySet
from sfcache.dbapi.exceptions import SalesforceError
from sfcache.tests.helpers import FakeAdapter, fake_connection, query_response

COUNT_SOQL = "select COUNT() from Account"


def aggregate_response(value):
    return {'totalSize': 1, 'done': True, 'records': [{'attributes': {'type': 'AggregateResult'}, 'expr0': value}]}


class QuerySetTestCase(SimpleTestCase):
    responses = {}

    def setUp(self):
        self.adapter = FakeAdapter(responses=self.responses)
        self.connection = fake_connection(self.adapter)

    def accounts(self, *columns):
        return SalesforceQuerySet('Account', connection=self.connection).values(*(columns or ('Name',)))


class EvaluationTest(QuerySetTestCase):
    responses = {
        "select Id, Name from Account": query_response([
            {'Id': '001000000000001AAA', 'Name': 'A'}, {'Id': '001000000000002AAA', 'Name': 'B'}]),
        "select Id, Name from Account limit 1": query_response([{'Id': '001000000000001AAA', 'Name': 'A'}]),
        "select Id from Account limit 1": query_response([{'Id': '001000000000001AAA'}]),
    }

    def test_rows(self):
        qs = self.accounts()
        self.assertEqual(list(qs), [{'Id': '001000000000001AAA', 'Name': 'A'},
                                    {'Id': '001000000000002AAA', 'Name': 'B'}])
        self.assertEqual(len(qs), 2)
        self.assertEqual(qs[1]['Name'], 'B')
        self.assertEqual(len(self.adapter.queries()), 1)

    def test_cached_between_query_sets(self):
        list(self.accounts())
        list(self.accounts())
        self.assertEqual(len(self.adapter.queries()), 1)

    def test_without_cache(self):
        list(self.accounts().without_cache())
        list(self.accounts().without_cache())
        self.assertEqual(len(self.adapter.queries()), 2)

    def test_refresh_cache(self):
        list(self.accounts())
        list(self.accounts().refresh_cache())
        list(self.accounts())
        self.assertEqual(len(self.adapter.queries()), 2)

    def test_query_all_is_cached_separately(self):
        list(self.accounts())
        list(self.accounts().query_all())
        self.assertEqual([x[0] for x in self.adapter.calls], ['query', 'query_all'])

    def test_raw_soql_shares_the_cache(self):
        list(self.accounts())
        rows = self.connection.select_raw("SELECT Id, Name\n  FROM Account")
        self.assertEqual(len(rows), 2)
        self.assertEqual(len(self.adapter.queries()), 1)

    def test_cache_tags(self):
        list(self.accounts().cache_tags('report').cache_for(30))
        self.assertEqual(self.connection.query_cache.flush_tags('report'), 1)

    def test_first_and_exists(self):
        self.assertEqual(self.accounts().first(), {'Id': '001000000000001AAA', 'Name': 'A'})
        self.assertTrue(self.accounts().exists())
        self.assertFalse(self.accounts().filter(Name='none').exists())
        self.assertIsNone(self.accounts().filter(Name='none').first())

    def test_iterator_is_not_cached(self):
        qs = self.accounts()
        self.assertEqual(len(list(qs.iterator())), 2)
        self.assertEqual(len(list(qs.iterator())), 2)
        self.assertEqual(len(self.adapter.queries()), 2)

    def test_error(self):
        self.adapter.errors['query'] = SalesforceError('MALFORMED_QUERY')
        self.assertRaises(SalesforceError, list, self.accounts())

    @override_settings(SALESFORCE_THROW_EXCEPTIONS=False)
    def test_error_is_logged(self):
        self.adapter.errors['query'] = [SalesforceError('MALFORMED_QUERY')]
        with self.assertLogs('sfcache', 'ERROR') as logs:
            self.assertEqual(list(self.accounts()), [])
        self.assertIn('MALFORMED_QUERY', logs.output[0])
        # the error is not cached
        self.assertEqual(len(list(self.accounts())), 2)


class AggregateTest(QuerySetTestCase):
    responses = {
        COUNT_SOQL: {'totalSize': 150, 'done': True, 'records': []},
        "select COUNT() from Account where Industry = 'None'": {'totalSize': 0, 'done': True, 'records': []},
        "select SUM(AnnualRevenue) from Account": aggregate_response(Decimal('1500.5')),
        "select SUM(AnnualRevenue) from Account where Industry = 'None'": aggregate_response(None),
        "select AVG(AnnualRevenue) from Account where Industry = 'None'": aggregate_response(None),
        "select MIN(AnnualRevenue) from Account": aggregate_response(Decimal('10')),
        "select MAX(AnnualRevenue) from Account": aggregate_response(Decimal('900')),
    }

    def test_count(self):
        self.assertEqual(self.accounts().order_by('Name').count(), 150)
        self.assertEqual(self.accounts().filter(Industry='None').count(), 0)

    def test_count_of_slice(self):
        self.assertEqual(self.accounts()[:10].count(), 10)
        self.assertEqual(self.accounts()[140:].count(), 10)
        self.assertEqual(self.accounts()[145:160].count(), 5)
        self.assertEqual(self.accounts()[200:210].count(), 0)
        self.assertEqual(self.adapter.queries(), [COUNT_SOQL] * 4)

    def test_aggregates_are_not_cached(self):
        self.accounts().count()
        self.accounts().count()
        self.assertEqual(self.adapter.queries(), [COUNT_SOQL, COUNT_SOQL])

    def test_sum(self):
        self.assertEqual(self.accounts().sum('AnnualRevenue'), Decimal('1500.5'))
        self.assertEqual(self.accounts().filter(Industry='None').sum('AnnualRevenue'), 0)

    def test_avg_min_max(self):
        self.assertIsNone(self.accounts().filter(Industry='None').average('AnnualRevenue'))
        self.assertEqual(self.accounts().min('AnnualRevenue'), Decimal('10'))
        self.assertEqual(self.accounts().max('AnnualRevenue'), Decimal('900'))


class PaginationTest(QuerySetTestCase):
    responses = {
        COUNT_SOQL: {'totalSize': 5000, 'done': True, 'records': []},
        "select Id, Name from Account order by Name asc limit 100 offset 1900": query_response(
            [{'Id': '001%015d' % i, 'Name': str(i)} for i in range(100)]),
        "select Id, Name from Account order by Name asc limit 3 offset 3": query_response(
            [{'Id': '001%015d' % i, 'Name': str(i)} for i in range(3)]),
        "select Id, Name from Account order by Name asc limit 3 offset 4": query_response(
            [{'Id': '001%015d' % i, 'Name': str(i)} for i in range(3)]),
        "select Id, Name from Account order by Name asc limit 3 offset 6": query_response(
            [{'Id': '001%015d' % i, 'Name': str(i)} for i in range(2)]),
    }

    def test_count_is_limited_by_offset(self):
        page = self.accounts().order_by('Name').paginate(per_page=100, page=20)
        paginator = page.paginator
        self.assertEqual(paginator.count, 2000)
        self.assertEqual(paginator.num_pages, 20)
        self.assertFalse(page.has_next())
        self.assertEqual(len(page), 100)
        self.assertRaises(EmptyPage, paginator.page, 21)

    def test_known_total(self):
        page = self.accounts().order_by('Name').paginate(per_page=3, page=2, total=8)
        self.assertEqual(page.paginator.count, 8)
        self.assertEqual(len(page.object_list), 3)
        self.assertNotIn(COUNT_SOQL, self.adapter.queries())

    def test_simple_paginate(self):
        page = self.accounts().order_by('Name').simple_paginate(per_page=2, page=3)
        self.assertEqual(len(page), 2)
        self.assertTrue(page.has_next())
        self.assertTrue(page.has_previous())
        self.assertEqual(page.next_page_number(), 4)
        last = self.accounts().order_by('Name').simple_paginate(per_page=2, page=4)
        self.assertEqual(len(last), 2)
        self.assertFalse(last.has_next())
