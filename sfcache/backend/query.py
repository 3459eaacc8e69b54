# django-salesforce-cache
#
# by Phil Christensen
# (c) 2012-2013 Freelancers Union (http://www.freelancersunion.org)
# See LICENSE.md for details
#

"""
Salesforce object query builder  (like django.db.models.query)

    SalesforceQuerySet('Account').filter(Name__startswith='A').values('Name')[:10]

Every method returns a new query set, the original one is not changed.
Rows are evaluated lazily by iteration, len(), bool() or an integer index,
and they are cached inside the query set instance like in Django.
"""
from django.core.paginator import Paginator
from django.db.models import Q
from django.utils.functional import cached_property

from sfcache import conf
from sfcache.backend import MAX_OFFSET
from sfcache.backend.base import get_connection
from sfcache.backend.compiler import (
    AND, OR, Aggregate, Condition, Order, SOQLCompiler, SubSelect, Where,
    add_condition, new_query)
from sfcache.backend.results import aggregate_value
from sfcache.backend.utils import pluralize
from sfcache.cache.query_cache import DEFAULT_OPTIONS
from sfcache.dbapi.driver import SoqlLiteral
from sfcache.dbapi.exceptions import NotSupportedError

LOOKUPS = {
    'exact': '=',
    'iexact': '=',  # SOQL string comparison is case insensitive
    'ne': '!=',
    'gt': '>',
    'gte': '>=',
    'lt': '<',
    'lte': '<=',
    'in': 'in',
    'range': 'between',
    'isnull': 'null',
    'contains': 'like',
    'icontains': 'like',
    'startswith': 'like',
    'istartswith': 'like',
    'endswith': 'like',
    'iendswith': 'like',
    'includes': 'includes',
    'excludes': 'excludes',
}

LIKE_PATTERNS = {
    'contains': '%%%s%%',
    'icontains': '%%%s%%',
    'startswith': '%s%%',
    'istartswith': '%s%%',
    'endswith': '%%%s',
    'iendswith': '%%%s',
}

_UNSET = object()


def lookup_to_condition(key, value):
    """Condition from a Django style lookup like 'Amount__c__gte'"""
    column, _, lookup = key.rpartition('__')
    if not column or lookup not in LOOKUPS:
        # e.g. a custom field 'Name__c' without any lookup
        column, lookup = key, 'exact'
    if lookup == 'isnull':
        return Condition(column, 'null' if value else 'not null', None)
    if lookup in LIKE_PATTERNS:
        return Condition(column, 'like', LIKE_PATTERNS[lookup] % value)
    return Condition(column, LOOKUPS[lookup], value)


def q_to_where(q):
    """Where tree from a django.db.models.Q object"""
    children = []
    for child in q.children:
        if isinstance(child, Q):
            children.append(q_to_where(child))
        else:
            children.append(lookup_to_condition(*child))
    return Where(q.connector, q.negated, tuple(children))


def filter_to_where(args, kwargs, negated=False):
    children = tuple(q_to_where(x) for x in args)
    children += tuple(lookup_to_condition(k, v) for k, v in kwargs.items())
    return Where(AND, negated, children)


class SalesforceQuerySet(object):
    """
    A lazy query of one Salesforce object

    entity:     the object API name, e.g. 'Account'
    connection: SalesforceConnection, default get_connection()
    """

    def __init__(self, entity, connection=None, query=None, cache_options=None):
        self.entity = entity
        self._connection = connection
        self.query = query or new_query(entity)
        self.cache_options = cache_options or DEFAULT_OPTIONS
        self._result_cache = None

    @property
    def connection(self):
        return self._connection or get_connection()

    def __repr__(self):
        return "<SalesforceQuerySet %s>" % self.entity

    def _clone(self, query=None, cache_options=None):
        return SalesforceQuerySet(self.entity, self._connection,
                                  query or self.query, cache_options or self.cache_options)

    def _replace(self, **changes):
        return self._clone(query=self.query._replace(**changes))

    def _with_options(self, **changes):
        return self._clone(cache_options=self.cache_options._replace(**changes))

    # -- building the query

    def all(self):
        return self._clone()

    def filter(self, *args, **kwargs):
        """Add conditions by Q objects or lookups, e.g. filter(Name='A', Amount__gt=10)"""
        return self._replace(where=add_condition(self.query.where, filter_to_where(args, kwargs)))

    def exclude(self, *args, **kwargs):
        return self._replace(where=add_condition(self.query.where, filter_to_where(args, kwargs, True)))

    def where(self, column, operator, value=_UNSET):
        """Add a condition, where('Name', 'A') is the same as where('Name', '=', 'A')"""
        return self._replace(where=add_condition(self.query.where, self._condition(column, operator, value)))

    def or_where(self, column, operator, value=_UNSET):
        return self._replace(where=add_condition(self.query.where, self._condition(column, operator, value), OR))

    @staticmethod
    def _condition(column, operator, value):
        if value is _UNSET:
            return Condition(column, '=', operator)
        return Condition(column, operator, value)

    def values(self, *columns):
        """Select only these fields. '*' is all fields by object metadata."""
        return self._replace(columns=tuple(columns) or None)

    def order_by(self, *columns):
        """Replace the ordering, a '-' prefix is the descending order"""
        orders = tuple(Order(x[1:], True) if x.startswith('-') else Order(x, False) for x in columns)
        return self._replace(orders=orders)

    def distinct(self):
        return self._replace(distinct=True)

    def date_columns(self, *columns):
        """Fields whose compared values are not quoted, e.g. CreatedDate"""
        return self._replace(date_columns=self.query.date_columns | frozenset(columns))

    def query_all(self):
        """Include deleted and archived records (the queryAll resource)"""
        return self._replace(query_all=True)

    def only_deleted(self):
        return self.query_all().filter(IsDeleted=True)

    def with_related(self, entity, columns=None, relationship=None, foreign_key=None, q=None, **lookups):
        """Add a child relationship subquery

        SalesforceQuerySet('Account').with_related('Contact', ['LastName'])
            -> SELECT Id, (SELECT LastName FROM Contacts) FROM Account
        """
        link = Condition(foreign_key or '%sId' % self.entity, '=', SoqlLiteral('%s.Id' % self.entity))
        where = Where(AND, False, (link,) + filter_to_where([q] if q else [], lookups).children)
        subselect = SubSelect(entity=entity, relationship=relationship or pluralize(entity),
                              columns=tuple(columns) if columns else None, where=where)
        return self._replace(subselects=self.query.subselects + (subselect,))

    def __getitem__(self, k):
        if isinstance(k, int):
            if k < 0:
                raise ValueError("Negative indexing is not supported.")
            if self._result_cache is not None:
                return self._result_cache[k]
            return list(self[k:k + 1])[0]
        if not isinstance(k, slice):
            raise TypeError("Query set indices must be integers or slices, not %s." % type(k).__name__)
        if k.step is not None:
            raise NotSupportedError("A step of a slice is not supported by SOQL")
        start, stop = k.start or 0, k.stop
        if start < 0 or (stop is not None and stop < 0):
            raise ValueError("Negative indexing is not supported.")
        if self._result_cache is not None:
            return self._result_cache[k]
        limit = self.query.limit
        if stop is not None:
            new_limit = max(stop - start, 0)
            if limit is not None:
                new_limit = min(new_limit, max(limit - start, 0))
        else:
            new_limit = None if limit is None else max(limit - start, 0)
        return self._replace(offset=(self.query.offset or 0) + start or None, limit=new_limit)

    # -- cache options

    def without_cache(self):
        return self._with_options(skip=True)

    def cache_for(self, seconds):
        return self._with_options(ttl=seconds)

    def refresh_cache(self):
        """Run the query even if it is cached and store the new result"""
        return self._with_options(refresh=True)

    def cache_tags(self, *tags):
        return self._with_options(tags=self.cache_options.tags + tuple(tags))

    # -- compiling

    def compile(self, query=None):
        return SOQLCompiler(query or self.query, self.connection.resolve_fields).compile()

    def to_soql(self):
        return self.compile().soql

    # -- evaluation

    def _fetch_all(self):
        if self._result_cache is None:
            self._result_cache = list(self.connection.select(self.compile(), self.cache_options))
        return self._result_cache

    def __iter__(self):
        return iter(self._fetch_all())

    def __len__(self):
        return len(self._fetch_all())

    def __bool__(self):
        return bool(self._fetch_all())

    def iterator(self):
        """Rows of all pages without caching, one page in memory at a time"""
        return self.connection.cursor(self.compile())

    def first(self):
        rows = list(self[:1])
        return rows[0] if rows else None

    def exists(self):
        return bool(list(self.values('Id')[:1]))

    # -- aggregates

    def aggregate(self, function, column='*'):
        """Value of an aggregate function over the filtered records, None if no row"""
        query = self.query._replace(
            columns=None, orders=(), limit=None, offset=None, subselects=(),
            aggregate=Aggregate(function.upper(), column))
        rows = self.connection.select(self.compile(query), self.cache_options)
        return aggregate_value(rows)

    def count(self):
        """Number of rows, a slice of the query set is counted by its bounds"""
        if self._result_cache is not None:
            return len(self._result_cache)
        count = max(int(self.aggregate('COUNT') or 0) - (self.query.offset or 0), 0)
        if self.query.limit is not None:
            count = min(count, self.query.limit)
        return count

    def sum(self, column):
        value = self.aggregate('SUM', column)
        return 0 if value is None else value

    def avg(self, column):
        return self.aggregate('AVG', column)

    average = avg

    def min(self, column):
        return self.aggregate('MIN', column)

    def max(self, column):
        return self.aggregate('MAX', column)

    # -- pagination

    @property
    def ordered(self):
        return bool(self.query.orders)

    def paginate(self, per_page=None, page=1, total=None):
        """Django Page of rows. The count of rows is at most MAX_OFFSET.

        total: a known number of rows, it saves the COUNT() query
        """
        paginator = SOQLPaginator(self, per_page or conf.page_size(), total=total)
        return paginator.page(page)

    def simple_paginate(self, per_page=None, page=1):
        """Page without counting, it fetches one row more to know about the next page"""
        per_page = per_page or conf.page_size()
        page = int(page)
        if page < 1:
            raise ValueError("The page number must be at least 1")
        offset = (page - 1) * per_page
        rows = list(self[offset:offset + per_page + 1])
        return SimplePage(rows[:per_page], page, per_page, len(rows) > per_page)

    # -- writing

    def create(self, **data):
        return self.connection.create(self.entity, data)

    def bulk_create(self, records, all_or_none=False):
        """Create records in chunks, return BulkResult of created records"""
        return self.connection.bulk_create(self.entity, list(records), all_or_none)

    def delete(self, all_or_none=False):
        """Delete the selected records, return the number of deleted ones"""
        record_ids = [row['Id'] for row in self.values('Id').iterator()]
        return len(self.connection.bulk_delete(self.entity, record_ids, all_or_none))


class SOQLPaginator(Paginator):
    """Paginator with the count limited by the highest SOQL OFFSET"""

    def __init__(self, object_list, per_page, total=None, **kwargs):
        self.total = total
        super(SOQLPaginator, self).__init__(object_list, per_page, **kwargs)

    @cached_property
    def count(self):
        total = self.total if self.total is not None else self.object_list.count()
        return min(int(total), MAX_OFFSET)


class SimplePage(object):
    def __init__(self, object_list, number, per_page, has_more):
        self.object_list = object_list
        self.number = number
        self.per_page = per_page
        self.has_more = has_more

    def __repr__(self):
        return '<SimplePage %s>' % self.number

    def __len__(self):
        return len(self.object_list)

    def __iter__(self):
        return iter(self.object_list)

    def __getitem__(self, index):
        return self.object_list[index]

    def has_next(self):
        return self.has_more

    def has_previous(self):
        return self.number > 1

    def next_page_number(self):
        return self.number + 1

    def previous_page_number(self):
        return self.number - 1
