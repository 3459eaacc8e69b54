"""
Query tree and its compiler to SOQL  (like django.db.models.sql.compiler)

The tree is made of immutable namedtuples, the query set replaces them
instead of modifying. SOQLCompiler.as_sql() returns SOQL with '%s'
placeholders and a list of params, compile() returns the final text together
with the facts known from the tree (root object and aggregate function).
"""
import datetime
import re
from collections import namedtuple

from sfcache.dbapi.driver import SoqlLiteral, arg_to_soql, date_literal
from sfcache.dbapi.exceptions import ProgrammingError

AND = 'AND'
OR = 'OR'

AGGREGATE_FUNCTIONS = ('COUNT', 'SUM', 'AVG', 'MIN', 'MAX')

COMPARISON_OPERATORS = ('=', '!=', '<>', '<', '<=', '>', '>=')
OPERATORS = COMPARISON_OPERATORS + (
    'like', 'not like', 'in', 'not in', 'includes', 'excludes', 'between', 'null', 'not null')

# https://developer.salesforce.com/docs/atlas.en-us.soql_sosl.meta/soql_sosl/sforce_api_calls_soql_select_dateformats.htm
DATE_LITERALS = frozenset((
    'YESTERDAY', 'TODAY', 'TOMORROW', 'LAST_WEEK', 'THIS_WEEK', 'NEXT_WEEK',
    'LAST_MONTH', 'THIS_MONTH', 'NEXT_MONTH', 'LAST_90_DAYS', 'NEXT_90_DAYS',
    'LAST_N_DAYS', 'NEXT_N_DAYS', 'NEXT_N_WEEKS', 'LAST_N_WEEKS',
    'NEXT_N_MONTHS', 'LAST_N_MONTHS', 'THIS_QUARTER', 'LAST_QUARTER',
    'NEXT_QUARTER', 'NEXT_N_QUARTERS', 'LAST_N_QUARTERS', 'THIS_YEAR',
    'LAST_YEAR', 'NEXT_YEAR', 'NEXT_N_YEARS', 'LAST_N_YEARS',
    'THIS_FISCAL_QUARTER', 'LAST_FISCAL_QUARTER', 'NEXT_FISCAL_QUARTER',
    'NEXT_N_FISCAL_QUARTERS', 'LAST_N_FISCAL_QUARTERS', 'THIS_FISCAL_YEAR',
    'LAST_FISCAL_YEAR', 'NEXT_FISCAL_YEAR', 'NEXT_N_FISCAL_YEARS',
    'LAST_N_FISCAL_YEARS',
))

pattern_identifier = re.compile(r'^[A-Za-z_]\w*(?:\.[A-Za-z_]\w*)*$')
pattern_select_column = re.compile(r'^[\w.]+(?:\([\w.]*\))?(?: \w+)?$')

Condition = namedtuple('Condition', 'column operator value')
Where = namedtuple('Where', 'connector negated children')
Aggregate = namedtuple('Aggregate', 'function column')
Order = namedtuple('Order', 'column descending')
# `where.children[0]` is the link between the parent and the child object.
# It is implicit in SOQL and it is not rendered.
SubSelect = namedtuple('SubSelect', 'entity relationship columns where')

SOQLQuery = namedtuple('SOQLQuery', [
    'entity', 'columns', 'where', 'orders', 'limit', 'offset', 'aggregate',
    'distinct', 'subselects', 'date_columns', 'query_all'])

CompiledQuery = namedtuple('CompiledQuery', 'soql entity aggregate query_all')

EMPTY_WHERE = Where(AND, False, ())


def new_query(entity):
    return SOQLQuery(entity=entity, columns=None, where=EMPTY_WHERE, orders=(), limit=None,
                     offset=None, aggregate=None, distinct=False, subselects=(),
                     date_columns=frozenset(), query_all=False)


def is_date_literal(value):
    """Check if the string is a SOQL relative date literal like TODAY or LAST_N_DAYS:30"""
    return isinstance(value, str) and value.split(':', 1)[0] in DATE_LITERALS


def add_condition(where, condition, connector=AND):
    """Return a new Where with `condition` (Condition or Where) added by `connector`"""
    if isinstance(condition, Where) and not condition.negated and len(condition.children) == 1:
        condition = condition.children[0]
    if isinstance(condition, Where) and not condition.children:
        return where
    if not where.children:
        if isinstance(condition, Where) and not condition.negated:
            return condition
        return Where(connector, False, (condition,))
    if where.connector == connector and not where.negated:
        if isinstance(condition, Where) and not condition.negated and condition.connector == connector:
            return where._replace(children=where.children + condition.children)
        return where._replace(children=where.children + (condition,))
    return Where(connector, False, (where, condition))


class SOQLCompiler(object):
    """
    Render a SOQLQuery

    resolve_fields: callable(entity, columns) that expands '*' by the object
        metadata, usually SalesforceConnection.resolve_fields
    """

    def __init__(self, query, resolve_fields=None):
        self.query = query
        self.resolve_fields = resolve_fields

    def as_sql(self):
        query = self.query
        if not query.entity or not pattern_identifier.match(query.entity):
            raise ProgrammingError("Invalid object name: %r" % (query.entity,))
        params = []
        if query.aggregate:
            result = ['select %s' % self.compile_aggregate(query.aggregate)]
        else:
            columns = self.get_columns(query.entity, query.columns, root=True)
            columns.extend(self.compile_subselect(sub, params) for sub in query.subselects)
            result = ['select %s' % ', '.join(columns)]
        result.append('from %s' % query.entity)
        where_sql = self.compile_where(query.where, params)
        if where_sql:
            result.append('where %s' % where_sql)
        if query.orders:
            result.append('order by %s' % ', '.join(
                '%s %s' % (self.check_column(order.column), 'desc' if order.descending else 'asc')
                for order in query.orders))
        if query.limit is not None:
            result.append('limit %d' % int(query.limit))
        if query.offset:
            result.append('offset %d' % int(query.offset))
        return ' '.join(result), params

    def compile(self):
        sql, params = self.as_sql()
        soql = sql % tuple(arg_to_soql(x) for x in params)
        aggregate = self.query.aggregate.function.upper() if self.query.aggregate else None
        return CompiledQuery(soql, self.query.entity, aggregate, self.query.query_all)

    # -- parts of the query

    def get_columns(self, entity, columns, root=False):
        columns = list(columns or ['*'])
        if '*' in columns:
            if self.resolve_fields is None:
                raise ProgrammingError("Can not expand '*' of %s without object metadata" % entity)
            columns = list(self.resolve_fields(entity, columns))
        for column in columns:
            if not pattern_select_column.match(column):
                raise ProgrammingError("Invalid column: %r" % (column,))
        if root and 'id' not in [x.lower() for x in columns]:
            columns.insert(0, 'Id')
        return columns

    def compile_aggregate(self, aggregate):
        function = (aggregate.function or '').upper()
        if function not in AGGREGATE_FUNCTIONS:
            raise ProgrammingError("Unsupported aggregate function: %r" % (aggregate.function,))
        column = aggregate.column
        if column in (None, '', '*'):
            # COUNT() counts rows, other functions require a field
            column = '' if function == 'COUNT' else 'Id'
        else:
            column = self.check_column(column)
            if self.query.distinct:
                column = 'distinct ' + column
        return '%s(%s)' % (function, column)

    def compile_subselect(self, subselect, params):
        columns = self.get_columns(subselect.entity, subselect.columns)
        sql = 'SELECT %s FROM %s' % (', '.join(columns), self.check_column(subselect.relationship))
        where = subselect.where._replace(children=subselect.where.children[1:])
        where_sql = self.compile_where(where, params)
        if where_sql:
            sql += ' where %s' % where_sql
        return '(%s)' % sql

    def compile_where(self, where, params):
        parts = []
        for child in where.children:
            if isinstance(child, Where):
                sql = self.compile_where(child, params)
                if sql and len(child.children) > 1 and not child.negated:
                    sql = '(%s)' % sql
            elif isinstance(child, Condition):
                sql = self.compile_condition(child, params)
            else:
                raise ProgrammingError("Invalid predicate: %r" % (child,))
            if sql:
                parts.append(sql)
        if where.connector not in (AND, OR):
            raise ProgrammingError("Invalid connector: %r" % (where.connector,))
        sql = (' %s ' % where.connector.lower()).join(parts)
        if where.negated and sql:
            sql = '(not %s)' % ('(%s)' % sql if len(parts) > 1 else sql)
        return sql

    def compile_condition(self, condition, params):
        # pylint:disable=too-many-return-statements
        column = self.check_column(condition.column)
        operator = (condition.operator or '').lower()
        value = condition.value
        if operator not in OPERATORS:
            raise ProgrammingError("Unsupported operator %r for %s" % (condition.operator, column))
        if operator in ('in', 'not in', 'includes', 'excludes'):
            if isinstance(value, (str, bytes)) or not hasattr(value, '__iter__'):
                raise ProgrammingError("A list of values is required by %s %s" % (column, operator))
            values = list(value)
            if not values:
                if operator == 'in':
                    return 'Id = null'  # always false
                if operator == 'not in':
                    return 'Id <> null'  # always true
                raise ProgrammingError("A non empty list is required by %s %s" % (column, operator))
            params.extend(self.prepare_value(column, x) for x in values)
            return '%s %s (%s)' % (column, operator, ', '.join(['%s'] * len(values)))
        if operator == 'null' or (operator == '=' and value is None):
            return '%s = NULL' % column
        if operator == 'not null' or (operator in ('!=', '<>') and value is None):
            return '%s <> NULL' % column
        if value is None:
            raise ProgrammingError("NULL can not be compared by %r: %s" % (operator, column))
        if operator == 'between':
            try:
                low, high = value
            except (TypeError, ValueError):
                raise ProgrammingError("Two values are required by %s between" % column)
            params.extend((self.prepare_value(column, low), self.prepare_value(column, high)))
            return '%s between %%s and %%s' % column
        if operator == 'like':
            params.append(value)
            return '%s like %%s' % column
        if operator == 'not like':
            params.append(value)
            return '(not %s like %%s)' % column
        if is_date_literal(value):
            value = SoqlLiteral(value)
        params.append(self.prepare_value(column, value))
        return '%s %s %%s' % (column, operator)

    def prepare_value(self, column, value):
        """Values compared with date columns are not quoted"""
        if column in self.query.date_columns and not isinstance(value, SoqlLiteral):
            if isinstance(value, datetime.datetime):
                return SoqlLiteral(date_literal(value))
            if isinstance(value, datetime.date):
                return SoqlLiteral(value.isoformat())
            if isinstance(value, str):
                return SoqlLiteral(value)
        return value

    @staticmethod
    def check_column(column):
        if not isinstance(column, str) or not pattern_identifier.match(column):
            raise ProgrammingError("Invalid field name: %r" % (column,))
        return column
