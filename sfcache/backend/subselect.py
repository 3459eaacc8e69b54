"""Parse facts from a rendered SOQL text, including subqueries

Queries built by SalesforceQuerySet carry their root object name and their
aggregate function, but raw SOQL passed to the query cache must be parsed.

Subqueries are (fortunately for the implementation) very restricted by
[Force.com SOQL]
(https://resources.docs.salesforce.com/sfdc/pdf/salesforce_soql_sosl.pdf)
- "only root queries support aggregate expressions"
- the root object is the first FROM outside of parentheses
"""
import datetime
import re

import pytz

AGGREGATION_WORDS = set((
    'AVG, COUNT, COUNT_DISTINCT, MIN, MAX, SUM'
).split(', '))
pattern_aggregation = re.compile(r'\b(?:{})\s*\('.format('|'.join(sorted(AGGREGATION_WORDS))), re.I)
pattern_from = re.compile(r'''\bfrom\s+["']?(\w+)''', re.I)


def mark_quoted_strings(sql):
    """Mark all quoted strings in the SOQL by '@' and get them as params,
    with respect to all escaped backslashes and quotes.
    """
    pm_pattern = re.compile(r"'[^\\']*(?:\\[\\'][^\\']*)*'")
    bs_pattern = re.compile(r"\\([\\'])")
    start = 0
    out = []
    params = []
    for match in pm_pattern.finditer(sql):
        out.append(sql[start:match.start()])
        params.append(bs_pattern.sub('\\1', sql[match.start() + 1:match.end() - 1]))
        start = match.end()
    out.append(sql[start:])
    return '@'.join(out), params


def find_closing_parenthesis(sql, startpos):
    """Find the pair of opening and closing parentheses.

    Starts search at the position startpos.
    Returns tuple of positions (opening, closing) if search succeeds, otherwise None.
    """
    pattern = re.compile(r'[()]')
    level = 0
    opening = None
    for match in pattern.finditer(sql, startpos):
        par = match.group()
        if par == '(':
            if level == 0:
                opening = match.start()
            level += 1
        if par == ')':
            assert level > 0
            level -= 1
            if level == 0:
                closing = match.end()
                return opening, closing
    return None


def strip_subqueries(sql):
    """Replace every nested (SELECT ...) by '(&)'"""
    pattern = re.compile(r'\(\s*SELECT\b', re.I)
    out = []
    start = 0
    match = pattern.search(sql, start)
    while match:
        found = find_closing_parenthesis(sql, match.start())
        if found is None:
            break
        out.append(sql[start:match.start()] + '(&)')
        start = found[1]
        match = pattern.search(sql, start)
    out.append(sql[start:])
    return ''.join(out)


def root_soql(soql):
    """The root query without string literals and without subqueries"""
    return strip_subqueries(mark_quoted_strings(soql)[0])


def extract_entity(soql):
    """Name of the root object of the query, with the original letter case

    >>> extract_entity("SELECT Id, (SELECT Id FROM Contacts) FROM My_Object__c WHERE Name = 'from x'")
    'My_Object__c'
    """
    match = pattern_from.search(root_soql(soql))
    return match.group(1) if match else None


def extract_aggregate(soql):
    """Name of the first aggregate function in the root query (upper case) or None"""
    match = pattern_aggregation.search(root_soql(soql))
    return match.group().rstrip('( ').upper() if match else None


SALESFORCE_DATETIME_FORMAT = '%Y-%m-%dT%H:%M:%S.%f+0000'
SF_DATETIME_PATTERN = re.compile(r'[1-3]\d{3}-[01]\d-[0-3]\dT[0-2]\d:[0-5]\d:[0-6]\d.\d{3}\+0000$')


def fix_data_type(data):
    """Convert a datetime string from REST response to an aware datetime"""
    if isinstance(data, str) and SF_DATETIME_PATTERN.match(data):
        d = datetime.datetime.strptime(data, SALESFORCE_DATETIME_FORMAT)
        d = d.replace(tzinfo=pytz.utc)
        return d
    return data
