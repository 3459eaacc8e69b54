"""
REST query responses to rows

Rows are plain dicts without the 'attributes' item. Nested parent objects
stay nested dicts, child relationship subqueries are lists of rows.
Datetime strings are converted to aware datetimes.

Aggregate queries without GROUP BY are reported by Salesforce in two shapes:
    SELECT COUNT() ...      -> {'totalSize': 150, 'records': []}
    SELECT SUM(Amount) ...  -> {'records': [{'expr0': 123.0}]}
Both are normalized to one row {'aggregate': value}.
"""
import logging
from typing import Any, Callable, Dict, Iterator, List, Optional

from sfcache.backend.subselect import fix_data_type

log = logging.getLogger(__name__)

AGGREGATE_ALIAS = 'aggregate'
EXPRESSION_ALIAS = 'expr0'

Row = Dict[str, Any]


def clean_value(value: Any) -> Any:
    if isinstance(value, dict):
        if 'records' in value and 'done' in value and 'totalSize' in value:
            # child relationship subquery (its first page only)
            return [clean_record(x) for x in value['records']]
        return clean_record(value)
    return fix_data_type(value)


def clean_record(record: Row) -> Row:
    return {k: clean_value(v) for k, v in record.items() if k != 'attributes'}


def iter_pages(response: Row, fetch_next: Callable[[str], Row]) -> Iterator[Row]:
    """Yield the response and all following pages.

    The loop ends when a page has no nextRecordsUrl or it is marked done.
    A transport error raised by `fetch_next` is propagated, never retried.
    """
    while True:
        yield response
        next_url = response.get('nextRecordsUrl')
        if not next_url or response.get('done') is True:
            return
        log.debug("Fetching the next page %s", next_url)
        response = fetch_next(next_url)


def iter_records(response: Row, fetch_next: Callable[[str], Row]) -> Iterator[Row]:
    """Lazy sequence of clean rows over all pages"""
    for page in iter_pages(response, fetch_next):
        for record in page.get('records') or ():
            yield clean_record(record)


def normalize_aggregate(response: Row, function: Optional[str],
                        fetch_next: Callable[[str], Row]) -> List[Row]:
    """Rows of an aggregate query with the value under the key 'aggregate'"""
    records = response.get('records') or []
    if (function or '').upper() == 'COUNT' and not records and not response.get('nextRecordsUrl'):
        return [{AGGREGATE_ALIAS: response.get('totalSize') or 0}]
    rows = []
    for row in iter_records(response, fetch_next):
        if EXPRESSION_ALIAS in row:
            row[AGGREGATE_ALIAS] = row.pop(EXPRESSION_ALIAS)
        rows.append(row)
    return rows


def normalize(response: Row, fetch_next: Callable[[str], Row], aggregate: Optional[str] = None) -> List[Row]:
    """All rows of the query as a list"""
    if aggregate:
        return normalize_aggregate(response, aggregate, fetch_next)
    return list(iter_records(response, fetch_next))


def aggregate_value(rows: List[Row]) -> Any:
    """The single aggregate value or None if there is no row"""
    if not rows:
        return None
    return rows[0].get(AGGREGATE_ALIAS)


def record_ids(rows: List[Row]) -> List[str]:
    """Distinct values of Id in rows, in order of appearance"""
    seen = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        value = row.get('Id', row.get('id'))
        if value and value not in seen:
            seen.append(value)
    return seen
