"""
Small helpers of the query layer
"""
from itertools import islice
from typing import Iterable, Iterator, List, TypeVar

V = TypeVar('V')


def chunked(iterable: Iterable[V], n: int) -> Iterator[List[V]]:
    """
    Break an iterable into lists of a given length::

    >>> assert list(chunked([1, 2, 3, 4, 5], 3)) == [[1, 2, 3], [4,5]]
    """
    iterable = iter(iterable)
    while True:
        chunk = list(islice(iterable, n))
        if not chunk:
            return
        yield chunk


def pluralize(name: str) -> str:
    """Default name of a child relationship: plural of the child object name

    >>> [pluralize(x) for x in ('Contact', 'Opportunity', 'Entry', 'Address', 'Country')]
    ['Contacts', 'Opportunities', 'Entries', 'Addresses', 'Countries']
    """
    lower = name.lower()
    if lower.endswith('try'):
        return name[:-1] + 'ies'
    if lower.endswith('y') and len(name) > 1 and lower[-2] not in 'aeiou':
        return name[:-1] + 'ies'
    if lower.endswith(('s', 'x', 'z', 'ch', 'sh')):
        return name + 'es'
    return name + 's'
