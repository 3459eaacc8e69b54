"""
Tools for Salesforce record Ids

The record-level cache invalidation matches Ids from query results with Ids
from local writes and from CDC events. Both forms of an Id are accepted by
Salesforce, therefore they are normalized to the long form before they are
used as keys.
"""

ID_CHARS = '0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz'


def case_safe_sf_id(id_15):
    """
    Equivalent to Salesforce CASESAFEID()

    Convert a 15 char case-sensitive Id to 18 char case-insensitive Salesforce Id
    or check the long 18 char ID.

    Long  18 char Id are from SFDC API and from Apex. They are recommended by SF.
    Short 15 char Id are from SFDC formulas if omitted to use func CASESAFEID(),
    from reports or from parsed URLs in HTML.
    """
    if not id_15:
        return None
    if len(id_15) not in (15, 18):
        raise TypeError("The string %r is not a valid Force.com ID" % id_15)
    suffix = []
    for i in range(0, 15, 5):
        weight = 1
        digit = 0
        for ch in id_15[i:i + 5]:
            if ch not in ID_CHARS:
                raise TypeError("The string %r is not a valid Force.com ID" % id_15)
            if ch.isupper():
                digit += weight
            weight *= 2
        suffix.append(chr(ord('A') + digit) if digit < 26 else str(digit - 26))
    out = ''.join(suffix)
    if len(id_15) == 18 and out != id_15[15:].upper():
        raise TypeError("The string %r is not a valid Force.com ID" % id_15)
    return id_15[:15] + out


def check_sf_api_id(id_18):
    """
    Check the 18 characters long API ID, no exceptions
    """
    try:
        return case_safe_sf_id(id_18)
    except TypeError:
        return None


def normalize_record_id(record_id):
    """Long form of a valid Id, other values are only converted to str.

    >>> normalize_record_id('001A000001h5wLP')
    '001A000001h5wLPIAY'
    """
    if record_id is None:
        return None
    record_id = str(record_id)
    return check_sf_api_id(record_id) or record_id
