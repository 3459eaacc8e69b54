"""
Low level layer that talks to the Salesforce REST API.

It knows nothing about the query cache. The upper layers use only the public
methods of an adapter (query, query_all, next, describe, create, update,
delete, bulk_create, bulk_delete) and the exceptions from
sfcache.dbapi.exceptions, therefore the adapter can be replaced by
settings.SALESFORCE_ADAPTER.
"""

import logging

log = logging.getLogger(__name__)

# The maximal number of retries for timeouts in requests to Force.com API.
# Can be set dynamically
# None: use defaults from settings.REQUESTS_MAX_RETRIES (default 1)
# 0: no retry
# 1: one retry
MAX_RETRIES = None  # uses defaults below)


def get_max_retries():
    """Get the maximal number of requests retries"""
    global MAX_RETRIES  # pylint:disable=global-statement
    from django.conf import settings
    if MAX_RETRIES is None:
        MAX_RETRIES = getattr(settings, 'REQUESTS_MAX_RETRIES', 1)
    return MAX_RETRIES
