# django-salesforce-cache
#
# by Phil Christensen
# (c) 2012-2013 Freelancers Union (http://www.freelancersunion.org)
# See LICENSE.md for details
#

"""
Query layer over the Salesforce adapter.

structure:
    sfcache/backend/query.py - SalesforceQuerySet, the public query builder
    sfcache/backend/compiler.py - the query tree and its rendering to SOQL
    sfcache/backend/results.py - REST responses to rows, pages, aggregates
    sfcache/backend/base.py - SalesforceConnection: adapter + query cache + signals
    sfcache/backend/bulk.py - chunked bulk create and delete
    sfcache/dbapi/*.py - the REST adapter is independent on this layer
"""

# The highest OFFSET accepted by SOQL. The number of rows that can be
# paginated is limited by it.
MAX_OFFSET = 2000
