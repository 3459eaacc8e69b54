"""
A SOQL query builder for Salesforce with a cache of query results that is
invalidated by local writes and by Change Data Capture webhooks.
"""

# Default version of Force.com API.
# It can be overridden by settings.SALESFORCE_API_VERSION
API_VERSION = '52.0'  # Spring '21
