"""
Cache of query results and its invalidation

    QueryCache - compute-if-absent cache of rows keyed by the normalized SOQL
    KeySetIndex - sets of cache keys (tags, record Ids) stored in the same cache
    CacheStatistics - hit and miss counters
    invalidation - receivers of local write signals and the CDC event processing
"""
