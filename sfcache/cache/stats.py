"""
Counters of cache hits and misses

The counters are stored in the cache backend, so that they are shared by all
processes. Every QueryCache gets its own instance, tests can use a separate
prefix or cache.
"""


class CacheStatistics(object):

    def __init__(self, cache, prefix='sf_cache'):
        self.cache = cache
        self.hits_key = prefix + '_hits'
        self.misses_key = prefix + '_misses'

    def _increment(self, key):
        if not self.cache.add(key, 1, None):
            try:
                self.cache.incr(key)
            except ValueError:
                self.cache.add(key, 1, None)

    def hit(self):
        self._increment(self.hits_key)

    def miss(self):
        self._increment(self.misses_key)

    def snapshot(self):
        hits = int(self.cache.get(self.hits_key) or 0)
        misses = int(self.cache.get(self.misses_key) or 0)
        total = hits + misses
        return {
            'hits': hits,
            'misses': misses,
            'total': total,
            'hit_rate_percentage': round(hits * 100.0 / total, 2) if total else 0,
        }

    def reset(self):
        self.cache.delete_many([self.hits_key, self.misses_key])
