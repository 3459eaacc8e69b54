"""
Sets of cache keys stored in a Django cache backend

A Django cache has no tags and no sets, therefore a set is stored as items
    <name>:g                the current generation of the set
    <name>:<gen>:n          counter of slots of the generation
    <name>:<gen>:<slot>     one member
A slot number is allocated by cache.incr(), which is atomic in memcached,
redis, database and locmem backends, so that concurrent additions to the same
set never overwrite each other.

Members are keys of other cache items. A member can outlive the item, then
deleting it is a no-op.

Popping a set starts a new generation before the old one is read, all slots
written before that are found. An addition that finds a newer generation
after writing its slot could have been missed, therefore it deletes the item
of the member itself.

A set is compacted when its counter reaches a multiple of `compact_every`
and at least twice the size after the previous compaction: members whose
items have expired are dropped and the others are moved to a new generation.
"""
import hashlib
import logging
import re

log = logging.getLogger(__name__)

pattern_safe_name = re.compile(r'^[\w.:-]{1,150}$')

COMPACT_EVERY = 256


class KeySetIndex(object):

    def __init__(self, cache, prefix, compact_every=COMPACT_EVERY):
        self.cache = cache
        self.prefix = prefix
        self.compact_every = compact_every

    def base_key(self, name):
        if not pattern_safe_name.match(name):
            # memcached does not accept spaces or too long keys
            name = hashlib.md5(name.encode('utf-8')).hexdigest()
        return '%s:%s' % (self.prefix, name)

    # -- generations

    def _generation(self, base):
        return self.cache.get(base + ':g') or 1

    def _start_generation(self, base):
        """Start a new generation, return the previous one or None if the set does not exist"""
        try:
            return self.cache.incr(base + ':g') - 1
        except ValueError:
            return None

    def _read(self, base, generation):
        """{slot key: member} of the generation"""
        count = self.cache.get('%s:%d:n' % (base, generation)) or 0
        slots = ['%s:%d:%d' % (base, generation, i) for i in range(1, count + 1)]
        return self.cache.get_many(slots) if slots else {}

    def _drain(self, base, generation):
        """Members of a finished generation. Its items are deleted."""
        found = self._read(base, generation)
        self.cache.delete_many(list(found) + ['%s:%d:n' % (base, generation), '%s:%d:c' % (base, generation)])
        return set(found.values())

    def _append(self, base, generation, member, timeout):
        counter = '%s:%d:n' % (base, generation)
        self.cache.add(counter, 0, timeout)
        try:
            slot = self.cache.incr(counter)
        except ValueError:
            # the counter expired or was drained between add() and incr()
            self.cache.add(counter, 0, timeout)
            slot = self.cache.incr(counter)
        self.cache.set('%s:%d:%d' % (base, generation, slot), member, timeout)
        self.cache.touch(counter, timeout)
        return slot

    # -- public

    def add(self, name, member, timeout):
        """Add a member. The set expires `timeout` seconds after the last addition."""
        base = self.base_key(name)
        self.cache.add(base + ':g', 1, timeout)
        generation = self._generation(base)
        slot = self._append(base, generation, member, timeout)
        if self._generation(base) != generation:
            log.debug("Key set %s was popped while %s was added", name, member)
            self.cache.delete(member)
            return
        self.cache.touch(base + ':g', timeout)
        if slot % self.compact_every == 0:
            compacted = self.cache.get('%s:%d:c' % (base, generation)) or 0
            if slot >= 2 * compacted:
                self.compact(name, timeout)

    def members(self, name):
        base = self.base_key(name)
        return set(self._read(base, self._generation(base)).values())

    def pop_members(self, names):
        """Union of members of all sets `names`, the sets are emptied"""
        keys = set()
        for name in names:
            base = self.base_key(name)
            previous = self._start_generation(base)
            if previous is None:
                # only slots can be left from an expired set
                found = self._read(base, 1)
                self.cache.delete_many(list(found))
                keys.update(found.values())
            else:
                keys.update(self._drain(base, previous))
        return keys

    def compact(self, name, timeout):
        """Drop members whose items are gone, move the others to a new generation"""
        base = self.base_key(name)
        previous = self._start_generation(base)
        if previous is None:
            return
        generation = previous + 1
        members = self._drain(base, previous)
        live = list(self.cache.get_many(list(members))) if members else []
        for member in live:
            self._append(base, generation, member, timeout)
        self.cache.set('%s:%d:c' % (base, generation), len(live), timeout)
        if self._generation(base) != generation:
            # popped during the compaction, the moved members could be missed
            self.cache.delete_many(live)
        log.debug("Key set %s compacted from %d to %d members", name, len(members), len(live))
