"""
Invalidation of cached queries after changes of Salesforce data

Local writes are reported by signals from sfcache.signals, changes made
outside of this application arrive as Change Data Capture events by the
webhook.

    created            -> object-level (a new record can match any query)
    updated, deleted,
    restored           -> record-level with the 'record' strategy if Ids are known,
                          otherwise object-level
"""
import logging
from collections import namedtuple

from sfcache import signals
from sfcache.cache.query_cache import QueryCache
from sfcache.conf import STRATEGY_RECORD, query_log_enabled

log = logging.getLogger(__name__)

RECORD_LEVEL = 'record-level'
OBJECT_LEVEL = 'object-level'

CHANGE_TYPES = ('CREATE', 'UPDATE', 'DELETE', 'UNDELETE')

ChangeEvent = namedtuple('ChangeEvent', 'entity record_ids change_type')


class InvalidChangeEvent(ValueError):
    """A CDC payload without a required field or with a field of a wrong type"""


def invalidate(query_cache, entity, record_ids=None):
    """Invalidate by record Ids if possible, otherwise the whole object.

    Returns the mode that was used: 'record-level' or 'object-level'.
    Repeated calls are harmless, only cache items are deleted.
    """
    record_ids = [x for x in record_ids or () if x]
    if record_ids and query_cache.invalidation_strategy == STRATEGY_RECORD:
        query_cache.invalidate_by_record_ids(entity, record_ids)
        return RECORD_LEVEL
    query_cache.flush_object(entity)
    return OBJECT_LEVEL


class CacheInvalidationObserver(object):
    """Invalidation after local writes (if AUTO_INVALIDATE_ON_LOCAL_CHANGES)"""

    def __init__(self, query_cache=None):
        self.query_cache = query_cache or QueryCache()

    @property
    def enabled(self):
        return self.query_cache.config.auto_invalidate

    def created(self, entity, record_ids=()):
        if not self.enabled:
            return None
        self.query_cache.flush_object(entity)
        self._log('creating', entity, record_ids, OBJECT_LEVEL)
        return OBJECT_LEVEL

    def updated(self, entity, record_ids=()):
        return self._changed('updating', entity, record_ids)

    def deleted(self, entity, record_ids=()):
        return self._changed('deleting', entity, record_ids)

    def restored(self, entity, record_ids=()):
        return self._changed('restoring', entity, record_ids)

    def _changed(self, action, entity, record_ids):
        if not self.enabled:
            return None
        mode = invalidate(self.query_cache, entity, record_ids)
        self._log(action, entity, record_ids, mode)
        return mode

    @staticmethod
    def _log(action, entity, record_ids, mode):
        if query_log_enabled():
            log.info("Cache invalidated after %s %s %s: %s", action, entity, list(record_ids or ()), mode)


def parse_change_event(data):
    """Get ChangeEvent from a decoded CDC webhook body

    {"payload": {"ChangeEventHeader": {"entityName": "Account",
                                       "recordIds": ["001..."],
                                       "changeType": "UPDATE"}}}
    """
    payload = data.get('payload') if isinstance(data, dict) else None
    header = payload.get('ChangeEventHeader') if isinstance(payload, dict) else None
    if not header or not isinstance(header, dict):
        raise InvalidChangeEvent('missing ChangeEventHeader')
    entity = header.get('entityName')
    if not entity or not isinstance(entity, str):
        raise InvalidChangeEvent('missing entityName')
    record_ids = header.get('recordIds') or []
    if isinstance(record_ids, str):
        record_ids = [record_ids]
    if not isinstance(record_ids, list) or not all(isinstance(x, str) for x in record_ids):
        raise InvalidChangeEvent('recordIds must be a list of strings')
    change_type = header.get('changeType')
    if change_type is not None and not isinstance(change_type, str):
        raise InvalidChangeEvent('changeType must be a string')
    if change_type and change_type.upper().split('_')[-1] not in CHANGE_TYPES:
        # e.g. GAP_UPDATE, GAP_OVERFLOW; an unknown change is processed as any change
        log.info("Unknown CDC changeType %r for %s", change_type, entity)
    return ChangeEvent(entity, record_ids, change_type)


def process_change_event(event, query_cache=None):
    """Invalidate the cache by a CDC event, return the invalidation mode"""
    query_cache = query_cache or QueryCache()
    mode = invalidate(query_cache, event.entity, event.record_ids)
    log.info("Salesforce CDC webhook processed - cache invalidated: entity=%s change_type=%s "
             "record_count=%d invalidation_type=%s strategy=%s",
             event.entity, event.change_type, len(event.record_ids), mode,
             query_cache.invalidation_strategy)
    return mode


# -- signal receivers

def _observer(kwargs):
    connection = kwargs.get('connection')
    return CacheInvalidationObserver(getattr(connection, 'query_cache', None))


def on_record_created(sender, entity, record_ids=(), **kwargs):
    _observer(kwargs).created(entity, record_ids)


def on_record_updated(sender, entity, record_ids=(), **kwargs):
    _observer(kwargs).updated(entity, record_ids)


def on_record_deleted(sender, entity, record_ids=(), **kwargs):
    _observer(kwargs).deleted(entity, record_ids)


def on_record_restored(sender, entity, record_ids=(), **kwargs):
    _observer(kwargs).restored(entity, record_ids)


def connect_signals():
    signals.record_created.connect(on_record_created, dispatch_uid='sfcache_invalidate_created')
    signals.record_updated.connect(on_record_updated, dispatch_uid='sfcache_invalidate_updated')
    signals.record_deleted.connect(on_record_deleted, dispatch_uid='sfcache_invalidate_deleted')
    signals.record_restored.connect(on_record_restored, dispatch_uid='sfcache_invalidate_restored')
