"""
Settings of the query cache, webhooks and bulk operations

Everything is read from django.conf.settings when it is needed, not at import
time, so that override_settings() works in tests.

    SALESFORCE_QUERY_CACHE = {
        'ENABLED': True,
        'DEFAULT_TTL': 3600,
        'TTL_OVERRIDES': {'Account': 600},
        'CACHE_ALIAS': 'default',
        'INVALIDATION_STRATEGY': 'record',   # or 'object'
        'AUTO_INVALIDATE_ON_LOCAL_CHANGES': True,
        'WEBHOOK_INVALIDATION': False,
        'WEBHOOK_SECRET': None,
        'WEBHOOK_REQUIRE_VALIDATION': True,
    }
"""
from collections import namedtuple

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

STRATEGY_RECORD = 'record'
STRATEGY_OBJECT = 'object'
INVALIDATION_STRATEGIES = (STRATEGY_RECORD, STRATEGY_OBJECT)

# The hard limit of Salesforce SObject Collections requests
BULK_CEILING = 200

QUERY_CACHE_DEFAULTS = {
    'ENABLED': False,
    'DEFAULT_TTL': 3600,
    'TTL_OVERRIDES': {},
    'CACHE_ALIAS': 'default',
    'INVALIDATION_STRATEGY': STRATEGY_RECORD,
    'AUTO_INVALIDATE_ON_LOCAL_CHANGES': True,
    'WEBHOOK_INVALIDATION': False,
    'WEBHOOK_SECRET': None,
    'WEBHOOK_REQUIRE_VALIDATION': True,
}

QueryCacheSettings = namedtuple('QueryCacheSettings', [
    'enabled', 'default_ttl', 'ttl_overrides', 'cache_alias', 'invalidation_strategy',
    'auto_invalidate', 'webhook_invalidation', 'webhook_secret', 'webhook_require_validation'])


def query_cache_settings():
    """Get the validated SALESFORCE_QUERY_CACHE merged with defaults"""
    config = dict(QUERY_CACHE_DEFAULTS)
    config.update(getattr(settings, 'SALESFORCE_QUERY_CACHE', None) or {})
    unknown = set(config) - set(QUERY_CACHE_DEFAULTS)
    if unknown:
        raise ImproperlyConfigured("Unknown keys in SALESFORCE_QUERY_CACHE: %s" % ', '.join(sorted(unknown)))
    strategy = config['INVALIDATION_STRATEGY']
    if strategy not in INVALIDATION_STRATEGIES:
        raise ImproperlyConfigured(
            "SALESFORCE_QUERY_CACHE['INVALIDATION_STRATEGY'] must be one of %s, not %r"
            % (', '.join(INVALIDATION_STRATEGIES), strategy))
    return QueryCacheSettings(
        enabled=bool(config['ENABLED']),
        default_ttl=int(config['DEFAULT_TTL']),
        ttl_overrides={k.lower(): int(v) for k, v in config['TTL_OVERRIDES'].items()},
        cache_alias=config['CACHE_ALIAS'],
        invalidation_strategy=strategy,
        auto_invalidate=bool(config['AUTO_INVALIDATE_ON_LOCAL_CHANGES']),
        webhook_invalidation=bool(config['WEBHOOK_INVALIDATION']),
        webhook_secret=config['WEBHOOK_SECRET'] or None,
        webhook_require_validation=bool(config['WEBHOOK_REQUIRE_VALIDATION']),
    )


def query_log_enabled():
    return bool(getattr(settings, 'SALESFORCE_ENABLE_QUERY_LOG', False))


def throw_exceptions():
    return bool(getattr(settings, 'SALESFORCE_THROW_EXCEPTIONS', settings.DEBUG))


def logging_channel():
    """Logger name for errors of remote operations. None: the package logger, False: silent"""
    return getattr(settings, 'SALESFORCE_LOGGING_CHANNEL', None)


def log_level():
    return getattr(settings, 'SALESFORCE_LOG_LEVEL', 'error')


def bulk_operation_size():
    size = int(getattr(settings, 'SALESFORCE_BULK_OPERATION_SIZE', BULK_CEILING))
    if not 1 <= size <= BULK_CEILING:
        raise ImproperlyConfigured(
            "SALESFORCE_BULK_OPERATION_SIZE must be between 1 and %d, not %d" % (BULK_CEILING, size))
    return size


def metadata_cache_ttl():
    return int(getattr(settings, 'SALESFORCE_METADATA_CACHE_TTL', 86400))


def no_soft_deletes():
    """Objects without the field IsDeleted"""
    return getattr(settings, 'SALESFORCE_NO_SOFT_DELETES', ['User'])


def page_size():
    return int(getattr(settings, 'SALESFORCE_PAGE_SIZE', 200))


def connection_settings():
    return getattr(settings, 'SALESFORCE_CONNECTION', None) or {}


def adapter_class_path():
    return getattr(settings, 'SALESFORCE_ADAPTER', 'sfcache.dbapi.driver.RestAdapter')
