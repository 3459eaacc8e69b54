# Settings of the test project; the Salesforce connection is read from
# environment variables for tests against a real org.
import os

DEBUG = False

SECRET_KEY = 'sfcache-test-secret-key'

INSTALLED_APPS = (
    'django.contrib.contenttypes',
    'sfcache',
)

DATABASES = {}

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'sfcache-tests',
    },
}

ROOT_URLCONF = 'sfcache.testrunner.urls'

USE_TZ = True
TIME_ZONE = 'UTC'

SALESFORCE_CONNECTION = {
    'CONSUMER_KEY': os.environ.get('SF_CONSUMER_KEY', ''),
    'CONSUMER_SECRET': os.environ.get('SF_CONSUMER_SECRET', ''),
    'USER': os.environ.get('SF_USER', ''),
    'PASSWORD': os.environ.get('SF_PASSWORD', ''),
    'HOST': os.environ.get('SF_HOST', 'https://login.salesforce.com'),
}

SALESFORCE_QUERY_CACHE = {
    'ENABLED': True,
    'DEFAULT_TTL': 3600,
    'TTL_OVERRIDES': {'Account': 600},
    'INVALIDATION_STRATEGY': 'record',
    'WEBHOOK_INVALIDATION': True,
    'WEBHOOK_SECRET': 'test-webhook-secret',
}

SALESFORCE_ENABLE_QUERY_LOG = True
SALESFORCE_THROW_EXCEPTIONS = True

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'handlers': {
        'console': {
            'level': 'DEBUG',
            'class': 'logging.StreamHandler',
        },
    },
    'loggers': {
        'sfcache': {
            'handlers': ['console'],
            'level': 'WARNING',
        },
    },
}
