from django.apps import AppConfig


class SfCacheConfig(AppConfig):
    name = 'sfcache'
    verbose_name = 'Salesforce query cache'

    def ready(self):
        from sfcache.cache import invalidation
        invalidation.connect_signals()
