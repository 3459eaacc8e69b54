"""
Django views for cache invalidation by Salesforce Change Data Capture events

    urlpatterns = [
        path('salesforce/', include('sfcache.webhooks.urls')),
    ]
"""
