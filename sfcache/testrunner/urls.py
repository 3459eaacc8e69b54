from django.urls import include, path

urlpatterns = [
    path('salesforce/', include('sfcache.webhooks.urls')),
]
