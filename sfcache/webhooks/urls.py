from django.urls import path

from sfcache.webhooks import views

app_name = 'sfcache_webhooks'

urlpatterns = [
    path('webhooks/health', views.health_check, name='health'),
    path('webhooks/cdc', views.cdc_webhook, name='cdc'),
]
