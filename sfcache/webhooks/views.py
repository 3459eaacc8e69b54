import json
import logging

from django.http import JsonResponse
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from sfcache.cache.invalidation import InvalidChangeEvent, parse_change_event, process_change_event
from sfcache.conf import query_cache_settings
from sfcache.webhooks.decorators import validate_webhook

log = logging.getLogger(__name__)


@require_GET
def health_check(request):
    config = query_cache_settings()
    return JsonResponse({
        'status': 'ok',
        'webhook_invalidation_enabled': config.webhook_invalidation,
        'webhook_secret_configured': bool(config.webhook_secret),
        'timestamp': timezone.now().isoformat(),
    })


@csrf_exempt
@require_POST
@validate_webhook
def cdc_webhook(request):
    """Invalidate cached queries by a Change Data Capture event"""
    if not query_cache_settings().webhook_invalidation:
        return JsonResponse({'success': False, 'message': 'Webhook invalidation is not enabled'}, status=403)
    try:
        event = parse_change_event(json.loads(request.body.decode('utf-8')))
    except (ValueError, UnicodeDecodeError) as exc:
        # InvalidChangeEvent and JSON errors are both ValueError
        message = str(exc) if isinstance(exc, InvalidChangeEvent) else 'invalid JSON'
        log.warning("Invalid Salesforce CDC payload: %s", message)
        return JsonResponse({'success': False, 'message': 'Invalid CDC payload: %s' % message}, status=400)
    try:
        mode = process_change_event(event)
    except Exception:  # pylint:disable=broad-except
        log.exception("Salesforce CDC webhook processing failed for %s", event.entity)
        return JsonResponse({
            'success': False,
            'message': 'Failed to process webhook',
            'error': 'Internal server error',
        }, status=500)
    return JsonResponse({
        'success': True,
        'message': 'Cache invalidated successfully',
        'entity': event.entity,
        'records_affected': len(event.record_ids),
        'invalidation_type': mode,
    })
