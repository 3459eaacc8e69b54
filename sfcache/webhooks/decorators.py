"""
Authentication of webhook requests

A request is accepted if it has the shared secret in the header
X-Webhook-Secret, or an HMAC-SHA256 signature of the raw body in
X-Webhook-Signature: sha256=<hex digest>.
"""
import functools
import hashlib
import hmac
import logging

from django.http import JsonResponse

from sfcache.conf import query_cache_settings

log = logging.getLogger(__name__)

SECRET_HEADER = 'HTTP_X_WEBHOOK_SECRET'
SIGNATURE_HEADER = 'HTTP_X_WEBHOOK_SIGNATURE'
SIGNATURE_PREFIX = 'sha256='


def sign(secret, body):
    return SIGNATURE_PREFIX + hmac.new(secret.encode('utf-8'), body, hashlib.sha256).hexdigest()


def is_authentic(request, secret):
    provided = request.META.get(SECRET_HEADER)
    if provided and hmac.compare_digest(provided.encode('utf-8'), secret.encode('utf-8')):
        return True
    signature = request.META.get(SIGNATURE_HEADER)
    if signature and signature.startswith(SIGNATURE_PREFIX):
        return hmac.compare_digest(signature.encode('utf-8'), sign(secret, request.body).encode('utf-8'))
    return False


def validate_webhook(view_func):
    """Reject requests without a valid secret or signature (if WEBHOOK_REQUIRE_VALIDATION)"""
    @functools.wraps(view_func)
    def wrapper(request, *args, **kwargs):
        config = query_cache_settings()
        if not config.webhook_require_validation:
            return view_func(request, *args, **kwargs)
        if not config.webhook_secret:
            log.error("Salesforce webhook validation is required, but WEBHOOK_SECRET is not set")
            return JsonResponse({'success': False, 'message': 'Webhook authentication not configured'}, status=500)
        if not is_authentic(request, config.webhook_secret):
            log.warning("Unauthorized Salesforce webhook request from %s", request.META.get('REMOTE_ADDR'))
            return JsonResponse({'success': False, 'message': 'Unauthorized webhook request'}, status=401)
        return view_func(request, *args, **kwargs)
    return wrapper
