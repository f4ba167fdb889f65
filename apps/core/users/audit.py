import logging

from apps.core.users.models import AuditLog

logger = logging.getLogger(__name__)


def _extract_ip(request):
    forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR', '')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def log_audit_event(request, action, target=None, details='', user=None):
    try:
        target_model = ''
        target_id = ''

        if target is not None:
            target_model = target.__class__.__name__
            target_id = str(getattr(target, 'pk', ''))

        if user is None:
            request_user = getattr(request, 'user', None)
            if request_user is not None and request_user.is_authenticated:
                user = request_user

        AuditLog.objects.create(
            user=user,
            action=action,
            target_model=target_model,
            target_id=target_id,
            details=details,
            method=request.method or '',
            path=(request.path or '')[:255],
            ip_address=_extract_ip(request),
        )
    except Exception:
        # Audit trail is best effort.
        logger.exception('Could not write audit entry for %s', action)
