import logging
from celery import Celery
from ..config import settings

logger = logging.getLogger(__name__)

celery_app = Celery(
    "waffle_orders",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND
)

@celery_app.task
def expire_stale_orders():
    """Expire pending orders past their deadline (same sweep as the API watchdog)"""
    from ..api.deps import build_order_service
    from ..core.cache import invalidate_order_cache

    expired = build_order_service().expire_due()
    if expired:
        invalidate_order_cache()
    return [o.order_id for o in expired]

# Celery Beat Schedule for periodic tasks
celery_app.conf.beat_schedule = {
    'expire-stale-orders': {
        'task': 'waffle_orders.services.celery.expire_stale_orders',
        'schedule': settings.EXPIRY_SWEEP_SECONDS,
    },
}

celery_app.conf.timezone = settings.TIMEZONE
