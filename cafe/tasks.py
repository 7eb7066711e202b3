import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.db.models import Exists, OuterRef
from django.utils import timezone

from cafe.models import Booking, Transaction

logger = logging.getLogger(__name__)

LOOKBACK_HOURS = getattr(settings, "LEDGER_RECONCILIATION_LOOKBACK_HOURS", 24)


def _ledger_entry(status):
    return Transaction.objects.filter(
        service=Transaction.Service.BOOKING,
        service_ref_id=OuterRef("pk"),
        status=status,
    )


@shared_task
def report_unsettled_bookings(lookback_hours: int = None):
    """
    Periodic task: find recent bookings whose ledger entry is missing.

    Ledger appends are best-effort, so a database hiccup can leave a booking
    charged but unrecorded, or a cancellation refunded but unrecorded. This
    task only reports such gaps; fixing them is a manual step.

    Runs via Celery Beat on a configurable interval.
    """
    hours = lookback_hours or LOOKBACK_HOURS
    since = timezone.now() - timedelta(hours=hours)
    recent = Booking.objects.filter(updated_at__gte=since)

    uncharged = recent.annotate(
        charged=Exists(_ledger_entry(Transaction.Status.COMPLETED))
    ).filter(charged=False)

    unrefunded = recent.filter(status=Booking.Status.CANCELLED).annotate(
        refunded=Exists(_ledger_entry(Transaction.Status.REFUNDED))
    ).filter(refunded=False)

    for booking in uncharged:
        logger.warning(
            "Booking without charge entry: booking=%s customer=%s price=%s",
            booking.id,
            booking.customer_id,
            booking.total_price,
        )

    for booking in unrefunded:
        logger.warning(
            "Cancelled booking without refund entry: booking=%s customer=%s price=%s",
            booking.id,
            booking.customer_id,
            booking.total_price,
        )

    result = {"uncharged": uncharged.count(), "unrefunded": unrefunded.count()}
    if result["uncharged"] or result["unrefunded"]:
        logger.warning("Ledger reconciliation found gaps: %s", result)
    else:
        logger.info("Ledger reconciliation clean for the last %d hour(s).", hours)
    return result
