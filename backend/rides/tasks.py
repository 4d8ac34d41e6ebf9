"""Celery tasks for ride-related background processing."""

from celery import shared_task
import logging

logger = logging.getLogger(__name__)


@shared_task
def mark_departed_rides_task():
    """
    Periodic sweep (see CELERY_BEAT_SCHEDULE) moving open/full rides whose
    departure time has passed to departed, which releases their join codes
    and opens reviews.
    """
    from services.ride_management import mark_departed_rides

    count = mark_departed_rides()
    if count:
        logger.info("Departure sweep marked %s ride(s) as departed", count)
    return count
