import logging
import os

import redis
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework import status
from channels.layers import get_channel_layer

from rides.models import Ride
from rides.tasks import mark_departed_rides_task

logger = logging.getLogger(__name__)


def _check_database():
    Ride.objects.exists()


def _check_redis():
    redis.Redis(
        host=os.getenv("REDIS_HOST", "localhost"),
        port=int(os.getenv("REDIS_PORT", 6379)),
        db=0,
        socket_timeout=3,
    ).ping()


def _check_channel_layer():
    if get_channel_layer() is None:
        raise RuntimeError("no channel layer configured")


def _check_departure_sweep():
    if not mark_departed_rides_task.name:
        raise RuntimeError("departure sweep task not registered")


HEALTH_CHECKS = (
    ("database", _check_database),
    ("redis", _check_redis),
    ("channels", _check_channel_layer),
    ("celery", _check_departure_sweep),
)


@api_view(["GET"])
@permission_classes([AllowAny])
def health_check(request):
    """Liveness of the ride service and the backends chat and the sweep rely on"""
    services = {}
    for name, check in HEALTH_CHECKS:
        try:
            check()
            services[name] = "healthy"
        except Exception as e:
            logger.warning("Health check %s failed: %s", name, e)
            services[name] = f"unhealthy: {e}"

    healthy = all(state == "healthy" for state in services.values())
    return Response(
        {
            "status": "healthy" if healthy else "unhealthy",
            "timestamp": timezone.now().isoformat(),
            "services": services,
        },
        status=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
    )
