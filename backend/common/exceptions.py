"""DRF glue for service-layer errors."""

import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler

from services.exceptions import RideServiceError

logger = logging.getLogger(__name__)


def service_exception_handler(exc, context):
    """
    Render RideServiceError as ``{"error": ..., "code": ...}``.

    Everything else falls through to DRF's default handler.
    """
    if isinstance(exc, RideServiceError):
        view = context.get("view")
        logger.info(
            "%s rejected by %s: %s",
            exc.error_code,
            view.__class__.__name__ if view else "unknown view",
            exc.message,
        )
        return Response(
            {"error": exc.message, "code": exc.error_code},
            status=exc.status_code,
        )
    return exception_handler(exc, context)
