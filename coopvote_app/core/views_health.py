from __future__ import annotations

import logging

from django.db import InterfaceError, OperationalError
from django.http import HttpRequest, JsonResponse
from django.views.decorators.http import require_GET

from core.models import Election

logger = logging.getLogger(__name__)


@require_GET
def healthz(_request: HttpRequest) -> JsonResponse:
    return JsonResponse({"status": "ok"})


@require_GET
def readyz(_request: HttpRequest) -> JsonResponse:
    """Ready once the election store answers; also reports how many elections are live."""
    try:
        active = Election.objects.filter(status=Election.Status.active).count()
    except (OperationalError, InterfaceError) as exc:
        logger.exception("readyz_store_unavailable")
        return JsonResponse({"status": "not ready", "error": str(exc)}, status=503)

    return JsonResponse({"status": "ready", "database": "ok", "active_elections": active})
