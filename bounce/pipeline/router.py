"""Redirect decision: eligible hosts go to ``/``, everything else is 404."""

import logging
from typing import Iterable, Optional

from bounce.domain.correlation_id import CorrelationLoggerAdapter
from bounce.domain.http_types import HttpRequest, HttpResponse
from bounce.domain.request_info import RequestInfo, is_redirect_eligible
from bounce.domain.response_builders import ROOT_PATH, found_response, not_found_response

ROUTER_LOGGER = CorrelationLoggerAdapter(logging.getLogger("bounce.pipeline.router"), {})


def route_request(
    request: HttpRequest,
    info: RequestInfo,
    server_names: Iterable[str],
    logger: Optional[CorrelationLoggerAdapter] = None,
) -> HttpResponse:
    """Return the redirect or not-found response for a classified request."""
    log = logger or ROUTER_LOGGER
    redirect = is_redirect_eligible(info, server_names)
    response = found_response(request, ROOT_PATH) if redirect else not_found_response(request)
    if log.logger.isEnabledFor(logging.DEBUG):
        log.debug(
            "Request routed",
            extra={
                "event": "request_routed",
                "method": request.method,
                "route": request.target,
                "requested_host": info.requested_host,
                "remote_ip": info.ip,
                "forwarded_for": info.x_forwarded_for,
                "redirect": redirect,
                "status_code": response.status_code,
            },
        )
    return response
