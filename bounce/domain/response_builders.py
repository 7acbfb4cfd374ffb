"""Pure HTTP response builders for the redirect/not-found contract."""

from bounce.domain.http_types import HttpRequest, HttpResponse, should_close

ROOT_PATH = "/"


def _body_for(request: HttpRequest, payload: bytes) -> bytes:
    """HEAD responses advertise the length but carry no payload."""
    return b"" if request.method == "HEAD" else payload


def found_response(request: HttpRequest, location: str = ROOT_PATH) -> HttpResponse:
    """Produce a 302 redirect to ``location``."""
    headers = {"Location": location}
    payload = b""
    if request.method in {"GET", "HEAD"}:
        headers["Content-Type"] = "text/html; charset=utf-8"
        payload = f'<a href="{location}">Found</a>.\n\n'.encode()
    response = HttpResponse(
        "HTTP/1.1 302 Found",
        headers,
        _body_for(request, payload),
        should_close(request),
    )
    response.headers["Content-Length"] = str(len(payload))
    return response


def not_found_response(request: HttpRequest) -> HttpResponse:
    """Produce a plain-text 404 honoring the caller's connection preference."""
    payload = b"404 page not found\n"
    headers = {
        "Content-Type": "text/plain; charset=utf-8",
        "X-Content-Type-Options": "nosniff",
        "Content-Length": str(len(payload)),
    }
    return HttpResponse(
        "HTTP/1.1 404 Not Found",
        headers,
        _body_for(request, payload),
        should_close(request),
    )


def bad_request_response() -> HttpResponse:
    """Produce a 400 response that always closes the connection."""
    payload = b"400 Bad Request"
    headers = {
        "Content-Type": "text/plain; charset=utf-8",
        "Content-Length": str(len(payload)),
    }
    return HttpResponse("HTTP/1.1 400 Bad Request", headers, payload, True)
