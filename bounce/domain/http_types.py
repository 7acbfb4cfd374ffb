"""Shared HTTP type definitions to avoid circular imports."""

from dataclasses import dataclass


@dataclass
class HttpRequest:
    """Represents a parsed HTTP request head."""

    method: str
    target: str
    version: str
    headers: dict[str, str]

    @property
    def host(self) -> str:
        """Value of the Host header, empty when absent."""
        return self.headers.get("host", "")

    @property
    def declares_body(self) -> bool:
        """True when the client announced a body we will not read."""
        length = self.headers.get("content-length", "").strip()
        if length and length != "0":
            return True
        return "transfer-encoding" in self.headers


@dataclass
class HttpResponse:
    """Represents an HTTP response to be sent to a client."""

    status_line: str
    headers: dict[str, str]
    body: bytes
    close_connection: bool

    @property
    def status_code(self) -> int:
        """Numeric status parsed from the status line."""
        return int(self.status_line.split(" ", 2)[1])


def should_close(request: HttpRequest) -> bool:
    """Determine whether the client asked for the connection to be closed."""
    connection = request.headers.get("connection", "").lower()
    if request.version == "HTTP/1.0":
        return connection != "keep-alive"
    return connection == "close"
