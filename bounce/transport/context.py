"""Context object shared across worker threads of one listener."""

import ssl
from dataclasses import dataclass
from typing import Optional

from bounce.bootstrap.config import ListenerSettings
from bounce.domain.correlation_id import CorrelationLoggerAdapter
from bounce.lifecycle.state import ServerLifecycle


@dataclass
class WorkerContext:
    """Dependencies shared across handler threads."""

    settings: ListenerSettings
    server_names: tuple[str, ...]
    lifecycle: ServerLifecycle
    logger: CorrelationLoggerAdapter
    tls_context: Optional[ssl.SSLContext] = None
