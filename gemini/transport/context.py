"""Context object shared across worker threads."""

from dataclasses import dataclass, field
from typing import Optional

from gemini.bootstrap.config import ServerConfig
from gemini.handlers.base import Handler
from gemini.lifecycle.state import ServerLifecycle


@dataclass
class WorkerContext:
    """Read-only dependencies handed to every worker."""

    handler: Handler
    lifecycle: Optional[ServerLifecycle] = None
    config: ServerConfig = field(default_factory=ServerConfig)
