from abc import ABC, abstractmethod

from leadlink.common.logging import get_logger


class BaseIntegration(ABC):
    """Base class for outbound service clients.

    Each client gets a namespaced logger and a default request timeout, and
    must expose ``health_check`` so connectivity can be probed on demand.
    """

    def __init__(self, name: str, timeout: float = 30.0):
        self.name = name
        self.timeout = timeout
        self.logger = get_logger(f"integrations.{name}")

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True when the remote service answers."""
        ...
