from abc import ABC, abstractmethod

from bountycourt.common.logging import get_logger


class BaseIntegration(ABC):
    """Base class for the engine's external collaborators.

    Provides a named logger and a required health_check so the service can
    report collaborator reachability from ``/health``.
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = get_logger(f"integrations.{name}")

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True when the collaborator is reachable."""
        ...
