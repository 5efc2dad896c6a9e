from abc import ABC, abstractmethod


class BaseService(ABC):
    """
    A long-running engine component with an async start/stop lifecycle.
    ``running`` is true between a successful ``start`` and the next ``stop``.
    """

    def __init__(self, name: str):
        self._name = name
        self._running = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def running(self) -> bool:
        return self._running

    @abstractmethod
    async def start(self):
        """Acquire resources and spawn background tasks."""

    @abstractmethod
    async def stop(self):
        """Cancel background tasks and release resources."""
