import logging
from typing import List, Protocol

logger = logging.getLogger("attack-patterns.service-manager")


class Service(Protocol):
    @property
    def name(self) -> str:
        ...

    async def start(self):
        ...

    async def stop(self):
        ...


class ServiceManager:
    """
    Starts registered services in registration order and stops them in reverse.
    If one fails to start, whatever already came up is stopped before the
    error propagates.
    """

    def __init__(self):
        self.services: List[Service] = []
        self.started: List[Service] = []

    def register(self, service: Service) -> Service:
        self.services.append(service)
        logger.info(f"Service registered: {service.name}")
        return service

    async def start_all(self):
        for service in self.services:
            logger.info(f"Bringing up {service.name}")
            try:
                await service.start()
            except Exception as e:
                logger.error(f"{service.name} failed to start: {e}", exc_info=True)
                await self.stop_all()
                raise
            self.started.append(service)
        logger.info(f"{len(self.started)} service(s) running")

    async def stop_all(self):
        while self.started:
            service = self.started.pop()
            logger.info(f"Shutting down {service.name}")
            try:
                await service.stop()
            except Exception as e:
                logger.error(f"{service.name} failed to stop cleanly: {e}", exc_info=True)
