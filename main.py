import asyncio
import logging

from attack_patterns.api_gateway.service import APIGatewayService, register_engine
from attack_patterns.config import settings
from attack_patterns.emitter.service import ViolationDispatcher
from attack_patterns.emitter.sinks import LogSink, NATSSink
from attack_patterns.engine import AttackPatternEngine
from attack_patterns.logger import setup_logging
from attack_patterns.messaging.nats_client import nats_client
from attack_patterns.service_manager.service_manager import ServiceManager

setup_logging()
logger = logging.getLogger("attack-patterns")


async def main():
    """
    Main entry point for the Attack Pattern Engine.
    Builds the engine and its sinks, then starts the engine and the REST API.
    """
    logger.info("Starting Attack Pattern Engine...")

    if settings.FINGERPRINT_SECRET == "change-me":
        logger.warning("FINGERPRINT_SECRET is the default value; set it before production use.")

    dispatcher = ViolationDispatcher([LogSink()])

    # NATS is optional: without a URL violations only reach the log sink
    if settings.NATS_URL:
        try:
            await nats_client.connect()
            dispatcher.add_sink(NATSSink(nats_client, settings.VIOLATION_SUBJECT))
        except Exception as e:
            logger.error(f"Failed to connect to NATS during startup: {e}")
            # Proceeding with the log sink only

    engine = AttackPatternEngine(settings, dispatcher=dispatcher)
    register_engine(engine)

    service_manager = ServiceManager()
    service_manager.register(engine)
    service_manager.register(APIGatewayService())

    await service_manager.start_all()

    try:
        # Keep the main loop running
        while True:
            await asyncio.sleep(1)
    except asyncio.CancelledError:
        logger.info("Attack Pattern Engine shutting down...")
        await service_manager.stop_all()
        await nats_client.close()
        register_engine(None)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Attack Pattern Engine stopped by user.")
