# /main.py
# Runs the periodic collector and the HTTP API concurrently in one event loop.
import asyncio

import uvicorn

from gaswatch.core.api import create_app
from gaswatch.core.collector import Collector
from gaswatch.core.config import settings
from gaswatch.core.config_validator import validate as validate_config
from gaswatch.core.logger import configure_logging, get_logger
from gaswatch.core.service import build_service


async def main():
    configure_logging()
    log = get_logger("GasWatch.System")
    chains = validate_config()
    log.info("GASWATCH_STARTING", chains=len(chains))

    service = build_service(chains)
    collector = Collector(service.aggregator)

    app = create_app(service)
    server = uvicorn.Server(uvicorn.Config(app, host=settings.API_HOST, port=settings.API_PORT, log_level=settings.LOG_LEVEL.lower()))
    log.info("API_SERVER_STARTING", host=settings.API_HOST, port=settings.API_PORT)

    collector_task = asyncio.create_task(collector.run_loop())
    try:
        await server.serve()
    finally:
        collector.stop()
        await asyncio.gather(collector_task, return_exceptions=True)
        await service.close()
        log.warning("SYSTEM_SHUTDOWN_COMPLETE")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
