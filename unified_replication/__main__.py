import asyncio
import logging
import signal

from .adapters import build_default_registry
from .config import load_operator_config
from .discovery import DiscoveryEngine
from .engine import ControllerEngine
from .kube import KubernetesResourceClient
from .logging_config import configure_logging
from .resilience import CircuitBreakerRegistry, RetryManager
from .server import HealthServer
from .translation import TranslationEngine

logger = logging.getLogger(__name__)


def build_engine(config, client) -> ControllerEngine:
    """Wire the engine and its collaborators for one execution context."""
    translator = TranslationEngine()
    discovery = DiscoveryEngine(client, config.discovery, preference=config.engine.backend_preference)
    return ControllerEngine(
        client,
        build_default_registry(client, translator),
        discovery=discovery,
        translator=translator,
        retry=RetryManager(config.retry),
        breakers=CircuitBreakerRegistry(config.circuit_breaker),
        config=config.engine,
    )


async def serve(config):
    client = KubernetesResourceClient(kubeconfig=config.kubeconfig)
    engine = build_engine(config, client)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Not available on Windows event loops
            pass

    available = await engine.discovery.get_available_backends()
    logger.info(f"Available backends at startup: {[b.value for b in available]}")

    server = None
    if config.server.enabled:
        server = HealthServer(engine, config.server)
        await server.start()
    try:
        await stop.wait()
    finally:
        if server is not None:
            await server.stop()
    logger.info("Shutting down")


def main():
    config = load_operator_config()
    configure_logging(config.log_level)
    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == '__main__':
    main()
