"""Memory Hub entry point: wire collaborators from settings and serve stdio."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import anyio
import logfire

from memory_hub import __version__
from memory_hub.core.circuit_breaker import CircuitBreaker
from memory_hub.core.config import Settings, settings
from memory_hub.core.logging import get_logger, setup_logging
from memory_hub.infrastructure.cache import TieredCache
from memory_hub.infrastructure.embeddings import VectorizerBuilder
from memory_hub.infrastructure.postgres import PostgresEngine
from memory_hub.mcp import ProtocolDispatcher, StdioServer
from memory_hub.services import MemoryService

logger = get_logger(__name__)


def configure_observability(config: Settings) -> None:
    # console=False: stdout belongs to the line protocol
    logfire.configure(
        service_name=config.server_name,
        service_version=__version__,
        token=config.logfire_token.get_secret_value() if config.logfire_token else None,
        send_to_logfire="if-token-present",
        console=False,
    )
    setup_logging("DEBUG" if config.debug else config.log_level)


@asynccontextmanager
async def application(config: Settings) -> AsyncIterator[ProtocolDispatcher]:
    """Build every collaborator, yield the dispatcher, then close them in reverse order."""
    logger.info("🧠 Starting Memory Hub", version=__version__)

    vectorizer = VectorizerBuilder(config).build()
    engine = await PostgresEngine.connect(
        config.database_url,
        min_size=config.db_pool_min_size,
        max_size=config.db_pool_max_size,
        command_timeout=config.db_command_timeout,
        bootstrap_dimension=config.embedding_dimension if config.db_bootstrap_schema else None,
    )
    cache = TieredCache.from_url(
        config.redis_url if config.cache_enabled else None,
        namespace=config.cache_namespace,
        max_size=config.cache_max_size,
        default_ttl=config.cache_default_ttl,
        enabled=config.cache_enabled,
        breaker=CircuitBreaker(
            name="shared_cache",
            failure_threshold=config.cache_failure_threshold,
            recovery_timeout=config.cache_recovery_timeout,
        ),
    )
    service = MemoryService(
        engine,
        vectorizer,
        cache,
        stream_buffer_size=config.stream_buffer_size,
        search_ttl=config.search_cache_ttl,
        list_ttl=config.list_cache_ttl,
        memory_ttl=config.cache_default_ttl,
    )

    try:
        if config.embedding_warmup:
            logger.info("Warming up embedding model", model=vectorizer.model_name)
            await service.check_ready()

        yield ProtocolDispatcher(
            service,
            server_name=config.server_name,
            server_version=config.server_version,
            server_description=config.server_description,
            protocol_version=config.protocol_version,
        )
    except Exception as e:
        logger.error(f"❌ Memory Hub failed: {e}", exc_info=True)
        raise
    finally:
        logger.info("🛑 Shutting down Memory Hub")
        service.close()
        await cache.close()
        await engine.close()
        logger.info("✅ Memory Hub shutdown complete")


async def main(config: Settings = settings) -> None:
    async with application(config) as dispatcher:
        await StdioServer(dispatcher).serve()


def run() -> None:
    configure_observability(settings)
    anyio.run(main)


if __name__ == "__main__":
    run()
