"""Demo entry point: ``python -m friends_db``.

Opens the configured database, seeds the sample friends once it is ready
and prints the resulting list through the structured log. Configuration
comes from ``FRIENDS_DB_*`` environment variables.
"""

from __future__ import annotations

import asyncio
import sys

from friends_db.application import ConnectionManager, FriendStore
from friends_db.domain.errors import OpenFailureError, RequestFailureError
from friends_db.infrastructure.config import Config, get_config
from friends_db.infrastructure.container import build_container
from friends_db.infrastructure.logging import get_logger, setup_logging
from friends_db.infrastructure.metrics import setup_metrics
from friends_db.infrastructure.tracing import setup_tracing

logger = get_logger(__name__)

SAMPLE_FRIENDS = [("Анна", 25), ("Иван", 30)]


async def run(config: Config) -> int:
    """Open the database, seed it and list its contents.

    Returns:
        Process exit code
    """
    container = build_container(config)
    connections = container.resolve(ConnectionManager)
    store = container.resolve(FriendStore)

    try:
        await connections.open(config.storage.database_name, config.storage.schema_version)
    except OpenFailureError:
        return 1

    inserts = [store.insert(name, age) for name, age in SAMPLE_FRIENDS]
    failed = 0
    for request in inserts:
        try:
            await request
        except RequestFailureError:
            failed += 1

    try:
        await store.read_all()
    except RequestFailureError:
        return 1
    return 1 if failed else 0


def main() -> int:
    config = get_config()
    observability = config.observability
    setup_logging(observability)
    if observability.otel_endpoint or observability.otel_console_export:
        setup_tracing(observability)
    if observability.metrics_enabled:
        setup_metrics(port=observability.metrics_port)

    logger.info(
        "friends_db_starting",
        database=config.storage.database_name,
        data_dir=str(config.storage.data_dir),
    )
    return asyncio.run(run(config))


if __name__ == "__main__":
    sys.exit(main())
