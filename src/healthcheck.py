#!/usr/bin/env python3
"""Container health check for redis-server and redis-sentinel pods."""

import asyncio
import logging
import os

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from bootstrap_settings import DEFAULT_MASTER_PORT, DEFAULT_SENTINEL_PORT, float_env, int_env

logger = logging.getLogger(__name__)
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))


async def _ping(port: int, timeout: float) -> bool:
    client = aioredis.Redis(
        host="127.0.0.1",
        port=port,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
    )
    try:
        return bool(await asyncio.wait_for(client.ping(), timeout))
    except (RedisError, OSError, asyncio.TimeoutError) as e:
        logger.warning("PING on port %s failed: %s", port, e)
        return False
    finally:
        await client.aclose()


def _port_for_node() -> int:
    if os.getenv("REDIS_NODE", "").strip().lower() == "true":
        return int_env(os.environ, "REDIS_PORT", DEFAULT_MASTER_PORT)
    return int_env(os.environ, "SENTINEL_PORT", DEFAULT_SENTINEL_PORT)


async def _main() -> None:
    timeout = float_env(os.environ, "HEALTHCHECK_TIMEOUT", 5.0)
    healthy = await _ping(_port_for_node(), timeout)

    if not healthy:
        raise SystemExit(1)


def main() -> None:
    asyncio.run(_main())


if __name__ == "__main__":
    main()
