#!/usr/bin/env python3
"""Container entrypoint for the Redis master/slave/sentinel cluster."""

import asyncio
import logging
import os

from bootstrap_settings import BootstrapSettings
from redis_config import ConfigTemplateUnreadable
from role_resolver import DiscoveryExhausted, RoleResolver

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)


async def run_bootstrap(settings: BootstrapSettings) -> None:
    identity = settings.identity()
    logger.info(
        "Bootstrapping pod %s as %s (sentinel service %s, master name %s)",
        identity.pod_name,
        identity.role.value,
        settings.sentinel_endpoint,
        settings.master_name,
    )

    resolver = RoleResolver(settings)
    await resolver.run()


def main() -> None:
    settings = BootstrapSettings.from_env()

    try:
        asyncio.run(run_bootstrap(settings))
    except DiscoveryExhausted as e:
        logger.error("Giving up: %s", e)
        raise SystemExit(1)
    except (ConfigTemplateUnreadable, OSError) as e:
        logger.error("Bootstrap failed: %s", e)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
