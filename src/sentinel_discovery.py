#!/usr/bin/env python3
"""
Sentinel discovery client
Asks a Redis Sentinel for the current master and probes that master for liveness
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError, ResponseError

logger = logging.getLogger(__name__)


class DiscoveryError(Exception):
    """The sentinel could not tell us where the master is"""


class DiscoveryUnreachable(DiscoveryError):
    """Connection to the sentinel failed or timed out"""


class DiscoveryMalformed(DiscoveryError):
    """The sentinel answered without a usable host/port"""


class MasterUnreachable(Exception):
    """The discovered master did not answer INFO"""


@dataclass(frozen=True)
class MasterLocation:
    host: str
    port: int

    @property
    def is_known(self) -> bool:
        return bool(self.host)

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


def _field(value: Any) -> str:
    if isinstance(value, bytes):
        value = value.decode()
    return str(value).replace('"', "").strip()


def parse_master_addr(reply: Any) -> MasterLocation:
    """
    Parse a get-master-addr-by-name reply.

    Accepts the ``redis-cli --csv`` line form (``"10.0.0.5","6379"``) as well
    as the two element list redis-py hands back for the raw command.
    """
    if reply is None:
        raise DiscoveryMalformed("sentinel returned no master address")

    if isinstance(reply, bytes):
        reply = reply.decode()

    if isinstance(reply, str):
        lines = [line for line in reply.strip().splitlines() if line.strip()]
        if not lines:
            raise DiscoveryMalformed("sentinel returned an empty reply")
        fields = lines[-1].split(",", 1)
    else:
        fields = list(reply)

    if len(fields) < 2:
        raise DiscoveryMalformed(f"reply {reply!r} is missing host or port")

    host, port = _field(fields[0]), _field(fields[1])
    if not host or not port:
        raise DiscoveryMalformed(f"reply {reply!r} is missing host or port")

    try:
        return MasterLocation(host=host, port=int(port))
    except ValueError as e:
        raise DiscoveryMalformed(f"reply {reply!r} has a non-numeric port") from e


def _default_client(host: str, port: int, timeout: float) -> aioredis.Redis:
    return aioredis.Redis(
        host=host,
        port=port,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
        decode_responses=True,
    )


class SentinelDiscovery:
    """Read-only view of the sentinel service"""

    def __init__(
        self,
        host: str,
        port: int,
        master_name: str,
        client_factory: Optional[Callable[[str, int, float], Any]] = None,
    ):
        self.host = host
        self.port = port
        self.master_name = master_name
        self.client_factory = client_factory or _default_client

    @property
    def endpoint(self) -> str:
        return f"{self.host}:{self.port}"

    async def query_master(self, timeout: float = 10.0) -> MasterLocation:
        """Ask the sentinel for the current master address"""
        client = self.client_factory(self.host, self.port, timeout)
        try:
            reply = await asyncio.wait_for(
                client.execute_command("SENTINEL", "get-master-addr-by-name", self.master_name),
                timeout,
            )
        except asyncio.TimeoutError as e:
            raise DiscoveryUnreachable(
                f"Query to sentinel {self.endpoint} timed out after {timeout}s"
            ) from e
        except ResponseError as e:
            raise DiscoveryMalformed(f"Sentinel {self.endpoint} rejected the query: {e}") from e
        except (RedisError, OSError) as e:
            raise DiscoveryUnreachable(f"Query to sentinel {self.endpoint} failed: {e}") from e
        finally:
            await client.aclose()

        logger.info("Queried sentinel %s for master, returned: %s", self.endpoint, reply)
        return parse_master_addr(reply)

    async def probe_master(self, location: MasterLocation, timeout: float = 10.0) -> None:
        """Raise MasterUnreachable unless the master answers INFO"""
        client = self.client_factory(location.host, location.port, timeout)
        try:
            await asyncio.wait_for(client.info(), timeout)
        except asyncio.TimeoutError as e:
            raise MasterUnreachable(
                f"Master at {location} did not answer within {timeout}s"
            ) from e
        except (RedisError, OSError) as e:
            raise MasterUnreachable(f"Connecting to master at {location} failed: {e}") from e
        finally:
            await client.aclose()
