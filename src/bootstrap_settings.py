#!/usr/bin/env python3
"""
Bootstrap settings for Redis cluster containers
Reads node identity and discovery configuration from the pod environment
"""

import logging
import os
import socket
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_MASTER_NAME = "mymaster"
DEFAULT_SENTINEL_PORT = 26379
DEFAULT_MASTER_PORT = 6379


class Role(Enum):
    MASTER = "master"
    SLAVE = "slave"
    SENTINEL = "sentinel"


def _str_env(environ: Mapping[str, str], name: str, default: str = "") -> str:
    return str(environ.get(name, default)).strip()


def int_env(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = _str_env(environ, name, str(default))
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r, using %s", name, raw, default)
        return default


def float_env(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = _str_env(environ, name, str(default))
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r, using %s", name, raw, default)
        return default


def _resolve_pod_ip(environ: Mapping[str, str]) -> Optional[str]:
    pod_ip = _str_env(environ, "POD_IP")
    if pod_ip:
        return pod_ip
    try:
        return socket.gethostbyname(socket.gethostname())
    except OSError as e:
        logger.warning("Could not resolve pod IP: %s", e)
        return None


def _bool_env(environ: Mapping[str, str], name: str) -> bool:
    return _str_env(environ, name).lower() == "true"


@dataclass(frozen=True)
class NodeIdentity:
    """Who this container is; fixed for the lifetime of the process"""
    pod_name: str
    role: Role
    is_default_master: bool
    pod_ip: Optional[str] = None
    service_name: str = ""

    @property
    def addresses(self) -> FrozenSet[str]:
        """Every name a sentinel might report for this pod"""
        names = {self.pod_name}
        if self.pod_ip:
            names.add(self.pod_ip)
        if self.service_name:
            names.add(f"{self.pod_name}.{self.service_name}")
        return frozenset(name for name in names if name)

    def is_self(self, host: str) -> bool:
        return host in self.addresses


@dataclass(frozen=True)
class BootstrapSettings:
    sentinel_host: str
    sentinel_port: int
    master_name: str
    redis_node: bool
    pod_name: str
    pod_ip: Optional[str]
    default_master: str
    service_name: str
    default_master_host: str
    default_master_port: int
    config_dir: str = "/etc/config"
    data_dir: str = "/redis-data"
    master_config_path: str = "/redis-master/redis.conf"
    slave_config_path: str = "/redis-slave/redis.conf"
    sentinel_config_path: str = "sentinel.conf"
    discovery_timeout: float = 10.0
    discovery_attempts: int = 3
    retry_interval: float = 10.0
    grace_period: float = 30.0
    handoff_mode: str = "exec"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "BootstrapSettings":
        """Build settings from the environment (``os.environ`` by default)"""
        env = os.environ if environ is None else environ

        default_master = _str_env(env, "DEFAULT_MASTER")
        service_name = _str_env(env, "SERVICE_NAME")

        # DEFAULT_MASTER_HOST wins over <DEFAULT_MASTER>.<SERVICE_NAME>
        default_master_host = _str_env(env, "DEFAULT_MASTER_HOST")
        if not default_master_host and default_master:
            default_master_host = (
                f"{default_master}.{service_name}" if service_name else default_master
            )

        return cls(
            sentinel_host=_str_env(env, "REDIS_SENTINEL_SERVICE_HOST", "localhost"),
            sentinel_port=int_env(env, "REDIS_SENTINEL_SERVICE_PORT", DEFAULT_SENTINEL_PORT),
            master_name=_str_env(env, "REDIS_MASTER_NAME") or DEFAULT_MASTER_NAME,
            redis_node=_bool_env(env, "REDIS_NODE"),
            pod_name=_str_env(env, "POD_NAME") or socket.gethostname(),
            pod_ip=_resolve_pod_ip(env),
            default_master=default_master,
            service_name=service_name,
            default_master_host=default_master_host,
            default_master_port=int_env(env, "DEFAULT_MASTER_PORT", DEFAULT_MASTER_PORT),
            config_dir=_str_env(env, "CONFIG_DIR", "/etc/config"),
            data_dir=_str_env(env, "REDIS_DATA_DIR", "/redis-data"),
            master_config_path=_str_env(env, "REDIS_MASTER_CONFIG", "/redis-master/redis.conf"),
            slave_config_path=_str_env(env, "REDIS_SLAVE_CONFIG", "/redis-slave/redis.conf"),
            sentinel_config_path=_str_env(env, "REDIS_SENTINEL_CONFIG", "sentinel.conf"),
            discovery_timeout=float_env(env, "DISCOVERY_TIMEOUT", 10.0),
            discovery_attempts=max(1, int_env(env, "DISCOVERY_ATTEMPTS", 3)),
            retry_interval=float_env(env, "DISCOVERY_RETRY_INTERVAL", 10.0),
            grace_period=float_env(env, "DISCOVERY_GRACE_PERIOD", 30.0),
            handoff_mode=_str_env(env, "BOOTSTRAP_HANDOFF", "exec").lower(),
        )

    @property
    def sentinel_endpoint(self) -> str:
        return f"{self.sentinel_host}:{self.sentinel_port}"

    @property
    def server_template_path(self) -> str:
        return os.path.join(self.config_dir, "redis-server.conf")

    @property
    def sentinel_template_path(self) -> str:
        return os.path.join(self.config_dir, "redis-sentinel.conf")

    def identity(self) -> NodeIdentity:
        """Derive the requested role of this node"""
        is_default_master = self.redis_node and self.default_master == self.pod_name
        if not self.redis_node:
            role = Role.SENTINEL
        elif is_default_master:
            role = Role.MASTER
        else:
            role = Role.SLAVE

        return NodeIdentity(
            pod_name=self.pod_name,
            role=role,
            is_default_master=is_default_master,
            pod_ip=self.pod_ip,
            service_name=self.service_name,
        )
