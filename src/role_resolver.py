#!/usr/bin/env python3
"""
Role resolver for Redis cluster containers
Decides whether this pod starts as master, slave or sentinel, writes the
matching config and hands the container over to Redis
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from bootstrap_settings import BootstrapSettings, Role
from process_handoff import Handoff, build_command, select_handoff
from redis_config import (
    ConfigTemplate,
    ConfigTemplateUnreadable,
    ResolvedConfig,
    ensure_data_dir,
    load_template,
    materialize,
    placeholders,
    write_config,
)
from sentinel_discovery import (
    DiscoveryError,
    MasterLocation,
    MasterUnreachable,
    SentinelDiscovery,
)

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class BootstrapState(Enum):
    INIT = "init"
    DETERMINING_ROLE = "determining_role"
    MASTER_PATH = "master_path"
    SLAVE_PATH = "slave_path"
    SENTINEL_PATH = "sentinel_path"
    READY = "ready"
    FAILED = "failed"


PATHS = (BootstrapState.MASTER_PATH, BootstrapState.SLAVE_PATH, BootstrapState.SENTINEL_PATH)


class DiscoveryExhausted(Exception):
    """Bounded master discovery ran out of attempts"""


@dataclass
class BootstrapResult:
    role: Role
    config: ResolvedConfig
    config_path: str
    command: List[str]
    master: Optional[MasterLocation] = None


class RoleResolver:
    """Walks Init -> DeterminingRole -> {Master,Slave,Sentinel}Path -> Ready | Failed"""

    def __init__(
        self,
        settings: BootstrapSettings,
        discovery: Optional[SentinelDiscovery] = None,
        sleep: Optional[Sleep] = None,
        handoff: Optional[Handoff] = None,
    ):
        self.settings = settings
        self.identity = settings.identity()
        self.discovery = discovery or SentinelDiscovery(
            settings.sentinel_host, settings.sentinel_port, settings.master_name
        )
        self.sleep = sleep or asyncio.sleep
        self.handoff = handoff or select_handoff(settings.handoff_mode)

        self.state = BootstrapState.INIT
        self.path: Optional[BootstrapState] = None

    def _enter(self, state: BootstrapState):
        logger.debug("Bootstrap state %s -> %s", self.state.value, state.value)
        self.state = state
        if state in PATHS:
            self.path = state

    async def run(self) -> BootstrapResult:
        """Resolve the role and hand off; only returns when the handoff does"""
        self._enter(BootstrapState.DETERMINING_ROLE)
        try:
            if self.identity.role is Role.MASTER:
                return await self._master_path()
            if self.identity.role is Role.SLAVE:
                logger.info("Appear to be on slave, launching slave mode")
                return await self._slave_path()
            return await self._sentinel_path()
        except (DiscoveryExhausted, ConfigTemplateUnreadable, OSError, ValueError):
            self._enter(BootstrapState.FAILED)
            raise

    async def _query(self) -> Optional[MasterLocation]:
        try:
            return await self.discovery.query_master(self.settings.discovery_timeout)
        except DiscoveryError as e:
            logger.warning("Sentinel %s did not return a master: %s", self.discovery.endpoint, e)
            return None

    async def _master_path(self) -> BootstrapResult:
        self._enter(BootstrapState.MASTER_PATH)
        logger.info("Appear to be on master, trying master mode")

        # A failover may already have promoted someone else
        location = await self._query()
        if location is not None and not self.identity.is_self(location.host):
            logger.info("Sentinels returned master host %s, starting as slave", location)
            return await self._slave_path()
        return self._start_master(location)

    def _start_master(self, location: Optional[MasterLocation]) -> BootstrapResult:
        self._enter(BootstrapState.MASTER_PATH)
        logger.info("This instance (%s) is master.", self.identity.pod_name)
        ensure_data_dir(self.settings.data_dir)

        template = self._server_template(self.settings.master_config_path, "Master")
        config = materialize(template, None, Role.MASTER)
        leftover = placeholders(config.lines)
        if leftover:
            logger.warning("Master config keeps unresolved placeholders: %s", sorted(leftover))
        return self._finish(config, self.settings.master_config_path, location)

    async def _slave_path(self) -> BootstrapResult:
        self._enter(BootstrapState.SLAVE_PATH)
        settings = self.settings

        failures = 0
        while True:
            location = await self._query()
            if location is None:
                failures += 1
                if failures < settings.discovery_attempts:
                    logger.warning(
                        "Failed to find master via sentinel %s (attempt %d/%d). Retrying after %s seconds.",
                        self.discovery.endpoint, failures, settings.discovery_attempts,
                        settings.retry_interval,
                    )
                    await self.sleep(settings.retry_interval)
                    continue

                logger.error(
                    "Failed to find master via sentinel %s after %d attempts. Exiting after %s seconds.",
                    self.discovery.endpoint, failures, settings.grace_period,
                )
                await self.sleep(settings.grace_period)
                raise DiscoveryExhausted(
                    f"no master reported by sentinel {self.discovery.endpoint} "
                    f"after {failures} attempts"
                )

            failures = 0
            if self.identity.is_self(location.host):
                # Promoted by an earlier failover
                logger.info("Sentinels report this pod (%s) as master, starting as master", location)
                return self._start_master(location)

            try:
                await self.discovery.probe_master(location, settings.discovery_timeout)
                break
            except MasterUnreachable as e:
                logger.warning("%s. Waiting %s seconds...", e, settings.retry_interval)
                await self.sleep(settings.retry_interval)

        ensure_data_dir(settings.data_dir)
        template = self._server_template(settings.slave_config_path, "Slave")
        config = materialize(template, location, Role.SLAVE)
        return self._finish(config, settings.slave_config_path, location)

    async def _sentinel_path(self) -> BootstrapResult:
        self._enter(BootstrapState.SENTINEL_PATH)
        settings = self.settings
        logger.info("Launching sentinel %s after querying for current master", self.identity.pod_name)

        while True:
            location = await self._query()
            if location is None:
                location = MasterLocation(settings.default_master_host, settings.default_master_port)
                if not location.is_known:
                    logger.error(
                        "No sentinel knows master and no default master is configured "
                        "(DEFAULT_MASTER_HOST / DEFAULT_MASTER). Waiting %s seconds...",
                        settings.retry_interval,
                    )
                    await self.sleep(settings.retry_interval)
                    continue
                logger.warning("No sentinel knows master, defaulting to %s", location)

            try:
                await self.discovery.probe_master(location, settings.discovery_timeout)
                break
            except MasterUnreachable as e:
                logger.warning("%s. Waiting %s seconds...", e, settings.retry_interval)
                await self.sleep(settings.retry_interval)

        logger.info("Master found at %s. Starting sentinel instance.", location)
        template = load_template(settings.sentinel_template_path)
        if template is None:
            logger.info(
                "No configuration in %s. Sentinel is starting up with defaults.", settings.config_dir
            )
        config = materialize(template, location, Role.SENTINEL, settings.master_name)
        return self._finish(config, settings.sentinel_config_path, location)

    def _server_template(self, output_path: str, label: str) -> Optional[ConfigTemplate]:
        """Mounted redis-server.conf, else whatever config the image ships at output_path"""
        template = load_template(self.settings.server_template_path)
        if template is not None:
            return template

        logger.info(
            "No configuration in %s. %s is starting up with defaults.", self.settings.config_dir, label
        )
        return load_template(output_path)

    def _finish(
        self, config: ResolvedConfig, path: str, master: Optional[MasterLocation]
    ) -> BootstrapResult:
        write_config(config, path)
        logger.info("Starting %s with configuration:\n%s", config.role.value, config.text)

        command = build_command(config.role, path)
        self._enter(BootstrapState.READY)
        self.handoff(command)
        return BootstrapResult(
            role=config.role, config=config, config_path=path, command=command, master=master
        )
