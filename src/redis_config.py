#!/usr/bin/env python3
"""
Redis configuration materializer
Turns mounted config templates plus the discovered master into the files
redis-server and redis-sentinel start from
"""

import logging
import os
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Sequence, Tuple

from bootstrap_settings import DEFAULT_MASTER_NAME, Role
from sentinel_discovery import MasterLocation

logger = logging.getLogger(__name__)

ConfigTemplate = Tuple[str, ...]

MASTER_IP = "master-ip"
MASTER_PORT = "master-port"

SENTINEL_QUORUM = 2
SENTINEL_DOWN_AFTER_MS = 60000
SENTINEL_FAILOVER_TIMEOUT_MS = 180000
SENTINEL_PARALLEL_SYNCS = 1

_PLACEHOLDER = re.compile(r"%([a-z][a-z0-9-]*)%")
_REPLICATION_DIRECTIVE = re.compile(r"^\s*(slaveof|replicaof)\s", re.IGNORECASE)


class ConfigTemplateUnreadable(Exception):
    """A mounted template exists but could not be read"""


@dataclass(frozen=True)
class ResolvedConfig:
    role: Role
    lines: ConfigTemplate

    @property
    def text(self) -> str:
        return "\n".join(self.lines) + "\n" if self.lines else ""


def render(lines: Sequence[str], values: Mapping[str, str]) -> ConfigTemplate:
    """Replace every %name% token that has a value; unknown tokens are left alone"""
    def substitute(match):
        name = match.group(1)
        return values[name] if name in values else match.group(0)

    return tuple(_PLACEHOLDER.sub(substitute, line) for line in lines)


def placeholders(lines: Sequence[str]) -> set:
    return {name for line in lines for name in _PLACEHOLDER.findall(line)}


def load_template(path: str) -> Optional[ConfigTemplate]:
    """Read a config file as lines, or None when it is not there"""
    template_path = Path(path)
    if not template_path.exists():
        return None

    try:
        return tuple(template_path.read_text().splitlines())
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigTemplateUnreadable(f"Cannot read config template {path}: {e}") from e


def default_sentinel_config(master_name: str, master: MasterLocation) -> ConfigTemplate:
    return (
        f"sentinel monitor {master_name} {master.host} {master.port} {SENTINEL_QUORUM}",
        f"sentinel down-after-milliseconds {master_name} {SENTINEL_DOWN_AFTER_MS}",
        f"sentinel failover-timeout {master_name} {SENTINEL_FAILOVER_TIMEOUT_MS}",
        f"sentinel parallel-syncs {master_name} {SENTINEL_PARALLEL_SYNCS}",
        "bind 0.0.0.0",
    )


def _require_master(role: Role, master: Optional[MasterLocation]) -> MasterLocation:
    if master is None or not master.is_known:
        raise ValueError(f"{role.value} config needs a resolved master location")
    return master


def _slave_lines(template: Sequence[str]) -> ConfigTemplate:
    """Template lines with exactly one replication directive that follows the discovered master"""
    lines = tuple(template)
    if any(_REPLICATION_DIRECTIVE.match(line) and f"%{MASTER_IP}%" in line for line in lines):
        return lines

    # Literal directives point at whichever master was current when the file was written
    kept = [line for line in lines if not _REPLICATION_DIRECTIVE.match(line)]
    while kept and not kept[-1].strip():
        kept.pop()
    return tuple(kept) + ("", f"slaveof %{MASTER_IP}% %{MASTER_PORT}%")


def materialize(
    template: Optional[Sequence[str]],
    master: Optional[MasterLocation],
    role: Role,
    master_name: str = DEFAULT_MASTER_NAME,
) -> ResolvedConfig:
    """
    Produce the final config for ``role``.

    Master configs are copied verbatim. Slave configs keep a templated
    ``slaveof %master-ip% %master-port%`` directive; otherwise any literal
    replication directive is dropped and a fresh ``slaveof`` is appended. Sentinel
    configs fall back to a minimal monitor setup when no template is given.
    Slave and sentinel configs must not be built before the master is known.
    """
    if role is Role.MASTER:
        return ResolvedConfig(role=role, lines=tuple(template or ()))

    location = _require_master(role, master)
    values = {MASTER_IP: location.host, MASTER_PORT: str(location.port)}

    if role is Role.SLAVE:
        return ResolvedConfig(role=role, lines=render(_slave_lines(template or ()), values))

    if template is None:
        return ResolvedConfig(role=role, lines=default_sentinel_config(master_name, location))
    return ResolvedConfig(role=role, lines=render(template, values))


def write_config(config: ResolvedConfig, path: str) -> None:
    """Write the config next to its destination and move it into place"""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=str(target.parent), prefix=f".{target.name}.")
    try:
        with os.fdopen(fd, "w") as f:
            f.write(config.text)
        os.replace(tmp_path, target)
    except OSError:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def ensure_data_dir(path: str) -> bool:
    """Create the data directory if missing; returns True when it was created"""
    data_dir = Path(path)
    if data_dir.exists():
        return False

    logger.warning("Redis data dir %s doesn't exist, data won't be persistent!", path)
    data_dir.mkdir(parents=True, exist_ok=True)
    return True
