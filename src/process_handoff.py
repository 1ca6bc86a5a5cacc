#!/usr/bin/env python3
"""
Hand the container over to redis-server or redis-sentinel
"""

import logging
import os
import signal
import subprocess
from typing import Callable, List, NoReturn, Sequence

from bootstrap_settings import Role

logger = logging.getLogger(__name__)

Handoff = Callable[[Sequence[str]], None]

SERVER_BINARY = "redis-server"
SENTINEL_BINARY = "redis-sentinel"


def build_command(role: Role, config_path: str) -> List[str]:
    binary = SENTINEL_BINARY if role is Role.SENTINEL else SERVER_BINARY
    return [binary, config_path, "--protected-mode", "no"]


def exec_process(argv: Sequence[str]) -> NoReturn:
    """Replace the current process with argv"""
    logger.info("Handing off to: %s", " ".join(argv))
    for handler in logging.getLogger().handlers:
        handler.flush()
    os.execvp(argv[0], list(argv))


def exit_status(returncode: int) -> int:
    """Shell-style status: a child killed by signal N leaves with 128 + N"""
    return 128 - returncode if returncode < 0 else returncode


def spawn_and_wait(argv: Sequence[str]) -> NoReturn:
    """Run argv as a child, forward SIGTERM/SIGINT to it and leave with its exit status"""
    logger.info("Spawning: %s", " ".join(argv))
    try:
        child = subprocess.Popen(list(argv))
    except FileNotFoundError:
        logger.error("%s not found on PATH", argv[0])
        raise SystemExit(127)

    def forward(signum, frame):
        logger.info("Forwarding signal %s to %s (pid %s)", signum, argv[0], child.pid)
        child.send_signal(signum)

    previous = {sig: signal.signal(sig, forward) for sig in (signal.SIGTERM, signal.SIGINT)}
    try:
        returncode = child.wait()
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    raise SystemExit(exit_status(returncode))


def select_handoff(mode: str) -> Handoff:
    if mode == "spawn":
        return spawn_and_wait
    if mode != "exec":
        logger.warning("Unknown BOOTSTRAP_HANDOFF '%s', using exec", mode)
    return exec_process
