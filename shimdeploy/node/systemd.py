from __future__ import annotations

import logging

from .commands import run_command

logger = logging.getLogger(__name__)


class SystemdServiceManager:
    def __init__(self, systemctl: str = "systemctl", *, timeout_s: float = 60.0):
        self._systemctl = systemctl
        self._timeout_s = timeout_s

    def restart(self, unit: str) -> None:
        # Unit files may have been touched by the artifacts; reload before restarting.
        run_command([self._systemctl, "daemon-reload"], timeout_s=self._timeout_s)
        run_command([self._systemctl, "restart", unit], timeout_s=self._timeout_s)
        logger.info("restarted %s", unit)
