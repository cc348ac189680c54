from __future__ import annotations

import logging
import subprocess
from typing import List

from shimdeploy.core.errors import CollaboratorError

logger = logging.getLogger(__name__)


def run_command(argv: List[str], *, timeout_s: float) -> str:
    """Run a host command and return stdout; any failure is a CollaboratorError."""
    logger.debug("exec: %s", " ".join(argv))
    try:
        cp = subprocess.run(argv, capture_output=True, text=True, check=False, timeout=timeout_s)
    except FileNotFoundError as e:
        raise CollaboratorError(code="command.not_found", message=f"Command not found: {argv[0]}", data={"argv": argv}) from e
    except subprocess.TimeoutExpired as e:
        raise CollaboratorError(
            code="command.timeout",
            message=f"Command timed out after {timeout_s}s: {argv[0]}",
            data={"argv": argv},
        ) from e
    if cp.returncode != 0:
        raise CollaboratorError(
            code="command.failed",
            message="{} failed: {}".format(argv[0], cp.stderr.strip() or cp.stdout.strip()),
            data={"argv": argv, "returncode": cp.returncode},
        )
    return cp.stdout
