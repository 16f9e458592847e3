from __future__ import annotations

import logging
import subprocess


logger = logging.getLogger(__name__)


def one_line(output: str) -> str:
    """Escape newlines and tabs so multi-line command output fits on one log line."""
    return output.replace("\n", "\\n").replace("\t", "\\t")


def run(args: list[str]) -> subprocess.CompletedProcess[str]:
    """Run an external command to completion, stderr folded into stdout.

    There is no timeout: a hung binary stalls the caller.
    """
    logger.debug("run :: %s", " ".join(args))
    return subprocess.run(
        args,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        check=False,
    )
