"""Detection of container and OS sandboxes from an agent's command line."""

from __future__ import annotations

import re

from agentwatch.models import SandboxInfo, SandboxType

_DOCKER_LAUNCH = re.compile(r"docker\s+(run|exec)", re.IGNORECASE)
_DOCKER_AGENT_IMAGE = re.compile(r"claude-sandbox|claude-code-config", re.IGNORECASE)
_DOCKER_AGENT_NAME = re.compile(r"\bclaude\b", re.IGNORECASE)
_SANDBOX_EXEC = re.compile(r"sandbox-exec", re.IGNORECASE)
_SANDBOX_FLAG = re.compile(r"--sandbox\b")

NOT_SANDBOXED = SandboxInfo(sandboxed=False)


def detect_sandbox(cmdline: str) -> SandboxInfo:
    """Classify the sandbox an agent command line runs in.

    Rules, first match wins:

    1. ``docker run``/``docker exec`` with an agent image or agent name: docker.
    2. ``sandbox-exec``: macOS seatbelt.
    3. A ``--sandbox`` flag: the agent's native sandbox, reported as macos.
    """
    if _DOCKER_LAUNCH.search(cmdline):
        if _DOCKER_AGENT_IMAGE.search(cmdline) or _DOCKER_AGENT_NAME.search(cmdline):
            return SandboxInfo(sandboxed=True, type=SandboxType.DOCKER)

    if _SANDBOX_EXEC.search(cmdline):
        return SandboxInfo(sandboxed=True, type=SandboxType.MACOS)

    if _SANDBOX_FLAG.search(cmdline):
        return SandboxInfo(sandboxed=True, type=SandboxType.MACOS)

    return NOT_SANDBOXED
