"""Installation and removal of iptables rules via shell scripts."""

from __future__ import annotations

import abc
import asyncio
import logging
import socket

logger = logging.getLogger(__name__)

_NETNS_LOCK_NAME = "\0tng"


class IptablesError(RuntimeError):
    """Raised when an iptables script cannot be run or fails."""


class IptablesRuleGenerator(abc.ABC):
    """Produces the scripts that install and remove a set of rules."""

    @abc.abstractmethod
    async def gen_script(self) -> tuple[str, str]:
        """Return the ``(invoke_script, revoke_script)`` pair."""


class _NetnsLock:
    """Holds an abstract unix socket so only one instance runs per netns."""

    listener: socket.socket | None = None

    @classmethod
    def acquire(cls) -> None:
        if cls.listener is not None:
            return
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.bind(_NETNS_LOCK_NAME)
            sock.listen()
        except OSError as exc:
            sock.close()
            raise IptablesError(
                "Running more than one TNG instances concurrently in same network "
                "namespace which need iptables rules is not supported in current "
                "TNG version"
            ) from exc
        cls.listener = sock


async def execute_script(script: str) -> None:
    """Run ``script`` with ``sh -c`` in ``set -e`` mode; raise on failure."""
    command = f"set -e ; true ; {script}"
    try:
        process = await asyncio.create_subprocess_exec(
            "sh",
            "-c",
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
    except OSError as exc:
        raise IptablesError(f"Failed to execute command: {exc}") from exc

    out_text = stdout.decode(errors="replace")
    err_text = stderr.decode(errors="replace")
    logger.debug(
        "execute iptable script:\n%s\nstdout:\n%s\nstderr:\n%s", command, out_text, err_text
    )
    if process.returncode != 0:
        raise IptablesError(f"failed to execute iptables script, stderr: {err_text}")


class IptablesGuard:
    """Removes installed rules when revoked or when its context exits."""

    def __init__(self, revoke_script: str) -> None:
        self.revoke_script = revoke_script
        self._revoked = False

    async def revoke(self) -> None:
        """Run the revoke script once; later calls do nothing."""
        if self._revoked:
            return
        self._revoked = True
        await execute_script(self.revoke_script)

    async def __aenter__(self) -> IptablesGuard:
        return self

    async def __aexit__(self, *args: object) -> None:
        try:
            await self.revoke()
        except IptablesError as exc:
            logger.error("Failed to revoke iptables rules: %s", exc)


async def setup_iptables(rule_generator: IptablesRuleGenerator) -> IptablesGuard:
    """Install the generator's rules and return a guard that removes them.

    If installing fails, the revoke script is run before the error is raised.
    """
    logger.info("Setting up iptables rule")
    _NetnsLock.acquire()

    invoke_script, revoke_script = await rule_generator.gen_script()
    guard = IptablesGuard(revoke_script)
    try:
        await execute_script(invoke_script)
    except BaseException:
        await guard.__aexit__(None, None, None)
        raise
    return guard