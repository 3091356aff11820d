# src/atlas_deployflow/adapters/shell.py
"""
Backend de execução via subprocess (asyncio).

`ShellBackend` interpreta `CommandContract.invocation`:
    - string → executada pelo shell do sistema
    - sequência → executada diretamente (argv), sem shell

O processo é encerrado (kill) quando o timeout informado expira ou quando
a tentativa é cancelada pelo Scheduler.
"""

from __future__ import annotations

import asyncio
import os
from typing import Dict, Optional

from atlas_deployflow.core.exceptions import JobCommandFailed, JobTimeoutError
from atlas_deployflow.core.pipeline.job import CommandContract
from atlas_deployflow.core.pipeline.types import CommandResult


def _tail(raw: bytes, limit: int) -> str:
    text = raw.decode("utf-8", errors="replace")
    return text[-limit:] if limit > 0 else text


def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass


class ShellBackend:
    def __init__(
        self,
        *,
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        max_output_chars: int = 5000,
    ) -> None:
        self.cwd = cwd
        self.env = dict(env or {})
        self.max_output_chars = max_output_chars

    async def _spawn(self, command: CommandContract) -> asyncio.subprocess.Process:
        env = {**os.environ, **self.env, **command.env}
        invocation = command.invocation
        if isinstance(invocation, str):
            return await asyncio.create_subprocess_shell(
                invocation,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
                env=env,
            )
        return await asyncio.create_subprocess_exec(
            *[str(arg) for arg in invocation],
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self.cwd,
            env=env,
        )

    async def execute(self, command: CommandContract, timeout: float) -> CommandResult:
        try:
            proc = await self._spawn(command)
        except FileNotFoundError as e:
            raise JobCommandFailed(
                message=f"command not found: {e.filename or command.invocation}",
                details={"invocation": str(command.invocation), "exit_status": 127},
                hint="Verifique se o executável está instalado e no PATH.",
            ) from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            _kill(proc)
            await proc.wait()
            raise JobTimeoutError(
                message=f"Command exceeded its timeout of {timeout:g}s",
                details={"invocation": str(command.invocation), "timeout": timeout},
            ) from None
        except asyncio.CancelledError:
            _kill(proc)
            raise

        return CommandResult(
            exit_status=proc.returncode if proc.returncode is not None else -1,
            output=_tail(stdout or b"", self.max_output_chars),
            error=_tail(stderr or b"", self.max_output_chars),
        )
