"""Shell tool for executing commands inside the workspace."""

import asyncio
import os
import signal
from pathlib import Path

from pydantic import BaseModel, Field

from qogito.exceptions import CommandTimeoutError, OutputLimitExceededError
from qogito.logging import get_logger
from qogito.tools.registry import Tool
from qogito.tools.sandbox import resolve_in_workspace

log = get_logger(__name__)

DEFAULT_TIMEOUT = 30.0
MAX_OUTPUT_BYTES = 10 * 1024 * 1024
_READ_CHUNK = 64 * 1024


class RunCommandArgs(BaseModel):
    command: str = Field(min_length=1)
    working_dir: str = "."


class RunCommandTool(Tool):
    """Execute shell commands."""

    name = "run_command"
    description = (
        "Run a shell command in the workspace and return its output. "
        "The user must approve every command before it runs."
    )
    parameters = {
        "type": "object",
        "properties": {
            "command": {
                "type": "string",
                "description": "The shell command to execute.",
            },
            "working_dir": {
                "type": "string",
                "description": 'Directory to run the command in, relative to the workspace. Defaults to ".".',
            },
        },
        "required": ["command"],
    }
    arguments_model = RunCommandArgs

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, max_output_bytes: int = MAX_OUTPUT_BYTES):
        self.timeout = timeout
        self.max_output_bytes = max_output_bytes

    async def execute(self, args: RunCommandArgs, workspace_root: Path) -> str:
        cwd = resolve_in_workspace(args.working_dir, workspace_root)
        log.info("Executing shell command", command=args.command, cwd=str(cwd), timeout=self.timeout)

        process = await asyncio.create_subprocess_shell(
            args.command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd),
            start_new_session=os.name == "posix",
        )

        try:
            stdout, stderr = await asyncio.wait_for(
                self._communicate(process, args.command),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            await self._kill(process)
            raise CommandTimeoutError(args.command, self.timeout) from None
        except (asyncio.CancelledError, OutputLimitExceededError):
            await self._kill(process)
            raise

        stdout_text = stdout.decode("utf-8", errors="replace")
        stderr_text = stderr.decode("utf-8", errors="replace")

        parts = []
        if stdout_text:
            parts.append(stdout_text)
        if stderr_text:
            parts.append(f"[stderr]\n{stderr_text}")
        if process.returncode:
            parts.append(f"[exit code {process.returncode}]")

        log.debug("Shell command finished", command=args.command, returncode=process.returncode)
        return "\n".join(parts) if parts else "(no output)"

    async def _communicate(
        self,
        process: asyncio.subprocess.Process,
        command: str,
    ) -> tuple[bytes, bytes]:
        stdout, stderr = await asyncio.gather(
            self._read_limited(process.stdout, command),
            self._read_limited(process.stderr, command),
        )
        await process.wait()
        return stdout, stderr

    async def _read_limited(self, stream: asyncio.StreamReader | None, command: str) -> bytes:
        if stream is None:
            return b""
        buffer = bytearray()
        while True:
            chunk = await stream.read(_READ_CHUNK)
            if not chunk:
                return bytes(buffer)
            buffer.extend(chunk)
            if len(buffer) > self.max_output_bytes:
                raise OutputLimitExceededError(command, self.max_output_bytes)

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        try:
            if os.name == "posix":
                os.killpg(process.pid, signal.SIGKILL)
            else:
                process.kill()
        except ProcessLookupError:
            return
        await process.wait()
