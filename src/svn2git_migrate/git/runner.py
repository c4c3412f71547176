"""External command execution with concurrent output draining."""

import asyncio
import os
import signal
import sys
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from loguru import logger

from ..errors import ProcessFailure
from .commands import sanitize

Command = Union[str, Sequence[str]]
LineConsumer = Callable[[str], None]

# Exit status reported when the child could not be started at all.
SPAWN_FAILURE_STATUS = 127

# Longest line a drain accepts before splitting it.
STREAM_LIMIT = 1024 * 1024


def _echo_stdout(line: str) -> None:
    print(line, file=sys.stdout, flush=True)


def _echo_stderr(line: str) -> None:
    print(line, file=sys.stderr, flush=True)


def shell_argv(command_line: str) -> List[str]:
    """Argument vector running a command line through the host's interpreter."""
    if os.name == 'nt':
        return ['cmd.exe', '/c', command_line]
    return ['sh', '-c', command_line]


class CommandRunner:
    """Runs external commands and reports their exit status."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        stdout_consumer: Optional[LineConsumer] = None,
        stderr_consumer: Optional[LineConsumer] = None,
    ):
        """Initialize command runner.

        Args:
            timeout: Seconds before a child is killed, None waits forever
            stdout_consumer: Receives each standard output line, defaults to stdout
            stderr_consumer: Receives each standard error line, defaults to stderr
        """
        self.timeout = timeout
        self.stdout_consumer = stdout_consumer or _echo_stdout
        self.stderr_consumer = stderr_consumer or _echo_stderr
        self.logger = logger.bind(component='CommandRunner')

    async def run(
        self,
        directory: str,
        command: Command,
        redact: Iterable[Optional[str]] = (),
        env: Optional[Mapping[str, str]] = None,
    ) -> int:
        """Run a command and wait for it to exit.

        A string is handed to the host shell (`sh -c` or `cmd.exe /c`); a sequence
        is executed directly without any shell. On POSIX the child leads its own
        process group, so a timeout also kills whatever it started.

        Args:
            directory: Working directory of the child
            command: Shell command line or argument vector
            redact: Secrets to mask in logged commands and forwarded output
            env: Variables added to the inherited environment, never logged

        Returns:
            Exit status of the child, SPAWN_FAILURE_STATUS if it never started

        Raises:
            ProcessFailure: If the configured timeout expires
        """
        secrets = [s for s in redact if s]
        argv = shell_argv(command) if isinstance(command, str) else list(command)
        shown = [sanitize(arg, secrets) for arg in argv]
        display = ' '.join(shown)

        self.logger.info(f'Executing command: {display}')
        self.logger.info(f'Working directory: {directory}')

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=directory,
                env=self._environment(env),
                limit=STREAM_LIMIT,
                start_new_session=os.name != 'nt',
            )
        except (OSError, ValueError) as e:
            self.logger.error(f'Failed to start command {display}: {e}')
            return SPAWN_FAILURE_STATUS

        # Output held open by a leftover grandchild is abandoned on timeout.
        completion = asyncio.gather(
            process.wait(),
            self._drain(process.stdout, self.stdout_consumer, secrets),
            self._drain(process.stderr, self.stderr_consumer, secrets),
        )

        try:
            await asyncio.wait_for(completion, timeout=self.timeout)
        except asyncio.TimeoutError:
            self._kill(process)
            await process.wait()
            self.logger.error(f'Command timed out after {self.timeout} seconds: {display}')
            raise ProcessFailure(
                f'Command timed out after {self.timeout} seconds: {display}',
                command=shown,
                exit_status=process.returncode,
            )
        except asyncio.CancelledError:
            self._kill(process)
            raise

        if process.returncode == 0:
            self.logger.info(f'Command exit status: {process.returncode}')
        else:
            self.logger.error(f'Command exit status: {process.returncode}')
        return process.returncode

    async def check(
        self,
        directory: str,
        command: Command,
        redact: Iterable[Optional[str]] = (),
        error_cls=ProcessFailure,
        env: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Run a command and raise when it does not exit with status 0.

        Args:
            directory: Working directory of the child
            command: Shell command line or argument vector
            redact: Secrets to mask in logs and in the raised error
            error_cls: ProcessFailure subclass to raise
            env: Variables added to the inherited environment

        Raises:
            ProcessFailure: If the command fails, or error_cls when given
        """
        secrets = [s for s in redact if s]
        status = await self.run(directory, command, secrets, env=env)
        if status != 0:
            argv = shell_argv(command) if isinstance(command, str) else list(command)
            shown = [sanitize(arg, secrets) for arg in argv]
            raise error_cls(
                f'Command failed with exit status {status}: {" ".join(shown)}',
                command=shown,
                exit_status=status,
            )

    @staticmethod
    def _environment(extra: Optional[Mapping[str, str]]) -> Optional[Dict[str, str]]:
        if not extra:
            return None
        return {**os.environ, **extra}

    def _kill(self, process: asyncio.subprocess.Process) -> None:
        """Kill the child and, on POSIX, every process left in its group."""
        try:
            if os.name == 'nt':
                process.kill()
            else:
                os.killpg(process.pid, signal.SIGKILL)
        except ProcessLookupError:
            self.logger.debug(f'Process {process.pid} already gone')

    @staticmethod
    async def _drain(
        stream: asyncio.StreamReader, consumer: LineConsumer, secrets: List[str]
    ) -> None:
        """Hand every line of a child stream to a consumer, in order."""
        while True:
            try:
                line = await stream.readline()
            except ValueError:
                # Line longer than STREAM_LIMIT, take what is buffered.
                line = await stream.read(STREAM_LIMIT)
            if not line:
                break
            text = line.decode(errors='replace').rstrip('\r\n')
            consumer(sanitize(text, secrets))
