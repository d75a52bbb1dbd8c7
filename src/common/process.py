from __future__ import annotations

import logging
import os
import shlex
import subprocess
import tempfile
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

from .errors import ConfigError, DataboxError


logger = logging.getLogger(__name__)

PLACEHOLDER = "%s"
DEFAULT_TIMEOUT = 60.0
TEMP_PREFIX = "databox-"

CommandLike = Union[str, Sequence[str], "CommandSpec"]


class ProcessError(DataboxError):
    """Base error for external command invocation."""


class TempFileError(ProcessError):
    """Temporary input file could not be prepared."""


class TempFileCreateError(TempFileError):
    """Temporary input file could not be created."""


class TempFileWriteError(TempFileError):
    """Input could not be written to the temporary file."""


class ProcessLaunchError(ProcessError):
    """The command could not be started."""


class ProcessTimeoutError(ProcessError):
    """The command did not finish within the configured timeout."""


class ProcessExitError(ProcessError):
    """The command exited with a non-zero status."""

    def __init__(self, program: str, returncode: int, output: str) -> None:
        super().__init__(f"Command failed: {program} exited with status {returncode}: {output.strip()}")
        self.program = program
        self.returncode = returncode
        self.output = output


@dataclass(frozen=True)
class CommandSpec:
    """
    Structured invocation descriptor: program plus argument vector.

    Exactly one argument contains the `%s` placeholder, which is replaced by the
    key argument. The command never goes through a shell, so the key and the
    temp-file path are passed as single arguments whatever their content.

    Templates such as `"age -e -a -r %s"` are accepted via `from_template`,
    which splits them with shell quoting rules.
    """

    argv: Tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.argv:
            raise ConfigError("Command must not be empty")
        count = sum(arg.count(PLACEHOLDER) for arg in self.argv)
        if count != 1:
            raise ConfigError(
                f"Command must contain exactly one {PLACEHOLDER!r} placeholder, found {count}"
            )

    @classmethod
    def from_template(cls, template: str) -> "CommandSpec":
        try:
            argv = shlex.split(template)
        except ValueError as ex:
            raise ConfigError(f"Invalid command template: {ex}") from ex
        return cls(argv=tuple(argv))

    @classmethod
    def coerce(cls, command: CommandLike) -> "CommandSpec":
        if isinstance(command, CommandSpec):
            return command
        if isinstance(command, str):
            return cls.from_template(command)
        return cls(argv=tuple(str(arg) for arg in command))

    @property
    def program(self) -> str:
        return self.argv[0]

    def build(self, key_arg: str, input_path: Optional[str] = None) -> List[str]:
        """Return the argument vector with the key substituted and the input path appended."""
        args = [arg.replace(PLACEHOLDER, key_arg) for arg in self.argv]
        if input_path is not None:
            args.append(input_path)
        return args


def _write_file(fd: int, data: bytes) -> None:
    with os.fdopen(fd, "wb") as fh:
        fh.write(data)


def _remove_quietly(path: Optional[str]) -> None:
    if not path:
        return
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as ex:
        logger.warning("Failed to remove temporary file %s: %s", path, ex)


class ProcessRunner:
    """
    Runs an external command against a freshly written temporary input file.

    - The input file is created with `tempfile.mkstemp` (random name, mode 0600)
      and is removed on every exit path, including launch and write failures.
    - stdout is returned as bytes; stderr is only used for error diagnostics.
    - No retries: every failure is raised to the caller as a `ProcessError`.
    """

    def __init__(self, *, timeout: Optional[float] = DEFAULT_TIMEOUT, temp_dir: Optional[str] = None) -> None:
        if timeout is not None and timeout <= 0:
            raise ValueError("timeout must be > 0")
        self._timeout = timeout
        self._temp_dir = temp_dir

    def run(self, command: CommandLike, key_arg: str, input_data: Optional[bytes] = None) -> bytes:
        spec = CommandSpec.coerce(command)
        tmp_path: Optional[str] = None
        try:
            if input_data is not None:
                tmp_path = self._write_input(input_data)
            args = spec.build(key_arg, tmp_path)
            return self._execute(spec.program, args)
        finally:
            _remove_quietly(tmp_path)

    # --------------- Internal ---------------
    def _write_input(self, data: bytes) -> str:
        try:
            fd, path = tempfile.mkstemp(prefix=TEMP_PREFIX, dir=self._temp_dir)
        except OSError as ex:
            raise TempFileCreateError("Failed to create secure temporary file") from ex
        try:
            _write_file(fd, data)
        except OSError as ex:
            _remove_quietly(path)
            raise TempFileWriteError("Failed to write to temporary file") from ex
        return path

    def _execute(self, program: str, args: List[str]) -> bytes:
        logger.debug("Running %s (%d args)", program, len(args))
        try:
            proc = subprocess.run(
                args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self._timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as ex:
            raise ProcessTimeoutError(f"Command timed out after {self._timeout}s: {program}") from ex
        except OSError as ex:
            raise ProcessLaunchError(f"Failed to execute command: {program}") from ex

        logger.debug("%s exited with %d (%d bytes out)", program, proc.returncode, len(proc.stdout))
        if proc.returncode != 0:
            output = (proc.stdout + proc.stderr).decode("utf-8", errors="replace")
            raise ProcessExitError(program, proc.returncode, output or "unknown error")
        return proc.stdout


__all__ = [
    "CommandSpec",
    "ProcessRunner",
    "ProcessError",
    "TempFileError",
    "TempFileCreateError",
    "TempFileWriteError",
    "ProcessLaunchError",
    "ProcessTimeoutError",
    "ProcessExitError",
    "DEFAULT_TIMEOUT",
]
