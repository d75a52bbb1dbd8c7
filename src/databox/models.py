from __future__ import annotations

import os
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from common.errors import ConfigError, MissingConfigError
from common.process import DEFAULT_TIMEOUT, CommandSpec


# Environment variable names for convenience configuration
ENV_PRIVATE_KEY = "DATABOX_PRIVATE_KEY"
ENV_PUBLIC_KEY = "DATABOX_PUBLIC_KEY"
ENV_STORE_PATH = "DATABOX_STORE_PATH"
ENV_ENCRYPTION_CMD = "DATABOX_ENCRYPTION_CMD"
ENV_DECRYPTION_CMD = "DATABOX_DECRYPTION_CMD"
ENV_COMMAND_TIMEOUT = "DATABOX_COMMAND_TIMEOUT"

# ASCII armor (-a) keeps ciphertext safe to embed in JSON
DEFAULT_ENCRYPTION_CMD = "age -e -a -r %s"
DEFAULT_DECRYPTION_CMD = "age -d -i %s"

REQUIRED_FIELDS = ("private_key", "public_key")


def default_store_path() -> str:
    """`$XDG_DATA_HOME/nvim/databox.txt`, falling back to `~/.local/share`."""
    base = os.environ.get("XDG_DATA_HOME") or os.path.join(os.path.expanduser("~"), ".local", "share")
    return os.path.join(base, "nvim", "databox.txt")


class DataboxConfig(BaseModel):
    """
    Immutable configuration for a `Databox`.

    Fields
    - private_key: path to the identity file passed to the decryption command.
    - public_key: recipient string (or path) passed to the encryption command.
    - store_path: custom location of the encrypted JSON file (None → default path).
    - encryption_cmd / decryption_cmd: command template with exactly one `%s`
      placeholder for the key argument, either as a string split with shell
      quoting rules or as an argument list. The input file path is appended
      as the last argument. No shell is involved.
    - command_timeout: seconds before a single command invocation is aborted
      (None disables the timeout).
    - temp_dir: directory for the temporary input files (None → system default).
    - strip_trailing_newline: drop one trailing newline from decrypted strings.
      Plaintexts that themselves end in a newline lose it when enabled.

    Prefer `from_options()` / `from_env()`, which report missing fields as
    `MissingConfigError` and expand `~` in paths.
    """

    model_config = ConfigDict(frozen=True)

    private_key: str = Field(min_length=1, description="Path to the private key file")
    public_key: str = Field(min_length=1, description="Public key string or path")
    store_path: Optional[str] = Field(default=None, description="Custom storage path")
    encryption_cmd: Union[str, List[str]] = Field(default=DEFAULT_ENCRYPTION_CMD)
    decryption_cmd: Union[str, List[str]] = Field(default=DEFAULT_DECRYPTION_CMD)
    command_timeout: Optional[float] = Field(default=DEFAULT_TIMEOUT, gt=0)
    temp_dir: Optional[str] = None
    strip_trailing_newline: bool = True

    @field_validator("encryption_cmd", "decryption_cmd")
    @classmethod
    def _check_command(cls, v: Union[str, List[str]]) -> Union[str, List[str]]:
        try:
            CommandSpec.coerce(v)
        except ConfigError as ex:
            raise ValueError(str(ex)) from ex
        return v

    # -------- Construction helpers --------
    @classmethod
    def from_options(cls, **opts: Any) -> "DataboxConfig":
        """Merge `opts` over the defaults, validate, and expand `~` in paths."""
        for name in REQUIRED_FIELDS:
            if not opts.get(name):
                raise MissingConfigError(name)

        opts["private_key"] = os.path.expanduser(opts["private_key"])
        if opts.get("store_path"):
            opts["store_path"] = os.path.expanduser(opts["store_path"])
        if opts.get("temp_dir"):
            opts["temp_dir"] = os.path.expanduser(opts["temp_dir"])
        try:
            return cls(**opts)
        except ValidationError as ex:
            raise ConfigError(f"Invalid databox configuration: {ex}") from ex

    @classmethod
    def from_env(cls) -> "DataboxConfig":
        private_key = os.environ.get(ENV_PRIVATE_KEY)
        public_key = os.environ.get(ENV_PUBLIC_KEY)
        if not private_key or not public_key:
            missing = [
                name for name, val in [(ENV_PRIVATE_KEY, private_key), (ENV_PUBLIC_KEY, public_key)] if not val
            ]
            raise MissingConfigError(", ".join(missing))

        opts: Dict[str, Any] = {"private_key": private_key, "public_key": public_key}
        for name, env in [
            ("store_path", ENV_STORE_PATH),
            ("encryption_cmd", ENV_ENCRYPTION_CMD),
            ("decryption_cmd", ENV_DECRYPTION_CMD),
        ]:
            val = os.environ.get(env)
            if val:
                opts[name] = val

        timeout = os.environ.get(ENV_COMMAND_TIMEOUT)
        if timeout:
            try:
                opts["command_timeout"] = float(timeout)
            except ValueError as ex:
                raise ConfigError(f"{ENV_COMMAND_TIMEOUT} must be a number, got {timeout!r}") from ex
        return cls.from_options(**opts)

    def resolved_store_path(self) -> str:
        return self.store_path or default_store_path()
