import base64
import os
import sys

import pytest


def pytest_configure():
    # Ensure `src/` is importable as top-level for `common.*` and `databox.*` imports
    root = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    src_path = os.path.join(root, "src")
    if src_path not in sys.path:
        sys.path.insert(0, src_path)


FAKE_AGE = os.path.join(os.path.dirname(os.path.abspath(__file__)), "fake_age.py")


class FakeRunner:
    """
    In-process replacement for ProcessRunner.

    `fake-encrypt` prefixes a random nonce and base64-encodes the input;
    `fake-decrypt` reverses it. Set `fail_on` to a plaintext (or ciphertext)
    to simulate a tool failure for that leaf. Set `raw_output` to make every
    call return those bytes as-is.
    """

    def __init__(self) -> None:
        self.calls = []
        self.fail_on = None
        self.raw_output = None

    def run(self, command, key_arg, input_data=None):
        from common.process import CommandSpec, ProcessExitError

        spec = CommandSpec.coerce(command)
        self.calls.append((spec.program, key_arg, input_data))
        if self.fail_on is not None and input_data == self.fail_on.encode("utf-8"):
            raise ProcessExitError(spec.program, 1, "simulated failure")
        if self.raw_output is not None:
            return self.raw_output
        if spec.program == "fake-encrypt":
            nonce = os.urandom(4).hex().encode("ascii")
            return b"ENC:" + nonce + b":" + base64.b64encode(input_data) + b"\n"
        if spec.program == "fake-decrypt":
            text = input_data.decode("ascii").strip()
            if not text.startswith("ENC:"):
                raise ProcessExitError(spec.program, 1, "not a ciphertext")
            return base64.b64decode(text.split(":", 2)[2])
        raise AssertionError(f"unexpected program {spec.program}")

    def count(self, program):
        return sum(1 for p, _k, _i in self.calls if p == program)


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def fake_config(tmp_path):
    from databox.models import DataboxConfig

    return DataboxConfig.from_options(
        private_key=str(tmp_path / "identity.txt"),
        public_key="recipient-1",
        store_path=str(tmp_path / "data" / "databox.txt"),
        encryption_cmd="fake-encrypt %s",
        decryption_cmd="fake-decrypt %s",
    )


@pytest.fixture
def age_config(tmp_path):
    """Config wired to tests/fake_age.py through real subprocesses."""
    from cryptography.fernet import Fernet

    from databox.models import DataboxConfig

    key = Fernet.generate_key()
    key_file = tmp_path / "identity.key"
    key_file.write_bytes(key)
    tmp_dir = tmp_path / "tmp"
    tmp_dir.mkdir()
    return DataboxConfig.from_options(
        private_key=str(key_file),
        public_key=key.decode("ascii"),
        store_path=str(tmp_path / "store" / "databox.txt"),
        encryption_cmd=[sys.executable, FAKE_AGE, "encrypt", "%s"],
        decryption_cmd=[sys.executable, FAKE_AGE, "decrypt", "%s"],
        temp_dir=str(tmp_dir),
    )
