from __future__ import annotations

import logging
from typing import Any, Dict, List

from . import codec
from .errors import DataboxError
from .process import CommandLike, CommandSpec, ProcessError, ProcessRunner


logger = logging.getLogger(__name__)

KEY = "key"
VALUE = "value"


class CryptoError(DataboxError):
    """A leaf could not be encrypted or decrypted."""

    action = "process"

    def __init__(self, part: str, depth: int, detail: str) -> None:
        super().__init__(f"Failed to {self.action} {part} at depth {depth}: {detail}")
        self.part = part
        self.depth = depth


class EncryptionError(CryptoError):
    action = "encrypt"


class DecryptionError(CryptoError):
    action = "decrypt"


def strip_trailing_newline(text: str) -> str:
    """Drop exactly one trailing newline added by the encryption tool, if present."""
    if text.endswith("\n"):
        return text[:-1]
    return text


class DeepCrypto:
    """
    Encrypts and decrypts every string in a tree value, one leaf at a time.

    Encryption applies `codec.encode` once at the root, then sends every string
    (mapping keys, values, list items and the placeholder markers themselves)
    through the encryption command with the public key. Numbers and booleans
    are left in plaintext.

    Decryption mirrors the walk with the decryption command and the private key,
    and decodes placeholders bottom-up once each container's strings are back
    in plaintext.

    Any leaf failure aborts the whole walk; nothing partial is returned.
    """

    def __init__(
        self,
        runner: ProcessRunner,
        *,
        encrypt_command: CommandLike,
        decrypt_command: CommandLike,
        public_key: str,
        private_key: str,
        strip_newline: bool = True,
    ) -> None:
        self._runner = runner
        self._encrypt_cmd = CommandSpec.coerce(encrypt_command)
        self._decrypt_cmd = CommandSpec.coerce(decrypt_command)
        self._public_key = public_key
        self._private_key = private_key
        self._strip_newline = strip_newline

    # --------------- Public API ---------------
    def encrypt(self, value: Any) -> Any:
        encoded = codec.encode(value)
        return self._encrypt_node(encoded, VALUE, 0)

    def decrypt(self, value: Any) -> Any:
        return self._decrypt_node(value, VALUE, 0)

    def encrypt_string(self, plaintext: str) -> str:
        out = self._runner.run(self._encrypt_cmd, self._public_key, plaintext.encode("utf-8"))
        # Armored output is ASCII; stored verbatim in the JSON document
        return out.decode("utf-8")

    def decrypt_string(self, ciphertext: str) -> str:
        out = self._runner.run(self._decrypt_cmd, self._private_key, ciphertext.encode("utf-8"))
        text = out.decode("utf-8")
        if self._strip_newline:
            text = strip_trailing_newline(text)
        return text

    # --------------- Internal ---------------
    def _encrypt_node(self, node: Any, part: str, depth: int) -> Any:
        if isinstance(node, dict):
            result: Dict[str, Any] = {}
            for k, v in node.items():
                ek = self._encrypt_node(k, KEY, depth + 1)
                result[ek] = self._encrypt_node(v, VALUE, depth + 1)
            return result
        if isinstance(node, list):
            items: List[Any] = []
            for v in node:
                items.append(self._encrypt_node(v, VALUE, depth + 1))
            return items
        if isinstance(node, str):
            try:
                return self.encrypt_string(node)
            except ProcessError as ex:
                logger.warning("Encryption of a %s failed at depth %d", part, depth)
                raise EncryptionError(part, depth, str(ex)) from ex
            except UnicodeError as ex:
                logger.warning("Encryption of a %s failed at depth %d: invalid UTF-8", part, depth)
                raise EncryptionError(part, depth, "text is not valid UTF-8") from ex
        return node

    def _decrypt_node(self, node: Any, part: str, depth: int) -> Any:
        if isinstance(node, dict):
            result: Dict[str, Any] = {}
            for k, v in node.items():
                dk = self._decrypt_node(k, KEY, depth + 1)
                result[dk] = self._decrypt_node(v, VALUE, depth + 1)
            return codec.decode_node(result)
        if isinstance(node, list):
            return [self._decrypt_node(v, VALUE, depth + 1) for v in node]
        if isinstance(node, str):
            try:
                return self.decrypt_string(node)
            except ProcessError as ex:
                logger.warning("Decryption of a %s failed at depth %d", part, depth)
                raise DecryptionError(part, depth, str(ex)) from ex
            except UnicodeError as ex:
                logger.warning("Decryption of a %s failed at depth %d: invalid UTF-8", part, depth)
                raise DecryptionError(part, depth, "text is not valid UTF-8") from ex
        return node


__all__ = [
    "DeepCrypto",
    "CryptoError",
    "EncryptionError",
    "DecryptionError",
    "strip_trailing_newline",
]
