"""Stand-in for `age` used by the tests.

    fake_age.py encrypt <fernet-key> <input-file>
    fake_age.py decrypt <key-file> <input-file>

Ciphertext is a Fernet token (URL-safe base64, random IV) followed by a
newline, like armored age output. Exits non-zero on any failure.
"""

import sys

from cryptography.fernet import Fernet, InvalidToken


def main(argv):
    if len(argv) != 3:
        sys.stderr.write("usage: fake_age.py encrypt|decrypt KEY FILE\n")
        return 2
    mode, key_arg, path = argv
    with open(path, "rb") as f:
        data = f.read()

    if mode == "encrypt":
        token = Fernet(key_arg.encode("ascii")).encrypt(data)
        sys.stdout.buffer.write(token + b"\n")
        return 0

    if mode == "decrypt":
        with open(key_arg, "rb") as f:
            key = f.read().strip()
        try:
            plaintext = Fernet(key).decrypt(data.strip())
        except InvalidToken:
            sys.stderr.write("fake_age: invalid ciphertext\n")
            return 1
        sys.stdout.buffer.write(plaintext)
        return 0

    sys.stderr.write(f"fake_age: unknown mode {mode}\n")
    return 2


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
