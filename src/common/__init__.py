"""
Core building blocks for databox.

Modules:
- process: secure external command runner (temp files, no shell)
- codec: tagged placeholders for None and empty containers
- deep_crypto: per-leaf encryption/decryption of tree values
"""

__all__ = [
    "codec",
    "deep_crypto",
    "errors",
    "process",
]
