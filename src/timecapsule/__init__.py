"""
Time Capsule - Time-locked encrypted capsules on an append-only ledger.

A sender encrypts a message and/or files with a passphrase, and the ledger
stores the ciphertext together with a receiver and an unlock time.
It provides:
- An append-only capsule ledger with gapless, monotonic ids
- Reveal gated on both the unlock time and the caller being a party
- A client-side content codec (PBKDF2 + AES-GCM, hex wire form)
- Content-addressed blob storage for attachments

Example usage:
    $ timecapsule init --as 0x1
    $ timecapsule create 0xb0b --as 0xa11ce -m "hello" --unlock-in 60
    $ timecapsule open 0 --as 0xb0b
"""

__version__ = "0.1.0"
__author__ = "Time Capsule Contributors"

__all__ = [
    "__version__",
    "__author__",
]
