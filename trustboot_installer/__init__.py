"""Trustboot installer: Arch Linux onto one disk, with a self-maintaining Secure Boot chain.

Core design goals:
- Linear, fail-fast stages; nothing resumes
- Exactly one destructive confirmation before the disk is touched
- Signing keys, signed boot artifacts and re-sign hooks installed together
- Centralized logging, passwords never logged or persisted
"""

__all__ = []
