"""Password hashing with PyNaCl (argon2id)."""

from __future__ import annotations

import asyncio

import nacl.exceptions
import nacl.pwhash

DEFAULT_OPSLIMIT = nacl.pwhash.argon2id.OPSLIMIT_INTERACTIVE
DEFAULT_MEMLIMIT = nacl.pwhash.argon2id.MEMLIMIT_INTERACTIVE


def hash_password(
    password: str,
    *,
    opslimit: int = DEFAULT_OPSLIMIT,
    memlimit: int = DEFAULT_MEMLIMIT,
) -> str:
    """Return a self-describing argon2id hash ("$argon2id$v=19$...")."""
    hashed = nacl.pwhash.argon2id.str(password.encode("utf-8"), opslimit=opslimit, memlimit=memlimit)
    return hashed.decode("ascii")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return nacl.pwhash.verify(hashed.encode("ascii"), password.encode("utf-8"))
    except (nacl.exceptions.InvalidkeyError, ValueError):
        return False


async def hash_password_async(password: str, **limits: int) -> str:
    """Hash in a worker thread so the event loop is not blocked."""
    return await asyncio.to_thread(hash_password, password, **limits)


async def verify_password_async(password: str, hashed: str) -> bool:
    return await asyncio.to_thread(verify_password, password, hashed)
