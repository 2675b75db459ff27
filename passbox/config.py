"""
passbox - Configuration

All settings come from the environment:

    PASSBOX_LOCATION    backing file (default ~/.passbox.asc)
    PASSBOX_ASYMMETRIC  1/true/yes/on -> public-key mode
    PASSBOX_RECIPIENT   recipient public key (PEM path); empty = encrypt to self
    PASSBOX_KEY         private key for public-key mode (default ~/.passbox.key)
    PASSBOX_KDF_N       scrypt cost N (power of two)
    PASSBOX_DEBUG       enable debug logging
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from . import crypto
from .errors import InvalidInput

DEFAULT_LOCATION = os.path.join("~", ".passbox.asc")
DEFAULT_KEY_PATH = os.path.join("~", ".passbox.key")

TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass
class Config:
    location: str
    asymmetric: bool = False
    recipient: Optional[str] = None
    key_path: str = os.path.expanduser(DEFAULT_KEY_PATH)
    kdf_n: int = crypto.SCRYPT_N
    debug: bool = False


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in TRUE_VALUES


def _path(value: Optional[str], default: str) -> str:
    return os.path.expanduser((value or "").strip() or default)


def _kdf_n(value: Optional[str]) -> int:
    if not value or not value.strip():
        return crypto.SCRYPT_N
    try:
        n = int(value)
    except ValueError:
        raise InvalidInput(f"PASSBOX_KDF_N must be an integer, got {value!r}")
    # scrypt requires N > 1 and a power of two
    if n < 2 or n & (n - 1):
        raise InvalidInput(f"PASSBOX_KDF_N must be a power of two >= 2, got {n}")
    # larger stores could not be opened again
    if n > crypto.SCRYPT_MAX_N:
        raise InvalidInput(f"PASSBOX_KDF_N must be at most {crypto.SCRYPT_MAX_N}, got {n}")
    return n


def load_config(environ: Optional[Mapping[str, str]] = None) -> Config:
    """Build a Config from environment variables (os.environ by default)."""
    env = os.environ if environ is None else environ
    recipient = (env.get("PASSBOX_RECIPIENT") or "").strip()
    return Config(
        location=_path(env.get("PASSBOX_LOCATION"), DEFAULT_LOCATION),
        asymmetric=_flag(env.get("PASSBOX_ASYMMETRIC")),
        recipient=os.path.expanduser(recipient) if recipient else None,
        key_path=_path(env.get("PASSBOX_KEY"), DEFAULT_KEY_PATH),
        kdf_n=_kdf_n(env.get("PASSBOX_KDF_N")),
        debug=_flag(env.get("PASSBOX_DEBUG")),
    )
