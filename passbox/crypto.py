"""
passbox - Cryptography Module (Cipher Service)

This single file contains ALL cryptographic operations for the password store.
The rest of passbox only sees three things:
- encrypt a plaintext store into an armored blob
- decrypt an armored blob back into the plaintext store
- random bytes (used for password generation)

Security Architecture:
    Symmetric mode (default):
        1. Passphrase + random salt -> scrypt -> Store Key (32 bytes)
        2. Store Key -> AES-256-GCM over the whole plaintext store
        3. Header parameters (salt, scrypt cost) are bound as associated data

    Public-key mode (PASSBOX_ASYMMETRIC):
        1. Fresh ephemeral X25519 key per write
        2. X25519(ephemeral, recipient) -> HKDF-SHA256 -> Store Key
        3. Store Key -> AES-256-GCM, ephemeral public key bound as associated data
        4. The recipient's private key is kept in a passphrase-protected PEM file

Blob layout (before armor):
    magic  : 4 bytes  -> b"PBX1"
    mode   : 1 byte   -> 1 symmetric, 2 public-key
    symmetric : n (u32), r (u32), p (u32), salt (16), nonce (12), ciphertext
    public-key: ephemeral public key (32), nonce (12), ciphertext
"""

import base64
import binascii
import json
import logging
import os
import struct

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from .errors import MissingDependency

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================

KEY_SIZE = 32            # 256-bit key
NONCE_SIZE = 12          # 96-bit nonce for AES-GCM
SALT_SIZE = 16           # 128-bit scrypt salt
PUBLIC_KEY_SIZE = 32     # raw X25519 public key

# scrypt parameters (tuned for ~250ms on modern CPU)
# N = CPU/memory cost (power of 2), r = block size, p = parallelization
SCRYPT_N = 2**17         # 131072 - uses ~16 MB RAM
SCRYPT_R = 8
SCRYPT_P = 1

# Upper bounds accepted when reading a header. scrypt needs 128 * r * N bytes;
# a corrupt file may ask for at most 1 GiB (N = 2**20 with r = 8).
SCRYPT_MAX_N = 2**20
SCRYPT_MAX_R = 32
SCRYPT_MAX_P = 16
SCRYPT_MAX_MEMORY = 2**30

MAGIC = b"PBX1"
MODE_SYMMETRIC = 1
MODE_ASYMMETRIC = 2

PREFIX_FMT = ">4sB"
SYMMETRIC_FMT = ">III%ds%ds" % (SALT_SIZE, NONCE_SIZE)
ASYMMETRIC_FMT = ">%ds%ds" % (PUBLIC_KEY_SIZE, NONCE_SIZE)
PREFIX_SIZE = struct.calcsize(PREFIX_FMT)

HKDF_INFO = b"passbox-store-v1"

ARMOR_BEGIN = "-----BEGIN PASSBOX MESSAGE-----"
ARMOR_END = "-----END PASSBOX MESSAGE-----"
ARMOR_WIDTH = 64

DEFAULT_PASSWORD_LENGTH = 20
MAX_PASSWORD_LENGTH = 100


# =============================================================================
# Key Derivation
# =============================================================================

def derive_store_key(passphrase: str, salt: bytes,
                     n: int = SCRYPT_N, r: int = SCRYPT_R, p: int = SCRYPT_P) -> bytes:
    """
    Derive the store key from the passphrase using scrypt.

    Args:
        passphrase: User's passphrase
        salt: 16-byte random salt (stored in the blob header, NOT secret)
        n, r, p: scrypt cost parameters (also stored in the header)

    Returns:
        32-byte store key
    """
    kdf = Scrypt(salt=salt, length=KEY_SIZE, n=n, r=r, p=p)
    return kdf.derive(passphrase.encode('utf-8'))


def derive_shared_key(shared_secret: bytes) -> bytes:
    """Turn a raw X25519 shared secret into an AES key with HKDF-SHA256."""
    h = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=None,
        info=HKDF_INFO,
    )
    return h.derive(shared_secret)


# =============================================================================
# Canonical Associated Data
# =============================================================================

def canonical_ad(ad: dict) -> bytes:
    """
    Convert associated data to canonical JSON bytes.

    Same dict -> same bytes: keys sorted, compact separators, UTF-8.
    """
    json_str = json.dumps(ad, separators=(",", ":"), sort_keys=True, ensure_ascii=False)
    return json_str.encode('utf-8')


def _symmetric_ad(n: int, r: int, p: int, salt: bytes) -> dict:
    return {
        "ctx": "passbox_store",
        "aead": "aes256gcm",
        "kdf": "scrypt",
        "n": n,
        "r": r,
        "p": p,
        "salt": salt.hex(),
    }


def _asymmetric_ad(ephemeral_public: bytes) -> dict:
    return {
        "ctx": "passbox_store",
        "aead": "aes256gcm",
        "kex": "x25519",
        "epk": ephemeral_public.hex(),
    }


# =============================================================================
# Encryption (AES-256-GCM)
# =============================================================================

def encrypt(key: bytes, plaintext: bytes, associated_data: dict):
    """
    Encrypt data with AES-256-GCM.

    Returns:
        (nonce, ciphertext) tuple; ciphertext includes the 16-byte tag
    """
    # NEVER reuse a nonce with the same key
    nonce = os.urandom(NONCE_SIZE)
    aesgcm = AESGCM(key)
    return nonce, aesgcm.encrypt(nonce, plaintext, canonical_ad(associated_data))


def decrypt(key: bytes, nonce: bytes, ciphertext: bytes, associated_data: dict) -> bytes:
    """
    Decrypt AES-256-GCM ciphertext.

    Raises:
        cryptography.exceptions.InvalidTag: wrong key, tampered data or AD
    """
    aesgcm = AESGCM(key)
    return aesgcm.decrypt(nonce, ciphertext, canonical_ad(associated_data))


# =============================================================================
# Store Blobs
# =============================================================================

def encrypt_symmetric(plaintext: bytes, passphrase: str, n: int = SCRYPT_N,
                      r: int = SCRYPT_R, p: int = SCRYPT_P) -> bytes:
    """Encrypt the store under a passphrase. Fresh salt and nonce every call."""
    salt = os.urandom(SALT_SIZE)
    key = derive_store_key(passphrase, salt, n, r, p)
    nonce, ciphertext = encrypt(key, plaintext, _symmetric_ad(n, r, p, salt))
    header = struct.pack(PREFIX_FMT, MAGIC, MODE_SYMMETRIC)
    header += struct.pack(SYMMETRIC_FMT, n, r, p, salt, nonce)
    return header + ciphertext


def encrypt_to_public_key(plaintext: bytes, recipient: X25519PublicKey) -> bytes:
    """Encrypt the store for a recipient's X25519 public key."""
    ephemeral = X25519PrivateKey.generate()
    ephemeral_public = ephemeral.public_key().public_bytes(
        serialization.Encoding.Raw, serialization.PublicFormat.Raw
    )
    key = derive_shared_key(ephemeral.exchange(recipient))
    nonce, ciphertext = encrypt(key, plaintext, _asymmetric_ad(ephemeral_public))
    header = struct.pack(PREFIX_FMT, MAGIC, MODE_ASYMMETRIC)
    header += struct.pack(ASYMMETRIC_FMT, ephemeral_public, nonce)
    return header + ciphertext


def blob_mode(blob: bytes) -> int:
    """Return MODE_SYMMETRIC or MODE_ASYMMETRIC, or raise ValueError."""
    if len(blob) < PREFIX_SIZE:
        raise ValueError("store is too small or corrupt")
    magic, mode = struct.unpack(PREFIX_FMT, blob[:PREFIX_SIZE])
    if magic != MAGIC:
        raise ValueError("invalid store magic")
    if mode not in (MODE_SYMMETRIC, MODE_ASYMMETRIC):
        raise ValueError(f"unsupported store mode {mode}")
    return mode


def decrypt_symmetric(blob: bytes, passphrase: str) -> bytes:
    """
    Decrypt a passphrase-encrypted store blob.

    Raises:
        ValueError: malformed header
        cryptography.exceptions.InvalidTag: wrong passphrase or tampering
    """
    if blob_mode(blob) != MODE_SYMMETRIC:
        raise ValueError("store was not encrypted with a passphrase")
    size = PREFIX_SIZE + struct.calcsize(SYMMETRIC_FMT)
    if len(blob) < size:
        raise ValueError("store header is truncated")
    n, r, p, salt, nonce = struct.unpack(SYMMETRIC_FMT, blob[PREFIX_SIZE:size])
    if n < 2 or n & (n - 1) or n > SCRYPT_MAX_N or not 1 <= r <= SCRYPT_MAX_R \
            or not 1 <= p <= SCRYPT_MAX_P or 128 * r * n > SCRYPT_MAX_MEMORY:
        raise ValueError("unsupported KDF parameters in store header")
    logger.debug("scrypt parameters n=%d r=%d p=%d", n, r, p)
    key = derive_store_key(passphrase, salt, n, r, p)
    return decrypt(key, nonce, blob[size:], _symmetric_ad(n, r, p, salt))


def decrypt_with_private_key(blob: bytes, private_key: X25519PrivateKey) -> bytes:
    """Decrypt a public-key store blob. Same errors as decrypt_symmetric()."""
    if blob_mode(blob) != MODE_ASYMMETRIC:
        raise ValueError("store was not encrypted to a public key")
    size = PREFIX_SIZE + struct.calcsize(ASYMMETRIC_FMT)
    if len(blob) < size:
        raise ValueError("store header is truncated")
    ephemeral_public, nonce = struct.unpack(ASYMMETRIC_FMT, blob[PREFIX_SIZE:size])
    shared = private_key.exchange(X25519PublicKey.from_public_bytes(ephemeral_public))
    key = derive_shared_key(shared)
    return decrypt(key, nonce, blob[size:], _asymmetric_ad(ephemeral_public))


# =============================================================================
# ASCII Armor
# =============================================================================

def armor(blob: bytes) -> str:
    """Wrap binary data in BEGIN/END lines with 64-column base64."""
    encoded = base64.b64encode(blob).decode('ascii')
    lines = [ARMOR_BEGIN]
    lines.extend(encoded[i:i + ARMOR_WIDTH] for i in range(0, len(encoded), ARMOR_WIDTH))
    lines.append(ARMOR_END)
    return "\n".join(lines) + "\n"


def dearmor(text: str) -> bytes:
    """Inverse of armor(). Raises ValueError if the armor is damaged."""
    lines = [line.strip() for line in text.strip().splitlines()]
    if len(lines) < 2 or lines[0] != ARMOR_BEGIN or lines[-1] != ARMOR_END:
        raise ValueError("missing armor header or footer")
    try:
        return base64.b64decode("".join(lines[1:-1]), validate=True)
    except binascii.Error as e:
        raise ValueError(f"invalid armor body: {e}")


# =============================================================================
# Key Files (public-key mode)
# =============================================================================

def generate_private_key() -> X25519PrivateKey:
    return X25519PrivateKey.generate()


def private_key_pem(private_key: X25519PrivateKey, passphrase: str) -> bytes:
    """Serialize a private key as PKCS#8 PEM, encrypted with the passphrase."""
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.BestAvailableEncryption(passphrase.encode('utf-8')),
    )


def public_key_pem(public_key: X25519PublicKey) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def load_private_key(data: bytes, passphrase: str) -> X25519PrivateKey:
    """
    Load a passphrase-protected private key.

    Raises:
        ValueError: wrong passphrase, unencrypted or not an X25519 key
    """
    try:
        key = serialization.load_pem_private_key(data, password=passphrase.encode('utf-8'))
    except TypeError as e:
        # raised for keys stored without encryption
        raise ValueError(str(e))
    if not isinstance(key, X25519PrivateKey):
        raise ValueError("private key is not an X25519 key")
    return key


def load_public_key(data: bytes) -> X25519PublicKey:
    key = serialization.load_pem_public_key(data)
    if not isinstance(key, X25519PublicKey):
        raise ValueError("public key is not an X25519 key")
    return key


# =============================================================================
# Random Bytes & Password Generation
# =============================================================================

def random_bytes(n: int) -> bytes:
    """Cryptographically secure random bytes (os.urandom)."""
    return os.urandom(n)


def generate_password(length: int = DEFAULT_PASSWORD_LENGTH) -> str:
    """
    Generate a random password from the base64 alphabet.

    Encodes `length` random bytes and cuts the result to `length`
    characters, so the padding '=' never shows up.

    Args:
        length: Wanted length, capped at MAX_PASSWORD_LENGTH

    Returns:
        Random password string
    """
    if length < 1:
        raise ValueError("password length must be at least 1")
    length = min(length, MAX_PASSWORD_LENGTH)
    return base64.b64encode(random_bytes(length)).decode('ascii')[:length]


# =============================================================================
# Helpers
# =============================================================================

def check_backend(asymmetric: bool = False) -> None:
    """
    Make sure the installed cryptography backend has every primitive we use.

    Raises:
        MissingDependency: scrypt, AES-GCM or (public-key mode) X25519 missing
    """
    try:
        Scrypt(salt=bytes(SALT_SIZE), length=KEY_SIZE, n=2, r=1, p=1)
        AESGCM(bytes(KEY_SIZE))
        if asymmetric:
            X25519PrivateKey.generate()
    except UnsupportedAlgorithm as e:
        raise MissingDependency(f"cryptography backend is missing a required algorithm: {e}")
