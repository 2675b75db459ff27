"""
passbox - Session (passphrase gate + persistence)

One Session per command invocation:

    LOCKED --unlock()--> UNLOCKED --persist()--> PERSISTED
      |                     |
      |                     +--abort()--> ABORTED
      |
      +--(bad passphrase)--> UNAUTHORIZED (terminal, the command fails)

- Reads call unlock(); writes call authenticate_for_write(), which is the
  same decryption plus permission to persist.
- A missing or empty backing file is only accepted for the very first
  `new` (allow_create=True).
- persist() encrypts the whole store again and replaces the file
  atomically (temp file + fsync + rename).
- lock() (also run on leaving the `with` block) drops the passphrase, the
  private key and the plaintext.

There is no locking between processes: two concurrent writers can
overwrite each other's changes.
"""

import enum
import logging
import os
import tempfile
from typing import Optional

from cryptography.exceptions import InvalidTag

from . import crypto, store
from .config import Config
from .errors import InvalidInput, NotFound, Unauthorized

logger = logging.getLogger(__name__)


class State(enum.Enum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"
    UNAUTHORIZED = "unauthorized"
    PERSISTED = "persisted"
    ABORTED = "aborted"


def write_atomic(path: str, data: bytes, mode: int = 0o600) -> None:
    """Write bytes to a temp file next to `path`, fsync, then rename over it."""
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=".passbox-", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise
    logger.debug("Wrote %d bytes to %s", len(data), path)


class Session:
    """
    Passphrase-gated access to the backing file for one command.

    Usage:
        with Session(config) as session:
            contents = session.authenticate_for_write(passphrase)
            contents = store.upsert(contents, name, line)
            session.persist(contents)
    """

    def __init__(self, config: Config):
        self.config = config
        self.path = config.location
        self.state = State.LOCKED
        self.writable = False
        self.contents: Optional[str] = None

        # Secrets (only present while unlocked)
        self._passphrase: Optional[str] = None
        self._private_key = None
        self._new_private_key = False

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.lock()

    def exists(self) -> bool:
        """True if the backing file exists and holds anything but whitespace."""
        return bool(self._read().strip())

    def unlock(self, passphrase: str) -> str:
        """
        Decrypt the backing file and return the plaintext store.

        Raises:
            NotFound: the backing file does not exist yet
            Unauthorized: wrong passphrase/key or corrupt file
        """
        return self._open(passphrase, allow_create=False)

    def authenticate_for_write(self, passphrase: str, allow_create: bool = False) -> str:
        """
        unlock() for a command that will persist().

        With allow_create, a missing backing file is an empty store that
        will be created (encrypted with this passphrase) on persist().
        """
        contents = self._open(passphrase, allow_create)
        self.writable = True
        return contents

    def persist(self, contents: str) -> None:
        """
        Encrypt `contents` and atomically replace the backing file.

        Raises:
            Unauthorized: session was not authenticated for writing
        """
        self._require_writable()
        contents = "".join(line + "\n" for line in store.lines(contents))
        plaintext = contents.encode('utf-8')

        if self.config.asymmetric:
            blob = crypto.encrypt_to_public_key(plaintext, self._recipient_key())
            if self._new_private_key:
                self._save_private_key()
        else:
            blob = crypto.encrypt_symmetric(plaintext, self._passphrase, n=self.config.kdf_n)

        write_atomic(self.path, crypto.armor(blob).encode('ascii'))
        self.contents = contents
        self.state = State.PERSISTED
        logger.debug("Store persisted (%d records)", len(store.lines(contents)))

    def abort(self) -> None:
        """Give up without writing (e.g. the user declined a delete)."""
        if self.state is State.UNLOCKED:
            self.state = State.ABORTED
            logger.debug("Session aborted, nothing written")

    def lock(self) -> None:
        """Drop the passphrase, keys and plaintext."""
        self._passphrase = None
        self._private_key = None
        self.contents = None
        self.writable = False
        if self.state is State.UNLOCKED:
            self.state = State.LOCKED

    # =========================================================================
    # INTERNAL HELPERS
    # =========================================================================

    def _read(self) -> bytes:
        try:
            with open(self.path, "rb") as f:
                return f.read()
        except FileNotFoundError:
            return b""

    def _open(self, passphrase: str, allow_create: bool) -> str:
        if self.state is not State.LOCKED:
            raise Unauthorized(f"Session is {self.state.value}, cannot unlock again")

        data = self._read()
        if not data.strip():
            if not allow_create:
                raise NotFound(f"No password store at {self.path} (create one with 'passbox new')")
            logger.debug("No store at %s, starting a new one", self.path)
            if self.config.asymmetric:
                self._private_key = self._load_private_key(passphrase, create=True)
            contents = ""
        else:
            logger.debug("Decrypting %s", self.path)
            try:
                blob = crypto.dearmor(data.decode('ascii'))
                if self.config.asymmetric:
                    self._private_key = self._load_private_key(passphrase)
                    plaintext = crypto.decrypt_with_private_key(blob, self._private_key)
                else:
                    plaintext = crypto.decrypt_symmetric(blob, passphrase)
                contents = plaintext.decode('utf-8')
            except (InvalidTag, ValueError) as e:
                # ValueError covers bad armor, bad header, bad key file and bad UTF-8
                self.state = State.UNAUTHORIZED
                self._private_key = None
                logger.debug("Unlock failed: %s", e)
                raise Unauthorized("Wrong passphrase or corrupt password store")

        self._passphrase = passphrase
        self.contents = contents
        self.state = State.UNLOCKED
        logger.debug("Unlocked store with %d records", len(store.lines(contents)))
        return contents

    def _load_private_key(self, passphrase: str, create: bool = False):
        key_path = self.config.key_path
        try:
            with open(key_path, "rb") as f:
                data = f.read()
        except FileNotFoundError:
            if not create:
                self.state = State.UNAUTHORIZED
                raise Unauthorized(f"Private key not found at {key_path}")
            logger.debug("No private key at %s, generating one", key_path)
            self._new_private_key = True
            return crypto.generate_private_key()
        try:
            return crypto.load_private_key(data, passphrase)
        except ValueError as e:
            self.state = State.UNAUTHORIZED
            logger.debug("Cannot load private key: %s", e)
            raise Unauthorized("Wrong passphrase for the private key")

    def _save_private_key(self) -> None:
        key_path = self.config.key_path
        write_atomic(key_path, crypto.private_key_pem(self._private_key, self._passphrase))
        write_atomic(key_path + ".pub", crypto.public_key_pem(self._private_key.public_key()),
                     mode=0o644)
        self._new_private_key = False
        logger.info("Created private key %s", key_path)

    def _recipient_key(self):
        if not self.config.recipient:
            return self._private_key.public_key()
        try:
            with open(self.config.recipient, "rb") as f:
                return crypto.load_public_key(f.read())
        except (OSError, ValueError) as e:
            raise InvalidInput(f"Cannot use recipient key {self.config.recipient}: {e}")

    def _require_writable(self) -> None:
        if self.state is not State.UNLOCKED or not self.writable:
            raise Unauthorized("Password store is not unlocked for writing")
