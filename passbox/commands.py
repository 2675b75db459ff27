"""
passbox - Commands

One cmd_* function per CLI action. Each one:
- asks for whatever it needs through the Terminal
- opens a Session, unlocks it with the passphrase
- applies one store operation and persists (for writes)
- prints the result and returns the exit code

Failures are raised as PassboxError subclasses; cli.main() reports them.
"""

import argparse
import logging
import os
from typing import List, Optional

import pyperclip

from . import crypto, records, store
from .config import Config
from .errors import InvalidInput, MissingDependency, UserAborted
from .records import Record
from .session import Session
from .terminal import Terminal

logger = logging.getLogger(__name__)


# =============================================================================
# Helpers
# =============================================================================

def print_records(term: Terminal, matches: List[Record], hide_password: bool = False) -> None:
    for i, record in enumerate(matches):
        if i:
            term.write()
        term.write(records.format_record(record, hide_password))


def ask_length(term: Terminal, value: Optional[str] = None) -> int:
    """Password length from `value` or a prompt (default 20, capped at 100)."""
    if value is None:
        value = term.ask("Password length", default=str(crypto.DEFAULT_PASSWORD_LENGTH))
    try:
        length = int(value)
    except ValueError:
        raise InvalidInput(f"Password length must be a number, got {value!r}")
    if length < 1:
        raise InvalidInput("Password length must be at least 1")
    if length > crypto.MAX_PASSWORD_LENGTH:
        term.write(f"Length capped at {crypto.MAX_PASSWORD_LENGTH}")
        length = crypto.MAX_PASSWORD_LENGTH
    return length


def ask_password(term: Terminal, current: Optional[str] = None) -> str:
    """
    Generated or typed (masked) password.

    With `current`, a blank answer keeps the existing password.
    """
    if term.confirm("Generate a random password?", default=False):
        password = crypto.generate_password(ask_length(term))
        term.write(f"Generated password: {password}")
        return password
    if current is None:
        return term.ask_secret("Password")
    password = term.ask_secret("Password (blank keeps the current one)")
    return password or current


def ask_passphrase(term: Terminal, session: Session) -> str:
    """Passphrase for this command; asked twice when a new store is created."""
    config = session.config
    creating = not session.exists() and not (config.asymmetric and os.path.exists(config.key_path))
    if not creating:
        return term.ask_passphrase("Passphrase")
    term.write(f"Creating a new password store at {session.path}")
    passphrase = term.ask_passphrase("New passphrase")
    if not passphrase:
        raise InvalidInput("Passphrase must not be empty")
    if term.ask_passphrase("Confirm passphrase") != passphrase:
        raise InvalidInput("Passphrases don't match")
    return passphrase


def copy_to_clipboard(text: str) -> None:
    try:
        pyperclip.copy(text)
    except pyperclip.PyperclipException as e:
        raise MissingDependency(f"Clipboard is not available: {e}")


# =============================================================================
# Read commands
# =============================================================================

def cmd_search(args: argparse.Namespace, config: Config, term: Terminal) -> int:
    with Session(config) as session:
        contents = session.unlock(term.ask_passphrase("Passphrase"))
        matches = store.search(contents, args.pattern)
    logger.debug("search matched %d entries", len(matches))
    print_records(term, matches)
    return 0


def cmd_get(args: argparse.Namespace, config: Config, term: Terminal) -> int:
    with Session(config) as session:
        contents = session.unlock(term.ask_passphrase("Passphrase"))
        record = store.find_by_name(contents, args.name)[0]
    if args.copy:
        copy_to_clipboard(record.password)
        print_records(term, [record], hide_password=True)
        term.write(f"Password for '{record.name}' copied to clipboard")
    else:
        print_records(term, [record])
    return 0


def cmd_generate(args: argparse.Namespace, config: Config, term: Terminal) -> int:
    length = ask_length(term, args.length)
    term.write(crypto.generate_password(length))
    return 0


# =============================================================================
# Write commands
# =============================================================================

def cmd_new(args: argparse.Namespace, config: Config, term: Terminal) -> int:
    name = records.validate_name(term.ask("Name").strip())
    username = records.validate_value(term.ask("Username"), "Username")
    password = records.validate_value(ask_password(term), "Password")
    line = records.encode_record(Record(name, username, password))

    with Session(config) as session:
        contents = session.authenticate_for_write(ask_passphrase(term, session), allow_create=True)
        replaced = store.contains(contents, name)
        session.persist(store.upsert(contents, name, line))

    term.write(f"Replaced entry '{name}'" if replaced else f"Added entry '{name}'")
    return 0


def cmd_update(args: argparse.Namespace, config: Config, term: Terminal) -> int:
    with Session(config) as session:
        contents = session.authenticate_for_write(term.ask_passphrase("Passphrase"))
        line = store.find_line(contents, args.name)
        record = records.decode_line(line)

        username = records.validate_value(term.ask("Username", default=record.username), "Username")
        password = records.validate_value(ask_password(term, current=record.password), "Password")
        updated = records.replace_credentials(line, username, password)
        session.persist(store.upsert(contents, record.name, updated))

    term.write(f"Updated entry '{record.name}'")
    return 0


def cmd_delete(args: argparse.Namespace, config: Config, term: Terminal) -> int:
    with Session(config) as session:
        contents = session.authenticate_for_write(term.ask_passphrase("Passphrase"))
        record = store.find_by_name(contents, args.name)[0]

        print_records(term, [record], hide_password=True)
        if not term.confirm(f"Delete entry '{record.name}'?", default=False):
            session.abort()
            raise UserAborted()
        session.persist(store.upsert(contents, record.name, ""))

    term.write(f"Deleted entry '{record.name}'")
    return 0


def cmd_add_field(args: argparse.Namespace, config: Config, term: Terminal) -> int:
    with Session(config) as session:
        contents = session.authenticate_for_write(term.ask_passphrase("Passphrase"))
        record = store.find_by_name(contents, args.name)[0]

        key = records.validate_field_key(term.ask("Field name").strip())
        value = records.validate_value(term.ask("Field value"), f"Field '{key}'")
        session.persist(store.add_field(contents, record.name, key, value))

    term.write(f"Added field '{key}' to '{record.name}'")
    return 0


def cmd_remove_field(args: argparse.Namespace, config: Config, term: Terminal) -> int:
    with Session(config) as session:
        contents = session.authenticate_for_write(term.ask_passphrase("Passphrase"))
        record = store.find_by_name(contents, args.name)[0]
        session.persist(store.remove_field(contents, record.name, args.field))

    term.write(f"Removed field '{args.field}' from '{record.name}'")
    return 0
