"""
passbox - Store Operations

The store is the decrypted plaintext: one record per line. Every operation
here takes the whole plaintext and returns new plaintext (or the matching
records). Nothing is kept between calls.

Name lookups are case-insensitive and compare the whole leading token, so
"foo" never matches "foobar|...".
"""

import logging
import re
from typing import List

from . import records
from .errors import NotFound
from .records import Record

logger = logging.getLogger(__name__)


def lines(contents: str) -> List[str]:
    """
    Non-blank lines of the store.

    Splits on '\\n' only (a trailing '\\r' is dropped). str.splitlines()
    would also break on '\\x0c', '\\u2028' and friends, which are allowed
    inside values.
    """
    stripped = (line.rstrip("\r") for line in contents.split("\n"))
    return [line for line in stripped if line.strip()]


def _same_name(line: str, name: str) -> bool:
    return records.name_of(line).lower() == name.lower()


def contains(contents: str, name: str) -> bool:
    return any(_same_name(line, name) for line in lines(contents))


def find_line(contents: str, name: str) -> str:
    """First raw line called `name`. Raises NotFound."""
    for line in lines(contents):
        if _same_name(line, name):
            return line
    raise NotFound(f"No entry named '{name}'")


def find_by_name(contents: str, name: str) -> List[Record]:
    """
    Records whose name equals `name`, ignoring case.

    Raises:
        NotFound: empty store or no such name
    """
    matches = [records.decode_line(line) for line in lines(contents) if _same_name(line, name)]
    if not matches:
        raise NotFound(f"No entry named '{name}'")
    return matches


def search(contents: str, pattern: str) -> List[Record]:
    """
    Records whose raw line matches `pattern` anywhere (username, password
    and extension fields included). Case-insensitive regular expression;
    a pattern that does not compile is matched literally.

    Raises:
        NotFound: nothing matches
    """
    try:
        regex = re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        logger.debug("Invalid regular expression %r (%s), searching literally", pattern, e)
        regex = re.compile(re.escape(pattern), re.IGNORECASE)
    matches = [records.decode_line(line) for line in lines(contents) if regex.search(line)]
    if not matches:
        raise NotFound(f"No entries match '{pattern}'")
    return matches


def upsert(contents: str, name: str, new_line: str) -> str:
    """
    Drop every record called `name` and append `new_line`.

    An empty `new_line` makes this a pure delete. Blank lines are removed
    and the result always ends with a newline (or is empty).
    """
    kept = [line for line in lines(contents) if not _same_name(line, name)]
    if new_line.strip():
        kept.append(new_line)
    logger.debug("upsert %s: %d -> %d records", "replace" if new_line else "delete",
                 len(lines(contents)), len(kept))
    return "".join(line + "\n" for line in kept)


def add_field(contents: str, name: str, key: str, value: str) -> str:
    """Append key:value to the first record called `name`."""
    line = find_line(contents, name)
    return upsert(contents, records.name_of(line), records.append_field(line, key, value))


def remove_field(contents: str, name: str, key: str) -> str:
    """
    Remove the first extension field called `key` from the record `name`.

    Raises:
        NotFound: no such record, or the record has no field `key`
    """
    line = find_line(contents, name)
    new_line = records.drop_field(line, key)
    if new_line is None:
        raise NotFound(f"Entry '{records.name_of(line)}' has no field '{key}'")
    return upsert(contents, records.name_of(line), new_line)
