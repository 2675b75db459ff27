"""
passbox - Record Codec

One credential per line of the decrypted store:

    name|username|password|key:value|key:value...

- '|' separates tokens; the first three are name, username and password
- every further token is an extension field, split on its FIRST ':'
  (so values may contain ':', e.g. URLs)
- short lines are fine: "github" or "github|alice" decode with empty
  username/password

Delimiters inside user input are rejected (InvalidInput) rather than escaped.
Lines are separated by '\\n' only; other Unicode line breaks ('\\x0c',
'\\u2028', ...) are ordinary characters inside a value.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .errors import InvalidInput

FIELD_DELIMITER = "|"
KEY_VALUE_DELIMITER = ":"

Field = Tuple[str, str]


@dataclass
class Record:
    """A stored credential: name, username, password and extension fields."""

    name: str
    username: str = ""
    password: str = ""
    fields: List[Field] = field(default_factory=list)

    def get_field(self, key: str):
        """Value of the first extension field called `key`, or None."""
        for k, v in self.fields:
            if k == key:
                return v
        return None


# =============================================================================
# Validation
# =============================================================================

def validate_value(value: str, label: str) -> str:
    """Reject the field delimiter and line breaks. Returns value unchanged."""
    if FIELD_DELIMITER in value:
        raise InvalidInput(f"{label} must not contain '{FIELD_DELIMITER}'")
    if "\n" in value or "\r" in value:
        raise InvalidInput(f"{label} must not contain line breaks")
    return value


def validate_name(name: str) -> str:
    if not name.strip():
        raise InvalidInput("Name must not be empty")
    return validate_value(name, "Name")


def validate_field_key(key: str) -> str:
    if not key.strip():
        raise InvalidInput("Field name must not be empty")
    if KEY_VALUE_DELIMITER in key:
        raise InvalidInput(f"Field name must not contain '{KEY_VALUE_DELIMITER}'")
    return validate_value(key, "Field name")


def validate_record(record: Record) -> Record:
    validate_name(record.name)
    validate_value(record.username, "Username")
    validate_value(record.password, "Password")
    for key, value in record.fields:
        validate_field_key(key)
        validate_value(value, f"Field '{key}'")
    return record


# =============================================================================
# Encode / Decode
# =============================================================================

def encode_record(record: Record) -> str:
    """
    Serialize a record to one store line.

    Raises:
        InvalidInput: a component contains a delimiter or a line break
    """
    validate_record(record)
    tokens = [record.name, record.username, record.password]
    tokens.extend(f"{key}{KEY_VALUE_DELIMITER}{value}" for key, value in record.fields)
    return FIELD_DELIMITER.join(tokens)


def decode_line(line: str) -> Record:
    """
    Parse one store line. Never fails: missing username/password become "",
    an extension token without ':' becomes (token, "") and
    empty extension tokens are skipped.
    """
    tokens = line.rstrip("\r\n").split(FIELD_DELIMITER)
    name = tokens[0]
    username = tokens[1] if len(tokens) > 1 else ""
    password = tokens[2] if len(tokens) > 2 else ""
    fields = []
    for token in tokens[3:]:
        if not token:
            continue
        key, _, value = token.partition(KEY_VALUE_DELIMITER)
        fields.append((key, value))
    return Record(name, username, password, fields)


def name_of(line: str) -> str:
    """Leading name token of a raw line (text up to the first '|')."""
    return line.split(FIELD_DELIMITER, 1)[0]


# =============================================================================
# Line edits
#
# These rewrite one stored line in place. Extension tokens already on the
# line are copied as they are, so data written by older versions (empty
# keys, tokens without ':', empty tokens) survives an edit unchanged. Only
# the new input is validated.
# =============================================================================

def _tokens(line: str) -> List[str]:
    tokens = line.rstrip("\r\n").split(FIELD_DELIMITER)
    return tokens + [""] * (3 - len(tokens))


def replace_credentials(line: str, username: str, password: str) -> str:
    """Same line with a new username and password."""
    validate_value(username, "Username")
    validate_value(password, "Password")
    tokens = _tokens(line)
    tokens[1:3] = [username, password]
    return FIELD_DELIMITER.join(tokens)


def append_field(line: str, key: str, value: str) -> str:
    """Same line with key:value added after the existing fields."""
    validate_field_key(key)
    validate_value(value, f"Field '{key}'")
    tokens = _tokens(line)
    tokens.append(f"{key}{KEY_VALUE_DELIMITER}{value}")
    return FIELD_DELIMITER.join(tokens)


def drop_field(line: str, key: str) -> Optional[str]:
    """Same line without its first field called `key`; None if there is none."""
    tokens = _tokens(line)
    for index in range(3, len(tokens)):
        if tokens[index] and tokens[index].partition(KEY_VALUE_DELIMITER)[0] == key:
            del tokens[index]
            return FIELD_DELIMITER.join(tokens)
    return None


def format_record(record: Record, hide_password: bool = False) -> str:
    """Display block: Name / Username / Password, then 'key: value' lines."""
    lines = [
        f"Name: {record.name}",
        f"Username: {record.username}",
        f"Password: {'********' if hide_password else record.password}",
    ]
    lines.extend(f"{key}: {value}" for key, value in record.fields)
    return "\n".join(lines)
