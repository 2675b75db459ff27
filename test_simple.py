"""
passbox - Self-Tests (cipher service, record codec, store operations)

Run with: pytest   (or: python test_simple.py)

What it checks:
- scrypt + AES-GCM round trip; wrong passphrase and tampering fail
- public-key mode round trip
- ASCII armor
- password generation (default length, cap, alphabet)
- record encode/decode, partial lines, delimiter rejection
- find_by_name / search / upsert / add_field / remove_field properties
"""

import os
import string
import struct
import warnings

import pytest
from cryptography.exceptions import InvalidTag

import passbox
from passbox import crypto, records, store
from passbox.errors import InvalidInput, NotFound
from passbox.records import Record

# Cheap scrypt cost so the suite stays fast
TEST_N = 2**10

CONTENTS = (
    "github|alice|secret123\n"
    "gitlab|bob|hunter2|url:https://gitlab.com\n"
)


# =============================================================================
# Cipher service
# =============================================================================

def test_kdf():
    """Test key derivation from passphrase."""
    salt = crypto.random_bytes(crypto.SALT_SIZE)

    key1 = crypto.derive_store_key("test_passphrase", salt, n=TEST_N)
    key2 = crypto.derive_store_key("test_passphrase", salt, n=TEST_N)
    assert key1 == key2, "KDF should be deterministic"
    assert len(key1) == 32, "Key should be 32 bytes"

    key3 = crypto.derive_store_key("different_passphrase", salt, n=TEST_N)
    assert key1 != key3, "Different passphrases should give different keys"


def test_encryption():
    """Test AES-GCM encryption/decryption with associated data."""
    key = crypto.random_bytes(32)
    plaintext = b"This is a secret message!"
    ad = {"ctx": "test"}

    nonce, ciphertext = crypto.encrypt(key, plaintext, ad)
    assert crypto.decrypt(key, nonce, ciphertext, ad) == plaintext

    tampered = bytearray(ciphertext)
    tampered[0] ^= 1
    with pytest.raises(InvalidTag):
        crypto.decrypt(key, nonce, bytes(tampered), ad)

    with pytest.raises(InvalidTag):
        crypto.decrypt(key, nonce, ciphertext, {"ctx": "other"})


def test_store_blob_roundtrip():
    plaintext = CONTENTS.encode()
    blob = crypto.encrypt_symmetric(plaintext, "pass", n=TEST_N)

    assert plaintext not in blob
    assert crypto.decrypt_symmetric(blob, "pass") == plaintext

    with pytest.raises(InvalidTag):
        crypto.decrypt_symmetric(blob, "wrong")


def test_fresh_salt_and_nonce_per_write():
    blob1 = crypto.encrypt_symmetric(b"same", "pass", n=TEST_N)
    blob2 = crypto.encrypt_symmetric(b"same", "pass", n=TEST_N)
    assert blob1 != blob2


def test_header_tampering_detected():
    """scrypt parameters and salt are bound as associated data."""
    blob = bytearray(crypto.encrypt_symmetric(b"data", "pass", n=TEST_N))

    # Change N to another valid power of two
    struct.pack_into(">I", blob, crypto.PREFIX_SIZE, TEST_N * 2)
    with pytest.raises(InvalidTag):
        crypto.decrypt_symmetric(bytes(blob), "pass")

    # Not a power of two: rejected before any key derivation
    struct.pack_into(">I", blob, crypto.PREFIX_SIZE, 1000)
    with pytest.raises(ValueError):
        crypto.decrypt_symmetric(bytes(blob), "pass")


def test_scrypt_memory_bound():
    """N and r are each in range, but together would need 4 GiB."""
    blob = bytearray(crypto.encrypt_symmetric(b"data", "pass", n=TEST_N))
    struct.pack_into(">II", blob, crypto.PREFIX_SIZE, crypto.SCRYPT_MAX_N, crypto.SCRYPT_MAX_R)
    with pytest.raises(ValueError):
        crypto.decrypt_symmetric(bytes(blob), "pass")


def test_malformed_blobs_rejected():
    with pytest.raises(ValueError):
        crypto.decrypt_symmetric(b"PB", "pass")
    with pytest.raises(ValueError):
        crypto.decrypt_symmetric(b"NOPE\x01" + bytes(40), "pass")
    with pytest.raises(ValueError):
        crypto.decrypt_symmetric(crypto.MAGIC + b"\x01" + bytes(4), "pass")


def test_public_key_roundtrip():
    key = crypto.generate_private_key()
    blob = crypto.encrypt_to_public_key(b"github|alice|pw\n", key.public_key())

    assert crypto.decrypt_with_private_key(blob, key) == b"github|alice|pw\n"

    with pytest.raises(InvalidTag):
        crypto.decrypt_with_private_key(blob, crypto.generate_private_key())

    # A public-key blob is not a passphrase blob
    with pytest.raises(ValueError):
        crypto.decrypt_symmetric(blob, "pass")


def test_private_key_file():
    key = crypto.generate_private_key()
    pem = crypto.private_key_pem(key, "pass")
    assert b"ENCRYPTED" in pem

    loaded = crypto.load_private_key(pem, "pass")
    assert crypto.public_key_pem(loaded.public_key()) == crypto.public_key_pem(key.public_key())

    with pytest.raises(ValueError):
        crypto.load_private_key(pem, "wrong")

    public = crypto.load_public_key(crypto.public_key_pem(key.public_key()))
    assert crypto.public_key_pem(public) == crypto.public_key_pem(key.public_key())


def test_armor():
    blob = crypto.random_bytes(200)
    text = crypto.armor(blob)
    lines = text.splitlines()

    assert lines[0] == crypto.ARMOR_BEGIN
    assert lines[-1] == crypto.ARMOR_END
    assert all(len(line) <= crypto.ARMOR_WIDTH for line in lines[1:-1])
    assert crypto.dearmor(text) == blob

    with pytest.raises(ValueError):
        crypto.dearmor("\n".join(lines[:-1]))
    with pytest.raises(ValueError):
        crypto.dearmor(f"{crypto.ARMOR_BEGIN}\n!!!not base64!!!\n{crypto.ARMOR_END}\n")


def test_password_generation():
    alphabet = set(string.ascii_letters + string.digits + "+/")

    pwd = crypto.generate_password()
    assert len(pwd) == 20, "Default length should be 20"
    assert set(pwd) <= alphabet

    for length in (1, 2, 3, 4, 17, 100):
        assert len(crypto.generate_password(length)) == length
        assert "=" not in crypto.generate_password(length)

    assert len(crypto.generate_password(500)) == 100, "Length is capped at 100"

    with pytest.raises(ValueError):
        crypto.generate_password(0)


# =============================================================================
# Record codec
# =============================================================================

def test_record_roundtrip():
    record = Record("github", "alice", "secret123",
                    [("url", "https://github.com:443/login"), ("note", "")])
    line = records.encode_record(record)
    assert line == "github|alice|secret123|url:https://github.com:443/login|note:"
    assert records.decode_line(line) == record


def test_partial_lines():
    assert records.decode_line("github") == Record("github", "", "", [])
    assert records.decode_line("github|alice") == Record("github", "alice", "", [])
    assert records.decode_line("github|alice|pw|") == Record("github", "alice", "pw", [])
    assert records.decode_line("github|alice|pw|flag").fields == [("flag", "")]


def test_delimiters_rejected():
    bad = [
        Record("git|hub", "alice", "pw"),
        Record("github", "al|ice", "pw"),
        Record("github", "alice", "p|w"),
        Record("github", "alice", "pw\nx"),
        Record("", "alice", "pw"),
        Record("github", "alice", "pw", [("u:rl", "x")]),
        Record("github", "alice", "pw", [("url", "a|b")]),
    ]
    for record in bad:
        with pytest.raises(InvalidInput):
            records.encode_record(record)


def test_get_field_returns_first_match():
    record = records.decode_line("x|u|p|pin:1234|pin:9999")
    assert record.get_field("pin") == "1234"
    assert record.get_field("missing") is None


def test_format_record():
    record = Record("github", "alice", "secret123", [("url", "https://github.com")])
    assert records.format_record(record) == (
        "Name: github\nUsername: alice\nPassword: secret123\nurl: https://github.com"
    )
    assert "secret123" not in records.format_record(record, hide_password=True)


# =============================================================================
# Store operations
# =============================================================================

def test_find_by_name_case_insensitive():
    assert store.find_by_name(CONTENTS, "GitHub") == store.find_by_name(CONTENTS, "github")
    assert store.find_by_name(CONTENTS, "github") == [Record("github", "alice", "secret123")]


def test_find_by_name_prefix_safety():
    contents = "foobar|x|y\n"
    with pytest.raises(NotFound):
        store.find_by_name(contents, "foo")
    assert len(store.find_by_name(contents + "foo|a|b\n", "foo")) == 1


def test_find_in_empty_store():
    with pytest.raises(NotFound):
        store.find_by_name("", "github")
    with pytest.raises(NotFound):
        store.search("\n\n", "git")


def test_search():
    names = [r.name for r in store.search(CONTENTS, "git")]
    assert names == ["github", "gitlab"]

    # Matches anywhere in the line, ignoring case
    assert [r.name for r in store.search(CONTENTS, "HUNTER")] == ["gitlab"]
    assert [r.name for r in store.search(CONTENTS, "^git(hub|x)")] == ["github"]

    with pytest.raises(NotFound):
        store.search(CONTENTS, "nomatch")


def test_search_invalid_regex_is_literal():
    contents = "notes|me|pw|lang:c++\n"
    assert [r.name for r in store.search(contents, "c++")] == ["notes"]


def test_upsert_idempotent():
    once = store.upsert(CONTENTS, "github", "github|alice|changed")
    twice = store.upsert(once, "github", "github|alice|changed")
    assert once == twice


def test_upsert_uniqueness():
    contents = "a|1|1\nA|2|2\nb|x|x\n"
    result = store.upsert(contents, "a", "a|3|3")
    assert store.find_by_name(result, "a") == [Record("a", "3", "3")]
    assert result == "b|x|x\na|3|3\n"


def test_upsert_delete_and_blank_lines():
    contents = "\n   \ngithub|a|b\n\n\ngitlab|c|d\n"
    assert store.upsert(contents, "github", "") == "gitlab|c|d\n"
    assert store.upsert("github|a|b\n", "github", "") == ""


def test_add_field():
    result = store.add_field(CONTENTS, "github", "url", "https://github.com")
    record = store.find_by_name(result, "github")[0]
    assert record.fields == [("url", "https://github.com")]
    assert store.find_by_name(result, "gitlab")[0].fields == [("url", "https://gitlab.com")]

    with pytest.raises(NotFound):
        store.add_field(CONTENTS, "missing", "k", "v")


def test_remove_field():
    result = store.remove_field(CONTENTS, "gitlab", "url")
    assert store.find_by_name(result, "gitlab")[0].fields == []


def test_remove_field_first_match_only():
    result = store.remove_field("x|u|p|k:1|k:2\n", "x", "k")
    assert store.find_by_name(result, "x")[0].fields == [("k", "2")]


def test_remove_field_when_text_recurs():
    """The removed field's text also appears inside another value."""
    result = store.remove_field("x|u|p|c:a:b|a:b\n", "x", "a")
    assert result == "x|u|p|c:a:b\n"


def test_remove_missing_field():
    with pytest.raises(NotFound):
        store.remove_field(CONTENTS, "github", "url")


def test_unicode_line_breaks_stay_inside_values():
    """Only '\\n' ends a record; form feed and U+2028 are plain characters."""
    for password in ("ab\x0ccd", "ab\u2028cd", "a\x1eb\x85c"):
        line = records.encode_record(Record("github", "alice", password))
        result = store.upsert("gitlab|bob|pw\n", "github", line)

        assert len(store.lines(result)) == 2
        assert store.find_by_name(result, "github") == [Record("github", "alice", password)]
        assert store.upsert(result, "github", line) == result


def test_stored_fields_kept_verbatim():
    """Tokens written by older versions survive edits of the same record."""
    legacy = "github|alice|secret|:orphan|flag||url:https://github.com\n"

    assert store.add_field(legacy, "github", "pin", "1234") == (
        "github|alice|secret|:orphan|flag||url:https://github.com|pin:1234\n"
    )
    assert store.remove_field(legacy, "GitHub", "url") == "github|alice|secret|:orphan|flag|\n"
    assert store.remove_field(legacy, "github", "") == "github|alice|secret|flag||url:https://github.com\n"

    line = store.find_line(legacy, "github")
    assert records.replace_credentials(line, "bob", "pw2") == (
        "github|bob|pw2|:orphan|flag||url:https://github.com"
    )

    # New input is still validated
    with pytest.raises(InvalidInput):
        store.add_field(legacy, "github", "", "x")
    with pytest.raises(InvalidInput):
        records.replace_credentials(line, "bob", "p|w")


def test_line_edits_pad_short_lines():
    assert records.append_field("github", "url", "x") == "github|||url:x"
    assert records.replace_credentials("github", "alice", "pw") == "github|alice|pw"
    assert records.drop_field("github|alice", "url") is None


def test_sources_compile_cleanly():
    """No invalid escape sequences or other compile-time warnings."""
    package_dir = os.path.dirname(passbox.__file__)
    for filename in sorted(os.listdir(package_dir)):
        if not filename.endswith(".py"):
            continue
        path = os.path.join(package_dir, filename)
        with open(path, encoding="utf-8") as f:
            source = f.read()
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            compile(source, path, "exec")


def run_all_tests():
    """Run every test in this file without pytest."""
    print("=" * 70)
    print("passbox - Cipher / Codec / Store Tests")
    print("=" * 70)

    tests = [obj for name, obj in sorted(globals().items()) if name.startswith("test_")]
    failed = []

    for test in tests:
        try:
            test()
            print(f"  [OK] {test.__name__}")
        except Exception as e:
            print(f"  [FAIL] {test.__name__}: {e!r}")
            failed.append((test.__name__, e))

    print("=" * 70)
    if not failed:
        print("[OK] ALL TESTS PASSED!")
    else:
        print(f"[FAIL] {len(failed)} TESTS FAILED")
    print("=" * 70)
    return not failed


if __name__ == "__main__":
    import sys
    sys.exit(0 if run_all_tests() else 1)
