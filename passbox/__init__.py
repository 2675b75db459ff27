"""
passbox - Command-line Password Manager

Stores credential records in a single encrypted file and edits them one
command at a time. Every invocation decrypts the file, applies one change
and writes it back.

Key Features:
- One armored, authenticated file: AES-256-GCM + scrypt
- Optional public-key mode: X25519 + HKDF
- Plain line-based record format inside the ciphertext
- Atomic writes (temp file + rename)

Components:
- crypto.py: Cipher service (key derivation, encryption, armor, random bytes)
- records.py: Record codec (name|username|password|key:value...)
- store.py: Operations over the decrypted store contents
- session.py: Passphrase gate and persistence
- terminal.py: Prompts and masked password entry
- commands.py: One function per CLI action
- cli.py: Command-line interface (uses built-in argparse)

Usage:
    passbox new                         # Create an entry
    passbox get github                  # Show an entry
    passbox search git                  # Search all entries
    passbox update github               # Change username/password
    passbox add-field github            # Attach key:value to an entry
    passbox remove-field github url     # Drop an extension field
    passbox delete github               # Remove an entry
    passbox generate                    # Print a random password
"""

__version__ = "1.0.0"
__author__ = "passbox contributors"
