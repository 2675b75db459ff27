"""
passbox - Command-line Interface

    passbox search <pattern>
    passbox get <name> [--copy]
    passbox generate | gen [--length N]
    passbox new
    passbox update <name>
    passbox delete <name>
    passbox add-field <name>
    passbox remove-field <name> <field>
    passbox help

Exit codes: 0 success, 1 any failure (including a declined delete),
130 interrupted.
"""

import argparse
import logging
import sys
from typing import List, Optional

from . import __version__, crypto
from .commands import (cmd_add_field, cmd_delete, cmd_generate, cmd_get, cmd_new,
                       cmd_remove_field, cmd_search, cmd_update)
from .config import Config, load_config
from .errors import InvalidInput, PassboxError, UserAborted
from .terminal import Terminal

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(levelname)s: %(message)s"


class PassboxArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that raises InvalidInput instead of exiting with 2."""

    def error(self, message):
        raise InvalidInput(message, usage=self.format_usage())


def build_parser() -> argparse.ArgumentParser:
    p = PassboxArgumentParser(
        prog="passbox",
        description="Command-line password manager with a single encrypted store.",
        epilog="Environment: PASSBOX_LOCATION, PASSBOX_ASYMMETRIC, PASSBOX_RECIPIENT, "
               "PASSBOX_KEY, PASSBOX_KDF_N, PASSBOX_DEBUG",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = p.add_subparsers(dest="cmd", metavar="<command>")

    p_search = sub.add_parser("search", help="Search all entries (case-insensitive regex)")
    p_search.add_argument("pattern", help="Text or regular expression")
    p_search.set_defaults(func=cmd_search)

    p_get = sub.add_parser("get", help="Show one entry")
    p_get.add_argument("name", help="Entry name (case-insensitive)")
    p_get.add_argument("-c", "--copy", action="store_true",
                       help="Copy the password to the clipboard instead of printing it")
    p_get.set_defaults(func=cmd_get)

    p_gen = sub.add_parser("generate", aliases=["gen"], help="Print a random password")
    p_gen.add_argument("-l", "--length", help="Password length (default 20, max 100)")
    p_gen.set_defaults(func=cmd_generate)

    p_new = sub.add_parser("new", help="Create an entry")
    p_new.set_defaults(func=cmd_new)

    p_update = sub.add_parser("update", help="Change the username/password of an entry")
    p_update.add_argument("name", help="Entry name")
    p_update.set_defaults(func=cmd_update)

    p_delete = sub.add_parser("delete", help="Delete an entry (asks for confirmation)")
    p_delete.add_argument("name", help="Entry name")
    p_delete.set_defaults(func=cmd_delete)

    p_add = sub.add_parser("add-field", help="Add a key:value field to an entry")
    p_add.add_argument("name", help="Entry name")
    p_add.set_defaults(func=cmd_add_field)

    p_rm = sub.add_parser("remove-field", help="Remove a field from an entry")
    p_rm.add_argument("name", help="Entry name")
    p_rm.add_argument("field", help="Field name")
    p_rm.set_defaults(func=cmd_remove_field)

    sub.add_parser("help", help="Show this help")

    return p


def setup_logging(debug: bool) -> None:
    logging.basicConfig(level=logging.DEBUG if debug else logging.WARNING, format=LOG_FORMAT)


def main(argv: Optional[List[str]] = None, config: Optional[Config] = None,
         term: Optional[Terminal] = None) -> int:
    parser = build_parser()
    term = term or Terminal()
    try:
        args = parser.parse_args(argv)
        if args.cmd in (None, "help"):
            term.write(parser.format_help().rstrip("\n"))
            return 0

        config = config or load_config()
        setup_logging(args.verbose or config.debug)
        logger.debug("Command %s on %s", args.cmd, config.location)
        crypto.check_backend(config.asymmetric)
        return args.func(args, config, term)
    except UserAborted as e:
        term.write(e.message)
        return e.exit_code
    except InvalidInput as e:
        if e.usage:
            sys.stderr.write(e.usage)
        print(f"passbox: {e.message}", file=sys.stderr)
        return e.exit_code
    except PassboxError as e:
        print(f"passbox: {e.message}", file=sys.stderr)
        return e.exit_code
    except OSError as e:
        print(f"passbox: {e}", file=sys.stderr)
        return 1
    except (KeyboardInterrupt, EOFError):
        print("\nInterrupted, nothing written.", file=sys.stderr)
        return 130
