"""
keyferry-keychain-plugin — the entitled helper.

Usage:
    keyferry-keychain-plugin                                  # serve one request on stdin/stdout
    keyferry-keychain-plugin delete <type> <account> <service>
    keyferry-keychain-plugin --help

stdout carries exactly one protocol response; all logging goes to stderr.
"""

from __future__ import annotations

import logging
import sys

from keyferry.config import load_config
from keyferry.errors import KeyferryError
from keyferry.keychain import new_store, open_vault, parse_write_kind
from keyferry.plugin.server import PluginServer

USAGE = """\
Usage: keyferry-keychain-plugin [--help | delete <type> <account> <service>]

With no arguments, reads one JSON request from stdin and writes one JSON
response to stdout.

Commands:
  delete <type> <account> <service>   delete a secure note (type: file,
                                      data-protection-local or icloud)
"""


def _cmd_delete(vault_config, kind_name: str, account: str, service: str) -> int:
    try:
        kind = parse_write_kind(kind_name)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    try:
        new_store(open_vault(vault_config), kind, account).delete(service)
    except KeyferryError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv

    if argv and argv[0] in ("-h", "--help"):
        print(USAGE, end="")
        return 0

    try:
        cfg = load_config()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=cfg.log_level or "INFO",
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    if argv:
        if argv[0] == "delete" and len(argv) == 4:
            return _cmd_delete(cfg.vault, *argv[1:])
        print(USAGE, end="", file=sys.stderr)
        return 2

    PluginServer(cfg.vault).serve(sys.stdin.buffer, sys.stdout.buffer)
    return 0


if __name__ == "__main__":
    sys.exit(main())
