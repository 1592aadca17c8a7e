"""
keyferry CLI — entry point for all operations.

Usage:
    keyferry version
    keyferry keychain read <service>           # print a secure note to stdout
    keyferry keychain write <file|->           # store a file (or stdin) as a note
    keyferry keychain delete <service>
    keyferry docker run <docker run args>      # pipe keys into a container
    keyferry docker entrypoint <cmd> [args]    # install piped keys, then exec
    keyferry docker create-seccomp-profile     # print the keyring seccomp profile
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from keyferry.config import Config, load_config
from keyferry.errors import KeyferryError, PluginError

logger = logging.getLogger(__name__)


def _add_keychain_options(parser: argparse.ArgumentParser, *, plugin: bool = True) -> None:
    parser.add_argument(
        "--keychain-type",
        help="file, data-protection-local, icloud, or all (read only)",
    )
    parser.add_argument("--account", help="Keychain account (default: current user)")
    if plugin:
        parser.add_argument(
            "--plugin",
            nargs="?",
            const="",
            metavar="BIN",
            help="Go through the entitled helper (default binary: keyferry-keychain-plugin)",
        )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="keyferry",
        description="keyferry — move secrets from the OS keychain into containers.",
    )
    parser.add_argument("--version", action="store_true", help="Show version and exit")

    subparsers = parser.add_subparsers(dest="command")

    # version
    subparsers.add_parser("version", help="Show version")

    # keychain
    kc_parser = subparsers.add_parser("keychain", help="Read and write secure notes")
    kc_sub = kc_parser.add_subparsers(dest="keychain_command")

    kc_read = kc_sub.add_parser("read", help="Print a secure note to stdout")
    _add_keychain_options(kc_read)
    kc_read.add_argument("service", help="Name of the note")

    kc_write = kc_sub.add_parser("write", help="Store a file as a secure note")
    _add_keychain_options(kc_write)
    kc_write.add_argument(
        "--update-in-place", action="store_true", help="Overwrite an existing note"
    )
    kc_write.add_argument("--accessibility", help="When the OS may release the note")
    kc_write.add_argument("--name", help="Note name (default: the file's name)")
    kc_write.add_argument("file", help="File to store, or - for stdin")

    kc_delete = kc_sub.add_parser("delete", help="Delete a secure note")
    _add_keychain_options(kc_delete, plugin=False)
    kc_delete.add_argument("service", help="Name of the note")

    # docker
    dk_parser = subparsers.add_parser("docker", help="Run containers with keys piped in")
    dk_sub = dk_parser.add_subparsers(dest="docker_command")

    dk_run = dk_sub.add_parser(
        "run",
        help="docker run -i --security-opt seccomp=<keyring profile> <args>",
    )
    dk_run.add_argument("--keychain-item", help="Keychain note holding the key list")
    dk_run.add_argument("--keys-file", help="Local YAML/JSON key list")
    dk_run.add_argument("--seccomp-url", help="Baseline profile URL (default: moby default.json)")
    dk_run.add_argument(
        "--offline", action="store_true", help="Use the bundled baseline instead of fetching"
    )
    _add_keychain_options(dk_run)

    dk_entry = dk_sub.add_parser("entrypoint", help="Install piped keys, then exec a command")
    dk_entry.add_argument("cmd", nargs=argparse.REMAINDER, help="Command and arguments")

    dk_seccomp = dk_sub.add_parser(
        "create-seccomp-profile", help="Write a seccomp profile that allows keyctl/add_key"
    )
    dk_seccomp.add_argument("--output", "-o", help="Write to this file instead of stdout")
    dk_seccomp.add_argument("--url", help="Baseline profile URL (default: moby default.json)")
    dk_seccomp.add_argument(
        "--offline", action="store_true", help="Use the bundled baseline instead of fetching"
    )

    argv = sys.argv[1:] if argv is None else list(argv)
    docker_args: list[str] = []
    if argv[:2] == ["docker", "run"]:
        own, docker_args = _split_docker_run(argv[2:])
        argv = ["docker", "run", *own]

    args = parser.parse_args(argv)
    args.docker_args = docker_args

    if args.version or args.command == "version":
        from keyferry import __version__

        print(f"keyferry {__version__}")
        return 0

    try:
        cfg = load_config()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    entrypoint = args.command == "docker" and args.docker_command == "entrypoint"
    logging.basicConfig(
        level=cfg.log_level or ("INFO" if entrypoint else "WARNING"),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        if args.command == "keychain":
            return _cmd_keychain(args, cfg)
        elif args.command == "docker":
            return _cmd_docker(args, cfg)
        else:
            parser.print_help()
            return 0
    except PluginError as e:
        print(f"Error: plugin error: {e.message}: {e.detail}", file=sys.stderr)
        if e.stderr:
            print(f"plugin stderr: {e.stderr}", file=sys.stderr)
        return 1
    except (KeyferryError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


# docker run options that take a value. --plugin takes an optional one.
_RUN_VALUE_OPTIONS = frozenset(
    {"--keychain-item", "--keys-file", "--seccomp-url", "--keychain-type", "--account"}
)
_RUN_FLAG_OPTIONS = frozenset({"--offline", "-h", "--help"})


def _split_docker_run(argv: list[str]) -> tuple[list[str], list[str]]:
    """Split `docker run` arguments into keyferry's options and docker's.

    keyferry options come first. The first token that is not one of them, or
    an explicit "--", starts the arguments forwarded verbatim to docker run.
    """
    i = 0
    while i < len(argv):
        token = argv[i]
        name, has_value, _ = token.partition("=")
        if token == "--":
            return argv[:i], argv[i + 1 :]
        if name in _RUN_VALUE_OPTIONS:
            i += 1 if has_value else 2
        elif name == "--plugin":
            takes_next = not has_value and i + 1 < len(argv) and not argv[i + 1].startswith("-")
            i += 2 if takes_next else 1
        elif token in _RUN_FLAG_OPTIONS:
            i += 1
        else:
            break
    return argv[:i], argv[i:]


def _account(args: argparse.Namespace, cfg: Config) -> str:
    return args.account or cfg.account


def _source(args: argparse.Namespace, cfg: Config, *, write: bool = False, **store_options):
    """The plugin client when --plugin is given, otherwise a direct store."""
    from keyferry.keychain import (
        new_readonly_store,
        new_store,
        open_vault,
        parse_backend_kind,
        parse_write_kind,
    )

    if write:
        kind = parse_write_kind(args.keychain_type or _default_write_kind(cfg))
    else:
        kind = parse_backend_kind(args.keychain_type or cfg.keychain_type)

    if getattr(args, "plugin", None) is not None:
        from keyferry.plugin import KeychainConfig, PluginFS

        config = KeychainConfig(
            binary=args.plugin or cfg.plugin.binary,
            keychain_path=cfg.vault.keychain_path,
            keychain_type=kind,
            account=_account(args, cfg),
            **store_options,
        )
        return PluginFS(config, timeout=cfg.plugin.timeout)

    vault = open_vault(cfg.vault)
    if write:
        return new_store(vault, kind, _account(args, cfg), **store_options)
    return new_readonly_store(vault, kind, _account(args, cfg))


def _default_write_kind(cfg: Config) -> str:
    return "file" if cfg.keychain_type in ("", "all") else cfg.keychain_type


def _cmd_keychain(args: argparse.Namespace, cfg: Config) -> int:
    sub = getattr(args, "keychain_command", None)

    if sub == "read":
        data = _source(args, cfg).read_file(args.service)
        sys.stdout.buffer.write(data)
        sys.stdout.buffer.flush()
        return 0

    elif sub == "write":
        from keyferry.keychain import DEFAULT_ACCESSIBILITY, parse_accessibility

        if args.file == "-":
            if not args.name:
                print("Error: --name is required when reading from stdin", file=sys.stderr)
                return 2
            data = sys.stdin.buffer.read()
        else:
            data = Path(args.file).read_bytes()
        name = args.name or Path(args.file).name
        accessibility = (
            parse_accessibility(args.accessibility) if args.accessibility else DEFAULT_ACCESSIBILITY
        )
        source = _source(
            args,
            cfg,
            write=True,
            update_in_place=args.update_in_place,
            accessibility=accessibility,
        )
        print(f"writing item {name!r} to keychain", file=sys.stderr)
        source.write_file(name, data)
        return 0

    elif sub == "delete":
        from keyferry.keychain import new_store, open_vault, parse_write_kind

        kind = parse_write_kind(args.keychain_type or _default_write_kind(cfg))
        new_store(open_vault(cfg.vault), kind, _account(args, cfg)).delete(args.service)
        return 0

    else:
        print("Usage: keyferry keychain {read|write|delete}", file=sys.stderr)
        return 2


def _cmd_docker(args: argparse.Namespace, cfg: Config) -> int:
    sub = getattr(args, "docker_command", None)

    if sub == "run":
        from keyferry.bridge import DockerLauncher, keyring_profile, load_credentials

        source = _source(args, cfg) if args.keychain_item else None
        credentials = load_credentials(
            keys_file=args.keys_file, keychain_item=args.keychain_item, source=source
        )
        profile = keyring_profile(
            args.seccomp_url or cfg.docker.seccomp_profile_url, offline=args.offline
        )
        return DockerLauncher(binary=cfg.docker.binary).run(args.docker_args, profile, credentials)

    elif sub == "entrypoint":
        from keyferry.bridge.entrypoint import Entrypoint
        from keyferry.bridge.keyring import SessionKeyring

        cmd = args.cmd[1:] if args.cmd[:1] == ["--"] else args.cmd
        if not cmd:
            print("Usage: keyferry docker entrypoint <command> [args...]", file=sys.stderr)
            return 2
        Entrypoint(keyring_factory=SessionKeyring, execve=os.execve).run(cmd, sys.stdin.buffer)
        return 0

    elif sub == "create-seccomp-profile":
        from keyferry.bridge import keyring_profile, render_profile, write_profile

        profile = keyring_profile(
            args.url or cfg.docker.seccomp_profile_url, offline=args.offline
        )
        if args.output:
            write_profile(profile, args.output)
        else:
            sys.stdout.buffer.write(render_profile(profile))
            sys.stdout.buffer.flush()
        return 0

    else:
        print(
            "Usage: keyferry docker {run|entrypoint|create-seccomp-profile}", file=sys.stderr
        )
        return 2


if __name__ == "__main__":
    sys.exit(main())
