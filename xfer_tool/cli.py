"""Command-line argument parsing for the transfer tool."""

from __future__ import annotations

import argparse
from typing import List, Optional

from .models import Protocol, Security


def _add_filters(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--include", nargs="+", default=[], metavar="MASK", help="Only names matching one of these masks")
    parser.add_argument("--exclude", nargs="+", default=[], metavar="MASK", help="Skip names matching any of these masks")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="xfer", description="FTP/SFTP/SCP transfer client")
    parser.add_argument("--env", type=str, default="xfer.yaml", help="Path to configuration file (.yaml or .env)")
    parser.add_argument("--profile", type=str, help="Configuration profile name")
    parser.add_argument("--show-config", action="store_true", help="Print effective configuration and exit")
    parser.add_argument("--log-file", type=str, help="Also write the log to this file")

    # session
    parser.add_argument("--host", type=str, help="Remote host")
    parser.add_argument("--port", type=int, help="Remote port (0 = protocol default)")
    parser.add_argument("--protocol", type=str, choices=[p.value for p in Protocol], help="Transfer protocol")
    parser.add_argument("--security", type=str, choices=[s.value for s in Security], help="FTP security mode")
    parser.add_argument("--user", type=str, help="User name")
    parser.add_argument("--password", nargs="?", const="__PROMPT__", help="Password (omit value to prompt)")
    parser.add_argument("--host-key-fingerprint", type=str, help="Expected SSH host key fingerprint")
    parser.add_argument("--key-path", type=str, help="SSH private key file")
    parser.add_argument("--active", action="store_true", help="Use active FTP mode instead of passive")
    parser.add_argument("--ignore-host-security", action="store_true",
                        help="Accept any SSH host key or TLS certificate for the mechanism in use")
    parser.add_argument("--timeout", type=int, help="Connection timeout in seconds")

    # behaviour
    parser.add_argument("--dry-run", action="store_true", help="Show what would be transferred without doing it")
    parser.add_argument("--confirm", action="store_true", help="Ask before each transfer")
    parser.add_argument("--report", type=str, metavar="DIR", help="Write outcome CSV/JSON reports to DIR")

    sub = parser.add_subparsers(dest="command")

    ls = sub.add_parser("list", help="List a remote directory")
    ls.add_argument("path", nargs="?", default="/", help="Remote directory")
    ls.add_argument("--file", action="store_true", help="Files only")
    ls.add_argument("--directory", action="store_true", help="Directories only")
    ls.add_argument("--recurse", action="store_true", help="Descend into subdirectories")
    ls.add_argument("--max-depth", type=int, help="Limit recursion depth")
    _add_filters(ls)

    send = sub.add_parser("send", help="Upload local files")
    send.add_argument("local", help="Local file, directory or wildcard")
    send.add_argument("remote", help="Remote destination (trailing / = into directory)")
    send.add_argument("--remove", action="store_true", help="Delete local source after a successful upload")
    _add_filters(send)

    receive = sub.add_parser("receive", help="Download remote files")
    receive.add_argument("remote", help="Remote file, directory or wildcard")
    receive.add_argument("local", help="Local destination")
    receive.add_argument("--remove", action="store_true", help="Delete remote source after a successful download")
    _add_filters(receive)

    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


__all__ = ["build_parser", "parse_args"]
