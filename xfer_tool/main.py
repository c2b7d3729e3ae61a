"""High-level entrypoint for the transfer tool."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import List, Optional

from .cli import parse_args
from .config import Config, load_config, printable_config
from .engine import TransferEngine
from .errors import ListingError, NoActiveSessionError, XferError
from .models import Direction, TransferRequest
from .progress import LoggingProgressReporter
from .report import summarize, write_report
from .session import Session, close_session, open_session
from .walker import ListFilter, list_directory

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_ERROR = 2


def setup_logger(log_file: Optional[str] = None) -> logging.Logger:
    logger = logging.getLogger("xfer_tool")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")

    sh = logging.StreamHandler(sys.stdout)
    sh.setFormatter(fmt)
    logger.addHandler(sh)

    if log_file:
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setFormatter(fmt)
        logger.addHandler(fh)
    return logger


def _ask(action: str, target: str) -> bool:
    answer = input(f"{action} -> {target}? [y/N] ").strip().lower()
    return answer in {"y", "yes"}


def _never(action: str, target: str) -> bool:
    return False


def _run_list(session: Session, args, cfg: Config) -> int:
    filters = ListFilter(
        include=cfg.include_globs + list(args.include),
        exclude=cfg.exclude_globs + list(args.exclude),
        files_only=args.file,
        directories_only=args.directory,
    )
    print(f"=== {args.path} ===")
    for entry in list_directory(session, args.path, filters, recurse=args.recurse, max_depth=args.max_depth):
        flag = "d" if entry.is_directory else "-"
        ts = entry.mtime.strftime("%Y-%m-%d %H:%M:%S") if entry.mtime else "-" * 19
        print(f"{flag} {entry.size:>12} {ts} {entry.path}")
    return EXIT_OK


def _run_transfer(session: Session, args, cfg: Config, direction: Direction, logger: logging.Logger) -> int:
    if direction is Direction.UPLOAD:
        source, destination = args.local, args.remote
    else:
        source, destination = args.remote, args.local
    request = TransferRequest(
        direction=direction,
        source=source,
        destination=destination,
        remove_source=args.remove,
        include=cfg.include_globs + list(args.include),
        exclude=cfg.exclude_globs + list(args.exclude),
    )
    confirm = _never if args.dry_run else (_ask if args.confirm else None)
    extra = {
        "direction": direction.value,
        "source": source,
        "destination": destination,
        "host": cfg.session.host,
        "profile_name": cfg.profile_name,
    }
    try:
        outcomes = TransferEngine(confirm=confirm, logger=logger).run(session, request)
    except ListingError as exc:
        # keep a record of what finished before the batch was aborted
        if args.report:
            out_dir = write_report(Path(args.report), exc.outcomes, extra=dict(extra, aborted=str(exc)))
            logger.info(f"[REPORT] {out_dir.resolve()}")
        raise

    summary = summarize(outcomes)
    logger.info(
        f"[DONE] {direction.value}: attempted={summary['attempted']} "
        f"ok={summary['succeeded']} failed={summary['failed']}"
    )
    if args.report:
        out_dir = write_report(Path(args.report), outcomes, extra=extra)
        logger.info(f"[REPORT] {out_dir.resolve()}")
    return EXIT_PARTIAL if summary["failed"] else EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        cfg = load_config(Path(args.env).resolve(), args)
    except (KeyError, ValueError) as exc:
        setup_logger().error(f"[CONFIG] {exc}")
        return EXIT_ERROR
    logger = setup_logger(cfg.log_file)

    if args.show_config:
        logger.info("[CONFIG]\n" + printable_config(cfg))
        if args.command is None:
            return EXIT_OK
    if args.command is None:
        logger.error("no command given (list, send, receive)")
        return EXIT_ERROR

    progress = LoggingProgressReporter(cfg.progress_print_interval, logger) if cfg.progress else None
    try:
        session = open_session(cfg.session, progress=progress)
    except (XferError, ValueError) as exc:
        logger.error(f"[OPEN] {exc}")
        return EXIT_ERROR

    code = EXIT_OK
    try:
        if args.command == "list":
            code = _run_list(session, args, cfg)
        elif args.command == "send":
            code = _run_transfer(session, args, cfg, Direction.UPLOAD, logger)
        else:
            code = _run_transfer(session, args, cfg, Direction.DOWNLOAD, logger)
    except XferError as exc:
        if exc.fatal:
            logger.error(f"[{args.command.upper()}] {exc}")
            code = EXIT_ERROR
        else:
            logger.warning(f"[{args.command.upper()}] {exc}")
    finally:
        try:
            close_session()
        except NoActiveSessionError as exc:
            logger.warning(f"[CLOSE] {exc}")
    return code


__all__ = ["main", "setup_logger"]
