from __future__ import annotations

import argparse
import logging
import sys
from collections import defaultdict
from collections.abc import Sequence
from pathlib import Path

from dotenv import load_dotenv

from fleet_upload.config.loader import DEFAULT_CONFIG_PATH, ClientConfig, ConfigError, load_config
from fleet_upload.excel.reader import WorkbookReadError, read_workbook_preview
from fleet_upload.excel.report import write_bucket_report
from fleet_upload.logging.init import log_summary, setup_logging
from fleet_upload.models.bucket import Bucket
from fleet_upload.models.results import SaveOutcome
from fleet_upload.models.upload_row import UploadRow
from fleet_upload.services.progress import BucketProgress
from fleet_upload.services.session import UploadSession
from fleet_upload.services.summary import render_summary_line

"""CLI entrypoint for the bulk job upload workflow.

Exit code contract:
- 0: every requested step succeeded
- 2: partial failure (a bucket submission, edit or rejection failed, or the
     backend skipped every submitted row)
- 1: fatal (configuration, intake, template download)
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

logger = logging.getLogger("fleet_upload.cli")


class EditSpecError(ValueError):
    pass


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv; its values win over the process environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_edit(spec: str) -> tuple[int, str, str]:
    """``ROW:FIELD=VALUE`` -> (row, field, value)."""
    head, sep, value = spec.partition("=")
    row_text, colon, field = head.partition(":")
    if not sep or not colon or not field.strip():
        raise EditSpecError(f"invalid --edit '{spec}' (expected ROW:FIELD=VALUE)")
    try:
        row = int(row_text)
    except ValueError as e:
        raise EditSpecError(f"invalid row number in --edit '{spec}'") from e
    return row, field.strip(), value


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="fleet-upload", description="Bulk job upload: validate, categorize, submit")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Client config YAML")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    up = sub.add_parser("upload", help="Upload a workbook and optionally submit buckets")
    up.add_argument("file", type=Path)
    up.add_argument("--content-type", help="Override the MIME type guessed from the file name")
    up.add_argument("--edit", action="append", default=[], metavar="ROW:FIELD=VALUE", help="Edit a row before submitting")
    up.add_argument("--reject", action="append", type=int, default=[], metavar="ROW", help="Exclude a row from every bucket")
    up.add_argument(
        "--submit",
        action="append",
        default=[],
        choices=[b.value for b in Bucket],
        help="Bucket to submit (repeatable, submitted in the given order)",
    )
    up.add_argument("--rows", nargs="+", type=int, metavar="N", help="Only submit these row numbers (default: whole bucket)")
    up.add_argument("--yes", action="store_true", help="Force-create database duplicates without prompting")
    up.add_argument("--report", type=Path, metavar="OUT.xlsx", help="Write the final buckets to a workbook")

    tpl = sub.add_parser("template", help="Download the upload template")
    tpl.add_argument("out", type=Path)

    ins = sub.add_parser("inspect", help="Show sheets, columns and first rows of a workbook (no backend call)")
    ins.add_argument("file", type=Path)
    ins.add_argument("--limit", type=int, default=5)
    return p.parse_args(argv)


def _prompt_force_create(rows: Sequence[UploadRow]) -> bool:
    numbers = ", ".join(str(r.row_number) for r in rows)
    try:
        answer = input(
            f"{len(rows)} row(s) already exist in the database (rows {numbers}). Create them anyway? [y/N] "
        )
    except EOFError:
        return False
    return answer.strip().lower() in {"y", "yes"}


def _emit_notices(session: UploadSession, start: int) -> int:
    # error notices were already logged by the session
    for notice in session.notices[start:]:
        if notice.level != "error":
            logger.info(notice.message)
    return len(session.notices)


def _inspect(path: Path, limit: int) -> int:
    try:
        sheets = read_workbook_preview(path, limit=limit)
    except WorkbookReadError as e:
        logger.error(f"inspect: {e}")
        return EXIT_FATAL
    for sheet in sheets:
        print(f"SHEET: {sheet.sheet_name} rows={sheet.row_count} cols={sheet.columns}")
        for row in sheet.rows:
            print(f"    {row}")
    return EXIT_SUCCESS_ALL


def _apply_edits(session: UploadSession, edits: list[str]) -> int:
    """Apply --edit options grouped per row; returns the number of failed rows."""
    failures = 0
    grouped: dict[int, list[tuple[str, str]]] = defaultdict(list)
    for spec in edits:
        try:
            row, field, value = _parse_edit(spec)
        except EditSpecError as e:
            logger.error(str(e))
            failures += 1
            continue
        grouped[row].append((field, value))

    for row_number, changes in sorted(grouped.items()):
        if not session.start_edit(row_number):
            failures += 1
            continue
        if not all(session.update_field(row_number, field, value) for field, value in changes):
            session.cancel_edit(row_number)
            failures += 1
            continue
        result = session.save_edit(row_number)
        if result is None or result.outcome is SaveOutcome.FAILED:
            session.cancel_edit(row_number)
            failures += 1
    return failures


def _run_upload(session: UploadSession, args: argparse.Namespace) -> int:
    if session.select_file(args.file, args.content_type) is None:
        log_path = session.flush_errors()
        if log_path is not None:
            logger.info(f"error log: {log_path}")
        return EXIT_FATAL
    seen = _emit_notices(session, 0)
    failures = 0

    for row_number in args.reject:
        row = session.preview.row(row_number) if session.preview else None
        if row is not None and row.is_rejected:
            continue
        if not session.toggle_reject(row_number):
            failures += 1

    failures += _apply_edits(session, args.edit)
    seen = _emit_notices(session, seen)

    counts = session.categorized().counts()
    for bucket in Bucket:
        logger.info(f"{bucket.title}: {counts[bucket.value]}")

    if args.submit:
        with BucketProgress(len(args.submit)) as progress:
            for name in args.submit:
                bucket = Bucket(name)
                progress.start_bucket(bucket)
                selection = args.rows if args.rows else session.select_all(bucket)
                result = session.upload_bucket(bucket, selection)
                if result is None or result.still_failing:
                    failures += 1
                elif result.confirm is not None and result.submitted_row_numbers and result.created_count == 0:
                    logger.warning(f"{bucket.title}: backend skipped every submitted row")
                    failures += 1
                progress.finish_bucket(result.created_count if result else 0)
                seen = _emit_notices(session, seen)

    if args.report:
        path = write_bucket_report(args.report, session.categorized())
        logger.info(f"bucket report written to {path}")

    log_path = session.flush_errors()
    if log_path is not None:
        logger.info(f"error log: {log_path}")

    summary_line = render_summary_line(session.categorized(), session.created_count)
    log_summary(summary_line.removeprefix("SUMMARY "))
    return EXIT_PARTIAL_FAILURE if failures else EXIT_SUCCESS_ALL


def _load(path: Path) -> ClientConfig | None:
    try:
        return load_config(path)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return None


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    setup_logging(debug=args.debug)
    if args.debug:
        logger.debug("debug mode enabled")

    if args.command == "inspect":
        return _inspect(args.file, args.limit)

    _load_env_file(Path(".env"), override=True)
    cfg = _load(args.config)
    if cfg is None:
        return EXIT_FATAL

    confirm = (lambda rows: True) if getattr(args, "yes", False) else _prompt_force_create
    session = UploadSession(cfg, confirm_create=confirm)

    if args.command == "template":
        path = session.download_template(args.out)
        session.flush_errors()
        if path is None:
            return EXIT_FATAL
        logger.info(f"template saved to {path}")
        return EXIT_SUCCESS_ALL

    return _run_upload(session, args)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
