from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, List, Optional, Sequence

from dotenv import load_dotenv

from .config import AppConfig, load_config
from .credential_cache import CredentialCache
from .errors import WebkioskError
from .logging_config import configure_logging
from .models import AttendanceRecord, Credentials
from .portal.client import ACADEMIC_CATEGORIES, EXAM_CATEGORIES, CategoryResult, WebkioskClient
from .portal.extract import CATEGORIES, extract, find_table
from .util.debug_bundle import create_debug_bundle
from .util.numbers import format_percent


logger = logging.getLogger("juet_webkiosk")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_NEEDS_USER = 2
EXIT_TRANSIENT = 3

# CLI command -> record category.
_FETCH_COMMANDS = {
    "attendance": "attendance",
    "marks": "marks",
    "cgpa": "cgpa",
    "subjects": "subjects",
    "faculty": "faculty",
    "disciplinary": "disciplinary",
    "seating": "seating",
}


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="juet-webkiosk")
    p.add_argument(
        "--env-file",
        default=".env",
        help="Path to a dotenv file (default: .env). If missing, env vars must already be set.",
    )
    p.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml)")
    p.add_argument("--json", action="store_true", help="Print results as JSON instead of text")

    sub = p.add_subparsers(dest="cmd", required=True)

    login = sub.add_parser("login", help="Log in to Webkiosk and cache the credentials on success")
    login.add_argument("--enrollment", default="", help="Enrollment number (default: WEBKIOSK_ENROLLMENT)")
    login.add_argument("--dob", default="", help="Date of birth, DD-MM-YYYY (default: WEBKIOSK_DOB)")
    login.add_argument(
        "--password",
        default="",
        help="Portal password (default: WEBKIOSK_PASSWORD). Prefer the env var; flags end up in shell history.",
    )

    sub.add_parser("logout", help="Forget the portal session and the cached credentials")

    for cmd, category in _FETCH_COMMANDS.items():
        sub.add_parser(cmd, help=f"Fetch {category} records")

    sub.add_parser("academic", help="Fetch attendance, subjects, faculty and disciplinary records together")
    sub.add_parser("exams", help="Fetch marks, CGPA and seating plan together")

    parse_html = sub.add_parser("parse-html", help="Run the extractor on a saved page (offline)")
    parse_html.add_argument("category", choices=list(CATEGORIES), help="Record kind the page holds")
    parse_html.add_argument("path", help="Path to the saved .html file")

    bundle = sub.add_parser("debug-bundle", help="Zip logs + saved HTML snapshots for sharing (no secrets)")
    bundle.add_argument("--out-dir", default="data", help="Directory for the zip (default: data)")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    env_path = Path(args.env_file)
    if env_path.exists():
        load_dotenv(env_path)

    # Default logging: can be overridden once config is loaded.
    configure_logging(level=os.getenv("LOG_LEVEL", "INFO"))

    if args.cmd == "parse-html":
        html = Path(args.path).read_text(encoding="utf-8", errors="replace")
        records = extract(args.category, html)
        if not records and find_table(args.category, html) is None:
            print(f"No {args.category} table found in {args.path}")
            return EXIT_FAILED
        _print_records(args.category, records, as_json=args.json)
        return EXIT_OK

    cfg = load_config(args.config)
    configure_logging(level=cfg.logging.level, file_path=cfg.logging.file_path)

    if args.cmd == "debug-bundle":
        out_zip = create_debug_bundle(
            debug_dir=cfg.debug.debug_dir or "data/debug",
            log_file=cfg.logging.file_path or "data/webkiosk.log",
            out_dir=args.out_dir,
            enrollment_id=cfg.credentials.enrollment_id,
        )
        print(f"✅ Debug bundle written: {out_zip}")
        return EXIT_OK

    cache = CredentialCache(cfg.cache.db_path)
    try:
        return asyncio.run(_run(args, cfg, cache))
    except WebkioskError as e:
        logger.error("%s failed: %s", args.cmd, e)
        print(f"❌ {e.user_message}")
        return _exit_code(e)
    except KeyboardInterrupt:
        print("Interrupted.")
        return 130
    finally:
        cache.close()


async def _run(args: argparse.Namespace, cfg: AppConfig, cache: CredentialCache) -> int:
    async with WebkioskClient.from_config(cfg, cache=cache) as client:
        if args.cmd == "login":
            creds = _login_credentials(args, cfg)
            if creds is None:
                print("❌ Enrollment number, date of birth and password are all required.")
                return EXIT_NEEDS_USER
            if not await client.login(creds):
                print("❌ Login was rejected. Check your enrollment number, date of birth and password.")
                return EXIT_NEEDS_USER
            print(f"✅ Logged in as {creds.enrollment_id}")
            return EXIT_OK

        if args.cmd == "logout":
            await client.logout()
            print("✅ Logged out; cached credentials removed.")
            return EXIT_OK

        creds = cfg.credentials.to_credentials()

        if args.cmd in _FETCH_COMMANDS:
            category = _FETCH_COMMANDS[args.cmd]
            records = await client.get_category(category, creds)
            _print_records(category, records, as_json=args.json)
            return EXIT_OK

        if args.cmd in ("academic", "exams"):
            categories = ACADEMIC_CATEGORIES if args.cmd == "academic" else EXAM_CATEGORIES
            results = await client.gather_categories(categories, creds)
            _print_results(results, as_json=args.json)
            failures = [r.error for r in results.values() if r.error is not None]
            if not failures:
                return EXIT_OK
            # Worst outcome wins: a credential problem beats a transient one.
            return max(_exit_code(e) for e in failures)

    raise AssertionError("Unhandled command")


def _login_credentials(args: argparse.Namespace, cfg: AppConfig) -> Optional[Credentials]:
    base = cfg.credentials
    merged = base.model_copy(
        update={
            "enrollment_id": args.enrollment or base.enrollment_id,
            "date_of_birth": args.dob or base.date_of_birth,
            "password": args.password or base.password,
        }
    )
    return merged.to_credentials()


def _exit_code(err: WebkioskError) -> int:
    if err.requires_user_input:
        return EXIT_NEEDS_USER
    if err.retryable:
        return EXIT_TRANSIENT
    return EXIT_FAILED


def _record_line(record: Any) -> str:
    if isinstance(record, AttendanceRecord):
        return f"{record.subject}\t{format_percent(record.percentage)}\t{record.status.value}"
    data = record.model_dump()
    return "  ".join(f"{k}={v}" for k, v in data.items() if v is not None)


def _print_records(category: str, records: Sequence[Any], *, as_json: bool) -> None:
    if as_json:
        print(json.dumps([r.model_dump(mode="json") for r in records], indent=2))
        return
    if not records:
        print(f"No {category} records.")
        return
    for r in records:
        print(_record_line(r))


def _print_results(results: dict[str, CategoryResult], *, as_json: bool) -> None:
    if as_json:
        out = {
            category: {
                "ok": r.ok,
                "records": [rec.model_dump(mode="json") for rec in r.records],
                "error": None if r.error is None else str(r.error),
            }
            for category, r in results.items()
        }
        print(json.dumps(out, indent=2))
        return

    for category, r in results.items():
        print(f"== {category} ==")
        if r.error is not None:
            print(f"  ❌ {r.error.user_message}")
            continue
        if not r.records:
            print("  (none)")
        for rec in r.records:
            print(f"  {_record_line(rec)}")
