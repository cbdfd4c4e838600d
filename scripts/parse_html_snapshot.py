#!/usr/bin/env python3
"""
Offline replay of saved Webkiosk pages (DEBUG_DIR/*.html) for chasing parser regressions.

    python scripts/parse_html_snapshot.py records attendance data/debug/attendance_*.html
    python scripts/parse_html_snapshot.py captcha saved_index.html
"""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

# Runnable from a checkout without `pip install -e .`.
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from juet_webkiosk.portal.captcha import locate_captcha  # noqa: E402
from juet_webkiosk.portal.extract import CATEGORIES, extract, find_table  # noqa: E402


def _load(path: str) -> str:
    source = Path(path)
    if not source.is_file():
        raise SystemExit(f"No such snapshot: {source}")
    return source.read_text(encoding="utf-8", errors="replace")


def _records(category: str, files: list[str]) -> list[dict]:
    results = []
    for name in files:
        html = _load(name)
        results.append(
            {
                "file": name,
                "category": category,
                "table_found": find_table(category, html) is not None,
                "records": [r.model_dump(mode="json") for r in extract(category, html)],
            }
        )
    return results


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="parse_html_snapshot", description=__doc__.splitlines()[1])
    modes = parser.add_subparsers(dest="mode", required=True)

    rec = modes.add_parser("records", help="Extract records from saved data pages")
    rec.add_argument("category", choices=list(CATEGORIES))
    rec.add_argument("files", nargs="+", help="Saved .html data pages")
    rec.add_argument("--out", default="", help="Write JSON here instead of stdout")

    cap = modes.add_parser("captcha", help="Show the captcha token on a saved login page")
    cap.add_argument("file")

    args = parser.parse_args(argv)

    if args.mode == "captcha":
        token = locate_captcha(_load(args.file))
        print(json.dumps({"file": args.file, "captcha": token}))
        return 0 if token else 1

    results = _records(args.category, args.files)
    report = json.dumps(results, indent=2)
    if args.out:
        Path(args.out).write_text(report, encoding="utf-8")
    else:
        print(report)
    return 0 if all(item["table_found"] for item in results) else 1


if __name__ == "__main__":
    raise SystemExit(main())
