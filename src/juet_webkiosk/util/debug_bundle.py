from __future__ import annotations

import json
import logging
import re
import time
import zipfile
from pathlib import Path
from typing import Optional

from ..logging_config import redact


logger = logging.getLogger(__name__)

_SAFE_NAME_RE = re.compile(r"[^a-z0-9_-]+")


def save_html_snapshot(*, debug_dir: str, category: str, html: str) -> Optional[Path]:
    """
    Write a fetched page under `debug_dir` so extraction problems can be reproduced offline
    (see `scripts/parse_html_snapshot.py`). Best-effort: returns None on any filesystem error.
    """
    if not debug_dir:
        return None
    slug = _SAFE_NAME_RE.sub("_", (category or "page").strip().lower()) or "page"
    stamp = time.strftime("%Y%m%d_%H%M%S")
    try:
        root = Path(debug_dir)
        root.mkdir(parents=True, exist_ok=True)
        out = root / f"{slug}_{stamp}.html"
        out.write_text(html or "", encoding="utf-8")
        return out
    except OSError:
        logger.debug("Failed to write HTML snapshot for category=%s", category, exc_info=True)
        return None


def _snapshot_files(debug_dir: Path) -> list[Path]:
    if not debug_dir.is_dir():
        return []
    return sorted(p for p in debug_dir.rglob("*.html") if p.is_file())


def create_debug_bundle(
    *,
    debug_dir: str,
    log_file: str,
    out_dir: str = "data",
    enrollment_id: str = "",
) -> Path:
    """
    Zip the saved HTML snapshots and the log into `debug_bundle[_<enrollment>]_<stamp>.zip`.

    The log is redacted on the way in; the credential cache, `.env` and config files are never
    included. A `manifest.json` lists what was bundled.
    """
    out_root = Path(out_dir)
    out_root.mkdir(parents=True, exist_ok=True)

    stamp = time.strftime("%Y%m%d_%H%M%S")
    who = _SAFE_NAME_RE.sub("", (enrollment_id or "").strip().lower())
    out_path = out_root / (f"debug_bundle_{who}_{stamp}.zip" if who else f"debug_bundle_{stamp}.zip")

    dbg = Path(debug_dir)
    log = Path(log_file)
    manifest: dict[str, list[str]] = {"log": [], "snapshots": []}

    with zipfile.ZipFile(out_path, "w", compression=zipfile.ZIP_DEFLATED) as z:
        if log.is_file():
            try:
                z.writestr(log.name, redact(log.read_text(encoding="utf-8", errors="replace")))
                manifest["log"].append(log.name)
            except OSError:
                logger.debug("Could not read log file %s", log, exc_info=True)

        for snap in _snapshot_files(dbg):
            arcname = str(Path("debug") / snap.relative_to(dbg))
            try:
                z.write(snap, arcname=arcname)
            except OSError:
                # The snapshot vanished between listing and zipping.
                continue
            manifest["snapshots"].append(arcname)

        if manifest["log"] or manifest["snapshots"]:
            z.writestr("manifest.json", json.dumps(manifest, indent=2))

    logger.info(
        "Debug bundle %s: %d snapshot(s), log=%s",
        out_path,
        len(manifest["snapshots"]),
        bool(manifest["log"]),
    )
    return out_path
