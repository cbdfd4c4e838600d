import logging
import os
import re
from pathlib import Path
from typing import Optional


# Form fields and cookies that must never reach a log file in clear text.
_SECRET_RE = re.compile(r"(?i)\b(Password|txtcap|JSESSIONID|DATE1)=([^&;\s]+)")


def redact(text: str) -> str:
    return _SECRET_RE.sub(lambda m: f"{m.group(1)}=***", text or "")


class RedactSecretsFilter(logging.Filter):
    """Masks portal secrets in the rendered message, after %-args are applied."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True


def configure_logging(level: str = "INFO", file_path: Optional[str] = None) -> None:
    numeric_level = getattr(logging, (level or "INFO").upper(), logging.INFO)

    # stderr keeps stdout clean for --json output.
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if file_path:
        log_path = Path(file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    for handler in handlers:
        handler.addFilter(RedactSecretsFilter())

    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        handlers=handlers,
        force=True,  # the CLI reconfigures once the config file has been read
    )

    # httpx logs every request line at INFO.
    noisy_level = os.getenv("NOISY_LOG_LEVEL", "WARNING")
    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(noisy_level)
