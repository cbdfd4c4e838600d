from __future__ import annotations

import logging
import re
from typing import Callable, Optional

from bs4 import BeautifulSoup, Tag

from .selectors import PortalSelectors


logger = logging.getLogger(__name__)

_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]")


def _clean(text: Optional[str]) -> str:
    return _NON_ALNUM_RE.sub("", text or "")


def _accept(candidate: str, sel: PortalSelectors) -> Optional[str]:
    if not (sel.captcha_min_len <= len(candidate) <= sel.captcha_max_len):
        return None
    if candidate.lower() == sel.captcha_decoy.lower():
        return None
    return candidate


def _from_noselect(soup: BeautifulSoup, sel: PortalSelectors) -> Optional[str]:
    el = soup.select_one(sel.captcha_noselect)
    if el is None:
        return None
    return _accept(_clean(el.get_text()), sel)


def _from_label_cell(soup: BeautifulSoup, sel: PortalSelectors) -> Optional[str]:
    label = sel.captcha_label_text.lower()
    decoy = sel.captcha_decoy.lower()
    for td in soup.select("table td"):
        text = td.get_text(" ", strip=True).lower()
        if label not in text or decoy in text:
            continue
        # Layout tables nest; only a leaf cell sits next to the token cell.
        if td.find("td") is not None:
            continue
        nxt = td.find_next_sibling("td")
        if nxt is None:
            continue
        return _accept(_clean(nxt.get_text()), sel)
    return None


def _from_known_selectors(soup: BeautifulSoup, sel: PortalSelectors) -> Optional[str]:
    for el in soup.select(sel.captcha_known_selectors):
        found = _accept(_clean(el.get_text()), sel)
        if found:
            return found
    return None


def _from_image_alt(soup: BeautifulSoup, sel: PortalSelectors) -> Optional[str]:
    for img in soup.select(sel.captcha_image_selector):
        if not isinstance(img, Tag):
            continue
        found = _accept(_clean(str(img.get("alt") or "")), sel)
        if found:
            return found
    return None


_STRATEGIES: tuple[tuple[str, Callable[[BeautifulSoup, PortalSelectors], Optional[str]]], ...] = (
    ("noselect", _from_noselect),
    ("label-cell", _from_label_cell),
    ("known-selectors", _from_known_selectors),
    ("image-alt", _from_image_alt),
)


def locate_captcha(html: str, selectors: Optional[PortalSelectors] = None) -> Optional[str]:
    """
    Find the login captcha token in the Webkiosk login page.

    The portal prints the captcha as plain text (styled to be non-selectable), so no OCR is
    involved. Strategies run in priority order; the first 4-6 character alphanumeric token
    that is not the "Jaypee" branding text wins. Returns None when nothing matches.
    """
    sel = selectors or PortalSelectors()
    soup = BeautifulSoup(html or "", "html.parser")

    for name, strategy in _STRATEGIES:
        try:
            token = strategy(soup, sel)
        except Exception:
            # A selector blowing up on odd markup must not hide the remaining strategies.
            logger.debug("Captcha strategy %s failed", name, exc_info=True)
            continue
        if token:
            logger.debug("Captcha found via %s strategy", name)
            return token

    logger.debug(
        "Captcha not found; body children: %s",
        ", ".join(
            f"{el.name}.{'.'.join(el.get('class') or [])}"
            for el in (soup.body.find_all(recursive=False) if soup.body else [])
        ),
    )
    return None
