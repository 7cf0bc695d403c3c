from __future__ import annotations

import logging
from typing import Iterable, Iterator

from ..models import CapturedCookie


logger = logging.getLogger(__name__)


class CookieSet:
    """
    Cookies keyed by name. A later insert with the same name replaces the earlier one.
    """

    def __init__(self, cookies: Iterable[CapturedCookie] = ()) -> None:
        self._by_name: dict[str, CapturedCookie] = {}
        for c in cookies:
            self.add(c)

    def add(self, cookie: CapturedCookie) -> None:
        self._by_name[cookie.name] = cookie

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __getitem__(self, name: str) -> CapturedCookie:
        return self._by_name[name]

    def __iter__(self) -> Iterator[CapturedCookie]:
        return iter(self._by_name.values())

    def __len__(self) -> int:
        return len(self._by_name)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CookieSet):
            return NotImplemented
        return self._by_name == other._by_name

    def __repr__(self) -> str:
        return f"CookieSet({sorted(self._by_name)})"

    def names(self) -> list[str]:
        return list(self._by_name)

    def to_list(self) -> list[CapturedCookie]:
        return list(self._by_name.values())

    def to_json(self) -> list[dict]:
        return [c.to_json() for c in self._by_name.values()]

    def as_header_dict(self) -> dict[str, str]:
        return {c.name: c.value for c in self._by_name.values()}


def parse_document_cookies(cookie_string: str) -> list[tuple[str, str]]:
    """
    Split a `document.cookie` string into `(name, value)` pairs.

    Entries split on the first `=` only, so values may contain `=`. An entry without `=` is read as
    a name with an empty value; blank entries are dropped.
    """
    pairs: list[tuple[str, str]] = []
    for raw in (cookie_string or "").split(";"):
        entry = raw.strip()
        if not entry:
            continue
        name, sep, value = entry.partition("=")
        name = name.strip()
        if not name:
            continue
        pairs.append((name, value.strip() if sep else ""))
    return pairs


def document_cookie(name: str, value: str, host: str) -> CapturedCookie:
    # Script-visible cookies cannot be httpOnly; nothing else is recoverable from document.cookie.
    return CapturedCookie(
        name=name,
        value=value,
        domain=host,
        path="/",
        expires=None,
        http_only=False,
        secure=False,
        same_site="Lax",
    )


def reconcile(native: Iterable[CapturedCookie], document_cookie_string: str, fallback_host: str) -> CookieSet:
    """
    Merge the browser's cookie jar with the page's `document.cookie`.

    Native cookies go in first; a document cookie is only added when no native cookie has its name.
    """
    result = CookieSet(native)
    native_count = len(result)

    for name, value in parse_document_cookies(document_cookie_string):
        if name in result:
            continue
        logger.debug("Adding document-only cookie: %s", name)
        result.add(document_cookie(name, value, fallback_host))

    logger.info(
        "Reconciled cookies: %d native, %d document-only, %d total",
        native_count,
        len(result) - native_count,
        len(result),
    )
    return result
