from __future__ import annotations

from cookie_capture.capture.cookies import CookieSet, parse_document_cookies, reconcile

from fakes import make_cookie


HOST = "login.example.com"


def test_parse_document_cookies_splits_on_first_equals() -> None:
    pairs = parse_document_cookies(" a=1; token=abc==; empty=; flag ;  ; =orphan")
    assert pairs == [("a", "1"), ("token", "abc=="), ("empty", ""), ("flag", "")]


def test_parse_document_cookies_handles_empty_string() -> None:
    assert parse_document_cookies("") == []


def test_document_only_cookie_is_synthesized_with_fixed_attributes() -> None:
    result = reconcile([], "a=1", HOST)

    assert len(result) == 1
    assert result["a"].to_json() == {
        "name": "a",
        "value": "1",
        "domain": HOST,
        "path": "/",
        "httpOnly": False,
        "secure": False,
        "sameSite": "Lax",
    }
    assert result["a"].expires is None


def test_native_cookies_are_never_dropped_or_altered() -> None:
    native = [
        make_cookie("sid", "server-value"),
        make_cookie("pref", "dark", http_only=False, secure=False, same_site="Lax"),
    ]
    # Same names appear in document.cookie with different values.
    result = reconcile(native, "sid=script-value; pref=light; extra=1", HOST)

    for c in native:
        assert result[c.name] == c
    assert result["extra"].domain == HOST
    assert result.names() == ["sid", "pref", "extra"]


def test_reconcile_is_idempotent() -> None:
    native = [make_cookie("sid", "abc")]
    once = reconcile(native, "sid=other; js=1; theme=dark", HOST)
    twice = reconcile(once.to_list(), "", HOST)
    assert twice == once


def test_cookie_set_later_insert_replaces_by_name() -> None:
    cs = CookieSet([make_cookie("a", "1"), make_cookie("b", "2")])
    cs.add(make_cookie("a", "3"))

    assert len(cs) == 2
    assert cs["a"].value == "3"
    assert "b" in cs
    assert cs.as_header_dict() == {"a": "3", "b": "2"}


def test_to_json_uses_camel_case_and_omits_unknown_fields() -> None:
    cs = reconcile([make_cookie("sid", "abc", expires=None)], "", HOST)
    assert cs.to_json() == [
        {
            "name": "sid",
            "value": "abc",
            "domain": ".example.com",
            "path": "/",
            "httpOnly": True,
            "secure": True,
            "sameSite": "None",
        }
    ]
