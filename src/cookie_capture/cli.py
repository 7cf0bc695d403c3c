from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import os
import sys
import time
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from .capture.orchestrator import CookieCaptureOrchestrator
from .config import AppConfig, load_config
from .errors import CaptureError, ConfigurationError
from .logging_config import configure_logging
from .models import LoginRequest
from .server import CaptureServer
from .totp import DEFAULT_PERIOD_SECONDS, TotpState


logger = logging.getLogger("cookie_capture")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="cookie-capture")
    p.add_argument(
        "--env-file",
        default=".env",
        help="Path to a dotenv file (default: .env). If missing, env vars must already be set.",
    )
    p.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml)")

    sub = p.add_subparsers(dest="cmd", required=True)

    capture = sub.add_parser("capture", help="Log into a site in a real browser and save its cookies")
    capture.add_argument("url", nargs="?", default="", help="Login/target URL (or targetUrl in --request)")
    capture.add_argument(
        "--request",
        default="",
        help="JSON file holding a full login request (same body the HTTP endpoint accepts). Flags override it.",
    )
    capture.add_argument("--internal", action="store_true", help="Internal-user flow: username only, no password step")
    capture.add_argument("--username", default=os.getenv("CAPTURE_USERNAME", ""))
    capture.add_argument("--username-xpath", default="")
    capture.add_argument("--username-next-xpath", default="")
    capture.add_argument("--password", default=os.getenv("CAPTURE_PASSWORD", ""))
    capture.add_argument("--password-xpath", default="")
    capture.add_argument("--password-next-xpath", default="")
    capture.add_argument("--otp-xpath", default="", help="XPath of the one-time-code input")
    capture.add_argument("--verify-xpath", default="", help="XPath of the MFA verify button")
    code = capture.add_mutually_exclusive_group()
    code.add_argument("--otp-code", default="", help="A static one-time code to type verbatim")
    code.add_argument(
        "--totp-secret",
        default="",
        help="Base32 TOTP secret; the current code is generated at fill time (fallback: CAPTURE_TOTP_SECRET)",
    )
    capture.add_argument("--headful", action="store_true", help="Show the browser window")
    capture.add_argument("--step-debug", action="store_true", help="Save a screenshot per step under the debug dir")
    capture.add_argument(
        "--out",
        default="captured-cookies.json",
        help="Where to write the cookies (default: captured-cookies.json)",
    )
    capture.add_argument(
        "--full",
        action="store_true",
        help="Write full cookie records (domain, path, flags) instead of a name -> value object",
    )

    sub.add_parser("serve", help="Run the HTTP capture service")

    totp = sub.add_parser("totp", help="Show the current TOTP code and its countdown")
    totp.add_argument("secret", help="Base32 TOTP secret")
    totp.add_argument("--period", type=int, default=DEFAULT_PERIOD_SECONDS)
    totp.add_argument("--once", action="store_true", help="Print one line and exit")
    return p


def _login_request_from_args(args: argparse.Namespace) -> LoginRequest:
    data: dict = {}
    if args.request:
        try:
            data = json.loads(Path(args.request).read_text(encoding="utf-8"))
        except OSError as e:
            raise ConfigurationError(f"cannot read request file {args.request}: {e.strerror or e}") from e
        except ValueError as e:
            raise ConfigurationError(f"{args.request} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"{args.request} must contain a JSON object")

    overrides = {
        "targetUrl": args.url,
        "username": args.username,
        "usernameLocator": args.username_xpath,
        "usernameNextLocator": args.username_next_xpath,
        "password": args.password,
        "passwordLocator": args.password_xpath,
        "passwordNextLocator": args.password_next_xpath,
    }
    # A flag replaces the dashboard spelling of the same field too, or the alias lookup would still find the old value.
    legacy = {
        "targetUrl": "url",
        "usernameLocator": "usernameXPath",
        "usernameNextLocator": "usernameNextXPath",
        "passwordLocator": "passwordXPath",
        "passwordNextLocator": "passwordNextXPath",
    }
    for key, value in overrides.items():
        if value:
            data.pop(legacy.get(key, key), None)
            data[key] = value
    if args.internal:
        data["isInternalUser"] = True

    mfa = dict(data.pop("mfa", None) or {})
    legacy_mfa = data.pop("mfaConfig", None) or {}
    if not mfa:
        mfa = dict(legacy_mfa)

    totp_secret = args.totp_secret
    if not (totp_secret or args.otp_code or _mfa_code(mfa)):
        # CAPTURE_TOTP_SECRET only fills a code the request does not already carry.
        totp_secret = os.getenv("CAPTURE_TOTP_SECRET", "")

    if args.otp_xpath:
        mfa.pop("otpInputXPath", None)
        mfa["otpInputLocator"] = args.otp_xpath
    if args.verify_xpath:
        mfa.pop("verifyButtonXPath", None)
        mfa["verifyButtonLocator"] = args.verify_xpath
    if args.otp_code or totp_secret:
        mfa.pop("otpCode", None)
        mfa["sharedSecretOrStaticCode"] = args.otp_code or totp_secret
        mfa["codeKind"] = "static" if args.otp_code else "totp-secret"
    if mfa:
        data["mfa"] = mfa

    try:
        return LoginRequest.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(str(e)) from e


def _mfa_code(mfa: dict) -> str:
    return str(mfa.get("sharedSecretOrStaticCode") or mfa.get("otpCode") or mfa.get("secret_or_code") or "").strip()


def _run_capture(cfg: AppConfig, args: argparse.Namespace) -> int:
    request = _login_request_from_args(args)

    browser = cfg.browser_settings()
    if args.headful:
        browser = dataclasses.replace(browser, headless=False)
    step_dir = cfg.debug.debug_dir if args.step_debug else cfg.step_debug_dir()

    orchestrator = CookieCaptureOrchestrator(
        browser=browser,
        timings=cfg.capture_timings(),
        step_debug_dir=step_dir,
    )

    t0 = time.time()
    result = asyncio.run(orchestrator.capture(request))
    logger.info("Capture finished (seconds=%.2f cookies=%d)", time.time() - t0, len(result.cookies))
    for w in result.warnings:
        logger.warning("Capture warning: %s", w)

    payload = result.cookies.to_json() if args.full else result.cookies.as_header_dict()
    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    logger.info("Cookies saved to %s", out)

    print(f"Captured {len(result.cookies)} cookies: {', '.join(result.cookies.names()) or '(none)'}")
    return 0


def _run_totp(args: argparse.Namespace) -> int:
    state = TotpState(secret=args.secret, period=args.period)
    code, remaining = state.refresh()
    if args.once:
        print(f"{code} ({remaining}s)")
        return 0

    try:
        while True:
            code, remaining = state.refresh()
            marker = " (stale)" if state.stale else ""
            sys.stdout.write(f"\r{code}  expires in {remaining:2d}s{marker} ")
            sys.stdout.flush()
            time.sleep(1)
    except KeyboardInterrupt:
        sys.stdout.write("\n")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    env_path = Path(args.env_file)
    if env_path.exists():
        load_dotenv(env_path)

    # Default logging: can be overridden once config is loaded.
    configure_logging(level=os.getenv("LOG_LEVEL", "INFO"))

    try:
        if args.cmd == "totp":
            return _run_totp(args)

        cfg = load_config(args.config)
        configure_logging(level=cfg.logging.level, file_path=cfg.logging.file_path or None)

        if args.cmd == "capture":
            return _run_capture(cfg, args)

        if args.cmd == "serve":
            server = CaptureServer(cfg)
            try:
                asyncio.run(server.serve_forever())
            except KeyboardInterrupt:
                logger.info("Server stopped")
            return 0
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        return 2
    except CaptureError as e:
        logger.error("Capture failed: %s", e)
        return 1

    return 1
