from __future__ import annotations

from typing import Any, Literal, Optional
from urllib.parse import urlparse

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


SameSite = Literal["Strict", "Lax", "None"]
CodeKind = Literal["static", "totp-secret"]


class MfaSpec(BaseModel):
    """
    Locators plus the code source for the one-time-password step.

    `code_kind` says how to read `secret_or_code`: a pre-resolved code that is typed verbatim,
    or a base32 TOTP secret that is turned into the current code at fill time.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    otp_input_locator: str = Field(
        default="",
        validation_alias=AliasChoices("otpInputLocator", "otpInputXPath", "otp_input_locator"),
        serialization_alias="otpInputLocator",
    )
    verify_button_locator: str = Field(
        default="",
        validation_alias=AliasChoices("verifyButtonLocator", "verifyButtonXPath", "verify_button_locator"),
        serialization_alias="verifyButtonLocator",
    )
    secret_or_code: str = Field(
        default="",
        repr=False,
        validation_alias=AliasChoices("sharedSecretOrStaticCode", "otpCode", "secret_or_code"),
        serialization_alias="sharedSecretOrStaticCode",
    )
    code_kind: Optional[CodeKind] = Field(
        default=None,
        validation_alias=AliasChoices("codeKind", "code_kind"),
        serialization_alias="codeKind",
    )

    @property
    def is_active(self) -> bool:
        # Partial MFA config is the same as no MFA.
        return bool(
            self.otp_input_locator.strip()
            and self.verify_button_locator.strip()
            and self.secret_or_code.strip()
        )

    @model_validator(mode="after")
    def _require_code_kind_when_active(self) -> "MfaSpec":
        if self.is_active and self.code_kind is None:
            raise ValueError("mfa.codeKind is required ('static' or 'totp-secret') when MFA is configured")
        return self


class LoginRequest(BaseModel):
    """
    One cookie-capture job. Field names accept both this service's camelCase names and the
    XPath-suffixed names the dashboard has always sent.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    target_url: str = Field(
        default="",
        validation_alias=AliasChoices("targetUrl", "url", "target_url"),
        serialization_alias="targetUrl",
    )
    is_internal_user: bool = Field(
        default=False,
        validation_alias=AliasChoices("isInternalUser", "is_internal_user"),
        serialization_alias="isInternalUser",
    )
    username: str = ""
    username_locator: str = Field(
        default="",
        validation_alias=AliasChoices("usernameLocator", "usernameXPath", "username_locator"),
        serialization_alias="usernameLocator",
    )
    username_next_locator: str = Field(
        default="",
        validation_alias=AliasChoices("usernameNextLocator", "usernameNextXPath", "username_next_locator"),
        serialization_alias="usernameNextLocator",
    )
    password: str = Field(default="", repr=False)
    password_locator: str = Field(
        default="",
        validation_alias=AliasChoices("passwordLocator", "passwordXPath", "password_locator"),
        serialization_alias="passwordLocator",
    )
    password_next_locator: str = Field(
        default="",
        validation_alias=AliasChoices("passwordNextLocator", "passwordNextXPath", "password_next_locator"),
        serialization_alias="passwordNextLocator",
    )
    mfa: Optional[MfaSpec] = Field(
        default=None,
        validation_alias=AliasChoices("mfa", "mfaConfig"),
    )

    @property
    def hostname(self) -> str:
        return (urlparse(self.target_url).hostname or "").lower()

    @property
    def active_mfa(self) -> Optional[MfaSpec]:
        if self.mfa is not None and self.mfa.is_active:
            return self.mfa
        return None


class CapturedCookie(BaseModel):
    """
    A cookie in the shape Playwright's `BrowserContext.cookies()` reports, with `expires=None`
    for session cookies.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    value: str = ""
    domain: str = ""
    path: str = "/"
    expires: Optional[float] = None
    http_only: Optional[bool] = Field(default=None, alias="httpOnly")
    secure: Optional[bool] = None
    same_site: Optional[SameSite] = Field(default=None, alias="sameSite")

    @classmethod
    def from_playwright(cls, raw: dict[str, Any]) -> "CapturedCookie":
        expires = raw.get("expires")
        if expires is not None and float(expires) < 0:
            expires = None
        return cls(
            name=str(raw.get("name") or ""),
            value=str(raw.get("value") or ""),
            domain=str(raw.get("domain") or ""),
            path=str(raw.get("path") or "/"),
            expires=expires,
            http_only=raw.get("httpOnly"),
            secure=raw.get("secure"),
            same_site=raw.get("sameSite"),
        )

    def to_playwright(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "name": self.name,
            "value": self.value,
            "domain": self.domain,
            "path": self.path or "/",
            "expires": -1 if self.expires is None else self.expires,
        }
        if self.http_only is not None:
            out["httpOnly"] = self.http_only
        if self.secure is not None:
            out["secure"] = self.secure
        if self.same_site is not None:
            out["sameSite"] = self.same_site
        return out

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
