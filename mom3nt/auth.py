"""
Sign-in support.

Members receive an email containing a link and a six-digit code. Depending on
the device the link lands in the browser with tokens in the fragment, with a
PKCE ``code`` in the query, or as a ``token``/``token_hash`` verification link;
some members paste the link or the bare code instead. Every variant is parsed
into one credential type and handed to :func:`establish_session`.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Protocol, Union
from urllib.parse import parse_qs, urlsplit

from supabase import AuthError as SupabaseAuthError
from supabase import Client, create_client

LOGGER = logging.getLogger(__name__)

OTP_PATTERN = re.compile(r"^\d{6}$")
LINK_TYPES = ("magiclink", "recovery", "email_change")


class AuthError(RuntimeError):
    """A credential could not be parsed or was rejected by the provider."""


@dataclass(frozen=True)
class HashTokens:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class ExchangeCode:
    code: str


@dataclass(frozen=True)
class TokenHash:
    token_hash: str
    type: str = "magiclink"
    token: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class NumericCode:
    code: str
    email: str


Credential = Union[HashTokens, ExchangeCode, TokenHash, NumericCode]


@dataclass(frozen=True)
class AuthSession:
    access_token: str
    refresh_token: Optional[str]
    user_id: str
    email: Optional[str] = None

    @classmethod
    def from_response(cls, response: Any) -> "AuthSession":
        """Build from a supabase ``AuthResponse`` (``.session`` and ``.user``)."""
        session = getattr(response, "session", None)
        user = getattr(response, "user", None) or getattr(session, "user", None)
        access_token = getattr(session, "access_token", None)
        user_id = getattr(user, "id", None)
        if not access_token or not user_id:
            raise AuthError("Sign-in did not return a session.")
        return cls(
            access_token=str(access_token),
            refresh_token=getattr(session, "refresh_token", None),
            user_id=str(user_id),
            email=getattr(user, "email", None),
        )


class IdentityProvider(Protocol):
    def send_magic_link(self, email: str, redirect_to: Optional[str] = None) -> None:
        ...

    def set_session(self, access_token: str, refresh_token: str) -> AuthSession:
        ...

    def exchange_code(self, code: str) -> AuthSession:
        ...

    def verify_otp(
        self,
        *,
        type: str,
        email: Optional[str] = None,
        token: Optional[str] = None,
        token_hash: Optional[str] = None,
    ) -> AuthSession:
        ...


def _first(params: Mapping[str, list[str]], name: str) -> Optional[str]:
    values = params.get(name) or []
    for value in values:
        if value:
            return value
    return None


def parse_credential(raw: str, email: Optional[str] = None) -> Credential:
    """
    Turn a pasted link, a redirect fragment or a bare code into a credential.

    Precedence follows what the link carries: fragment tokens, then a PKCE
    code, then a verification token, then a six-digit code.
    """
    text = (raw or "").strip()
    if not text:
        raise AuthError("Paste the email link or the code.")
    email = (email or "").strip() or None

    query: Mapping[str, list[str]] = {}
    fragment: Mapping[str, list[str]] = {}
    if text.startswith("#"):
        fragment = parse_qs(text[1:])
    else:
        parts = urlsplit(text)
        if parts.scheme and parts.netloc:
            query = parse_qs(parts.query)
            fragment = parse_qs(parts.fragment)

    error = _first(fragment, "error_description") or _first(query, "error_description")
    if error:
        raise AuthError(error)

    access_token = _first(fragment, "access_token")
    refresh_token = _first(fragment, "refresh_token")
    if access_token and refresh_token:
        return HashTokens(access_token=access_token, refresh_token=refresh_token)

    code = _first(query, "code")
    if code:
        return ExchangeCode(code=code)

    token = _first(query, "token")
    token_hash = _first(query, "token_hash")
    link_type = _first(query, "type")
    if (token or token_hash) and link_type in LINK_TYPES:
        return TokenHash(token_hash=token_hash or token or "", type=link_type, token=token, email=email)

    if OTP_PATTERN.match(text):
        if not email:
            raise AuthError("Enter your email before using the 6-digit code.")
        return NumericCode(code=text, email=email)

    raise AuthError(
        "Could not find a token or code. Copy the full link (or code) from the email and paste it here."
    )


def establish_session(credential: Credential, provider: IdentityProvider) -> AuthSession:
    """Exchange any credential kind for a signed-in session."""
    if isinstance(credential, HashTokens):
        return provider.set_session(credential.access_token, credential.refresh_token)
    if isinstance(credential, ExchangeCode):
        return provider.exchange_code(credential.code)
    if isinstance(credential, TokenHash):
        if credential.token and credential.email:
            try:
                return provider.verify_otp(type=credential.type, email=credential.email, token=credential.token)
            except AuthError as exc:
                LOGGER.info("Token verification failed, retrying as token hash: %s", exc)
        return provider.verify_otp(type=credential.type, token_hash=credential.token_hash)
    if isinstance(credential, NumericCode):
        if not OTP_PATTERN.match(credential.code.strip()):
            raise AuthError("Enter the 6-digit code from the email.")
        return provider.verify_otp(type="email", email=credential.email, token=credential.code.strip())
    raise TypeError(f"Unsupported credential type: {type(credential)!r}")


def request_magic_link(email: str, provider: IdentityProvider, redirect_to: Optional[str] = None) -> None:
    address = (email or "").strip()
    if not address:
        raise AuthError("Enter your email.")
    provider.send_magic_link(address, redirect_to)


class SupabaseAuthProvider:
    """Identity provider backed by the supabase client's Auth (GoTrue) API."""

    def __init__(
        self,
        url: str,
        key: str,
        *,
        code_verifier: Optional[str] = None,
        client: Optional[Client] = None,
    ) -> None:
        if client is None:
            if not url or not key:
                raise AuthError("Supabase URL and key must both be configured.")
            client = create_client(url.rstrip("/"), key)
        self.code_verifier = code_verifier
        self._auth = client.auth

    def _call(self, method: Callable[..., Any], *args: Any) -> Any:
        try:
            return method(*args)
        except SupabaseAuthError as exc:
            raise AuthError(getattr(exc, "message", None) or str(exc)) from exc

    def send_magic_link(self, email: str, redirect_to: Optional[str] = None) -> None:
        options: dict[str, Any] = {"should_create_user": True}
        if redirect_to:
            options["email_redirect_to"] = redirect_to
        self._call(self._auth.sign_in_with_otp, {"email": email, "options": options})

    def set_session(self, access_token: str, refresh_token: str) -> AuthSession:
        return AuthSession.from_response(self._call(self._auth.set_session, access_token, refresh_token))

    def exchange_code(self, code: str) -> AuthSession:
        params: dict[str, Any] = {"auth_code": code}
        if self.code_verifier:
            params["code_verifier"] = self.code_verifier
        return AuthSession.from_response(self._call(self._auth.exchange_code_for_session, params))

    def verify_otp(
        self,
        *,
        type: str,
        email: Optional[str] = None,
        token: Optional[str] = None,
        token_hash: Optional[str] = None,
    ) -> AuthSession:
        params: dict[str, Any] = {"type": type}
        if token_hash:
            params["token_hash"] = token_hash
        else:
            params["email"] = email
            params["token"] = token
        return AuthSession.from_response(self._call(self._auth.verify_otp, params))
