"""Vendor cloud API client: login, token refresh and device history.

Every response is wrapped in an envelope ``{"code", "message", "data"}``;
anything other than HTTP 200 with ``code == 200`` is an error. Passwords are
sent RSA-encrypted with the vendor's published public key. Tokens are kept in
``tokens.json`` inside the state directory between runs.
"""

import base64
import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

import httpx
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import padding

from .env import Config, get_config
from .retry import with_retries
from . import log


PUBLIC_KEY_B64 = (
    "MFwwDQYJKoZIhvcNAQEBBQADSwAwSAJBAK0GDivaRzIKeTmQnAxAYh2LChuHWDp0yHZ0zIvm"
    "+Eoi7J+rx7phqR7EtkBDO3HWqAXVkNDeeQaU32P5w1Q4FVUCAwEAAQ=="
)

LOGIN_PATH = "/openApi/sec/login"
REFRESH_PATH = "/openApi/sec/refreshToken"
HISTORY_PATH = "/openApi/data/deviceDataHistory/{device_sn}"

CODE_OK = 200
CODE_REFRESH_EXPIRED = 998

# Treat tokens as expired slightly early so they don't lapse mid-request
EXPIRY_MARGIN = timedelta(seconds=60)


class VendorAPIError(Exception):
    """The vendor API rejected a request or answered with an error code."""

    def __init__(self, message: str, status: Optional[int] = None, code: Optional[int] = None):
        super().__init__(message)
        self.status = status
        self.code = code


class RefreshExpiredError(VendorAPIError):
    """The refresh token is no longer accepted; a fresh login is needed."""


class VendorUnavailableError(VendorAPIError):
    """The vendor API could not be reached after retries."""


class MissingCredentialsError(VendorAPIError):
    """A login is needed but no username/password is configured."""


# =============================================================================
# Tokens
# =============================================================================


def _from_millis(value: Any) -> datetime:
    """Vendor expiry times are millisecond epoch values sent as strings."""
    try:
        millis = int(value)
    except (TypeError, ValueError) as e:
        raise VendorAPIError(f"invalid token expiry time: {value!r}") from e
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)


@dataclass
class TokenSet:
    """Access and refresh tokens with their expiry times (UTC)."""

    access_token: str
    refresh_token: str
    access_expiry: datetime
    refresh_expiry: datetime

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "TokenSet":
        if not isinstance(data, dict) or not data.get("token"):
            raise VendorAPIError("token response is missing the access token")
        return cls(
            access_token=data["token"],
            refresh_token=data.get("refreshToken", ""),
            access_expiry=_from_millis(data.get("tokenExpireTime")),
            refresh_expiry=_from_millis(data.get("refTokenExpireTime")),
        )

    def access_valid(self, now: datetime) -> bool:
        return bool(self.access_token) and now + EXPIRY_MARGIN < self.access_expiry

    def refresh_valid(self, now: datetime) -> bool:
        return bool(self.refresh_token) and now + EXPIRY_MARGIN < self.refresh_expiry

    def to_dict(self) -> dict[str, str]:
        return {
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "accessTokenExpiry": self.access_expiry.isoformat(),
            "refreshTokenExpiry": self.refresh_expiry.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, str]) -> "TokenSet":
        return cls(
            access_token=data["accessToken"],
            refresh_token=data["refreshToken"],
            access_expiry=datetime.fromisoformat(data["accessTokenExpiry"]),
            refresh_expiry=datetime.fromisoformat(data["refreshTokenExpiry"]),
        )


def get_token_path() -> Path:
    return get_config().state_dir / "tokens.json"


def load_tokens(path: Optional[Path] = None) -> Optional[TokenSet]:
    """Load stored tokens, or None if there are none usable on disk."""
    if path is None:
        path = get_token_path()
    if not path.exists():
        return None
    try:
        return TokenSet.from_dict(json.loads(path.read_text()))
    except (json.JSONDecodeError, KeyError, ValueError, OSError) as e:
        log.warn(f"Failed to load stored tokens: {e}")
        return None


def save_tokens(tokens: TokenSet, path: Optional[Path] = None) -> Path:
    if path is None:
        path = get_token_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(tokens.to_dict(), indent=2))
    log.debug(f"Saved tokens to {path}")
    return path


# =============================================================================
# Requests
# =============================================================================


def encrypt_password(plain: str, public_key: str = PUBLIC_KEY_B64) -> str:
    """RSA PKCS#1 v1.5 encrypt a password, returning base64 text.

    public_key is either base64 DER (as the vendor publishes it) or PEM text.
    """
    if public_key.lstrip().startswith("-----BEGIN"):
        key = serialization.load_pem_public_key(public_key.encode("ascii"))
    else:
        key = serialization.load_der_public_key(base64.b64decode(public_key))
    encrypted = key.encrypt(plain.encode("utf-8"), padding.PKCS1v15())
    return base64.b64encode(encrypted).decode("ascii")


def make_client(cfg: Optional[Config] = None, **kwargs: Any) -> httpx.AsyncClient:
    """AsyncClient bound to the configured vendor base URL."""
    if cfg is None:
        cfg = get_config()
    return httpx.AsyncClient(
        base_url=cfg.vendor_base_url,
        timeout=cfg.remote_timeout_s,
        **kwargs,
    )


def _parse_envelope(response: httpx.Response, what: str) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError as e:
        raise VendorAPIError(
            f"{what} failed with status {response.status_code} and an undecodable body",
            status=response.status_code,
        ) from e

    if not isinstance(body, dict):
        raise VendorAPIError(f"{what} returned an unexpected body", status=response.status_code)

    code = body.get("code")
    message = body.get("message", "")

    if response.status_code != 200:
        raise VendorAPIError(
            f"{what} failed, status {response.status_code}: {message}",
            status=response.status_code,
            code=code,
        )
    if code == CODE_REFRESH_EXPIRED:
        raise RefreshExpiredError(
            f"{what}: refresh token expired, please log in again",
            status=response.status_code,
            code=code,
        )
    if code != CODE_OK:
        raise VendorAPIError(
            f"{what} API error: code={code}, message={message}",
            status=response.status_code,
            code=code,
        )
    return body


async def _request(
    client: httpx.AsyncClient,
    method: str,
    path: str,
    what: str,
    cfg: Optional[Config] = None,
    **kwargs: Any,
) -> dict[str, Any]:
    """Send a request, retrying transport failures, and unwrap the envelope."""
    if cfg is None:
        cfg = get_config()

    async def send() -> httpx.Response:
        return await client.request(method, path, **kwargs)

    ok, response, exc = await with_retries(
        send,
        attempts=cfg.remote_retry_attempts,
        backoff_s=cfg.remote_retry_backoff_s,
        name=what,
        retry_on=(httpx.TransportError,),
    )
    if not ok:
        raise VendorUnavailableError(f"{what}: {exc}") from exc

    return _parse_envelope(response, what)


async def login(
    client: httpx.AsyncClient,
    username: str,
    password: str,
    cfg: Optional[Config] = None,
) -> TokenSet:
    """Log in with username and plaintext password."""
    body = await _request(
        client, "POST", LOGIN_PATH, "login", cfg,
        json={"userName": username, "password": encrypt_password(password)},
    )
    log.info("Vendor login successful")
    return TokenSet.from_api(body.get("data"))


async def refresh(
    client: httpx.AsyncClient,
    refresh_token: str,
    cfg: Optional[Config] = None,
) -> TokenSet:
    """Exchange a refresh token for a new token set."""
    body = await _request(
        client, "POST", REFRESH_PATH, "refresh token", cfg,
        json={"refreshToken": refresh_token},
    )
    log.debug("Vendor tokens refreshed")
    return TokenSet.from_api(body.get("data"))


async def get_access_token(
    client: httpx.AsyncClient,
    cfg: Optional[Config] = None,
    token_path: Optional[Path] = None,
    now: Optional[datetime] = None,
) -> str:
    """
    Return a usable access token, refreshing or logging in as needed.

    Order: stored access token, then refresh, then a full login with the
    configured credentials. New tokens are written back to the token file.

    Raises:
        MissingCredentialsError: login needed but no credentials configured
        VendorAPIError: the login itself failed
    """
    if cfg is None:
        cfg = get_config()
    if now is None:
        now = datetime.now(timezone.utc)

    tokens = load_tokens(token_path)

    if tokens is not None and tokens.access_valid(now):
        log.debug("Using stored access token")
        return tokens.access_token

    if tokens is not None and tokens.refresh_valid(now):
        try:
            tokens = await refresh(client, tokens.refresh_token, cfg)
            save_tokens(tokens, token_path)
            return tokens.access_token
        except VendorAPIError as e:
            log.warn(f"Token refresh failed, logging in again: {e}")

    if not cfg.vendor_username or not cfg.vendor_password:
        raise MissingCredentialsError(
            "VENDOR_USERNAME and VENDOR_PASSWORD are required to log in"
        )

    tokens = await login(client, cfg.vendor_username, cfg.vendor_password, cfg)
    save_tokens(tokens, token_path)
    return tokens.access_token


async def fetch_device_history(
    client: httpx.AsyncClient,
    access_token: str,
    device_sn: str,
    date_str: str,
    page_num: int = 1,
    page_size: int = 10,
    cfg: Optional[Config] = None,
) -> list[dict[str, Any]]:
    """
    Fetch one page of history rows for a device.

    Args:
        client: AsyncClient bound to the vendor base URL
        access_token: Value for the Authorization header
        device_sn: Device serial number
        date_str: Day to fetch (YYYY-MM-DD)
        page_num: 1-based page number
        page_size: Rows per page

    Returns:
        Raw history rows as sent by the vendor
    """
    body = await _request(
        client, "GET", HISTORY_PATH.format(device_sn=device_sn), "data history", cfg,
        params={"dateStr": date_str, "pageNum": str(page_num), "pageSize": str(page_size)},
        headers={"Authorization": access_token},
    )
    data = body.get("data") or {}
    rows = data.get("datalist") or []
    log.debug(
        f"Fetched {len(rows)} history rows for {device_sn} "
        f"(page {data.get('currentPage', page_num)}/{data.get('totalPage', '?')})"
    )
    return rows
