"""OpenID Connect id tokens with refresh-token renewal.

The provider reads the ``exp`` claim of the current id token (the signature
is not verified) to decide between three states:

| State | Meaning | Next resolution |
|-------|---------|-----------------|
| ``HAVE_VALID_TOKEN`` | ``exp`` is in the future | returns the token, no network call |
| ``EXPIRED`` | ``exp`` passed, missing, or the token is malformed | refreshes |
| ``REFRESH_FAILED`` | the last refresh raised | refreshes again |

A refresh discovers the issuer's ``token_endpoint`` and exchanges the
refresh token for a new id token. Any failure raises
:class:`~kubeclient_core.auth.exceptions.CredentialRefreshError`, whose
message starts with ``"Unable to refresh OIDC token."``. Nothing is retried
automatically.
"""

import logging
import ssl
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

import httpx
import jwt

from kubeclient_core.auth.exceptions import CredentialRefreshError
from kubeclient_core.auth.providers import ResolvedCredential, SingleFlight

logger = logging.getLogger(__name__)

DISCOVERY_PATH = "/.well-known/openid-configuration"

DEFAULT_REFRESH_TIMEOUT = 30.0


class OidcState(Enum):
    HAVE_VALID_TOKEN = "have_valid_token"
    EXPIRED = "expired"
    REFRESH_FAILED = "refresh_failed"


@dataclass(frozen=True)
class TokenState:
    """The current id token, refresh token and id token expiry."""

    id_token: str | None = field(default=None, repr=False)
    refresh_token: str | None = field(default=None, repr=False)
    expiry: datetime | None = None

    def is_valid(self, now: datetime | None = None) -> bool:
        # Unknown expiry counts as expired
        if not self.id_token or self.expiry is None:
            return False
        return self.expiry > (now or datetime.now(UTC))


def token_expiry(token: str | None) -> datetime | None:
    """Read the ``exp`` claim of a compact JWT without verifying it.

    Returns:
        The expiry as an aware UTC datetime, or None if the token is
        missing, malformed, or has no numeric ``exp``.
    """
    if not token:
        return None
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        logger.debug(f"Could not decode OIDC id token: {e}")
        return None

    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(exp, UTC)
    except (OverflowError, OSError, ValueError):
        return None


class OidcTokenProvider:
    """Bearer credentials from an OIDC id token, refreshed when expired.

    Args:
        client_id: OAuth client id registered with the identity provider.
        client_secret: OAuth client secret, if the client has one.
        issuer_url: Issuer URL; discovery is done against it.
        id_token: Current id token, may be None.
        refresh_token: Refresh token; without it no refresh is possible.
        idp_ca_data: PEM CA bundle trusted for identity provider calls.
        timeout: Timeout for each identity provider call.
        transport: httpx transport for identity provider calls, mainly for
            tests.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str | None,
        issuer_url: str,
        id_token: str | None,
        refresh_token: str | None,
        *,
        idp_ca_data: bytes | None = None,
        timeout: float = DEFAULT_REFRESH_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.issuer_url = issuer_url.rstrip("/")
        self._idp_ca_data = idp_ca_data
        self._timeout = timeout
        self._transport = transport
        self._token = TokenState(id_token=id_token, refresh_token=refresh_token, expiry=token_expiry(id_token))
        self._refresh_failed = False
        self._flight = SingleFlight()

    def __repr__(self) -> str:
        return f"OidcTokenProvider(client_id={self.client_id!r}, issuer_url={self.issuer_url!r})"

    @property
    def token_state(self) -> TokenState:
        return self._token

    @property
    def state(self) -> OidcState:
        if self._token.is_valid():
            return OidcState.HAVE_VALID_TOKEN
        if self._refresh_failed:
            return OidcState.REFRESH_FAILED
        return OidcState.EXPIRED

    def needs_refresh(self) -> bool:
        return not self._token.is_valid()

    def resolve(self) -> ResolvedCredential:
        token = self._token
        if token.is_valid():
            return self._credential(token)
        return self._flight.do(self._refresh)

    def _credential(self, token: TokenState) -> ResolvedCredential:
        return ResolvedCredential(authorization=f"Bearer {token.id_token}", expiry=token.expiry)

    def _refresh(self) -> ResolvedCredential:
        # Another caller may have refreshed while we waited
        token = self._token
        if token.is_valid():
            return self._credential(token)

        try:
            refreshed = self._request_new_token(token)
        except CredentialRefreshError:
            self._refresh_failed = True
            raise

        self._token = refreshed
        self._refresh_failed = False
        if not refreshed.is_valid():
            logger.warning(f"Identity provider {self.issuer_url} returned an id token that is already expired")
        logger.info(f"Refreshed OIDC id token from {self.issuer_url}")
        return self._credential(refreshed)

    def _verify(self) -> ssl.SSLContext | bool:
        if self._idp_ca_data:
            return ssl.create_default_context(cadata=self._idp_ca_data.decode("utf-8"))
        return True

    def _request_new_token(self, token: TokenState) -> TokenState:
        if not token.refresh_token:
            raise CredentialRefreshError("No refresh token is available.")

        data = {
            "grant_type": "refresh_token",
            "refresh_token": token.refresh_token,
            "client_id": self.client_id,
        }
        if self.client_secret:
            data["client_secret"] = self.client_secret

        logger.debug(f"Refreshing OIDC id token with {self.issuer_url}")
        try:
            with httpx.Client(verify=self._verify(), timeout=self._timeout, transport=self._transport) as client:
                token_endpoint = self._discover_token_endpoint(client)
                response = client.post(token_endpoint, data=data, headers={"Accept": "application/json"})
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            raise CredentialRefreshError(
                f"Identity provider answered {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL, ssl.SSLError, ValueError) as e:
            raise CredentialRefreshError(str(e) or type(e).__name__) from e

        id_token = payload.get("id_token") if isinstance(payload, dict) else None
        if not isinstance(id_token, str) or not id_token:
            raise CredentialRefreshError("Identity provider response does not contain an id_token.")

        return TokenState(
            id_token=id_token,
            refresh_token=payload.get("refresh_token") or token.refresh_token,
            expiry=token_expiry(id_token),
        )

    def _discover_token_endpoint(self, client: httpx.Client) -> str:
        response = client.get(f"{self.issuer_url}{DISCOVERY_PATH}", headers={"Accept": "application/json"})
        response.raise_for_status()
        document = response.json()
        endpoint = document.get("token_endpoint") if isinstance(document, dict) else None
        if not isinstance(endpoint, str) or not endpoint:
            raise ValueError(f"Discovery document of {self.issuer_url} has no token_endpoint")
        return endpoint
