# lifemate/services/oauth.py
"""
Google sign-in, first half.

The browser is sent to Google with a `state` carrying the requested role
and the caller's origin. On callback the Google profile is packed into an
OAuth-pending token and the browser is redirected to the frontend's
`/oauth/complete` page. No session exists until the OTP step in
`AuthService.complete_oauth`.
"""
import base64
import json
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode, urlsplit

import httpx

from lifemate.core.config import Settings
from lifemate.core.security import normalize_email
from lifemate.models.user import Role, SELF_SERVICE_ROLES
from lifemate.repositories import users as user_repo
from lifemate.services.tokens import PendingOAuthContext, TokenIssuer

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
GOOGLE_PROVIDER = "google"


class OAuthProviderError(Exception):
    pass


@dataclass(frozen=True)
class OAuthState:
    role: str = Role.JOBSEEKER.value
    redirect_origin: Optional[str] = None


@dataclass(frozen=True)
class GoogleProfile:
    google_id: str
    email: str
    first_name: str
    last_name: str
    picture: Optional[str] = None


def safe_role(role: Optional[str]) -> str:
    role = str(role or "").lower()
    return role if role in SELF_SERVICE_ROLES else Role.JOBSEEKER.value


def safe_origin(uri: Optional[str]) -> Optional[str]:
    """Scheme and host of an http(s) URL; anything else is dropped."""
    if not uri:
        return None
    try:
        parts = urlsplit(str(uri))
    except ValueError:
        return None
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}"


def encode_state(state: OAuthState) -> str:
    raw = json.dumps({"role": state.role, "redirectUri": state.redirect_origin}).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_state(raw: Optional[str]) -> OAuthState:
    if not raw:
        return OAuthState()
    try:
        padded = raw + "=" * (-len(raw) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8"))
    except (ValueError, UnicodeError):
        return OAuthState()
    if not isinstance(data, dict):
        return OAuthState()
    return OAuthState(role=safe_role(data.get("role")), redirect_origin=safe_origin(data.get("redirectUri")))


class GoogleOAuthClient:
    """Authorization-code flow against Google's OAuth 2.0 endpoints."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.client_id = settings.GOOGLE_CLIENT_ID
        self.client_secret = settings.GOOGLE_CLIENT_SECRET
        self.callback_url = settings.GOOGLE_CALLBACK_URL
        self.timeout = settings.GOOGLE_TIMEOUT_SECONDS
        self._transport = transport

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id or "",
            "redirect_uri": self.callback_url,
            "response_type": "code",
            "scope": "openid profile email",
            "state": state,
            "prompt": "select_account",
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def fetch_profile(self, code: str) -> GoogleProfile:
        """Exchange the authorization code and read the user's profile."""
        if not self.client_id or not self.client_secret:
            raise OAuthProviderError("Google OAuth is not configured")
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                token_resp = await client.post(
                    GOOGLE_TOKEN_URL,
                    data={
                        "code": code,
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "redirect_uri": self.callback_url,
                        "grant_type": "authorization_code",
                    },
                )
                token_resp.raise_for_status()
                access_token = token_resp.json().get("access_token")
                if not access_token:
                    raise OAuthProviderError("Google did not return an access token")
                info_resp = await client.get(
                    GOOGLE_USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"}
                )
                info_resp.raise_for_status()
                info = info_resp.json()
            except httpx.HTTPError as exc:
                raise OAuthProviderError(f"Google request failed: {exc!r}") from exc

        email = normalize_email(info.get("email"))
        if not email:
            raise OAuthProviderError("Google account does not have a public email")
        return GoogleProfile(
            google_id=str(info.get("sub") or ""),
            email=email,
            first_name=info.get("given_name") or "User",
            last_name=info.get("family_name") or "Google",
            picture=info.get("picture"),
        )


class GoogleSignIn:
    def __init__(self, settings: Settings, client: GoogleOAuthClient, issuer: TokenIssuer):
        self.settings = settings
        self.client = client
        self.issuer = issuer

    def start_url(self, role: Optional[str], redirect_uri: Optional[str]) -> str:
        state = OAuthState(role=safe_role(role), redirect_origin=safe_origin(redirect_uri))
        return self.client.authorization_url(encode_state(state))

    def failure_url(self) -> str:
        return self.settings.OAUTH_FAILURE_REDIRECT or f"{self.settings.FRONTEND_URL.rstrip('/')}/oauth/failure"

    def _success_base(self, state: OAuthState) -> str:
        if state.redirect_origin:
            return f"{state.redirect_origin}/oauth/complete"
        return self.settings.OAUTH_SUCCESS_REDIRECT or f"{self.settings.FRONTEND_URL.rstrip('/')}/oauth/complete"

    async def callback_url(self, code: Optional[str], raw_state: Optional[str]) -> str:
        """Where to send the browser after Google redirects back to us."""
        state = decode_state(raw_state)
        if not code:
            return self.failure_url()
        try:
            profile = await self.client.fetch_profile(code)
        except OAuthProviderError as exc:
            logger.warning("Google OAuth callback failed: %s", exc)
            return self.failure_url()

        existing = await user_repo.find_by_oauth_or_email(GOOGLE_PROVIDER, profile.google_id, profile.email)
        pending = self.issuer.oauth_pending_token(
            PendingOAuthContext(
                email=profile.email,
                google_id=profile.google_id,
                first_name=profile.first_name,
                last_name=profile.last_name,
                profile_image=profile.picture,
                existing_user_id=existing.id if existing else None,
                existing_role=existing.role if existing else None,
                requested_role=state.role,
            )
        )
        query = urlencode({"pending": pending, "role": state.role})
        return f"{self._success_base(state)}?{query}"
