"""
Identity Provider Classes

Third-party sign-in over the OAuth 2.0 authorization-code flow. A provider
builds the consent URL the browser is redirected to, and later exchanges the
code returned to `/auth/callback` for the signed-in user's profile.
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode
import aiohttp
from core.exceptions import IdentityProviderError

logger = logging.getLogger(__name__)


@dataclass
class IdentityProfile:
    """User identity as reported by the provider"""

    provider: str
    subject: str
    email: Optional[str] = None
    name: Optional[str] = None


class IdentityProvider(ABC):
    """Abstract base class for OAuth identity providers"""

    @abstractmethod
    def authorization_url(self, redirect_uri: str, state: str) -> str:
        """URL of the provider's consent page"""
        pass

    @abstractmethod
    async def exchange_code(self, code: str, redirect_uri: str) -> IdentityProfile:
        """Trade an authorization code for the user's profile"""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier"""
        pass


class GoogleOAuthProvider(IdentityProvider):
    """Google sign-in using the OpenID Connect endpoints"""

    AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
    SCOPES = "openid email profile"

    def __init__(
        self,
        client_id: str = None,
        client_secret: str = None,
        timeout_seconds: int = 10,
    ):
        self.client_id = client_id or os.getenv("OAUTH_CLIENT_ID", "")
        self.client_secret = client_secret or os.getenv("OAUTH_CLIENT_SECRET", "")
        self.timeout_seconds = timeout_seconds

        if not self.client_id:
            logger.warning(
                "OAUTH_CLIENT_ID is not set; sign-in redirects will be rejected by Google"
            )

    @property
    def name(self) -> str:
        return "google"

    def authorization_url(self, redirect_uri: str, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": self.SCOPES,
            "state": state,
            "access_type": "online",
            "prompt": "select_account",
        }
        return f"{self.AUTHORIZE_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str, redirect_uri: str) -> IdentityProfile:
        """Exchange the authorization code, then read the userinfo endpoint"""
        token_payload = {
            "code": code,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": redirect_uri,
            "grant_type": "authorization_code",
        }

        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.TOKEN_URL, data=token_payload) as response:
                    if response.status != 200:
                        body = await response.text()
                        logger.warning(
                            f"Token exchange rejected ({response.status}): {body[:200]}"
                        )
                        raise IdentityProviderError(
                            self.name, f"token exchange returned {response.status}"
                        )
                    token_data = await response.json()

                access_token = token_data.get("access_token")
                if not access_token:
                    raise IdentityProviderError(
                        self.name, "token response had no access_token"
                    )

                async with session.get(
                    self.USERINFO_URL,
                    headers={"Authorization": f"Bearer {access_token}"},
                ) as response:
                    if response.status != 200:
                        raise IdentityProviderError(
                            self.name, f"userinfo returned {response.status}"
                        )
                    userinfo = await response.json()

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Error talking to {self.name}: {e}")
            raise IdentityProviderError(self.name, str(e))

        subject = userinfo.get("sub")
        if not subject:
            raise IdentityProviderError(self.name, "userinfo had no subject")

        logger.info(f"Resolved {self.name} identity for subject {subject}")

        return IdentityProfile(
            provider=self.name,
            subject=subject,
            email=userinfo.get("email"),
            name=userinfo.get("name"),
        )


PROVIDERS = {
    "google": GoogleOAuthProvider,
}


def create_identity_provider(name: str = None) -> IdentityProvider:
    """Build the provider named by `name` or the OAUTH_PROVIDER variable"""
    name = (name or os.getenv("OAUTH_PROVIDER", "google")).lower()
    provider_class = PROVIDERS.get(name)
    if provider_class is None:
        raise ValueError(f"Unknown identity provider: {name}")
    return provider_class()
