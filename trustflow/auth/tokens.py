"""Access token verification for the hosted auth platform."""

from __future__ import annotations

import logging
import time
from typing import Any, List, Mapping, Optional

import jwt
import requests

from ..config import AuthConfig

logger = logging.getLogger(__name__)


class JwtAuthProvider:
    """Resolve the current user from a bearer access token.

    Tokens are verified with ``jwt_secret`` (HS256) when configured, otherwise
    against the keys published at ``jwks_url``. The user id is the ``sub``
    claim. Invalid or missing tokens yield an anonymous user.
    """

    _jwks_cache: List[Mapping] = []
    _last_fetch: float = 0

    def __init__(self, config: AuthConfig, token: Optional[str] = None) -> None:
        self.config = config
        self.token = token
        self.claims: Mapping[str, Any] = {}

    def _fetch_jwks(self) -> None:
        resp = requests.get(self.config.jwks_url, timeout=5)
        resp.raise_for_status()
        self._jwks_cache = resp.json().get("keys", [])
        self._last_fetch = time.time()

    def verify_token(self, token: str) -> Mapping[str, Any]:
        """Validate ``token`` and return its claims."""
        if self.config.jwt_secret:
            return jwt.decode(
                token,
                self.config.jwt_secret,
                algorithms=["HS256"],
                audience=self.config.audience,
                issuer=self.config.issuer,
                leeway=self.config.leeway,
            )
        if not self.config.jwks_url:
            raise jwt.exceptions.InvalidKeyError("No JWT secret or JWKS URL configured.")

        now = time.time()
        if not self._jwks_cache or now - self._last_fetch > 300:
            self._fetch_jwks()

        header = jwt.get_unverified_header(token)
        for key in self._jwks_cache:
            if key.get("kid") == header.get("kid"):
                return jwt.decode(
                    token,
                    jwt.algorithms.RSAAlgorithm.from_jwk(key),
                    audience=self.config.audience,
                    issuer=self.config.issuer,
                    leeway=self.config.leeway,
                    algorithms=[header.get("alg", "RS256")],
                )
        raise jwt.exceptions.InvalidSignatureError("No matching JWK found.")

    def get_current_user(self) -> Optional[str]:
        if not self.token:
            return None
        try:
            self.claims = self.verify_token(self.token)
        except (jwt.exceptions.PyJWTError, requests.RequestException) as e:
            logger.warning(f"Rejected access token: {e}")
            self.claims = {}
            return None
        return self.claims.get("sub")
