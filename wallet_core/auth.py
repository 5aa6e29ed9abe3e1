"""
Identity Verification Module

The auth port: turns a bearer credential into a stable subject identifier.
The core never trusts an unverified token; JWTs are checked for signature,
expiry and (when configured) audience and issuer with PyJWT.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Optional

import jwt

from .errors import Unauthenticated
from .logging_config import get_logger


@dataclass(frozen=True)
class VerifiedIdentity:
    """Claims the core relies on after verification"""
    subject: str
    email: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None


class IdentityVerifier(ABC):
    """Resolves a bearer credential to a verified identity"""

    @abstractmethod
    def verify(self, token: str) -> VerifiedIdentity:
        """
        Verify a credential.

        Raises:
            Unauthenticated: If the credential is missing, malformed, expired
                or fails signature verification
        """
        pass


class JWTIdentityVerifier(IdentityVerifier):
    """Verifies signed JWTs (HS256 shared secret or public-key algorithms)"""

    def __init__(
        self,
        key: str,
        algorithms: Iterable[str] = ("HS256",),
        audience: Optional[str] = None,
        issuer: Optional[str] = None,
        leeway_seconds: int = 0
    ):
        if not key:
            raise ValueError("A verification key is required")
        self.key = key
        self.algorithms = list(algorithms)
        self.audience = audience
        self.issuer = issuer
        self.leeway_seconds = leeway_seconds
        self.logger = get_logger("wallet.auth")

    @classmethod
    def from_config(cls, config) -> 'JWTIdentityVerifier':
        """Build from WalletConfig; public-key algorithms use jwt_public_key"""
        algorithm = config.jwt_algorithm
        key = config.jwt_secret if algorithm.startswith("HS") else config.jwt_public_key
        return cls(
            key=key,
            algorithms=[algorithm],
            audience=config.jwt_audience,
            issuer=config.jwt_issuer,
            leeway_seconds=config.jwt_leeway_seconds
        )

    def verify(self, token: str) -> VerifiedIdentity:
        if not token:
            raise Unauthenticated("Not authenticated")

        options = {"require": ["sub", "exp"]}
        try:
            payload = jwt.decode(
                token,
                self.key,
                algorithms=self.algorithms,
                audience=self.audience,
                issuer=self.issuer,
                leeway=self.leeway_seconds,
                options=options
            )
        except jwt.ExpiredSignatureError:
            raise Unauthenticated("Token expired")
        except jwt.InvalidTokenError as e:
            self.logger.warning(f"Rejected bearer token: {e}")
            raise Unauthenticated("Invalid token")

        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject:
            raise Unauthenticated("Invalid token")

        return VerifiedIdentity(
            subject=subject,
            email=payload.get("email"),
            name=payload.get("name"),
            phone=payload.get("phone_number")
        )


class DevelopmentIdentityVerifier(IdentityVerifier):
    """
    Treats the bearer token itself as the subject.

    Only selected when WALLET_AUTH_ENABLED=false, for local development.
    """

    def __init__(self):
        self.logger = get_logger("wallet.auth")
        self.logger.warning("Token verification is disabled; bearer tokens are trusted as subjects")

    def verify(self, token: str) -> VerifiedIdentity:
        if not token or not token.strip():
            raise Unauthenticated("Not authenticated")
        subject = token.strip()
        return VerifiedIdentity(subject=subject, email=f"{subject}@localhost")


def create_verifier(config) -> IdentityVerifier:
    """Verifier for the configured auth mode"""
    if not config.auth_enabled:
        return DevelopmentIdentityVerifier()
    return JWTIdentityVerifier.from_config(config)
