"""Signed token codec for access and refresh tokens."""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog
from pydantic import ValidationError as PydanticValidationError

from src.config import get_settings
from src.errors import InvalidTokenError
from src.models.auth import TokenClaims, TokenType

logger = structlog.get_logger(__name__)

REQUIRED_CLAIMS = ["sub", "type", "iat", "exp", "jti"]


class TokenCodec:
    """Issues and verifies HS256-signed claim sets.

    Verification checks signature, expiry and the ``type`` claim only. It
    never consults storage; refresh tokens are additionally checked against
    the session ledger by the caller.
    """

    def __init__(self, secret: Optional[str] = None, algorithm: Optional[str] = None):
        settings = get_settings()
        self._secret = secret or settings.jwt_secret
        self._algorithm = algorithm or settings.jwt_algorithm

    def issue(self, subject_id: int, kind: TokenType, ttl: timedelta) -> str:
        """Create a signed token.

        Args:
            subject_id: User id placed in the 'sub' claim
            kind: "access" or "refresh", placed in the 'type' claim
            ttl: Lifetime from now

        Returns:
            Encoded JWT string
        """
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(subject_id),
            "type": kind,
            "iat": now,
            "exp": now + ttl,
            # Distinguishes tokens issued for the same user within one second
            "jti": secrets.token_hex(16),
        }
        token = jwt.encode(payload, self._secret, algorithm=self._algorithm)
        logger.debug(
            "token_issued",
            user_id=subject_id,
            kind=kind,
            ttl_seconds=int(ttl.total_seconds()),
        )
        return token

    def verify(self, token: str, expected_kind: Optional[TokenType] = None) -> TokenClaims:
        """Decode and validate a token.

        Args:
            token: Encoded JWT string
            expected_kind: If set, the 'type' claim must match

        Returns:
            Verified TokenClaims

        Raises:
            InvalidTokenError: If the token is malformed, tampered, expired,
                missing claims, or of the wrong kind
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError:
            logger.info("token_expired", expected_kind=expected_kind)
            raise InvalidTokenError("Token has expired")
        except jwt.InvalidTokenError as e:
            logger.info("token_rejected", expected_kind=expected_kind, reason=str(e))
            raise InvalidTokenError()

        try:
            claims = TokenClaims(**payload)
        except PydanticValidationError:
            logger.info("token_claims_malformed", expected_kind=expected_kind)
            raise InvalidTokenError()

        if expected_kind is not None and claims.type != expected_kind:
            logger.warning(
                "token_kind_mismatch",
                user_id=claims.sub,
                expected_kind=expected_kind,
                actual_kind=claims.type,
            )
            raise InvalidTokenError()

        return claims
