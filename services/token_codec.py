"""
Signed, time-bounded access tokens.

Tokens are JWTs with three claims: sub (user id), iat and exp, all
timestamps as integer UNIX seconds. The codec does no I/O; the caller
supplies the current time so expiry checks are deterministic.
"""

import math
import uuid
from datetime import datetime, timedelta

from jose import jws, jwt
from jose.exceptions import JWSError, JWTError


class TokenError(Exception):
    """Base class for every reason a token is rejected."""


class TokenMalformedError(TokenError):
    """Token cannot be split, decoded or its claims are not well formed."""


class TokenSignatureError(TokenError):
    """Signature does not match, or the token asserts an unexpected algorithm."""


class TokenExpiredError(TokenError):
    pass


class TokenNotYetValidError(TokenError):
    pass


class TokenCodec:
    """
    Issues and verifies access tokens with a pinned symmetric algorithm.

    Args:
        secret: Server-held signing key
        algorithm: HMAC algorithm used to sign; any other algorithm in a
            token header is rejected on verify
    """

    def __init__(self, secret: str, algorithm: str = "HS256"):
        if not secret:
            raise ValueError("A signing secret is required")
        if not algorithm.startswith("HS"):
            raise ValueError(f"Only HMAC algorithms are supported, got {algorithm}")
        self._secret = secret
        self.algorithm = algorithm

    def issue(self, user_id: uuid.UUID, now: datetime, ttl: timedelta) -> str:
        issued_at = int(now.timestamp())
        payload = {
            "sub": str(user_id),
            "iat": issued_at,
            # rounded up so the token never lives shorter than ttl
            "exp": math.ceil((now + ttl).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def verify(self, token: str, now: datetime) -> uuid.UUID:
        """
        Check signature and validity window and return the subject.

        Raises:
            TokenMalformedError, TokenSignatureError, TokenExpiredError,
            TokenNotYetValidError
        """
        try:
            header = jwt.get_unverified_header(token)
            claims = jwt.get_unverified_claims(token)
        except JWTError as e:
            raise TokenMalformedError(str(e)) from e

        if header.get("alg") != self.algorithm:
            raise TokenSignatureError(f"Unexpected signing algorithm: {header.get('alg')}")

        try:
            jws.verify(token, self._secret, algorithms=[self.algorithm])
        except JWSError as e:
            # structure was already parsed above, so what remains is the signature
            raise TokenSignatureError(str(e)) from e

        timestamp = now.timestamp()

        exp = claims.get("exp")
        if not isinstance(exp, (int, float)):
            raise TokenMalformedError("Missing or non-numeric exp claim")
        if timestamp >= exp:
            raise TokenExpiredError("Token has expired")

        nbf = claims.get("nbf")
        if nbf is not None:
            if not isinstance(nbf, (int, float)):
                raise TokenMalformedError("Non-numeric nbf claim")
            if timestamp < nbf:
                raise TokenNotYetValidError("Token is not valid yet")

        try:
            return uuid.UUID(str(claims["sub"]))
        except (KeyError, ValueError) as e:
            raise TokenMalformedError("Missing or invalid sub claim") from e
