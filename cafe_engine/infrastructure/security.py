# cafe_engine/infrastructure/security.py

import os

from jose import jwt

DEFAULT_ALGORITHM = "HS256"


class TokenConfigurationError(RuntimeError):
    pass


def decode_token(token: str) -> dict:
    """
    Verifies a cafe-owner access token issued by the auth service.
    The owner id is carried in the "sub" claim.
    """
    secret_key = os.getenv("JWT_SECRET_KEY")
    if not secret_key:
        raise TokenConfigurationError("JWT_SECRET_KEY is not configured.")
    algorithm = os.getenv("JWT_ALGORITHM", DEFAULT_ALGORITHM)
    return jwt.decode(token, secret_key, algorithms=[algorithm])
