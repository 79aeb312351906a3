import jwt
from pydantic import ValidationError

from models import LeaseClaims

SIGNING_ALGORITHM = "RS256"

class LeaseSignatureError(Exception):
    """Lease token failed offline verification."""
    pass

class SignatureVerifier:
    """
    Verifies lease tokens against the authority's public signing key.
    """

    def __init__(self, public_key: str, algorithm: str = SIGNING_ALGORITHM):
        self.public_key = public_key
        self.algorithm = algorithm

    def verify(self, token: str) -> LeaseClaims:
        """
        Check signature and expiry of a lease token and return its claims.

        Bad signatures, expired or malformed tokens all raise LeaseSignatureError.
        """
        try:
            claims = jwt.decode(
                token,
                self.public_key,
                algorithms=[self.algorithm],
                options={"require": ["exp"]},
            )
            return LeaseClaims.model_validate(claims)
        except (jwt.PyJWTError, ValidationError) as e:
            raise LeaseSignatureError(str(e)) from e
