from __future__ import annotations

import logging

import jwt

from ..application.errors import Unauthorized
from ..application.interfaces import UserRepository
from ..domain.user import Owner

logger = logging.getLogger(__name__)


class JwtIdentityProvider:
    """Resolves access tokens issued by the account service.

    Tokens are signed JWTs whose ``sub`` claim is the user id; the subscription
    tier is read from the users table so downgrades apply immediately.
    """

    def __init__(
        self, *, secret: str, algorithm: str, user_repository: UserRepository
    ) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._users = user_repository

    def resolve(self, credential: str) -> Owner:
        try:
            claims = jwt.decode(credential, self._secret, algorithms=[self._algorithm])
        except jwt.PyJWTError as exc:
            logger.info("Rejected bearer token: %s", exc)
            raise Unauthorized("Invalid access token") from exc

        user_id = claims.get("sub")
        if not user_id:
            raise Unauthorized("Access token has no subject")
        user = self._users.get_by_id(str(user_id))
        if user is None:
            raise Unauthorized("Unknown user")
        return Owner(owner_id=user.user_id, tier=user.subscription_tier)
