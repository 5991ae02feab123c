from typing import Optional
from datetime import datetime, timedelta

import jwt
from loguru import logger

from app.core.config import settings
from app.db.schema import ActorRole
from app.models.actor import Actor, Token
from app.services.identity import is_valid_wallet, normalize_wallet


class ActorService:
    """
    Issues and verifies actor tokens. The subject is the wallet address,
    the `role` claim is the supply-chain role the wallet acts in.
    """
    ALGORITHM = "HS256"

    def create_access_token(self, wallet: str, role: ActorRole,
                            expires_delta: Optional[timedelta] = None) -> str:
        to_encode = {
            "sub": normalize_wallet(wallet),
            "role": ActorRole(role).value,
            "exp": datetime.utcnow() + (expires_delta or timedelta(
                minutes=settings.access_token_expire_minutes)),
            "type": "access"
        }
        return jwt.encode(to_encode, settings.secret_key, algorithm=self.ALGORITHM)

    def generate_token(self, wallet: str, role: ActorRole) -> Token:
        return Token(access_token=self.create_access_token(wallet, role))

    def verify_access_token(self, token: str) -> Optional[Actor]:
        try:
            payload = jwt.decode(token, settings.secret_key,
                                 algorithms=[self.ALGORITHM])
            wallet = payload.get("sub")
            role = payload.get("role")

            if payload.get("type") != "access" or not is_valid_wallet(wallet):
                return None

            return Actor(wallet=wallet.strip().lower(), role=ActorRole(role))
        except (jwt.PyJWTError, ValueError) as e:
            logger.debug(f"Rejected actor token: {e}")
            return None
