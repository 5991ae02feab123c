from sqlmodel import SQLModel
from app.db.schema import ActorRole


class Actor(SQLModel):
    """The authenticated caller: a wallet acting in one supply-chain role."""
    wallet: str
    role: ActorRole


class Token(SQLModel):
    access_token: str
    token_type: str = "bearer"
