from sqlalchemy import Column, DateTime, String

from guptify.core.database import Base


class RevokedToken(Base):
    """Access tokens invalidated by signout, kept until they would expire anyway."""

    __tablename__ = "revoked_tokens"

    jti = Column(String(64), primary_key=True)
    expires_at = Column(DateTime, nullable=False, index=True)
