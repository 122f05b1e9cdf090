"""
Server model - network and voice servers from the auxiliary feed.
"""

from typing import Optional

from sqlalchemy import String, Integer, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from onlinedata.models.base import Base


class Server(Base):
    """Network or voice server. Voice servers use the hostname as ident."""

    __tablename__ = 'server'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ident: Mapped[str] = mapped_column(String(100), nullable=False)
    hostname: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    allowed: Mapped[bool] = mapped_column(Boolean, default=True)
    voice_type: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    is_voice: Mapped[bool] = mapped_column(Boolean, default=False)

    def __repr__(self) -> str:
        return f'<Server {self.ident}{" (voice)" if self.is_voice else ""}>'

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'ident': self.ident,
            'hostname': self.hostname,
            'location': self.location,
            'name': self.name,
            'allowed': self.allowed,
            'voice_type': self.voice_type,
            'is_voice': self.is_voice,
        }
