"""
Atc model - online controllers with their coverage circle.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Float, Integer, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from onlinedata.models.base import Base


class Atc(Base):
    """
    Online controller as read from the whazzup feed.

    radius_nm is the circle drawn on the map. It comes from the configured
    override for the facility type, the visual range of the client, or 0.
    """

    __tablename__ = 'atc'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    callsign: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    vid: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    server: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    facility_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, index=True)
    frequency: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    visual_range: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    radius_nm: Mapped[int] = mapped_column(Integer, default=0)

    # ATIS lines joined with newline
    atis: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    logon_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f'<Atc {self.callsign} {self.facility_type or "?"}>'

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'callsign': self.callsign,
            'name': self.name,
            'facility_type': self.facility_type,
            'frequency': self.frequency,
            'position': {
                'latitude': self.latitude,
                'longitude': self.longitude,
            },
            'radius_nm': self.radius_nm,
            'atis': self.atis.split('\n') if self.atis else [],
            'logon_time': self.logon_time.isoformat() if self.logon_time else None,
        }
