"""
Client model - pilots connected to the online network.

This is the "hot" table of the service. It is replaced completely on
every fresh feed and queried by bounding box on every map redraw that
misses the aircraft cache.

Design notes:
- One row per connected pilot, surrogate integer id
- Clients without position are stored but never match a rectangle query
- The callsign doubles as registration for deduplication against
  simulator traffic
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Float, Integer, DateTime, Boolean, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from onlinedata.models.base import Base


class Client(Base):
    """Online pilot as read from the whazzup feed."""

    __tablename__ = 'client'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Identification
    callsign: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
        comment='Network callsign, used as registration'
    )

    vid: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, comment='Network user id')
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    server: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Position (WGS84)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    altitude_ft: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    groundspeed_kts: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    heading: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    on_ground: Mapped[bool] = mapped_column(Boolean, default=False)
    transponder: Mapped[Optional[str]] = mapped_column(String(4), nullable=True)

    # Flight plan
    aircraft_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    tas_cruise: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    departure: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    destination: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    alternate: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    planned_altitude: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    flight_rules: Mapped[Optional[str]] = mapped_column(String(4), nullable=True)
    route: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    logon_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        # Rectangle queries
        Index('ix_client_location', 'longitude', 'latitude'),
    )

    def __repr__(self) -> str:
        return f'<Client {self.id} {self.callsign}>'

    @property
    def registration(self) -> str:
        return self.callsign or ''

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict for API responses."""
        return {
            'id': self.id,
            'callsign': self.callsign,
            'vid': self.vid,
            'name': self.name,
            'server': self.server,
            'position': {
                'latitude': self.latitude,
                'longitude': self.longitude,
                'altitude_ft': self.altitude_ft,
            },
            'telemetry': {
                'groundspeed_kts': self.groundspeed_kts,
                'heading': self.heading,
                'on_ground': self.on_ground,
                'transponder': self.transponder,
            },
            'flight_plan': {
                'aircraft_type': self.aircraft_type,
                'departure': self.departure,
                'destination': self.destination,
                'alternate': self.alternate,
                'planned_altitude': self.planned_altitude,
                'flight_rules': self.flight_rules,
                'route': self.route,
            },
            'logon_time': self.logon_time.isoformat() if self.logon_time else None,
        }
