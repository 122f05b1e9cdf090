"""
Persistence store for online network data.

Keeps the parsed status document in memory and writes the feed contents
to the relational database. Each write replaces the previous contents of
its tables in one transaction so that readers never see a half written
feed.

Store contract used by the download controller:
- write_status_feed / write_data_feed / write_server_feed
- query_by_rect, get_record_by_id, count_records, clear_all
"""

import logging
import threading
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.orm import sessionmaker

from onlinedata.config import FacilityType, OnlineFormat
from onlinedata.feed import StatusDocument, WhazzupDocument, parse_status, parse_whazzup
from onlinedata.feed.whazzup import ClientRecord
from onlinedata.geo import Rect
from onlinedata.models import Atc, Client, Server, SessionLocal, get_session, init_db

logger = logging.getLogger(__name__)

# Used if the feed does not give a reload time
DEFAULT_RELOAD_MINUTES = 3


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Strip timezone for storage - all feed times are UTC."""
    return value.replace(tzinfo=None) if value is not None else None


class OnlineDataManager:
    """
    Owns the online tables and the status document.

    Thread-safe: feed writes run on the download loop, queries come from
    API request threads.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory or SessionLocal
        self._lock = threading.RLock()

        self._status: Optional[StatusDocument] = None
        self._last_update: Optional[datetime] = None
        self._reload_minutes: Optional[int] = None
        self._atc_radii: Dict[FacilityType, int] = {}

        self.init_schema()

    def init_schema(self) -> None:
        """Create tables if they don't exist."""
        init_db(self._session_factory.kw['bind'])

    def set_atc_radius(self, radii: Dict[FacilityType, int]) -> None:
        """Set circle radius overrides in NM per facility type. -1 means no override."""
        with self._lock:
            self._atc_radii = dict(radii)

    def atc_radius(self, client: ClientRecord) -> int:
        with self._lock:
            override = self._atc_radii.get(client.facility_type, -1) if client.facility_type else -1
        if override is not None and override >= 0:
            return override
        return client.visual_range or 0

    # -------------------------------------------------------------------------
    # Status document
    # -------------------------------------------------------------------------

    def write_status_feed(self, text: str) -> StatusDocument:
        """Parse status.txt and keep it for URL lookups."""
        status = parse_status(text)
        with self._lock:
            self._status = status

        url, gzipped = status.whazzup_url()
        logger.info(f'Status read: whazzup url {url!r} (gzipped={gzipped}), voice url {status.voice_url!r}')
        return status

    def get_whazzup_url_from_status(self) -> Tuple[str, bool]:
        """Feed URL from status.txt and its gzip flag. Empty if status was not read."""
        with self._lock:
            if self._status is None:
                return '', False
            return self._status.whazzup_url()

    def get_whazzup_voice_url_from_status(self) -> str:
        with self._lock:
            return self._status.voice_url if self._status else ''

    def get_message_from_status(self) -> str:
        with self._lock:
            return self._status.message if self._status else ''

    # -------------------------------------------------------------------------
    # Feed writes
    # -------------------------------------------------------------------------

    def get_last_update_time_from_whazzup(self) -> Optional[datetime]:
        with self._lock:
            return self._last_update

    def get_reload_minutes_from_whazzup(self) -> int:
        with self._lock:
            if self._reload_minutes is None:
                return DEFAULT_RELOAD_MINUTES
            return self._reload_minutes

    def write_data_feed(
        self,
        text: str,
        fmt: OnlineFormat,
        last_update: Optional[datetime],
    ) -> bool:
        """
        Parse a whazzup feed and replace clients and controllers.

        Returns True if the feed was newer than last_update and was written.

        Raises:
            ValueError if the text is not a whazzup feed
        """
        doc = parse_whazzup(text, fmt)

        if not doc.is_newer_than(last_update):
            logger.info(f'Whazzup from {doc.update_time} is not newer than {last_update}')
            return False

        self._replace_clients(doc)

        with self._lock:
            self._last_update = doc.update_time
            if doc.reload_minutes is not None:
                self._reload_minutes = doc.reload_minutes

        logger.info(f'Whazzup written: {len(doc.pilots)} pilots, {len(doc.atcs)} controllers')
        return True

    def _replace_clients(self, doc: WhazzupDocument) -> None:
        clients = []
        atcs = []
        for record in doc.clients:
            if record.is_atc:
                atcs.append(Atc(
                    callsign=record.callsign,
                    vid=record.vid,
                    name=record.name,
                    server=record.server,
                    rating=record.rating,
                    facility_type=record.facility_type.value if record.facility_type else None,
                    frequency=record.frequency,
                    latitude=record.latitude,
                    longitude=record.longitude,
                    visual_range=record.visual_range,
                    radius_nm=self.atc_radius(record),
                    atis='\n'.join(record.atis) or None,
                    logon_time=_naive_utc(record.logon_time),
                ))
            else:
                clients.append(Client(
                    callsign=record.callsign,
                    vid=record.vid,
                    name=record.name,
                    server=record.server,
                    rating=record.rating,
                    latitude=record.latitude,
                    longitude=record.longitude,
                    altitude_ft=record.altitude_ft,
                    groundspeed_kts=record.groundspeed_kts,
                    heading=record.heading,
                    on_ground=record.on_ground,
                    transponder=record.transponder,
                    aircraft_type=record.aircraft_type,
                    tas_cruise=record.tas_cruise,
                    departure=record.departure,
                    destination=record.destination,
                    alternate=record.alternate,
                    planned_altitude=record.planned_altitude,
                    flight_rules=record.flight_rules,
                    route=record.route,
                    remarks=record.remarks,
                    logon_time=_naive_utc(record.logon_time),
                ))

        with get_session(self._session_factory) as session:
            session.execute(delete(Client))
            session.execute(delete(Atc))
            session.add_all(clients)
            session.add_all(atcs)

    def write_server_feed(
        self,
        text: str,
        fmt: OnlineFormat,
        last_update: Optional[datetime],
    ) -> int:
        """
        Parse the server list and replace the server table.

        The server list is always written. last_update is only used for logging.
        Returns count of servers written.

        Raises:
            ValueError if the text is not a server list
        """
        doc = parse_whazzup(text, fmt)

        servers = [
            Server(
                ident=s.ident,
                hostname=s.hostname,
                location=s.location,
                name=s.name,
                allowed=s.allowed,
                voice_type=s.voice_type,
                is_voice=s.is_voice,
            )
            for s in doc.servers
        ]

        with get_session(self._session_factory) as session:
            session.execute(delete(Server))
            session.add_all(servers)

        logger.info(f'Servers written: {len(servers)} (feed update {last_update})')
        return len(servers)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def query_by_rect(self, rect: Rect, max_rows: int) -> List[Client]:
        """
        Get clients inside a rectangle, at most max_rows.

        Rectangles crossing the anti-meridian are split here as well, but
        callers normally pass parts from split_at_anti_meridian().
        """
        result: List[Client] = []
        with self._session_factory() as session:
            for part in rect.split():
                remaining = max_rows - len(result)
                if remaining <= 0:
                    break
                stmt = (
                    select(Client)
                    .where(
                        Client.longitude.between(part.west, part.east),
                        Client.latitude.between(part.south, part.north),
                    )
                    .order_by(Client.id)
                    .limit(remaining)
                )
                result.extend(session.scalars(stmt).all())
        return result

    def get_record_by_id(self, client_id: int) -> Optional[Client]:
        with self._session_factory() as session:
            return session.get(Client, client_id)

    def count_records(self) -> int:
        """Number of clients (pilots) in the store."""
        with self._session_factory() as session:
            return session.scalar(select(func.count()).select_from(Client)) or 0

    def has_data(self) -> bool:
        with self._session_factory() as session:
            clients = session.scalar(select(func.count()).select_from(Client)) or 0
            atcs = session.scalar(select(func.count()).select_from(Atc)) or 0
        return clients + atcs > 0

    def atc_records(self) -> List[Atc]:
        with self._session_factory() as session:
            return list(session.scalars(select(Atc).order_by(Atc.callsign)).all())

    def server_records(self) -> List[Server]:
        with self._session_factory() as session:
            return list(session.scalars(select(Server).order_by(Server.ident)).all())

    # -------------------------------------------------------------------------
    # Reset
    # -------------------------------------------------------------------------

    def reset_for_new_options(self) -> None:
        """Forget status document and feed metadata of the previous network."""
        with self._lock:
            self._status = None
            self._last_update = None
            self._reload_minutes = None

    def clear_all(self) -> None:
        """Remove all records from the database."""
        with get_session(self._session_factory) as session:
            session.execute(delete(Client))
            session.execute(delete(Atc))
            session.execute(delete(Server))
        logger.debug('Online data cleared')
