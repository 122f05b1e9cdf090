"""
Parser for whazzup feed files in VATSIM and IVAO text formats.

The feed is split into sections introduced by a line starting with ``!``:

    !GENERAL
    VERSION = 8
    RELOAD = 2
    UPDATE = 20180322170014
    CONNECTED CLIENTS = 586
    !CLIENTS
    DLH123:1234567:Real Name:PILOT::50.03:8.57:12000:420:B738:...
    !SERVERS
    EUROPE-C2:88.198.19.202:Europe:Europe Server:1:
    !VOICE SERVERS
    voice.example.com:Europe:Voice Europe:1:R:
    !END

Client lines are colon separated. Both formats share the first 38 columns;
they differ in the position of the heading and IVAO adds an on-ground flag.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from onlinedata.config import FacilityType, OnlineFormat

logger = logging.getLogger(__name__)

# Column indexes shared by both formats
COL_CALLSIGN = 0
COL_VID = 1
COL_NAME = 2
COL_CLIENT_TYPE = 3
COL_FREQUENCY = 4
COL_LATITUDE = 5
COL_LONGITUDE = 6
COL_ALTITUDE = 7
COL_GROUNDSPEED = 8
COL_AIRCRAFT = 9
COL_TAS_CRUISE = 10
COL_DEPARTURE = 11
COL_PLANNED_ALTITUDE = 12
COL_DESTINATION = 13
COL_SERVER = 14
COL_RATING = 16
COL_TRANSPONDER = 17
COL_FACILITY_TYPE = 18
COL_VISUAL_RANGE = 19
COL_FLIGHT_RULES = 21
COL_ALTERNATE = 28
COL_REMARKS = 29
COL_ROUTE = 30
COL_ATIS = 35
COL_LOGON_TIME = 37

# Format specific columns
VATSIM_COL_HEADING = 38
IVAO_COL_HEADING = 45
IVAO_COL_ON_GROUND = 46

# Line separator used inside ATIS text
ATIS_SEPARATOR = '^§'

# Same numbering in both networks - IVAO adds departure
FACILITY_TYPES = {
    0: FacilityType.OBSERVER,
    1: FacilityType.FLIGHT_INFORMATION,
    2: FacilityType.DELIVERY,
    3: FacilityType.GROUND,
    4: FacilityType.TOWER,
    5: FacilityType.APPROACH,
    6: FacilityType.ACC,
    7: FacilityType.DEPARTURE,
}

CLIENT_TYPE_PILOT = 'PILOT'
CLIENT_TYPE_ATC = 'ATC'

# Largest value stored in an INTEGER column
MAX_INT = 2 ** 31 - 1


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse 'YYYYMMDDhhmmss' into an aware UTC datetime, or None if invalid."""
    value = (value or '').strip()
    if not value:
        return None
    try:
        return datetime.strptime(value[:14], '%Y%m%d%H%M%S').replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def _to_float(value: str) -> Optional[float]:
    """Parse a number. Missing, malformed, infinite or NaN values give None."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _to_int(value: str) -> Optional[int]:
    """Parse an integer column. Values outside the database INTEGER range give None."""
    number = _to_float(value)
    if number is None or abs(number) > MAX_INT:
        return None
    return int(number)


@dataclass
class ClientRecord:
    """A pilot or controller connected to the network."""
    callsign: str
    vid: Optional[str] = None
    name: Optional[str] = None
    client_type: str = CLIENT_TYPE_PILOT
    frequency: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    altitude_ft: Optional[int] = None
    groundspeed_kts: Optional[int] = None
    heading: Optional[float] = None
    on_ground: bool = False
    server: Optional[str] = None
    rating: Optional[int] = None
    transponder: Optional[str] = None
    facility_type: Optional[FacilityType] = None
    visual_range: Optional[int] = None
    aircraft_type: Optional[str] = None
    tas_cruise: Optional[int] = None
    departure: Optional[str] = None
    destination: Optional[str] = None
    alternate: Optional[str] = None
    planned_altitude: Optional[str] = None
    flight_rules: Optional[str] = None
    route: Optional[str] = None
    remarks: Optional[str] = None
    atis: List[str] = field(default_factory=list)
    logon_time: Optional[datetime] = None

    @property
    def is_atc(self) -> bool:
        return self.client_type == CLIENT_TYPE_ATC

    @property
    def has_position(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @classmethod
    def from_fields(cls, fields: List[str], fmt: OnlineFormat) -> Optional['ClientRecord']:
        """
        Parse a colon separated client line already split into fields.

        Returns None if the line has no callsign.
        """
        if len(fields) < IVAO_COL_ON_GROUND + 1:
            fields = fields + [''] * (IVAO_COL_ON_GROUND + 1 - len(fields))

        callsign = fields[COL_CALLSIGN].strip()
        if not callsign:
            return None

        def text(index: int) -> Optional[str]:
            return fields[index].strip() or None

        if fmt == OnlineFormat.IVAO:
            heading = _to_float(fields[IVAO_COL_HEADING])
            on_ground = fields[IVAO_COL_ON_GROUND].strip() == '1'
        else:
            heading = _to_float(fields[VATSIM_COL_HEADING])
            on_ground = False

        facility_type = None
        facility_number = _to_int(fields[COL_FACILITY_TYPE])
        if facility_number is not None:
            facility_type = FACILITY_TYPES.get(facility_number)

        atis = [line.strip() for line in fields[COL_ATIS].split(ATIS_SEPARATOR) if line.strip()]

        return cls(
            callsign=callsign,
            vid=text(COL_VID),
            name=text(COL_NAME),
            client_type=fields[COL_CLIENT_TYPE].strip().upper() or CLIENT_TYPE_PILOT,
            frequency=text(COL_FREQUENCY),
            latitude=_to_float(fields[COL_LATITUDE]),
            longitude=_to_float(fields[COL_LONGITUDE]),
            altitude_ft=_to_int(fields[COL_ALTITUDE]),
            groundspeed_kts=_to_int(fields[COL_GROUNDSPEED]),
            heading=heading,
            on_ground=on_ground,
            server=text(COL_SERVER),
            rating=_to_int(fields[COL_RATING]),
            transponder=text(COL_TRANSPONDER),
            facility_type=facility_type,
            visual_range=_to_int(fields[COL_VISUAL_RANGE]),
            aircraft_type=text(COL_AIRCRAFT),
            tas_cruise=_to_int(fields[COL_TAS_CRUISE]),
            departure=text(COL_DEPARTURE),
            destination=text(COL_DESTINATION),
            alternate=text(COL_ALTERNATE),
            planned_altitude=text(COL_PLANNED_ALTITUDE),
            flight_rules=text(COL_FLIGHT_RULES),
            route=text(COL_ROUTE),
            remarks=text(COL_REMARKS),
            atis=atis,
            logon_time=parse_timestamp(fields[COL_LOGON_TIME]),
        )


@dataclass
class ServerRecord:
    """A network or voice server."""
    ident: str
    hostname: Optional[str] = None
    location: Optional[str] = None
    name: Optional[str] = None
    allowed: bool = True
    voice_type: Optional[str] = None
    is_voice: bool = False

    @classmethod
    def from_server_fields(cls, fields: List[str]) -> Optional['ServerRecord']:
        """Parse 'ident:hostname:location:name:allowed:'."""
        fields = fields + [''] * (5 - len(fields))
        ident = fields[0].strip()
        if not ident:
            return None
        return cls(
            ident=ident,
            hostname=fields[1].strip() or None,
            location=fields[2].strip() or None,
            name=fields[3].strip() or None,
            allowed=fields[4].strip() != '0',
        )

    @classmethod
    def from_voice_fields(cls, fields: List[str]) -> Optional['ServerRecord']:
        """Parse 'hostname:location:name:allowed:type:'. Hostname is the ident."""
        fields = fields + [''] * (5 - len(fields))
        hostname = fields[0].strip()
        if not hostname:
            return None
        return cls(
            ident=hostname,
            hostname=hostname,
            location=fields[1].strip() or None,
            name=fields[2].strip() or None,
            allowed=fields[3].strip() != '0',
            voice_type=fields[4].strip() or None,
            is_voice=True,
        )


@dataclass
class WhazzupDocument:
    """Parsed whazzup feed."""
    version: Optional[int] = None
    reload_minutes: Optional[int] = None
    update_time: Optional[datetime] = None
    connected_clients: Optional[int] = None
    connected_servers: Optional[int] = None
    clients: List[ClientRecord] = field(default_factory=list)
    servers: List[ServerRecord] = field(default_factory=list)

    @property
    def pilots(self) -> List[ClientRecord]:
        return [c for c in self.clients if not c.is_atc]

    @property
    def atcs(self) -> List[ClientRecord]:
        return [c for c in self.clients if c.is_atc]

    def is_newer_than(self, last_update: Optional[datetime]) -> bool:
        """
        Check if this feed is newer than the last one seen.

        A feed without update time or a missing last update always counts as new.
        """
        if self.update_time is None or last_update is None:
            return True
        return self.update_time > last_update


def _parse_general(doc: WhazzupDocument, line: str) -> None:
    key, sep, value = line.partition('=')
    if not sep:
        return
    key = key.strip().upper()
    value = value.strip()

    if key == 'VERSION':
        doc.version = _to_int(value)
    elif key == 'RELOAD':
        doc.reload_minutes = _to_int(value)
    elif key == 'UPDATE':
        doc.update_time = parse_timestamp(value)
    elif key == 'CONNECTED CLIENTS':
        doc.connected_clients = _to_int(value)
    elif key == 'CONNECTED SERVERS':
        doc.connected_servers = _to_int(value)


def parse_whazzup(text: str, fmt: OnlineFormat = OnlineFormat.VATSIM) -> WhazzupDocument:
    """
    Parse a whazzup feed.

    Reads the general section, clients and both server sections. Prefiled
    flight plans and airports are skipped.

    Raises:
        ValueError if the text contains no known section at all
    """
    doc = WhazzupDocument()
    section = None
    found_section = False

    for raw in (text or '').splitlines():
        line = raw.strip()
        if not line or line.startswith(';'):
            continue

        if line.startswith('!'):
            section = line[1:].strip().upper()
            found_section = found_section or section in ('GENERAL', 'CLIENTS', 'SERVERS', 'VOICE SERVERS')
            continue

        if section == 'GENERAL':
            _parse_general(doc, line)
        elif section == 'CLIENTS':
            client = ClientRecord.from_fields(line.split(':'), fmt)
            if client:
                doc.clients.append(client)
        elif section == 'SERVERS':
            server = ServerRecord.from_server_fields(line.split(':'))
            if server:
                doc.servers.append(server)
        elif section == 'VOICE SERVERS':
            server = ServerRecord.from_voice_fields(line.split(':'))
            if server:
                doc.servers.append(server)

    if not found_section:
        raise ValueError('No whazzup sections found')

    logger.debug(
        f'Parsed whazzup: {len(doc.clients)} clients, {len(doc.servers)} servers, '
        f'update {doc.update_time}'
    )
    return doc
