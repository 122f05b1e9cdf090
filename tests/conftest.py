"""
Pytest configuration and shared fixtures for online data tests.

Uses an in-memory SQLite database per test, a manual clock for the event
loop and a scripted transport so download cycles run deterministically.
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

# Set environment variables BEFORE importing the package
os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('ONLINE_NETWORK', 'none')

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from onlinedata.config import NetworkConfig, OnlineNetwork
from onlinedata.eventloop import EventLoop
from onlinedata.ingestion.controller import OnlineDataController
from onlinedata.cache import AircraftQueryCache
from onlinedata.models import make_engine, make_session_factory
from onlinedata.store import OnlineDataManager


STATUS_URL = 'http://status.test/status.txt'
WHAZZUP_URL = 'http://data.test/whazzup.txt'
WHAZZUP_GZ_URL = 'http://data.test/whazzup.txt.gz'
SERVERS_URL = 'http://data.test/servers.txt'


def client_line(
    callsign: str,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    client_type: str = 'PILOT',
    altitude=35000,
    groundspeed=450,
    facility_type: str = '',
    visual_range: str = '',
    atis: str = '',
    heading: str = '90',
    aircraft: str = 'B738',
) -> str:
    """Build a VATSIM client line with 41 columns."""
    fields = [''] * 41
    fields[0] = callsign
    fields[1] = '1234567'
    fields[2] = f'Name {callsign}'
    fields[3] = client_type
    fields[4] = '118.500' if client_type == 'ATC' else ''
    fields[5] = '' if latitude is None else str(latitude)
    fields[6] = '' if longitude is None else str(longitude)
    fields[7] = str(altitude)
    fields[8] = str(groundspeed)
    fields[9] = aircraft if client_type == 'PILOT' else ''
    fields[11] = 'EDDF' if client_type == 'PILOT' else ''
    fields[13] = 'KJFK' if client_type == 'PILOT' else ''
    fields[14] = 'EUROPE-C2'
    fields[18] = facility_type
    fields[19] = visual_range
    fields[35] = atis
    fields[37] = '20240101100000'
    fields[38] = heading
    return ':'.join(fields) + ':'


def make_whazzup(clients: List[str], update: str = '20240101120000', reload: int = 2) -> str:
    lines = [
        '; whazzup test file',
        '!GENERAL',
        'VERSION = 8',
        f'RELOAD = {reload}',
        f'UPDATE = {update}',
        f'CONNECTED CLIENTS = {len(clients)}',
        'CONNECTED SERVERS = 1',
        '!CLIENTS',
    ]
    lines.extend(clients)
    lines.extend(['!SERVERS', 'EUROPE-C2:88.198.19.202:Europe:Europe Server:1:', '!END'])
    return '\n'.join(lines) + '\n'


def make_status(
    whazzup_url: str = WHAZZUP_URL,
    gz_url: str = '',
    voice_url: str = SERVERS_URL,
    message: str = '',
) -> str:
    lines = ['; status test file', '120128:NOTCP']
    if message:
        lines.append(f'msg0={message}')
    if whazzup_url:
        lines.append(f'url0={whazzup_url}')
    if gz_url:
        lines.append(f'gzurl0={gz_url}')
    if voice_url:
        lines.append(f'url1={voice_url}')
    lines.append('metar0=http://metar.test/metar.html')
    return '\n'.join(lines) + '\n'


SERVERS_TEXT = '\n'.join([
    '!GENERAL',
    'UPDATE = 20240101120000',
    '!SERVERS',
    'EUROPE-C2:88.198.19.202:Europe:Europe Server:1:',
    'USA-E:97.107.135.245:New York:USA East:1:',
    '!VOICE SERVERS',
    'voice.test.net:Europe:Voice Europe:1:R:',
    '!END',
]) + '\n'


DEFAULT_CLIENTS = [
    client_line('DLH123', 50.03, 8.57),
    client_line('N12345', 47.45, -122.31),
    client_line('BAW1', 51.47, -0.45),
    client_line('EDDF_TWR', 50.03, 8.57, client_type='ATC', facility_type='4', visual_range='50'),
]


class ManualClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class WallClock:
    """UTC wall clock advanced by hand."""

    def __init__(self, start: Optional[datetime] = None):
        self.value = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.value

    def advance(self, **kwargs) -> None:
        self.value += timedelta(**kwargs)


class FakeDownloader:
    """
    Scripted transport with the HttpDownloader interface.

    Records every started request. Tests complete the request in flight
    with finish() or fail().
    """

    def __init__(self):
        self.url = ''
        self.requests: List[str] = []
        self.in_flight: Optional[str] = None
        self.cancel_count = 0
        self.user_agent_suffix = None
        self.on_finished = None
        self.on_failed = None

    def set_url(self, url: str) -> None:
        self.url = url

    def set_user_agent_suffix(self, suffix: str) -> None:
        self.user_agent_suffix = suffix

    def reset_user_agent(self) -> None:
        self.user_agent_suffix = None

    def start_download(self) -> None:
        self.requests.append(self.url)
        self.in_flight = self.url

    def cancel_download(self) -> None:
        self.cancel_count += 1
        self.in_flight = None

    def finish(self, data) -> None:
        if isinstance(data, str):
            data = data.encode('windows-1252')
        url, self.in_flight = self.in_flight, None
        assert url is not None, 'No download in flight'
        self.on_finished(data, url)

    def fail(self, reason: str) -> None:
        url, self.in_flight = self.in_flight, None
        assert url is not None, 'No download in flight'
        self.on_failed(reason, url)


class Recorder:
    """Collects signal emissions."""

    def __init__(self):
        self.calls = []

    def __call__(self, *args):
        self.calls.append(args)

    def __len__(self):
        return len(self.calls)


@pytest.fixture
def session_factory():
    engine = make_engine('sqlite://')
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def manager(session_factory):
    return OnlineDataManager(session_factory)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def wall_clock():
    return WallClock()


@pytest.fixture
def loop(clock):
    return EventLoop(clock=clock)


@pytest.fixture
def downloader():
    return FakeDownloader()


@pytest.fixture
def options():
    return NetworkConfig.for_network(OnlineNetwork.VATSIM, status_url=STATUS_URL)


@pytest.fixture
def controller(manager, downloader, loop, options, wall_clock):
    cache = AircraftQueryCache(manager, inflation_factor=0.2, inflation_increment=0.1, max_rows=5000)
    return OnlineDataController(manager, downloader, loop, options, cache=cache, now=wall_clock)


@pytest.fixture
def signals(controller):
    """Recorders connected to all controller signals."""
    recorders = {
        'client_and_atc_updated': Recorder(),
        'servers_updated': Recorder(),
        'network_changed': Recorder(),
        'message': Recorder(),
        'error': Recorder(),
    }
    for name, recorder in recorders.items():
        getattr(controller, name).connect(recorder)
    return recorders


def run_full_cycle(controller, downloader, loop, whazzup: Optional[str] = None, status: Optional[str] = None):
    """Drive status, whazzup and (if requested) servers downloads to completion."""
    controller.start_processing()
    loop.run_pending()
    downloader.finish(status or make_status())
    loop.run_pending()
    downloader.finish(whazzup or make_whazzup(DEFAULT_CLIENTS))
    loop.run_pending()
    if downloader.in_flight == SERVERS_URL:
        downloader.finish(SERVERS_TEXT)
        loop.run_pending()
