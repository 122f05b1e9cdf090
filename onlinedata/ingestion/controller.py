"""
Download controller for online network data.

Drives the download chain for one network and keeps the store and the
aircraft cache in sync with it:

    NONE -> DOWNLOADING_STATUS -> DOWNLOADING_WHAZZUP -> DOWNLOADING_WHAZZUP_SERVERS -> NONE
              (status.txt)          (whazzup.txt)         (servers, every 15 min)

A cycle starts from NONE, either when processing is started or when the
reload timer fires. Every stage is started one loop tick after the
previous one completed, never from inside the transport callback.

Failure handling:
- Transport errors are reported through the ``error`` signal and the
  cycle restarts after ERROR_RETRY_SECONDS or when the error is
  acknowledged. Failures arriving while idle are ignored.
- Broken gzip data or an unparseable feed are logged and the cycle ends
  as if the feed had not changed.
- A feed that is not newer than the last one ends the cycle quietly.
- Missing URLs mean the online feature is disabled - nothing happens.
"""

import codecs
import gzip
import locale
import logging
import zlib
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Hashable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from onlinedata.cache import AircraftQueryCache
from onlinedata.config import NetworkConfig
from onlinedata.eventloop import EventLoop, Handle, TimerHandle
from onlinedata.geo import Rect
from onlinedata.ingestion.downloader import HttpDownloader
from onlinedata.models import Client
from onlinedata.simulator import RegistrationSnapshot, SimulatorState
from onlinedata.store import OnlineDataManager

logger = logging.getLogger(__name__)

MIN_SERVER_DOWNLOAD_INTERVAL = timedelta(minutes=15)
MIN_RELOAD_SECONDS = 60

# Wait after a failed download before the cycle starts again
ERROR_RETRY_SECONDS = 30

# Feed contents that could not be read or written
FEED_ERRORS = (ValueError, OverflowError, SQLAlchemyError)

EPOCH = datetime.fromtimestamp(0, timezone.utc)


def _feed_encoding() -> str:
    # Files use Windows code page with embedded UTF-8 for ATIS text
    try:
        return codecs.lookup('windows-1252').name
    except LookupError:
        return locale.getpreferredencoding(False)


FEED_ENCODING = _feed_encoding()


def decode_feed(data: bytes) -> str:
    return data.decode(FEED_ENCODING, errors='replace')


def gunzip(data: bytes) -> bytes:
    """Decompress gzip data. Returns empty bytes if the data is broken."""
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as e:
        logger.warning(f'Error unzipping data: {e}')
        return b''


class DownloadState(str, Enum):
    """Stage of the download chain."""
    NONE = 'none'
    DOWNLOADING_STATUS = 'downloading_status'
    DOWNLOADING_WHAZZUP = 'downloading_whazzup'
    DOWNLOADING_WHAZZUP_SERVERS = 'downloading_whazzup_servers'


@dataclass(frozen=True)
class DownloadStage:
    """
    Current stage with the data only that stage needs.

    gzipped is only meaningful while downloading the whazzup feed.
    """
    state: DownloadState = DownloadState.NONE
    url: str = ''
    gzipped: bool = False


IDLE = DownloadStage()


@dataclass
class CycleTimestamps:
    """Completion time of the last cycle and of the last server list download."""
    last_update: datetime = EPOCH
    last_server_download: datetime = EPOCH

    def reset(self) -> None:
        self.last_update = EPOCH
        self.last_server_download = EPOCH


def reload_interval_seconds(options: NetworkConfig, feed_reload_minutes: int) -> Tuple[int, str]:
    """
    Seconds until the next cycle and where the value came from.

    Custom networks use the configured value as is. Other networks use the
    fixed override or, in auto mode, the feed's reload time, both at least
    one minute.
    """
    if options.is_custom:
        # Ignore reload in whazzup.txt
        return options.reload_seconds, 'options'

    if options.reload_seconds_config == -1:
        return max(feed_reload_minutes * 60, MIN_RELOAD_SECONDS), 'whazzup'

    return max(options.reload_seconds_config, MIN_RELOAD_SECONDS), 'config'


class Signal:
    """List of listeners. A failing listener is logged and does not stop the others."""

    def __init__(self, name: str):
        self.name = name
        self._listeners: List[Callable] = []

    def connect(self, listener: Callable) -> None:
        self._listeners.append(listener)

    def emit(self, *args) -> None:
        for listener in list(self._listeners):
            try:
                listener(*args)
            except Exception as e:
                logger.error(f'{self.name} listener error: {e}')


class OnlineDataController:
    """
    Owns the download state machine, the reload timer and the aircraft cache.

    All methods except the query methods must be called on the loop thread.
    """

    def __init__(
        self,
        manager: OnlineDataManager,
        downloader: HttpDownloader,
        loop: EventLoop,
        options: NetworkConfig,
        cache: Optional[AircraftQueryCache] = None,
        simulator: Optional[SimulatorState] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.manager = manager
        self.downloader = downloader
        self.loop = loop
        self.cache = cache or AircraftQueryCache(manager)
        self.simulator = simulator or SimulatorState()
        self._now = now or (lambda: datetime.now(timezone.utc))

        self._options = options
        self._stage = IDLE
        self._timer: Optional[TimerHandle] = None
        self._pending_start: Optional[Handle] = None
        self._retry_pending = False
        self.timestamps = CycleTimestamps()

        # Notifications for map, search and info
        self.client_and_atc_updated = Signal('client_and_atc_updated')  # (reload_all, keep_selection)
        self.servers_updated = Signal('servers_updated')  # (reload_all, keep_selection)
        self.network_changed = Signal('network_changed')
        self.message = Signal('message')  # (text)
        self.error = Signal('error')  # (text)

        self.downloader.on_finished = self.download_finished
        self.downloader.on_failed = self.download_failed

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> DownloadState:
        return self._stage.state

    @property
    def stage(self) -> DownloadStage:
        return self._stage

    @property
    def options(self) -> NetworkConfig:
        return self._options

    @property
    def timer_active(self) -> bool:
        return self._timer is not None and not self._timer.cancelled

    # -------------------------------------------------------------------------
    # Download chain
    # -------------------------------------------------------------------------

    def start_processing(self) -> None:
        """Start a download cycle now."""
        self._start_download_internal()

    def _start_download_internal(self) -> None:
        self.stop_all_processes()

        options = self._options
        if not options.is_active:
            # No online functionality set in options
            return

        whazzup_url_from_status, gzipped_from_status = self.manager.get_whazzup_url_from_status()

        if self._stage.state != DownloadState.NONE:
            return

        if not options.no_user_agent:
            self.downloader.set_user_agent_suffix(f'Config/{options.network_name}')
        else:
            self.downloader.reset_user_agent()

        if not whazzup_url_from_status and options.status_url:
            # Status not downloaded yet - start status.txt and whazzup.txt cycle
            self._request(DownloadStage(DownloadState.DOWNLOADING_STATUS, options.status_url))
        elif whazzup_url_from_status:
            self._request(DownloadStage(
                DownloadState.DOWNLOADING_WHAZZUP, whazzup_url_from_status, gzipped_from_status
            ))
        elif options.whazzup_url:
            self._request(DownloadStage(
                DownloadState.DOWNLOADING_WHAZZUP, options.whazzup_url, options.whazzup_gzipped
            ))
        else:
            logger.debug('No online URLs configured')

    def _request(self, stage: DownloadStage) -> None:
        """Enter stage and start its download on the next loop tick."""
        self._stage = stage
        self.downloader.set_url(stage.url)
        self._pending_start = self.loop.call_soon(self._start_pending_download)

    def _start_pending_download(self) -> None:
        self._pending_start = None
        self.downloader.start_download()

    def download_finished(self, data: bytes, url: str) -> None:
        """Transport success callback."""
        logger.debug(f'Download finished: url {url} data size {len(data)}')
        state = self._stage.state

        if state == DownloadState.DOWNLOADING_STATUS:
            self._status_finished(data)
        elif state == DownloadState.DOWNLOADING_WHAZZUP:
            self._whazzup_finished(data)
        elif state == DownloadState.DOWNLOADING_WHAZZUP_SERVERS:
            self._servers_finished(data)
        else:
            logger.debug(f'Ignoring download result for {url} while idle')

    def _status_finished(self, data: bytes) -> None:
        self.manager.write_status_feed(decode_feed(data))

        whazzup_url, gzipped = self.manager.get_whazzup_url_from_status()

        message = self.manager.get_message_from_status()
        if message:
            self.loop.call_soon(self._show_message, message)

        if whazzup_url:
            self._request(DownloadStage(DownloadState.DOWNLOADING_WHAZZUP, whazzup_url, gzipped))
        else:
            # Done after downloading status.txt
            self._finish_cycle()

    def _whazzup_finished(self, data: bytes) -> None:
        if self._stage.gzipped:
            data = gunzip(data)

        try:
            fresh = self.manager.write_data_feed(
                decode_feed(data),
                self._options.online_format,
                self.manager.get_last_update_time_from_whazzup(),
            )
        except FEED_ERRORS as e:
            logger.warning(f'Error reading whazzup from {self._stage.url}: {e}')
            fresh = False

        if not fresh:
            logger.info('whazzup.txt is not recent')
            self._finish_cycle()
            return

        self.cache.invalidate()

        voice_url = self.manager.get_whazzup_voice_url_from_status()
        if voice_url and self.timestamps.last_server_download < self._now() - MIN_SERVER_DOWNLOAD_INTERVAL:
            # Next in chain is server file
            self._request(DownloadStage(DownloadState.DOWNLOADING_WHAZZUP_SERVERS, voice_url))
        else:
            self._finish_cycle()
            self.client_and_atc_updated.emit(True, True)

    def _servers_finished(self, data: bytes) -> None:
        try:
            self.manager.write_server_feed(
                decode_feed(data),
                self._options.online_format,
                self.manager.get_last_update_time_from_whazzup(),
            )
        except FEED_ERRORS as e:
            logger.warning(f'Error reading servers from {self._stage.url}: {e}')
        self.timestamps.last_server_download = self._now()

        self._finish_cycle()
        self.cache.invalidate()

        self.client_and_atc_updated.emit(True, True)
        self.servers_updated.emit(True, True)

    def _finish_cycle(self) -> None:
        """Back to idle and wait for the next cycle."""
        self.start_download_timer()
        self._stage = IDLE
        self.timestamps.last_update = self._now()

    def download_failed(self, error: str, url: str) -> None:
        """
        Transport failure callback.

        Reports the error and restarts the cycle after ERROR_RETRY_SECONDS,
        or earlier if the error is acknowledged.
        """
        if self._stage.state == DownloadState.NONE:
            logger.debug(f'Ignoring download failure for {url} while idle')
            return

        logger.warning(f'Failed {error} {url}')
        self.stop_all_processes()
        self.error.emit(
            f'Download from\n\n"{url}"\n\nfailed. Reason:\n\n{error}\n\n'
            f'Retrying in {ERROR_RETRY_SECONDS} seconds.'
        )
        self._timer = self.loop.call_later(ERROR_RETRY_SECONDS, self._start_download_internal)
        self._retry_pending = True

    def acknowledge_error(self) -> bool:
        """Retry a failed download now. Returns False if no retry was waiting."""
        if not self._retry_pending:
            return False
        logger.info('Download error acknowledged - retrying')
        self.start_processing()
        return True

    def stop_all_processes(self) -> None:
        """Cancel download and timer and go back to idle."""
        self.downloader.cancel_download()
        if self._pending_start is not None:
            self._pending_start.cancel()
            self._pending_start = None
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._stage = IDLE
        self._retry_pending = False
        self.cache.clear_registrations()

    def _show_message(self, message: str) -> None:
        logger.info(f'Message from downloaded status file: {message}')
        self.message.emit(message)

    def options_changed(self, options: NetworkConfig) -> None:
        """Switch to new network options, drop all data and start over."""
        logger.info(f'Online options changed: network {options.network.value}')

        # Clear all URLs from status.txt too
        self.manager.reset_for_new_options()
        self.stop_all_processes()
        self._options = options

        # Remove all from the database
        self.manager.clear_all()
        self.cache.invalidate()

        self.client_and_atc_updated.emit(True, True)
        self.servers_updated.emit(True, True)
        self.network_changed.emit()

        self.timestamps.reset()

        self._start_download_internal()

    def start_download_timer(self) -> None:
        """Schedule the next cycle."""
        if self._timer is not None:
            self._timer.cancel()

        interval, source = reload_interval_seconds(self._options, self.manager.get_reload_minutes_from_whazzup())
        logger.debug(f'Timer set to {interval} from {source}')
        self._timer = self.loop.call_later(interval, self._start_download_internal)

    # -------------------------------------------------------------------------
    # Queries - callable from any thread
    # -------------------------------------------------------------------------

    def get_aircraft(
        self,
        rect: Rect,
        detail_level: Optional[Hashable] = None,
        lazy: bool = False,
    ) -> List[Client]:
        """Online aircraft in rect without duplicates of simulator traffic."""
        registrations = RegistrationSnapshot.from_simulator(self.simulator)
        return self.cache.get_aircraft(rect, detail_level, lazy, registrations)

    def get_aircraft_from_cache(self) -> List[Client]:
        return self.cache.get_cached()

    def get_client_aircraft_by_id(self, client_id: int) -> Optional[Client]:
        return self.manager.get_record_by_id(client_id)

    def has_data(self) -> bool:
        return self.manager.has_data()

    def get_network(self) -> str:
        return self._options.network_name

    def is_network_active(self) -> bool:
        return self._options.is_active

    def get_num_clients(self) -> int:
        return self.manager.count_records()

    def close(self) -> None:
        """Stop everything and remove all data to avoid confusion on next start."""
        self.stop_all_processes()
        self.cache.invalidate()
        self.manager.clear_all()
