"""
HTTP transport for feed downloads.

Runs each GET on a worker thread and reports the result back on the
event loop thread, so the download controller never blocks and never
sees callbacks from foreign threads:

- on_finished(data: bytes, url: str) on success
- on_failed(reason: str, url: str) on any network or HTTP error

Exactly one of them fires per started request. A request that was
cancelled, or superseded by a newer one, reports nothing.
"""

import logging
import threading
from typing import Callable, Optional

import requests

from onlinedata.config import config
from onlinedata.eventloop import EventLoop

logger = logging.getLogger(__name__)


class HttpDownloader:
    """
    Asynchronous single-request downloader.

    Only one request is in flight at a time. Starting a new download or
    cancelling bumps a generation counter; results of older generations
    are discarded when they arrive.
    """

    def __init__(
        self,
        loop: EventLoop,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
    ):
        self.loop = loop
        self.session = session or requests.Session()
        self.timeout = timeout or config.download.timeout_seconds
        self.default_user_agent = user_agent or config.download.user_agent
        self.user_agent = self.default_user_agent
        self.url = ''

        self.on_finished: Optional[Callable[[bytes, str], None]] = None
        self.on_failed: Optional[Callable[[str, str], None]] = None

        self._generation = 0
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    def set_url(self, url: str) -> None:
        self.url = url

    def set_user_agent_suffix(self, suffix: str) -> None:
        """Append a short suffix like 'Config/VATSIM' to the default user agent."""
        self.user_agent = f'{self.default_user_agent} {suffix}'.strip()

    def reset_user_agent(self) -> None:
        self.user_agent = self.default_user_agent

    @property
    def is_downloading(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start_download(self) -> None:
        """Start downloading the current URL in the background."""
        with self._lock:
            self._generation += 1
            generation = self._generation

        url = self.url
        logger.debug(f'Starting download of {url}')

        self._thread = threading.Thread(
            target=self._download,
            args=(url, generation),
            name='onlinedata-download',
            daemon=True,
        )
        self._thread.start()

    def cancel_download(self) -> None:
        """Discard the result of any running request. Safe to call any time."""
        with self._lock:
            self._generation += 1

    def _is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def _download(self, url: str, generation: int) -> None:
        """Worker thread body."""
        try:
            response = self.session.get(
                url,
                headers={'User-Agent': self.user_agent},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.content

        except requests.exceptions.Timeout:
            logger.warning(f'Download timeout: {url}')
            self.loop.call_soon_threadsafe(self._deliver_failure, generation, 'Request timed out', url)
            return
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else '?'
            logger.warning(f'Download HTTP error {status}: {url}')
            self.loop.call_soon_threadsafe(self._deliver_failure, generation, f'HTTP error {status}', url)
            return
        except requests.exceptions.RequestException as e:
            logger.warning(f'Download failed: {url}: {e}')
            self.loop.call_soon_threadsafe(self._deliver_failure, generation, str(e), url)
            return

        logger.debug(f'Downloaded {len(data)} bytes from {url}')
        self.loop.call_soon_threadsafe(self._deliver_success, generation, data, url)

    def _deliver_success(self, generation: int, data: bytes, url: str) -> None:
        if not self._is_current(generation):
            logger.debug(f'Discarding stale download result for {url}')
            return
        if self.on_finished:
            self.on_finished(data, url)

    def _deliver_failure(self, generation: int, reason: str, url: str) -> None:
        if not self._is_current(generation):
            logger.debug(f'Discarding stale download failure for {url}')
            return
        if self.on_failed:
            self.on_failed(reason, url)
