"""
Parser for the network status document (status.txt).

The status document is a bootstrap file pointing to the current feed
URLs. Format is one ``key=value`` per line, comments start with ``;``:

    ; comment
    msg0=Welcome to the network
    url0=http://example.com/whazzup.txt
    gzurl0=http://example.com/whazzup.txt.gz
    url1=http://example.com/servers.txt
    metar0=http://example.com/metar.html
"""

import logging
from dataclasses import dataclass, field
from typing import List, Tuple

logger = logging.getLogger(__name__)


@dataclass
class StatusDocument:
    """Parsed status.txt contents."""
    messages: List[str] = field(default_factory=list)
    whazzup_urls: List[str] = field(default_factory=list)
    whazzup_gzip_urls: List[str] = field(default_factory=list)
    voice_urls: List[str] = field(default_factory=list)
    metar_urls: List[str] = field(default_factory=list)
    atis_urls: List[str] = field(default_factory=list)
    user_urls: List[str] = field(default_factory=list)
    moveto_urls: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        """Operator message, empty if none given."""
        return '\n'.join(self.messages).strip()

    def whazzup_url(self) -> Tuple[str, bool]:
        """
        Get the feed URL and whether it points to a gzipped file.

        Gzipped URLs take precedence. Returns ('', False) if none is given.
        """
        if self.whazzup_gzip_urls:
            return self.whazzup_gzip_urls[0], True
        if self.whazzup_urls:
            return self.whazzup_urls[0], False
        return '', False

    @property
    def voice_url(self) -> str:
        """URL of the server list, empty if none given."""
        return self.voice_urls[0] if self.voice_urls else ''


# Key to attribute mapping
_KEYS = {
    'msg0': 'messages',
    'url0': 'whazzup_urls',
    'gzurl0': 'whazzup_gzip_urls',
    'url1': 'voice_urls',
    'metar0': 'metar_urls',
    'atis0': 'atis_urls',
    'user0': 'user_urls',
    'moveto0': 'moveto_urls',
}


def parse_status(text: str) -> StatusDocument:
    """Parse status.txt text. Unknown keys and malformed lines are ignored."""
    doc = StatusDocument()

    for line in (text or '').splitlines():
        line = line.strip()
        if not line or line.startswith(';'):
            continue

        key, sep, value = line.partition('=')
        if not sep:
            continue

        attr = _KEYS.get(key.strip().lower())
        if attr is None:
            logger.debug(f'Ignoring status key {key!r}')
            continue

        value = value.strip()
        if value or attr == 'messages':
            getattr(doc, attr).append(value)

    return doc
