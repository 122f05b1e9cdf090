"""
Feed parsers for the online network text files.

Handles status.txt bootstrap documents and whazzup.txt feeds in
VATSIM and IVAO formats.
"""

from onlinedata.feed.status import StatusDocument, parse_status
from onlinedata.feed.whazzup import ClientRecord, ServerRecord, WhazzupDocument, parse_whazzup

__all__ = [
    'StatusDocument',
    'parse_status',
    'ClientRecord',
    'ServerRecord',
    'WhazzupDocument',
    'parse_whazzup',
]
