"""
Online network data package.

Downloads VATSIM/IVAO style status and whazzup feeds, stores them with
SQLAlchemy and serves rectangle queries for online aircraft to a map.

Modules:
    api/         REST endpoints for aircraft, controllers, servers and status
    models/      SQLAlchemy ORM models (Client, Atc, Server)
    feed/        Parsers for status.txt and whazzup.txt
    ingestion/   HTTP transport and download controller state machine
    cache.py     Thread-safe rectangle cache for online aircraft
    store.py     Persistence of the parsed feeds
    geo.py       Rectangles, inflation and distances
    eventloop.py Single control thread for the download cycle
    config.py    Centralized configuration from environment variables
"""

__version__ = '1.0.0'
