"""
Configuration management for the online network data service.

Loads settings from environment variables with sensible defaults.
All configuration is centralized here to avoid magic strings scattered
throughout the codebase.

The download controller never reads the ``config`` singleton while a
cycle is running. It receives a frozen ``NetworkConfig`` snapshot and
only replaces it through ``OnlineDataController.options_changed()``.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

from dotenv import load_dotenv

load_dotenv()


class OnlineNetwork(str, Enum):
    """Selected online network."""
    NONE = 'none'
    VATSIM = 'vatsim'
    IVAO = 'ivao'
    CUSTOM_STATUS = 'custom_status'  # Custom network using a status.txt
    CUSTOM = 'custom'  # Custom network using a whazzup.txt directly


class OnlineFormat(str, Enum):
    """Whazzup file format."""
    VATSIM = 'vatsim'
    IVAO = 'ivao'
    UNKNOWN = 'unknown'


class FacilityType(str, Enum):
    """ATC facility types as reported in the whazzup feed."""
    OBSERVER = 'observer'
    FLIGHT_INFORMATION = 'flight_information'
    DELIVERY = 'delivery'
    GROUND = 'ground'
    TOWER = 'tower'
    APPROACH = 'approach'
    ACC = 'acc'
    DEPARTURE = 'departure'


# Default URLs and formats per network - (status url, whazzup url, format)
NETWORK_DEFAULTS: Dict[OnlineNetwork, tuple] = {
    OnlineNetwork.VATSIM: ('http://status.vatsim.net/status.txt', '', OnlineFormat.VATSIM),
    OnlineNetwork.IVAO: ('https://www.ivao.aero/whazzup/status.txt', '', OnlineFormat.IVAO),
}

# ATC circle radius in NM if no value is given by the client
DEFAULT_ATC_RADII: Dict[FacilityType, int] = {
    FacilityType.GROUND: 5,
    FacilityType.TOWER: 10,
    FacilityType.APPROACH: 20,
}

NETWORK_NAMES: Dict[OnlineNetwork, str] = {
    OnlineNetwork.NONE: '',
    OnlineNetwork.VATSIM: 'VATSIM',
    OnlineNetwork.IVAO: 'IVAO',
    OnlineNetwork.CUSTOM_STATUS: 'Custom Network',
    OnlineNetwork.CUSTOM: 'Custom Network',
}


def _parse_enum(enum_cls, value: str, default):
    """Parse an enum value case-insensitively, or return default."""
    try:
        return enum_cls((value or '').strip().lower())
    except ValueError:
        return default


def _atc_radii_from_env() -> Dict[FacilityType, int]:
    radii = {}
    for fac_type in FacilityType:
        default = DEFAULT_ATC_RADII.get(fac_type, -1)
        value = os.getenv(f'ONLINE_CENTER_RADIUS_{fac_type.name}', str(default))
        try:
            radii[fac_type] = int(value)
        except ValueError:
            radii[fac_type] = default
    return radii


@dataclass(frozen=True)
class NetworkConfig:
    """
    Immutable snapshot of the online network options.

    Fields:
        network: Selected network identity
        status_url: URL of status.txt, empty if not used
        whazzup_url: URL of whazzup.txt, empty if taken from status.txt
        whazzup_gzipped: Configured whazzup URL points to a gzipped file
        online_format: Format used to parse the whazzup file
        reload_seconds: Reload interval for custom networks
        reload_seconds_config: Fixed reload override, -1 means auto (use feed value)
        no_user_agent: Do not append network name to the user agent
    """
    network: OnlineNetwork = OnlineNetwork.NONE
    status_url: str = ''
    whazzup_url: str = ''
    whazzup_gzipped: bool = False
    online_format: OnlineFormat = OnlineFormat.UNKNOWN
    reload_seconds: int = 180
    reload_seconds_config: int = -1
    no_user_agent: bool = False

    @property
    def is_active(self) -> bool:
        return self.network != OnlineNetwork.NONE

    @property
    def is_custom(self) -> bool:
        return self.network in (OnlineNetwork.CUSTOM, OnlineNetwork.CUSTOM_STATUS)

    @property
    def network_name(self) -> str:
        return NETWORK_NAMES[self.network]

    @classmethod
    def for_network(
        cls,
        network: OnlineNetwork,
        status_url: Optional[str] = None,
        whazzup_url: Optional[str] = None,
        online_format: Optional[OnlineFormat] = None,
        **kwargs,
    ) -> 'NetworkConfig':
        """
        Build a snapshot for a network, filling URLs and format from defaults.

        Custom networks only get what is passed in.
        """
        default_status, default_whazzup, default_format = NETWORK_DEFAULTS.get(
            network, ('', '', OnlineFormat.VATSIM if network != OnlineNetwork.NONE else OnlineFormat.UNKNOWN)
        )

        if network == OnlineNetwork.CUSTOM:
            # Only whazzup.txt - ignore any status URL
            status_url = ''
        elif network == OnlineNetwork.CUSTOM_STATUS:
            whazzup_url = ''

        whazzup_url = whazzup_url if whazzup_url is not None else default_whazzup
        gzipped = kwargs.pop('whazzup_gzipped', None)
        if gzipped is None:
            gzipped = whazzup_url.endswith('.gz')

        return cls(
            network=network,
            status_url=status_url if status_url is not None else default_status,
            whazzup_url=whazzup_url,
            whazzup_gzipped=gzipped,
            online_format=online_format or default_format,
            **kwargs,
        )

    @classmethod
    def from_env(cls) -> 'NetworkConfig':
        """Load network options from environment variables."""
        network = _parse_enum(OnlineNetwork, os.getenv('ONLINE_NETWORK', 'none'), OnlineNetwork.NONE)
        return cls.for_network(
            network,
            status_url=os.getenv('ONLINE_STATUS_URL') or None,
            whazzup_url=os.getenv('ONLINE_WHAZZUP_URL') or None,
            online_format=_parse_enum(OnlineFormat, os.getenv('ONLINE_FORMAT', ''), None),
            reload_seconds=int(os.getenv('ONLINE_RELOAD_SECONDS', '180')),
            reload_seconds_config=int(os.getenv('ONLINE_RELOAD_SECONDS_CONFIG', '-1')),
            no_user_agent=os.getenv('ONLINE_NO_USER_AGENT', '0') == '1',
        )


@dataclass(frozen=True)
class DatabaseConfig:
    """Database configuration."""
    url: str = os.getenv('DATABASE_URL', 'sqlite:///onlinedata.db')

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith('sqlite')


@dataclass(frozen=True)
class DownloadConfig:
    """HTTP transport settings."""
    timeout_seconds: float = float(os.getenv('DOWNLOAD_TIMEOUT_SECONDS', '30'))
    user_agent: str = 'onlinedata/1.0'


@dataclass(frozen=True)
class CacheConfig:
    """Spatial query cache settings."""
    inflation_factor: float = float(os.getenv('QUERY_RECT_INFLATION_FACTOR', '0.2'))
    inflation_increment: float = float(os.getenv('QUERY_RECT_INFLATION_INCREMENT', '0.1'))
    max_rows: int = int(os.getenv('QUERY_MAX_ROWS', '5000'))


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration."""
    network: NetworkConfig
    database: DatabaseConfig
    download: DownloadConfig
    cache: CacheConfig

    # Overrides for ATC circle radius per facility type, -1 = use client value
    atc_radii: Dict[FacilityType, int] = field(default_factory=dict)

    # Flask settings
    secret_key: str = 'dev-key-change-in-prod'
    debug: bool = False


def load_config() -> AppConfig:
    """Load and validate all configuration."""
    return AppConfig(
        network=NetworkConfig.from_env(),
        database=DatabaseConfig(),
        download=DownloadConfig(),
        cache=CacheConfig(),
        atc_radii=_atc_radii_from_env(),
        secret_key=os.getenv('SECRET_KEY', 'dev-key-change-in-prod'),
        debug=os.getenv('FLASK_DEBUG', '0') == '1',
    )


# Singleton instance
config = load_config()
