"""
Simulator traffic snapshot.

The simulator connection itself lives outside this service. It pushes
the user aircraft and AI traffic into ``SimulatorState``; the aircraft
query cache reads a ``RegistrationSnapshot`` from it to hide online
clients that are the same aircraft as simulator traffic.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from onlinedata.geo import Pos


@dataclass(frozen=True)
class SimAircraft:
    """Aircraft reported by the simulator."""
    registration: str
    position: Pos

    @classmethod
    def from_dict(cls, data: dict) -> 'SimAircraft':
        """Build from {'registration': str, 'latitude': float, 'longitude': float, 'altitude_ft': float}."""
        return cls(
            registration=str(data.get('registration') or '').strip(),
            position=Pos(
                float(data['latitude']),
                float(data['longitude']),
                data.get('altitude_ft'),
            ),
        )


@dataclass(frozen=True)
class RegistrationSnapshot:
    """
    Registration to position mapping of current simulator traffic.

    Compared by key set only: positions change continuously and must not
    invalidate the cache.
    """
    positions: Dict[str, Pos] = field(default_factory=dict)

    @classmethod
    def from_aircraft(cls, user: Optional[SimAircraft], ai: Iterable[SimAircraft] = ()) -> 'RegistrationSnapshot':
        positions: Dict[str, Pos] = {}
        if user is not None:
            positions[user.registration] = user.position
        for aircraft in ai:
            positions[aircraft.registration] = aircraft.position
        # Aircraft without registration cannot be matched
        positions.pop('', None)
        return cls(positions)

    @classmethod
    def from_simulator(cls, state: 'SimulatorState') -> 'RegistrationSnapshot':
        """
        Build snapshot from simulator state.

        The user aircraft is always included. AI traffic only if connected
        or in debug mode.
        """
        user, ai, connected, debug = state.snapshot()
        return cls.from_aircraft(user, ai if (connected or debug) else ())

    @property
    def keys(self) -> frozenset:
        return frozenset(self.positions)

    def same_registrations(self, other: Optional['RegistrationSnapshot']) -> bool:
        if other is None:
            return not self.positions
        return self.keys == other.keys

    def get(self, registration: str) -> Optional[Pos]:
        return self.positions.get(registration)

    def __contains__(self, registration: str) -> bool:
        return registration in self.positions

    def __len__(self) -> int:
        return len(self.positions)


class SimulatorState:
    """Thread-safe holder for the latest simulator traffic."""

    def __init__(self):
        self._lock = threading.Lock()
        self._user: Optional[SimAircraft] = None
        self._ai: List[SimAircraft] = []
        self._connected = False
        self._debug = False

    def update(
        self,
        user: Optional[SimAircraft] = None,
        ai: Iterable[SimAircraft] = (),
        connected: bool = False,
        debug: bool = False,
    ) -> None:
        with self._lock:
            self._user = user
            self._ai = list(ai)
            self._connected = connected
            self._debug = debug

    def clear(self) -> None:
        self.update()

    def snapshot(self) -> tuple:
        """Return (user, ai list, connected, debug) as one consistent view."""
        with self._lock:
            return self._user, list(self._ai), self._connected, self._debug

    @property
    def is_connected(self) -> bool:
        with self._lock:
            return self._connected
