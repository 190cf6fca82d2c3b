from __future__ import annotations

import enum
from dataclasses import dataclass


class Location(enum.IntEnum):
    """Consular facility ids offered on the en-ca appointment page."""

    CALGARY = 89
    HALIFAX = 90
    MONTREAL = 91
    OTTAWA = 92
    QUEBEC = 93
    TORONTO = 94
    VANCOUVER = 95


@dataclass(frozen=True)
class AppointmentDay:
    """One offered day at one location, as returned by the days endpoint."""

    date: str  # YYYY-MM-DD
    business_day: bool


@dataclass(frozen=True)
class AppointmentTime:
    available_times: tuple[str, ...]
    business_times: tuple[str, ...]


class CycleOutcome(enum.Enum):
    ERROR = "error"
    RETRY = "retry"
    REFRESH = "refresh"
    SUCCESS = "success"


class State(enum.Enum):
    NOT_LOGGED_IN = "not_logged_in"
    NAVIGATE_TO_RESCHEDULE = "navigate_to_reschedule"
    RESCHEDULING = "rescheduling"
    REFRESH = "refresh"
    COMPLETE = "complete"
    ERROR = "error"


TERMINAL_STATES = frozenset({State.COMPLETE, State.ERROR})


class AuthenticationFailure(RuntimeError):
    """Login did not land on the groups page."""


class NavigationFailure(RuntimeError):
    """Continue link or action id could not be found."""


class TokenUnavailable(RuntimeError):
    """The page has no csrf-token meta tag; the session is broken."""


class GatewayFailure(RuntimeError):
    """Any failed remote call: transport error, non-success status or bad payload.

    The gateway reports these as return values; the type exists so the cause
    can be logged in one place.
    """
