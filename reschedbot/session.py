from __future__ import annotations

from dataclasses import dataclass

from reschedbot.domain import AppointmentDay, Location


@dataclass
class SessionContext:
    """Identifiers and the current selection for one logged-in browser session.

    One instance is created per run and passed explicitly to every step; it is
    never shared between concurrent callers.
    """

    action_id: str | None = None
    csrf_token: str | None = None

    selected_location: Location | None = None
    selected_day: AppointmentDay | None = None
    selected_time: str | None = None

    def reset(self) -> None:
        # action_id stays valid for the whole authenticated session.
        self.selected_location = None
        self.selected_day = None
        self.selected_time = None

    def clear(self) -> None:
        self.reset()
        self.action_id = None
        self.csrf_token = None

    def select_day(self, location: Location, day: AppointmentDay) -> None:
        self.selected_location = location
        self.selected_day = day
        self.selected_time = None

    def select_time(self, time: str) -> None:
        if self.selected_location is None or self.selected_day is None:
            raise RuntimeError("Cannot select a time before a location and day are selected")
        self.selected_time = time
