from __future__ import annotations

import datetime as dt
import logging
from typing import Callable, Protocol, Sequence

from reschedbot.domain import AppointmentDay, CycleOutcome, Location, TokenUnavailable
from reschedbot.gateway import AppointmentGateway, GatewayAuth
from reschedbot.retry_policy import RetryCounter, should_refresh
from reschedbot.selection import find_compatible_time, find_earlier_day
from reschedbot.session import SessionContext

logger = logging.getLogger(__name__)


class BrowserPage(Protocol):
    def current_url(self) -> str: ...

    def get_csrf_token(self) -> str | None: ...

    def cookies(self) -> dict[str, str]: ...

    def user_agent(self) -> str | None: ...


class Rescheduler:
    """Runs one reschedule cycle: poll locations, pick a day and time, submit."""

    def __init__(
        self,
        *,
        page: BrowserPage,
        gateway: AppointmentGateway,
        locations: Sequence[Location],
        threshold: dt.date,
        pause: Callable[[], object],
    ) -> None:
        self.page = page
        self.gateway = gateway
        self.locations = tuple(locations)
        self.threshold = threshold
        self.pause = pause

    def _auth(self, action_id: str, csrf_token: str) -> GatewayAuth:
        return GatewayAuth(
            action_id=action_id,
            csrf_token=csrf_token,
            referrer=self.page.current_url(),
            cookies=self.page.cookies(),
            user_agent=self.page.user_agent(),
        )

    def _find_day(self, auth: GatewayAuth) -> tuple[Location, AppointmentDay] | None:
        for location in self.locations:
            logger.info("Getting available appointment days for location %s", location.name)
            days = self.gateway.list_days(auth, location)

            if days:
                logger.info("Comparing %d appointment days at location %s", len(days), location.name)
                day = find_earlier_day(days, self.threshold)
                if day is not None:
                    return location, day

            logger.info("Found no earlier appointment day at location %s", location.name)
            self.pause()
        return None

    def run_cycle(self, ctx: SessionContext, retries: RetryCounter) -> CycleOutcome:
        ctx.reset()

        action_id = ctx.action_id
        if action_id is None:
            logger.error("No action id in session; navigation did not complete")
            return CycleOutcome.ERROR

        csrf_token = self.page.get_csrf_token()
        ctx.csrf_token = csrf_token
        if not csrf_token:
            error = TokenUnavailable(f"No X-CSRF-Token meta tag on {self.page.current_url()}")
            logger.error("Reschedule cycle failed (%s: %s)", type(error).__name__, error)
            return CycleOutcome.ERROR

        found = self._find_day(self._auth(action_id, csrf_token))
        if found is None:
            count = retries.increment()
            logger.info("Retry count at %d", count)
            return CycleOutcome.REFRESH if should_refresh(count) else CycleOutcome.RETRY

        location, day = found
        ctx.select_day(location, day)
        logger.info("Found an earlier appointment day %s at location %s", day.date, location.name)

        times = self.gateway.list_times(self._auth(action_id, csrf_token), location, day.date)
        time = find_compatible_time(times.available_times, times.business_times) if times else None
        if time is None:
            # No fallback to the next location; the cycle fails as a whole.
            logger.error("Unable to find an appointment time for %s at location %s", day.date, location.name)
            return CycleOutcome.ERROR

        ctx.select_time(time)
        logger.info("Found time %s for %s at location %s", time, day.date, location.name)

        result = self.gateway.submit(self._auth(action_id, csrf_token), location, day.date, time)
        if not result.ok:
            logger.error("There was an error submitting this appointment (status=%s)", result.status_code)
            return CycleOutcome.ERROR

        return CycleOutcome.SUCCESS
