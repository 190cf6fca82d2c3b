from __future__ import annotations

import functools
import logging
from typing import Callable, Protocol

from selenium import webdriver
from selenium.common.exceptions import WebDriverException
from tenacity import RetryCallState, retry, stop_after_attempt, wait_exponential

from reschedbot.config import Settings
from reschedbot.domain import (
    TERMINAL_STATES,
    AuthenticationFailure,
    CycleOutcome,
    NavigationFailure,
    State,
)
from reschedbot.gateway import AppointmentGateway
from reschedbot.pacing import random_delay
from reschedbot.rescheduler import Rescheduler
from reschedbot.retry_policy import RetryCounter
from reschedbot.selenium_provider import (
    SeleniumSession,
    appointment_url_pattern,
    build_appointment_url,
    get_action_id,
    start_driver,
)
from reschedbot.session import SessionContext
from reschedbot.telegram_notifier import broadcast_telegram

logger = logging.getLogger(__name__)

_CYCLE_TRANSITIONS = {
    CycleOutcome.SUCCESS: State.COMPLETE,
    CycleOutcome.RETRY: State.RESCHEDULING,
    CycleOutcome.REFRESH: State.REFRESH,
    CycleOutcome.ERROR: State.ERROR,
}

_STEP_TRANSITIONS = {
    State.NOT_LOGGED_IN: State.NAVIGATE_TO_RESCHEDULE,
    State.NAVIGATE_TO_RESCHEDULE: State.RESCHEDULING,
    State.REFRESH: State.RESCHEDULING,
}


def next_state(state: State, result: bool | CycleOutcome) -> State:
    """Pure transition table of the reschedule flow.

    ``result`` is the success flag of the login / navigate / refresh steps, or
    the outcome of a reschedule cycle when ``state`` is RESCHEDULING.
    """

    if state in TERMINAL_STATES:
        raise ValueError(f"{state.name} is terminal and has no transitions")

    if state is State.RESCHEDULING:
        if not isinstance(result, CycleOutcome):
            raise ValueError(f"RESCHEDULING expects a CycleOutcome, got {result!r}")
        return _CYCLE_TRANSITIONS[result]

    if not isinstance(result, bool):
        raise ValueError(f"{state.name} expects a success flag, got {result!r}")
    return _STEP_TRANSITIONS[state] if result else State.ERROR


class Page(Protocol):
    country_code: str

    def log_in(self, *, email: str, password: str) -> None: ...

    def click_continue(self) -> None: ...

    def current_url(self) -> str: ...

    def navigate(self, url: str) -> None: ...

    def reload(self) -> None: ...

    def wait_for_url_matching(self, pattern: str) -> None: ...


class Orchestrator:
    """Drives login → navigation → reschedule cycles until COMPLETE or ERROR.

    Step executors only perform side effects and report a result; the next
    state always comes from :func:`next_state`.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        page: Page,
        rescheduler: Rescheduler,
        pause: Callable[[], object],
        ctx: SessionContext | None = None,
        retries: RetryCounter | None = None,
    ) -> None:
        self.settings = settings
        self.page = page
        self.rescheduler = rescheduler
        self.pause = pause
        self.ctx = ctx if ctx is not None else SessionContext()
        self.retries = retries if retries is not None else RetryCounter()
        self.state = State.NOT_LOGGED_IN

    def _login(self) -> bool:
        self.ctx.clear()
        self.retries.reset()
        try:
            self.page.log_in(email=self.settings.visa_email, password=self.settings.visa_password)
        except AuthenticationFailure as e:
            logger.error("Login failed (%s: %s)", type(e).__name__, e)
            return False
        logger.info("Successfully logged in")
        return True

    def _navigate(self) -> bool:
        try:
            self.page.click_continue()
            action_id = get_action_id(self.page.current_url())
            if not action_id:
                raise NavigationFailure(f"Unable to get action id from {self.page.current_url()}")
            self.ctx.action_id = action_id

            # Go directly to the appointment page with the action id.
            self.page.navigate(build_appointment_url(self.page.country_code, action_id))
            self.page.wait_for_url_matching(appointment_url_pattern(self.page.country_code))
        except (NavigationFailure, WebDriverException) as e:
            logger.error("Navigation failed (%s: %s)", type(e).__name__, e)
            return False
        logger.info("Navigated to reschedule appointment page (action id %s)", self.ctx.action_id)
        return True

    def _reschedule(self) -> CycleOutcome:
        try:
            return self.rescheduler.run_cycle(self.ctx, self.retries)
        except WebDriverException as e:
            logger.error("Reschedule cycle failed (%s: %s)", type(e).__name__, e)
            return CycleOutcome.ERROR

    def _refresh(self) -> bool:
        logger.info("Reloading page")
        self.retries.reset()
        self.ctx.reset()
        try:
            self.page.reload()
        except WebDriverException as e:
            logger.error("Reload failed (%s: %s)", type(e).__name__, e)
            return False
        return True

    def _execute(self, state: State) -> bool | CycleOutcome:
        if state is State.NOT_LOGGED_IN:
            return self._login()
        if state is State.NAVIGATE_TO_RESCHEDULE:
            return self._navigate()
        if state is State.RESCHEDULING:
            return self._reschedule()
        if state is State.REFRESH:
            return self._refresh()
        raise ValueError(f"No executor for {state.name}")

    def step(self) -> State:
        result = self._execute(self.state)
        previous, self.state = self.state, next_state(self.state, result)
        logger.debug("Transition %s -> %s (%s)", previous.name, self.state.name, result)
        self.pause()
        return self.state

    def run(self) -> State:
        while self.state not in TERMINAL_STATES:
            self.step()

        if self.state is State.COMPLETE:
            logger.info("Successfully rescheduled appointment")
        else:
            logger.error("Reached an error state, stopping")
        return self.state


def _send_status_message(settings: Settings, text: str) -> None:
    bot_token = settings.telegram_bot_token
    if not bot_token or not settings.telegram_chat_ids:
        return
    broadcast_telegram(bot_token=bot_token, chat_ids=settings.telegram_chat_ids, text=text)


def _short_exc(retry_state: RetryCallState) -> str | None:
    if retry_state.outcome is None or not retry_state.outcome.failed:
        return None
    exc = retry_state.outcome.exception()
    if exc is None:
        return None
    msg = str(exc).strip()
    return f"{type(exc).__name__}: {msg}" if msg else type(exc).__name__


def _log_before_attempt(retry_state: RetryCallState) -> None:
    logger.info("Browser start attempt %s", retry_state.attempt_number)


def _log_after_attempt(retry_state: RetryCallState) -> None:
    if retry_state.outcome is not None and retry_state.outcome.failed:
        logger.warning("Browser start attempt %s failed (%s)", retry_state.attempt_number, _short_exc(retry_state))


def _log_before_sleep(retry_state: RetryCallState) -> None:
    sleep_seconds = getattr(retry_state.next_action, "sleep", None)
    if sleep_seconds is None:
        logger.info("Waiting before next browser start attempt")
        return
    logger.info("Waiting %.0fs before browser start attempt %s", sleep_seconds, retry_state.attempt_number + 1)


def _start_driver_with_retry(settings: Settings) -> webdriver.Chrome:
    decorated = retry(
        stop=stop_after_attempt(settings.browser_start_attempts),
        wait=wait_exponential(multiplier=2, min=2, max=4),
        before=_log_before_attempt,
        after=_log_after_attempt,
        before_sleep=_log_before_sleep,
        reraise=True,
    )(start_driver)

    return decorated(headless=settings.headless)


def _report(settings: Settings, state: State, ctx: SessionContext) -> None:
    if state is State.COMPLETE:
        location = ctx.selected_location.name.title() if ctx.selected_location else "?"
        day = ctx.selected_day.date if ctx.selected_day else "?"
        text = f"Appointment rescheduled: {day} {ctx.selected_time} at {location}."
    else:
        text = "Reschedule stopped in ERROR state. See logs for the failing step."

    try:
        _send_status_message(settings, text)
    except Exception:
        logger.warning("Failed to send telegram status message", exc_info=True)


def run_reschedule(settings: Settings) -> State:
    logger.info("Starting browser (headless=%s)", settings.headless)
    driver = _start_driver_with_retry(settings)
    page = SeleniumSession(driver, country_code=settings.country_code, wait_seconds=settings.page_wait_seconds)

    pause = functools.partial(random_delay, settings.delay_min_ms, settings.delay_max_ms)
    rescheduler = Rescheduler(
        page=page,
        gateway=AppointmentGateway(
            country_code=settings.country_code,
            timeout_seconds=settings.request_timeout_seconds,
        ),
        locations=settings.locations,
        threshold=settings.current_appointment_date,
        pause=pause,
    )
    orchestrator = Orchestrator(settings=settings, page=page, rescheduler=rescheduler, pause=pause)

    try:
        final = orchestrator.run()
    finally:
        page.quit()

    _report(settings, final, orchestrator.ctx)
    return final
