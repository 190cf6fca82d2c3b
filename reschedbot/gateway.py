from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from reschedbot.domain import AppointmentDay, AppointmentTime, GatewayFailure, Location
from reschedbot.selenium_provider import build_appointment_url, build_base_url

logger = logging.getLogger(__name__)

# Form field names of the reschedule form.
AUTHENTICITY_TOKEN = "authenticity_token"
CONFIRMED_LIMIT_MESSAGE = "confirmed_limit_message"
USE_CONSULATE_APPOINTMENT_CAPACITY = "use_consulate_appointment_capacity"
FACILITY_ID = "appointments[consulate_appointment][facility_id]"
DATE = "appointments[consulate_appointment][date]"
TIME = "appointments[consulate_appointment][time]"


@dataclass(frozen=True)
class GatewayAuth:
    """What every call needs from the live browser session."""

    action_id: str
    csrf_token: str
    referrer: str
    cookies: dict[str, str] = field(default_factory=dict)
    user_agent: str | None = None


@dataclass(frozen=True)
class SubmitResult:
    ok: bool
    status_code: int | None = None


def _parse_days(payload: Any) -> list[AppointmentDay]:
    if not isinstance(payload, list):
        raise GatewayFailure(f"Expected a list of days, got {type(payload).__name__}")
    days: list[AppointmentDay] = []
    for item in payload:
        try:
            date, business_day = item["date"], item["business_day"]
        except (KeyError, TypeError) as e:
            raise GatewayFailure(f"Malformed day entry: {item!r}") from e
        if not isinstance(date, str) or not isinstance(business_day, bool):
            raise GatewayFailure(f"Malformed day entry: {item!r}")
        days.append(AppointmentDay(date=date, business_day=business_day))
    return days


def _parse_times(payload: Any) -> AppointmentTime:
    if not isinstance(payload, dict):
        raise GatewayFailure(f"Expected a times object, got {type(payload).__name__}")
    try:
        available = payload["available_times"]
        business = payload["business_times"]
    except KeyError as e:
        raise GatewayFailure(f"Times payload is missing {e.args[0]!r}") from e
    if not isinstance(available, list) or not isinstance(business, list):
        raise GatewayFailure("Times payload fields must be lists")
    # The portal pads available_times with null entries on some days.
    return AppointmentTime(
        available_times=tuple(str(t) for t in available if t is not None),
        business_times=tuple(str(t) for t in business if t is not None),
    )


class AppointmentGateway:
    """The three remote calls of the reschedule page.

    Every failure (network, timeout, non-2xx, unexpected JSON) is logged and
    reported as ``None`` / ``SubmitResult(ok=False)``; nothing is raised.
    """

    def __init__(
        self,
        *,
        country_code: str,
        timeout_seconds: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = build_base_url(country_code)
        self.country_code = country_code
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def _client(self, auth: GatewayAuth) -> httpx.Client:
        headers = {"Referer": auth.referrer}
        if auth.user_agent:
            headers["User-Agent"] = auth.user_agent
        return httpx.Client(
            timeout=self.timeout_seconds,
            cookies=auth.cookies,
            headers=headers,
            transport=self._transport,
            follow_redirects=False,
        )

    def _get_json(self, auth: GatewayAuth, url: str, params: dict[str, str]) -> Any:
        headers = {
            "Accept": "application/json, text/javascript, */*; q=0.01",
            "X-CSRF-Token": auth.csrf_token,
            "X-Requested-With": "XMLHttpRequest",
            "Cache-Control": "no-cache",
        }
        try:
            with self._client(auth) as client:
                r = client.get(url, params=params, headers=headers)
                r.raise_for_status()
                return r.json()
        except httpx.HTTPError as e:
            raise GatewayFailure(f"{type(e).__name__}: {e}") from e
        except ValueError as e:
            raise GatewayFailure(f"Response is not JSON: {e}") from e

    def list_days(self, auth: GatewayAuth, location: Location) -> list[AppointmentDay] | None:
        url = f"{self.base_url}/schedule/{auth.action_id}/appointment/days/{int(location)}.json"
        try:
            return _parse_days(self._get_json(auth, url, {"appointments[expedite]": "false"}))
        except GatewayFailure as e:
            logger.warning("Listing days failed for location %s (%s)", location.name, e)
            return None

    def list_times(self, auth: GatewayAuth, location: Location, date: str) -> AppointmentTime | None:
        url = f"{self.base_url}/schedule/{auth.action_id}/appointment/times/{int(location)}.json"
        params = {"date": date, "appointments[expedite]": "false"}
        try:
            return _parse_times(self._get_json(auth, url, params))
        except GatewayFailure as e:
            logger.warning("Listing times failed for %s at location %s (%s)", date, location.name, e)
            return None

    def submit(self, auth: GatewayAuth, location: Location, date: str, time: str) -> SubmitResult:
        url = build_appointment_url(self.country_code, auth.action_id)
        form = {
            AUTHENTICITY_TOKEN: auth.csrf_token,
            CONFIRMED_LIMIT_MESSAGE: "1",
            USE_CONSULATE_APPOINTMENT_CAPACITY: "true",
            FACILITY_ID: str(int(location)),
            DATE: date,
            TIME: time,
        }
        try:
            with self._client(auth) as client:
                r = client.post(url, data=form)
        except httpx.HTTPError as e:
            logger.warning("Submitting appointment failed (%s: %s)", type(e).__name__, e)
            return SubmitResult(ok=False)

        logger.info("Submitted appointment, response status %s %s", r.status_code, r.reason_phrase)
        if not _submit_accepted(r):
            logger.warning(
                "Submitting appointment was rejected (status %s, location %s)",
                r.status_code,
                r.headers.get("Location"),
            )
            return SubmitResult(ok=False, status_code=r.status_code)
        return SubmitResult(ok=True, status_code=r.status_code)


def _submit_accepted(r: httpx.Response) -> bool:
    # Accepted bookings redirect to the instructions page. A rejected form or an
    # expired session also answers with a redirect, back to the form or sign_in.
    if r.is_redirect:
        return "/instructions" in r.headers.get("Location", "")
    if r.is_success:
        return "Successfully Scheduled" in r.text
    return False
