from __future__ import annotations

from typing import Callable
from urllib.parse import parse_qs

import httpx
import pytest

from reschedbot.domain import AppointmentDay, AppointmentTime, Location
from reschedbot.gateway import AppointmentGateway, GatewayAuth

AUTH = GatewayAuth(
    action_id="4242",
    csrf_token="csrf-abc",
    referrer="https://ais.usvisa-info.com/en-ca/niv/schedule/4242/appointment",
    cookies={"_yatri_session": "sess"},
    user_agent="TestAgent/1.0",
)


def _gateway(handler: Callable[[httpx.Request], httpx.Response], seen: list[httpx.Request]) -> AppointmentGateway:
    def _record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    return AppointmentGateway(country_code="en-ca", transport=httpx.MockTransport(_record))


def test_list_days_sends_session_headers_and_parses_payload() -> None:
    seen: list[httpx.Request] = []
    payload = [
        {"date": "2025-02-10", "business_day": True},
        {"date": "2025-02-11", "business_day": False},
    ]
    gateway = _gateway(lambda r: httpx.Response(200, json=payload), seen)

    days = gateway.list_days(AUTH, Location.VANCOUVER)

    assert days == [
        AppointmentDay(date="2025-02-10", business_day=True),
        AppointmentDay(date="2025-02-11", business_day=False),
    ]
    request = seen[0]
    assert request.method == "GET"
    assert request.url.path == "/en-ca/niv/schedule/4242/appointment/days/95.json"
    assert request.url.params["appointments[expedite]"] == "false"
    assert request.headers["X-CSRF-Token"] == "csrf-abc"
    assert request.headers["X-Requested-With"] == "XMLHttpRequest"
    assert request.headers["Referer"] == AUTH.referrer
    assert request.headers["User-Agent"] == "TestAgent/1.0"
    assert "_yatri_session=sess" in request.headers["Cookie"]


def test_list_times_builds_query_and_drops_nulls() -> None:
    seen: list[httpx.Request] = []
    payload = {"available_times": [None, "09:00", "10:00"], "business_times": ["09:00", "10:00"]}
    gateway = _gateway(lambda r: httpx.Response(200, json=payload), seen)

    times = gateway.list_times(AUTH, Location.CALGARY, "2025-02-10")

    assert times == AppointmentTime(available_times=("09:00", "10:00"), business_times=("09:00", "10:00"))
    assert seen[0].url.path == "/en-ca/niv/schedule/4242/appointment/times/89.json"
    assert seen[0].url.params["date"] == "2025-02-10"


def _raise_timeout(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectTimeout("timed out", request=request)


@pytest.mark.parametrize(
    "handler",
    [
        lambda r: httpx.Response(500, text="oops"),
        lambda r: httpx.Response(401, json={"error": "unauthorized"}),
        lambda r: httpx.Response(200, text="<html>maintenance</html>"),
        lambda r: httpx.Response(200, json={"unexpected": "shape"}),
        lambda r: httpx.Response(200, json=[{"date": "2025-01-01"}]),
        lambda r: httpx.Response(200, json=[{"date": "2025-01-01", "business_day": "false"}]),
        lambda r: httpx.Response(200, json=[{"date": "2025-01-01", "business_day": 1}]),
        lambda r: httpx.Response(200, json=[{"date": None, "business_day": True}]),
        _raise_timeout,
    ],
)
def test_list_days_collapses_every_failure_to_none(handler: Callable[[httpx.Request], httpx.Response]) -> None:
    gateway = _gateway(handler, [])
    assert gateway.list_days(AUTH, Location.TORONTO) is None


@pytest.mark.parametrize(
    "handler",
    [
        lambda r: httpx.Response(503),
        lambda r: httpx.Response(200, json=[]),
        lambda r: httpx.Response(200, json={"available_times": "09:00", "business_times": []}),
        _raise_timeout,
    ],
)
def test_list_times_collapses_every_failure_to_none(handler: Callable[[httpx.Request], httpx.Response]) -> None:
    gateway = _gateway(handler, [])
    assert gateway.list_times(AUTH, Location.TORONTO, "2025-01-01") is None


def test_submit_posts_reschedule_form() -> None:
    seen: list[httpx.Request] = []
    gateway = _gateway(
        lambda r: httpx.Response(302, headers={"Location": "https://ais.usvisa-info.com/en-ca/niv/schedule/4242/instructions"}),
        seen,
    )

    result = gateway.submit(AUTH, Location.OTTAWA, "2025-02-10", "09:00")

    assert result.ok is True
    assert result.status_code == 302
    assert len(seen) == 1  # redirect is not followed

    request = seen[0]
    assert request.method == "POST"
    assert request.url.path == "/en-ca/niv/schedule/4242/appointment"
    assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
    form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
    assert form == {
        "authenticity_token": "csrf-abc",
        "confirmed_limit_message": "1",
        "use_consulate_appointment_capacity": "true",
        "appointments[consulate_appointment][facility_id]": "92",
        "appointments[consulate_appointment][date]": "2025-02-10",
        "appointments[consulate_appointment][time]": "09:00",
    }


@pytest.mark.parametrize(
    "location",
    [
        "https://ais.usvisa-info.com/en-ca/niv/schedule/4242/appointment",
        "https://ais.usvisa-info.com/en-ca/niv/users/sign_in",
    ],
)
def test_submit_redirect_away_from_instructions_is_rejected(location: str) -> None:
    gateway = _gateway(lambda r: httpx.Response(302, headers={"Location": location}), [])

    result = gateway.submit(AUTH, Location.OTTAWA, "2025-02-10", "09:00")

    assert result.ok is False
    assert result.status_code == 302


def test_submit_success_page_is_accepted() -> None:
    gateway = _gateway(lambda r: httpx.Response(200, text="<h2>Successfully Scheduled</h2>"), [])
    assert gateway.submit(AUTH, Location.OTTAWA, "2025-02-10", "09:00").ok is True


def test_submit_rerendered_form_is_rejected() -> None:
    gateway = _gateway(lambda r: httpx.Response(200, text="<form id='appointment-form'>errors</form>"), [])
    result = gateway.submit(AUTH, Location.OTTAWA, "2025-02-10", "09:00")
    assert result.ok is False
    assert result.status_code == 200


def test_submit_reports_error_status() -> None:
    gateway = _gateway(lambda r: httpx.Response(422), [])
    result = gateway.submit(AUTH, Location.OTTAWA, "2025-02-10", "09:00")
    assert result.ok is False
    assert result.status_code == 422


def test_submit_transport_error_has_no_status() -> None:
    gateway = _gateway(_raise_timeout, [])
    result = gateway.submit(AUTH, Location.OTTAWA, "2025-02-10", "09:00")
    assert result.ok is False
    assert result.status_code is None
