from __future__ import annotations

import datetime as dt
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from reschedbot.domain import Location
from reschedbot.selection import parse_date

DEFAULT_LOCATIONS = "vancouver,calgary,toronto,ottawa"


def _parse_telegram_chat_ids(raw: str) -> tuple[str, ...]:
    # TELEGRAM_CHAT_ID supports a single value or a comma-separated list.
    #   TELEGRAM_CHAT_ID=123456789,-1001234567890
    seen: set[str] = set()
    result: list[str] = []
    for p in (p.strip() for p in raw.split(",")):
        if not p:
            continue
        try:
            int(p)
        except ValueError as e:
            raise RuntimeError(f"Invalid TELEGRAM_CHAT_ID value: {p!r}. Expected integer chat id.") from e

        if p == "0":
            raise RuntimeError("Invalid TELEGRAM_CHAT_ID value: '0' is not a valid chat id")

        if p not in seen:
            seen.add(p)
            result.append(p)

    if not result:
        raise RuntimeError("TELEGRAM_CHAT_ID is empty. Provide at least one chat id.")

    return tuple(result)


def _parse_location(raw: str) -> Location:
    if raw.isdigit():
        try:
            return Location(int(raw))
        except ValueError:
            pass
    else:
        try:
            return Location[raw.upper()]
        except KeyError:
            pass
    known = ", ".join(f"{loc.name.lower()}={loc.value}" for loc in Location)
    raise RuntimeError(f"Unknown location in LOCATIONS: {raw!r}. Known: {known}")


def _parse_locations(raw: str) -> tuple[Location, ...]:
    # Order matters: earlier entries are polled first.
    result: list[Location] = []
    for part in (p.strip() for p in raw.split(",")):
        if not part:
            continue
        location = _parse_location(part)
        if location not in result:
            result.append(location)

    if not result:
        raise RuntimeError("LOCATIONS is empty. Provide at least one location.")

    return tuple(result)


@dataclass(frozen=True)
class Settings:
    visa_email: str
    visa_password: str
    current_appointment_date: dt.date

    locations: tuple[Location, ...] = _parse_locations(DEFAULT_LOCATIONS)
    country_code: str = "en-ca"
    headless: bool = True

    # Pacing between steps and between locations
    delay_min_ms: int = 500
    delay_max_ms: int = 1500

    request_timeout_seconds: float = 30.0
    page_wait_seconds: int = 60

    # How many times we try to bring the browser up before giving up.
    browser_start_attempts: int = 2

    # Telegram is optional; without a token nothing is sent.
    telegram_bot_token: str | None = None
    telegram_chat_ids: tuple[str, ...] = ()

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_ids)


def _require(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def _get_int(name: str, default: int, *, minimum: int) -> int:
    raw = os.getenv(name, str(default)).strip()
    try:
        value = int(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from e
    if value < minimum:
        raise RuntimeError(f"{name} must be >= {minimum}")
    return value


def load_settings(dotenv_path: str | None = None) -> Settings:
    # Prefer .env in repo root; dotenv_path allows overriding in tests.
    load_dotenv(dotenv_path=dotenv_path, override=False)

    raw_date = _require("CURRENT_APPOINTMENT_DATE")
    try:
        current_appointment_date = parse_date(raw_date)
    except ValueError as e:
        raise RuntimeError(f"CURRENT_APPOINTMENT_DATE must be YYYY-MM-DD, got {raw_date!r}") from e

    headless_raw = os.getenv("HEADLESS", "1").strip().lower()
    headless = headless_raw not in {"0", "false", "no"}

    delay_min_ms = _get_int("DELAY_MIN_MS", 500, minimum=0)
    delay_max_ms = _get_int("DELAY_MAX_MS", 1500, minimum=0)
    if delay_max_ms < delay_min_ms:
        raise RuntimeError("DELAY_MAX_MS must be >= DELAY_MIN_MS")

    telegram_bot_token = os.getenv("TELEGRAM_BOT_TOKEN") or None
    telegram_chat_ids: tuple[str, ...] = ()
    if telegram_bot_token:
        telegram_chat_ids = _parse_telegram_chat_ids(_require("TELEGRAM_CHAT_ID"))

    return Settings(
        visa_email=_require("VISA_EMAIL"),
        visa_password=_require("VISA_PASSWORD"),
        current_appointment_date=current_appointment_date,
        locations=_parse_locations(os.getenv("LOCATIONS", DEFAULT_LOCATIONS)),
        country_code=os.getenv("COUNTRY_CODE", "en-ca").strip(),
        headless=headless,
        delay_min_ms=delay_min_ms,
        delay_max_ms=delay_max_ms,
        request_timeout_seconds=float(_get_int("REQUEST_TIMEOUT_SECONDS", 30, minimum=1)),
        page_wait_seconds=_get_int("PAGE_WAIT_SECONDS", 60, minimum=1),
        browser_start_attempts=_get_int("BROWSER_START_ATTEMPTS", 2, minimum=1),
        telegram_bot_token=telegram_bot_token,
        telegram_chat_ids=telegram_chat_ids,
    )
