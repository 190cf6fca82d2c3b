import argparse
import dataclasses
import logging

from reschedbot.config import load_settings
from reschedbot.domain import State
from reschedbot.worker import _send_status_message, run_reschedule

NOISY_LOGGERS = ["selenium", "urllib3", "httpx", "httpcore", "WDM"]


def _setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def main() -> int:
    parser = argparse.ArgumentParser(description="Reschedule a US visa appointment to an earlier date")
    parser.add_argument("--show-browser", action="store_true", help="Run Chrome with a visible window")
    args = parser.parse_args()

    _setup_logging()
    settings = load_settings()
    if args.show_browser:
        settings = dataclasses.replace(settings, headless=False)

    log = logging.getLogger(__name__)

    try:
        _send_status_message(
            settings,
            text=(
                "Reschedule bot started.\n"
                f"Locations: {', '.join(loc.name.title() for loc in settings.locations)}\n"
                f"Looking for dates before {settings.current_appointment_date.isoformat()}"
            ),
        )
    except Exception:
        log.warning("Failed to send Telegram startup message", exc_info=True)

    try:
        final = run_reschedule(settings)
        return 0 if final is State.COMPLETE else 1

    except Exception as e:
        try:
            _send_status_message(
                settings,
                text=f"Reschedule bot crashed.\nReason: {type(e).__name__}: {e}",
            )
        except Exception:
            log.warning("Failed to send Telegram crash message", exc_info=True)
        raise

    finally:
        try:
            _send_status_message(settings, text="Reschedule bot stopped (process exit).")
        except Exception:
            log.warning("Failed to send Telegram shutdown message", exc_info=True)


if __name__ == "__main__":
    raise SystemExit(main())
