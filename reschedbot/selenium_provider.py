from __future__ import annotations

import logging
import re

from selenium import webdriver
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service
from selenium.webdriver.common.by import By
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait
from webdriver_manager.chrome import ChromeDriverManager

from reschedbot.domain import AuthenticationFailure, NavigationFailure

logger = logging.getLogger(__name__)

BASE_URL = "https://ais.usvisa-info.com"

_ACTION_ID_RE = re.compile(r"/schedule/(\d+)/continue_actions$")


def build_base_url(country_code: str) -> str:
    # e.g. en-ca
    return f"{BASE_URL}/{country_code}/niv"


def build_sign_in_url(country_code: str) -> str:
    return f"{build_base_url(country_code)}/users/sign_in"


def build_appointment_url(country_code: str, action_id: str) -> str:
    return f"{build_base_url(country_code)}/schedule/{action_id}/appointment"


def groups_url_pattern(country_code: str) -> str:
    return rf"^{re.escape(build_base_url(country_code))}/groups/\d+$"


def continue_actions_url_pattern(country_code: str) -> str:
    return rf"^{re.escape(build_base_url(country_code))}/schedule/\d+/continue_actions$"


def appointment_url_pattern(country_code: str) -> str:
    return rf"^{re.escape(build_base_url(country_code))}/schedule/\d+/appointment$"


def get_action_id(url: str) -> str | None:
    """Extract the schedule id from a ``/schedule/<id>/continue_actions`` url."""

    match = _ACTION_ID_RE.search(url)
    return match.group(1) if match else None


def start_driver(*, headless: bool) -> webdriver.Chrome:
    options = Options()
    if headless:
        options.add_argument("--headless=new")
    options.add_argument("--disable-gpu")
    options.add_argument("--no-sandbox")
    options.add_argument("--window-size=1200,900")
    options.add_argument("--disable-dev-shm-usage")
    options.add_argument("--disable-features=Translate,BackForwardCache")
    options.add_argument("--disable-blink-features=AutomationControlled")
    options.add_argument(
        "--user-agent=Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0 Safari/537.36"
    )
    options.add_experimental_option("excludeSwitches", ["enable-automation"])

    service = Service(ChromeDriverManager().install())
    return webdriver.Chrome(service=service, options=options)


class SeleniumSession:
    """The single browser page used for the whole run.

    Wraps the raw driver with the handful of primitives the reschedule flow
    needs. Selenium failures during login/navigation are re-raised as
    AuthenticationFailure / NavigationFailure.
    """

    def __init__(self, driver: webdriver.Chrome, *, country_code: str, wait_seconds: int = 60) -> None:
        self.driver = driver
        self.country_code = country_code
        self.wait_seconds = wait_seconds

    def _wait(self, seconds: int | None = None) -> WebDriverWait:
        return WebDriverWait(self.driver, seconds if seconds is not None else self.wait_seconds)

    def current_url(self) -> str:
        return self.driver.current_url

    def navigate(self, url: str) -> None:
        self.driver.get(url)

    def reload(self) -> None:
        self.driver.refresh()

    def wait_for_url_matching(self, pattern: str) -> None:
        self._wait().until(EC.url_matches(pattern))

    def log_in(self, *, email: str, password: str) -> None:
        sign_in_url = build_sign_in_url(self.country_code)
        try:
            self.navigate(sign_in_url)
            self._wait().until(EC.presence_of_element_located((By.ID, "user_email")))

            # Cookie consent sometimes appears
            try:
                self.driver.find_element(By.XPATH, "/html/body/div[7]/div[3]/div/button").click()
            except WebDriverException:
                pass

            user_box = self.driver.find_element(By.ID, "user_email")
            user_box.clear()
            user_box.send_keys(email)

            password_box = self.driver.find_element(By.ID, "user_password")
            password_box.clear()
            password_box.send_keys(password)

            # Privacy policy checkbox is a styled div inside the label
            self.driver.find_element(
                By.XPATH, '//label[contains(., "I have read and understood")]/div'
            ).click()
            self.driver.find_element(By.NAME, "commit").click()

            self.wait_for_url_matching(groups_url_pattern(self.country_code))
        except TimeoutException as e:
            raise AuthenticationFailure(
                f"Login did not reach the groups page (still at {self.driver.current_url})"
            ) from e
        except WebDriverException as e:
            raise AuthenticationFailure(f"Browser error during login: {e.msg or type(e).__name__}") from e

    def click_continue(self) -> None:
        try:
            link = self._wait().until(EC.element_to_be_clickable((By.PARTIAL_LINK_TEXT, "Continue")))
            link.click()
            self.wait_for_url_matching(continue_actions_url_pattern(self.country_code))
        except TimeoutException as e:
            raise NavigationFailure(f"Could not follow the Continue link on {self.driver.current_url}") from e
        except WebDriverException as e:
            raise NavigationFailure(f"Browser error while opening continue actions: {e.msg or type(e).__name__}") from e

    def get_csrf_token(self) -> str | None:
        metas = self.driver.find_elements(By.CSS_SELECTOR, 'meta[name="csrf-token"]')
        if not metas:
            return None
        return metas[0].get_attribute("content") or None

    def cookies(self) -> dict[str, str]:
        return {c["name"]: c["value"] for c in self.driver.get_cookies()}

    def user_agent(self) -> str | None:
        return self.driver.execute_script("return navigator.userAgent;")

    def quit(self) -> None:
        try:
            self.driver.quit()
        except Exception:
            logger.warning("Failed to quit driver cleanly", exc_info=True)
