"""SimpleSwap creator - drives a remote browser to create an exchange.

Uses the BrightData Scraping Browser (Selenium endpoint) to get past
Cloudflare. Selenium is blocking, so each creation runs in a worker
thread. A worker thread cannot be cancelled, so every step wait is clipped
to ``session_timeout_seconds`` and the whole session ends before the
Replenisher gives up on the attempt and retries.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING
from urllib.parse import parse_qs, urlencode, urlparse

import structlog
from selenium import webdriver
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.chromium.remote_connection import ChromiumRemoteConnection
from selenium.webdriver.common.by import By
from selenium.webdriver.common.keys import Keys
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait

from exchange_pool.creators.base import ItemCreator
from exchange_pool.errors import CreationError, CreationTimeoutError
from exchange_pool.models import ExchangeItem

if TYPE_CHECKING:
    from selenium.webdriver.remote.webdriver import WebDriver

    from exchange_pool.config import CreatorConfig

logger = structlog.get_logger()

ADDRESS_INPUT_XPATH = (
    "//input[contains(translate(@placeholder, 'ADRES', 'adres'), 'address')"
    " or contains(translate(@aria-label, 'ADRES', 'adres'), 'address')"
    " or contains(translate(@name, 'ADRES', 'adres'), 'address')]"
)

REMOVE_BANNERS_JS = """
document.querySelectorAll('[data-testid="info-message"], [role="alert"], .cookies-banner')
    .forEach(el => el.remove());
"""

QUOTE_READY_JS = """
const inputs = document.querySelectorAll('input[type="text"]');
if (inputs.length < 2) return false;
const val = inputs[1].value;
return Boolean(val && val.length > 0 && val !== '0' && !val.includes('...'));
"""

ENABLED_CREATE_BUTTON_JS = """
const buttons = Array.from(document.querySelectorAll('button'));
const btn = buttons.find(b => /^create.*exchange$/i.test((b.textContent || '').trim()));
return btn && !btn.disabled ? btn : null;
"""


def _remaining(deadline: float, step_timeout: float) -> float:
    """Seconds a step may wait: its own timeout, clipped to the session deadline."""
    left = deadline - time.monotonic()
    if left <= 0:
        raise TimeoutException("session deadline reached")
    return min(step_timeout, left)


def build_exchange_url(config: "CreatorConfig", amount: int) -> str:
    """URL of the SimpleSwap exchange form prefilled for ``amount`` USD."""
    query = urlencode(
        {
            "from": config.from_currency,
            "to": config.to_currency,
            "rate": "floating",
            "amount": amount,
        }
    )
    return f"{config.base_url.rstrip('/')}/exchange?{query}"


def parse_exchange_id(url: str) -> str:
    """Extract the exchange id from a post-redirect URL.

    Raises:
        CreationError: If the URL carries no id
    """
    values = parse_qs(urlparse(url).query).get("id")
    if not values or not values[0]:
        raise CreationError(f"No exchange ID in URL: {url}")
    return values[0]


class SimpleSwapCreator(ItemCreator):
    """Creates SimpleSwap USD -> POL exchanges through a remote browser."""

    def __init__(self, config: "CreatorConfig") -> None:
        self._config = config
        self._log = logger.bind(creator="simpleswap")
        if not config.has_credentials:
            self._log.warning("simpleswap.missing_credentials")

    async def create(self, amount: int, destination: str | None = None) -> ExchangeItem:
        if not self._config.has_credentials:
            raise CreationError("BrightData credentials are not configured")

        wallet = destination or self._config.wallet_address
        return await asyncio.to_thread(self._create_blocking, amount, wallet)

    def _connect(self) -> "WebDriver":
        connection = ChromiumRemoteConnection(self._config.webdriver_url, "goog", "chrome")
        return webdriver.Remote(connection, options=webdriver.ChromeOptions())

    def _create_blocking(self, amount: int, wallet: str) -> ExchangeItem:
        url = build_exchange_url(self._config, amount)
        self._log.info("simpleswap.create.start", amount=amount)

        deadline = time.monotonic() + self._config.session_timeout_seconds
        driver: WebDriver | None = None
        try:
            driver = self._connect()
            driver.set_page_load_timeout(_remaining(deadline, self._config.page_load_timeout))
            driver.get(url)
            self._log.debug("simpleswap.page_loaded", amount=amount)

            driver.execute_script(REMOVE_BANNERS_JS)

            address_input = WebDriverWait(
                driver, _remaining(deadline, self._config.element_timeout)
            ).until(EC.element_to_be_clickable((By.XPATH, ADDRESS_INPUT_XPATH)))
            address_input.clear()
            address_input.send_keys(wallet)
            time.sleep(2)
            address_input.send_keys(Keys.ENTER)

            try:
                WebDriverWait(driver, _remaining(deadline, self._config.quote_timeout)).until(
                    lambda d: d.execute_script(QUOTE_READY_JS)
                )
            except TimeoutException:
                # The quote sometimes never renders but the button still works.
                self._log.info("simpleswap.quote_timeout", amount=amount)

            button = WebDriverWait(
                driver, _remaining(deadline, self._config.button_timeout)
            ).until(lambda d: d.execute_script(ENABLED_CREATE_BUTTON_JS))
            button.click()
            time.sleep(2)
            if "/exchange?" in driver.current_url and "id=" not in driver.current_url:
                driver.execute_script("arguments[0].click();", button)

            WebDriverWait(driver, _remaining(deadline, self._config.redirect_timeout)).until(
                EC.url_matches(r"/exchange\?id=")
            )

            exchange_url = driver.current_url
            exchange_id = parse_exchange_id(exchange_url)
            self._log.info("simpleswap.create.done", amount=amount, exchange_id=exchange_id)

            return ExchangeItem(
                id=exchange_id,
                exchange_id=exchange_id,
                exchange_url=exchange_url,
                amount=amount,
            )

        except TimeoutException as exc:
            raise CreationTimeoutError(
                f"SimpleSwap page step timed out: {exc.msg or 'element not ready'}"
            ) from exc
        except WebDriverException as exc:
            raise CreationError(f"Browser error: {exc.msg or exc}") from exc
        finally:
            if driver is not None:
                try:
                    driver.quit()
                except WebDriverException:
                    pass
