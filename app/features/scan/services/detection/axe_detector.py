from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from axe_selenium_python import Axe
from selenium import webdriver
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service
from webdriver_manager.chrome import ChromeDriverManager

from app.features.scan.exceptions import DetectorError
from app.features.scan.services.detection.violation_detector import ViolationDetector
from app.platform.logger import get_logger

logger = get_logger(__name__)


class AxeSeleniumDetector(ViolationDetector):
    """
    Runs axe-core inside a headless Chrome session.

    The browser session is the job's document environment: one session per
    job, quit on exit, so concurrent jobs never share DOM state.
    """

    def __init__(self, headless: bool = True, page_load_timeout: int = 30, driver_path: Optional[str] = None):
        self.headless = headless
        self.page_load_timeout = page_load_timeout
        self._driver_path = driver_path

    def _chrome_options(self) -> Options:
        chrome_options = Options()
        if self.headless:
            chrome_options.add_argument("--headless=new")
        chrome_options.add_argument("--no-sandbox")
        chrome_options.add_argument("--disable-dev-shm-usage")
        chrome_options.add_argument("--disable-gpu")
        chrome_options.add_argument("--window-size=1366,768")
        return chrome_options

    def _create_driver(self) -> webdriver.Chrome:
        if self._driver_path is None:
            self._driver_path = ChromeDriverManager().install()
        driver = webdriver.Chrome(service=Service(self._driver_path), options=self._chrome_options())
        driver.set_page_load_timeout(self.page_load_timeout)
        return driver

    @contextmanager
    def environment(self, markup: str, url: str) -> Iterator[webdriver.Chrome]:
        try:
            driver = self._create_driver()
        except Exception as e:
            raise DetectorError(f"Could not start browser session: {e}") from e

        try:
            driver.get("about:blank")
            # Load the fetched markup as the document, keeping relative links resolvable
            driver.execute_script(
                "document.open();"
                "document.write(arguments[0]);"
                "document.close();"
                "if (!document.querySelector('base')) {"
                "  var base = document.createElement('base');"
                "  base.href = arguments[1];"
                "  (document.head || document.documentElement).prepend(base);"
                "}",
                markup,
                url,
            )
            yield driver
        finally:
            try:
                driver.quit()
            except Exception as e:
                logger.warning(f"Failed to quit browser session for {url}: {e}")

    def run(self, environment: webdriver.Chrome, url: str) -> List[Dict[str, Any]]:
        try:
            axe = Axe(environment)
            axe.inject()
            results = axe.run(options={"runOnly": {"type": "tag", "values": list(self.tags)}})
        except Exception as e:
            raise DetectorError(f"axe-core run failed for {url}: {e}") from e

        violations = results.get("violations", [])
        logger.info(f"axe-core found {len(violations)} violations on {url}")
        return violations
