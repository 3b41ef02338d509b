"""Browser tools built on Playwright.

``browser_use`` drives one long-lived Chromium over the DevTools protocol,
so a page stays open between calls (log in once, then click around).
``web_fetch`` renders a single URL in a throwaway headless browser.

Both release what they acquire on every exit path: a failed or timed out
``browser_use`` action drops the page it was using, and ``web_fetch``
closes its browser in a ``finally``.
"""
from __future__ import annotations

import asyncio
import atexit
import base64
import contextlib
import json
import logging
import os
import shutil
import signal
import tempfile
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup
from langchain_core.tools import tool
from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from agentforce_adk.config import get_settings


logger = logging.getLogger(__name__)

BROWSER_PORT_DEFAULT = 9080
BROWSER_TIMEOUT_MS_DEFAULT = 30_000
BROWSER_STARTUP_TIMEOUT = 10.0
BROWSER_GRACE_PERIOD = 5.0
BROWSER_ACTIONS = (
    "navigate", "click", "type", "extract", "screenshot", "evaluate", "wait",
    "scroll", "hover", "select", "press", "get_cookies", "set_cookie",
    "disconnect", "close",
)
EXTRACT_TYPES = ("text", "html", "attribute", "value")
BROWSER_CANDIDATES = (
    "brave-browser", "brave", "google-chrome", "google-chrome-stable",
    "chromium", "chromium-browser", "chrome",
)

WEB_FETCH_TIMEOUT_MS_DEFAULT = 60_000
WEB_FETCH_WAIT_MS_DEFAULT = 5_000

_REQUIRED_ARGUMENTS = {
    "navigate": ("url",),
    "click": ("selector",),
    "type": ("selector", "text"),
    "evaluate": ("script",),
    "wait": ("wait_for",),
    "hover": ("selector",),
    "select": ("selector", "text"),
    "press": ("key",),
    "set_cookie": ("cookie",),
}


class BrowserSession:
    """Process-wide browser session shared by every ``browser_use`` call.

    The session connects to a Chromium that listens for DevTools on a port
    and starts one when nothing answers there. Calls are serialized, and
    ``page()`` hands out the current page for the duration of one action.

    ``alive`` is true while a connection is up. ``close()`` asks the
    browser to exit and kills the process the session started when it is
    still running after ``grace_period`` seconds. A started process is also
    killed when the interpreter exits.
    """

    _instance: Optional["BrowserSession"] = None

    def __init__(self, grace_period: float = BROWSER_GRACE_PERIOD, headless: bool = False):
        self.grace_period = grace_period
        self.headless = headless
        self.port: Optional[int] = None
        self.alive = False
        self.last_activity: Optional[float] = None
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._page: Optional[Page] = None
        self._process: Optional[asyncio.subprocess.Process] = None
        self._profile_dir: Optional[str] = None
        self._lock = asyncio.Lock()

    @classmethod
    def instance(cls) -> "BrowserSession":
        if cls._instance is None:
            cls._instance = cls()
            atexit.register(cls._instance._kill_on_exit)
        return cls._instance

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def _healthy(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    @staticmethod
    async def _devtools_ready(endpoint: str) -> bool:
        try:
            async with httpx.AsyncClient(timeout=1.0) as client:
                response = await client.get(f"{endpoint}/json/version")
            return response.is_success
        except httpx.HTTPError:
            return False

    def _executable(self) -> str:
        configured = get_settings().browser_path
        if configured:
            return configured
        for name in BROWSER_CANDIDATES:
            found = shutil.which(name)
            if found:
                return found
        # Playwright's own Chromium, present after `playwright install chromium`
        return self._playwright.chromium.executable_path

    async def _launch(self, port: int) -> None:
        executable = self._executable()
        self._profile_dir = tempfile.mkdtemp(prefix="agentforce-browser-")
        args = [
            f"--remote-debugging-port={port}",
            f"--user-data-dir={self._profile_dir}",
            "--no-first-run",
            "--no-default-browser-check",
        ]
        if self.headless:
            args.append("--headless=new")
        logger.info("Starting browser %s with DevTools on port %d", executable, port)
        self._process = await asyncio.create_subprocess_exec(
            executable,
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )

    async def _wait_for_devtools(self, endpoint: str) -> None:
        deadline = time.monotonic() + BROWSER_STARTUP_TIMEOUT
        while time.monotonic() < deadline:
            if await self._devtools_ready(endpoint):
                return
            if self._process is not None and self._process.returncode is not None:
                raise RuntimeError(f"Browser exited during startup with code {self._process.returncode}")
            await asyncio.sleep(0.25)
        raise RuntimeError(f"Browser did not open DevTools on {endpoint} within {BROWSER_STARTUP_TIMEOUT:.0f}s")

    async def _connect(self, port: int) -> None:
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        endpoint = f"http://127.0.0.1:{port}"
        if not await self._devtools_ready(endpoint):
            await self._launch(port)
            await self._wait_for_devtools(endpoint)
        self._browser = await self._playwright.chromium.connect_over_cdp(endpoint)
        self.port = port
        self.alive = True
        logger.info("Connected to browser on port %d", port)

    async def _ensure_page(self, port: int) -> Page:
        if self.alive and self.port != port:
            await self._disconnect()
        if not self._healthy():
            self._page = None
            await self._connect(port)
        if self._page is None or self._page.is_closed():
            contexts = self._browser.contexts
            context = contexts[0] if contexts else await self._browser.new_context()
            self._page = context.pages[0] if context.pages else await context.new_page()
        return self._page

    async def _discard_page(self) -> None:
        page, self._page = self._page, None
        if page is None:
            return
        try:
            await asyncio.wait_for(page.close(), self.grace_period)
        except (PlaywrightError, asyncio.TimeoutError) as e:
            logger.warning("Could not close browser page: %s", e)

    @asynccontextmanager
    async def page(self, port: int = BROWSER_PORT_DEFAULT) -> AsyncIterator[Page]:
        """Hold the session's page for one action.

        When the action raises (including a cancelled or timed out one),
        the page is closed and the next call gets a fresh one.
        """
        async with self._lock:
            page = await self._ensure_page(port)
            self.last_activity = time.monotonic()
            try:
                yield page
            except BaseException:
                await self._discard_page()
                raise
            finally:
                self.last_activity = time.monotonic()

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def _disconnect(self) -> None:
        self._page = None
        self._browser = None
        self.alive = False
        playwright, self._playwright = self._playwright, None
        if playwright is not None:
            try:
                await playwright.stop()
            except PlaywrightError as e:
                logger.warning("Error stopping the Playwright driver: %s", e)

    async def _reap_process(self) -> None:
        process, self._process = self._process, None
        if process is not None and process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                process.terminate()
            try:
                await asyncio.wait_for(process.wait(), self.grace_period)
            except asyncio.TimeoutError:
                logger.warning("Browser still running after %.1fs, killing it", self.grace_period)
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                await process.wait()
        profile, self._profile_dir = self._profile_dir, None
        if profile:
            shutil.rmtree(profile, ignore_errors=True)

    async def disconnect(self) -> None:
        """Drop the connection; the browser itself keeps running."""
        async with self._lock:
            await self._disconnect()

    async def close(self) -> None:
        """Close the browser, killing it when it outlives the grace period."""
        async with self._lock:
            if self._healthy():
                try:
                    cdp = await self._browser.new_browser_cdp_session()
                    await asyncio.wait_for(cdp.send("Browser.close"), self.grace_period)
                except (PlaywrightError, asyncio.TimeoutError) as e:
                    logger.debug("Browser.close did not complete: %s", e)
            await self._disconnect()
            await self._reap_process()
            logger.info("Browser session closed")

    def _kill_on_exit(self) -> None:
        process = self._process
        if process is not None and process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                os.kill(process.pid, getattr(signal, "SIGKILL", signal.SIGTERM))


# =============================================================================
# browser_use
# =============================================================================

async def _perform(page: Page, action: str, params: Dict[str, Any], timeout: int) -> Dict[str, Any]:
    selector = params.get("selector")

    if action == "navigate":
        response = await page.goto(params["url"], wait_until="domcontentloaded", timeout=timeout)
        if params.get("wait_for"):
            await page.wait_for_selector(params["wait_for"], timeout=timeout)
        return {
            "url": page.url,
            "title": await page.title(),
            "status": response.status if response is not None else None,
        }

    if action == "click":
        await page.click(selector, timeout=timeout)
        return {"selector": selector, "url": page.url}

    if action == "type":
        await page.fill(selector, params["text"], timeout=timeout)
        return {"selector": selector, "text": params["text"]}

    if action == "extract":
        extract_type = params["extract_type"]
        if extract_type == "text":
            content = await page.inner_text(selector or "body", timeout=timeout)
        elif extract_type == "html":
            content = await page.inner_html(selector, timeout=timeout) if selector else await page.content()
        elif extract_type == "attribute":
            content = await page.get_attribute(selector, params["attribute_name"], timeout=timeout)
        else:
            content = await page.input_value(selector, timeout=timeout)
        return {"extract_type": extract_type, "selector": selector, "content": content}

    if action == "screenshot":
        if selector:
            data = await page.locator(selector).screenshot(timeout=timeout)
        else:
            data = await page.screenshot(full_page=params["screenshot_type"] == "fullpage", timeout=timeout)
        return {
            "screenshot_type": "element" if selector else params["screenshot_type"],
            "format": "png",
            "screenshot": base64.b64encode(data).decode("ascii"),
        }

    if action == "evaluate":
        return {"result": await page.evaluate(params["script"])}

    if action == "wait":
        target = str(params["wait_for"])
        if target.isdigit():
            await page.wait_for_timeout(int(target))
        else:
            await page.wait_for_selector(target, timeout=timeout)
        return {"waited_for": target}

    if action == "scroll":
        if selector:
            await page.locator(selector).scroll_into_view_if_needed(timeout=timeout)
        else:
            await page.evaluate("([x, y]) => window.scrollTo(x, y)", [params["scroll_x"], params["scroll_y"]])
        return {"selector": selector, "scroll_x": params["scroll_x"], "scroll_y": params["scroll_y"]}

    if action == "hover":
        await page.hover(selector, timeout=timeout)
        return {"selector": selector}

    if action == "select":
        selected = await page.select_option(selector, params["text"], timeout=timeout)
        return {"selector": selector, "selected": selected}

    if action == "press":
        await page.keyboard.press(params["key"])
        return {"key": params["key"]}

    if action == "get_cookies":
        return {"cookies": await page.context.cookies()}

    # set_cookie
    cookie = dict(params["cookie"])
    if "url" not in cookie and "domain" not in cookie:
        cookie["url"] = page.url
    await page.context.add_cookies([cookie])
    return {"cookie": cookie}


@tool
async def browser_use(
    action: str,
    url: Optional[str] = None,
    selector: Optional[str] = None,
    text: Optional[str] = None,
    script: Optional[str] = None,
    wait_for: Optional[str] = None,
    timeout: int = BROWSER_TIMEOUT_MS_DEFAULT,
    port: int = BROWSER_PORT_DEFAULT,
    key: Optional[str] = None,
    scroll_x: int = 0,
    scroll_y: int = 0,
    extract_type: str = "text",
    attribute_name: Optional[str] = None,
    screenshot_type: str = "viewport",
    cookie: Optional[str] = None,
) -> Dict:
    """Control a persistent Chromium browser: navigate, click, type, extract, screenshot and more.

    The browser stays open between calls. It is started on the DevTools
    port when nothing is listening there yet.

    Args:
        action: navigate, click, type, extract, screenshot, evaluate, wait, scroll, hover, select, press, get_cookies, set_cookie, disconnect or close
        url: Page to open (navigate)
        selector: CSS selector of the element to act on
        text: Text to type, or the option value to select
        script: JavaScript expression to evaluate in the page
        wait_for: CSS selector to wait for, or a number of milliseconds
        timeout: Timeout for the action in milliseconds
        port: DevTools port of the browser
        key: Key to press, e.g. "Enter"
        scroll_x: Horizontal scroll position (scroll)
        scroll_y: Vertical scroll position (scroll)
        extract_type: text, html, attribute or value (extract)
        attribute_name: Attribute to read when extract_type is attribute
        screenshot_type: viewport or fullpage (screenshot)
        cookie: JSON object describing the cookie (set_cookie)
    """
    if action not in BROWSER_ACTIONS:
        return {
            "success": False,
            "error": f"Unknown action: {action}",
            "action": action,
            "available_actions": list(BROWSER_ACTIONS),
        }

    params: Dict[str, Any] = {
        "url": url, "selector": selector, "text": text, "script": script,
        "wait_for": wait_for, "key": key, "scroll_x": scroll_x, "scroll_y": scroll_y,
        "extract_type": extract_type, "attribute_name": attribute_name,
        "screenshot_type": screenshot_type, "cookie": cookie,
    }
    missing = [name for name in _REQUIRED_ARGUMENTS.get(action, ()) if params[name] in (None, "")]
    if action == "extract":
        if extract_type not in EXTRACT_TYPES:
            return {"success": False, "error": f"extract_type must be one of: {', '.join(EXTRACT_TYPES)}", "action": action}
        if extract_type in ("attribute", "value") and not selector:
            missing.append("selector")
        if extract_type == "attribute" and not attribute_name:
            missing.append("attribute_name")
    if missing:
        return {"success": False, "error": f"{action} requires: {', '.join(missing)}", "action": action}
    if action == "set_cookie":
        try:
            params["cookie"] = json.loads(cookie)
        except ValueError as e:
            return {"success": False, "error": f"cookie must be a JSON object: {e}", "action": action}
        if not isinstance(params["cookie"], dict):
            return {"success": False, "error": "cookie must be a JSON object", "action": action}

    session = BrowserSession.instance()
    try:
        if action == "disconnect":
            await session.disconnect()
            return {"success": True, "action": action, "message": "Disconnected from browser"}
        if action == "close":
            await session.close()
            return {"success": True, "action": action, "message": "Browser closed"}

        async with session.page(port) as page:
            result = await asyncio.wait_for(_perform(page, action, params, timeout), timeout / 1000)
    except asyncio.TimeoutError:
        return {
            "success": False,
            "error": f"Browser action '{action}' timed out after {timeout}ms",
            "action": action,
            "port": port,
            "timed_out": True,
        }
    except (PlaywrightError, RuntimeError, OSError) as e:
        logger.warning("browser_use %s failed: %s", action, e)
        return {"success": False, "error": str(e), "action": action, "port": port}

    return {"success": True, "action": action, **result}


# =============================================================================
# web_fetch
# =============================================================================

def _page_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for node in soup(["script", "style", "noscript"]):
        node.decompose()
    body = soup.body or soup
    return body.get_text("\n", strip=True)


def _page_links(html: str, base_url: str, tag: str, attribute: str) -> List[str]:
    soup = BeautifulSoup(html, "html.parser")
    return [urljoin(base_url, node[attribute]) for node in soup.find_all(tag) if node.get(attribute)]


@tool
async def web_fetch(
    url: str,
    wait_for_selector: Optional[str] = None,
    wait_for_load_ms: int = WEB_FETCH_WAIT_MS_DEFAULT,
    timeout_ms: int = WEB_FETCH_TIMEOUT_MS_DEFAULT,
    viewport_width: int = 1920,
    viewport_height: int = 1080,
    user_agent: Optional[str] = None,
    screenshot: bool = False,
    block_images: bool = False,
    block_css: bool = False,
    javascript_enabled: bool = True,
    extract_links: bool = False,
    extract_images: bool = False,
    cookies: Optional[str] = None,
) -> Dict:
    """Render a web page in a headless browser and return its text and HTML. Better than api_fetch for SPAs.

    Args:
        url: http or https URL
        wait_for_selector: CSS selector to wait for before reading the page
        wait_for_load_ms: Extra time to wait for the page when no selector is given
        timeout_ms: Navigation timeout in milliseconds
        viewport_width: Viewport width in pixels
        viewport_height: Viewport height in pixels
        user_agent: Custom user agent
        screenshot: Include a full-page PNG screenshot, base64 encoded
        block_images: Do not load images
        block_css: Do not load stylesheets
        javascript_enabled: Run page scripts
        extract_links: Include the href of every link
        extract_images: Include the src of every image
        cookies: JSON array of cookies to set before loading the page
    """
    url = (url or "").strip()
    if not url:
        return {"success": False, "error": "URL is required and cannot be empty"}
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return {"success": False, "error": "Only http and https URLs are supported", "url": url}

    cookie_list: List[Dict] = []
    if cookies:
        try:
            cookie_list = json.loads(cookies)
        except ValueError:
            return {"success": False, "error": "cookies must be a valid JSON array", "url": url}
        if not isinstance(cookie_list, list):
            return {"success": False, "error": "cookies must be a JSON array of cookie objects", "url": url}

    blocked = {kind for kind, on in (("image", block_images), ("stylesheet", block_css)) if on}

    async def route(request_route) -> None:
        if request_route.request.resource_type in blocked:
            await request_route.abort()
        else:
            await request_route.continue_()

    async def fetch() -> Dict:
        started = time.monotonic()
        async with async_playwright() as playwright:
            browser = await playwright.chromium.launch(headless=True, timeout=timeout_ms)
            try:
                context = await browser.new_context(
                    viewport={"width": viewport_width, "height": viewport_height},
                    user_agent=user_agent,
                    java_script_enabled=javascript_enabled,
                )
                if cookie_list:
                    await context.add_cookies([dict(c, url=c.get("url", url)) if "domain" not in c else c for c in cookie_list])
                page = await context.new_page()
                if blocked:
                    await page.route("**/*", route)

                response = await page.goto(url, wait_until="networkidle", timeout=timeout_ms)
                if wait_for_selector:
                    await page.wait_for_selector(wait_for_selector, timeout=timeout_ms)
                elif wait_for_load_ms > 0:
                    await page.wait_for_timeout(wait_for_load_ms)

                html = await page.content()
                final_url = page.url
                content = _page_text(html)
                result = {
                    "success": True,
                    "url": final_url,
                    "request_url": url,
                    "title": await page.title(),
                    "content": content,
                    "html": html,
                    "content_length": len(content),
                    "html_length": len(html),
                    "status": response.status if response is not None else None,
                    "javascript_enabled": javascript_enabled,
                    "viewport": {"width": viewport_width, "height": viewport_height},
                }
                if extract_links:
                    result["links"] = _page_links(html, final_url, "a", "href")
                if extract_images:
                    result["images"] = _page_links(html, final_url, "img", "src")
                if screenshot:
                    data = await page.screenshot(full_page=True)
                    result["screenshot"] = base64.b64encode(data).decode("ascii")
                result["response_time_ms"] = int((time.monotonic() - started) * 1000)
                return result
            finally:
                await browser.close()

    overall = (timeout_ms + max(wait_for_load_ms, 0)) / 1000 + BROWSER_STARTUP_TIMEOUT
    try:
        return await asyncio.wait_for(fetch(), overall)
    except (PlaywrightTimeoutError, asyncio.TimeoutError) as e:
        return {"success": False, "url": url, "error": str(e) or "Page load timed out", "timed_out": True, "timeout_ms": timeout_ms}
    except PlaywrightError as e:
        return {"success": False, "url": url, "error": str(e), "timed_out": False}
