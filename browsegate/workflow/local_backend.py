"""Local Playwright backend that executes compiled commands in-process."""
from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from browsegate.remote.models import CreateTaskRequest, LogEntry, TaskStatus, utcnow_iso
from browsegate.script import (
    ClickCommand,
    Command,
    ExtractCommand,
    FillCommand,
    GotoCommand,
    WaitForNavigationCommand,
    WaitForSelectorCommand,
    command_label,
    compile_structured,
)

from . import results
from .config import Settings
from .results import NormalizedError, NormalizedResult, ResultDebug
from .trace import ExecutionTrace

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PageHandle:
    page_id: str
    url: str


class BrowserDriver(Protocol):
    """Page-level capabilities the local backend relies on."""

    async def open_page(self, url: str) -> PageHandle:
        ...

    async def navigate(self, page_id: str, url: str) -> PageHandle:
        ...

    async def click(self, page_id: str, selector: str, wait_for_navigation: bool = False) -> Dict[str, Any]:
        ...

    async def type(self, page_id: str, selector: str, value: str) -> Dict[str, Any]:
        ...

    async def extract(self, page_id: str, selector: str, *, fmt: str = "text", multiple: bool = False) -> Any:
        ...

    async def wait_for_selector(self, page_id: str, selector: str, timeout_ms: Optional[float] = None) -> None:
        ...

    async def wait_for_navigation(self, page_id: str, timeout_ms: Optional[float] = None) -> None:
        ...

    async def screenshot(self, page_id: str, *, full_page: bool = True) -> bytes:
        ...

    async def close(self) -> None:
        ...


DriverFactory = Callable[[], Awaitable[BrowserDriver]]


class PlaywrightDriver:
    """:class:`BrowserDriver` backed by a single Playwright browser."""

    def __init__(self, *, browser_name: str = "chromium", headless: bool = True, timeout: float = 30.0) -> None:
        self._browser_name = browser_name
        self._headless = headless
        self._timeout_ms = timeout * 1000
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._pages: Dict[str, Page] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    async def _get_browser(self) -> Browser:
        async with self._lock:
            if self._browser is None:
                logger.debug(f"Launching {self._browser_name} (headless={self._headless})")
                self._playwright = await async_playwright().start()
                browser_type = getattr(self._playwright, self._browser_name, None)
                if browser_type is None:
                    raise ValueError(f"Unsupported Playwright browser '{self._browser_name}'")
                self._browser = await browser_type.launch(headless=self._headless)
            return self._browser

    def _page(self, page_id: str) -> Page:
        page = self._pages.get(page_id)
        if page is None:
            raise KeyError(f"Unknown page id: {page_id}")
        return page

    async def open_page(self, url: str) -> PageHandle:
        browser = await self._get_browser()
        page = await browser.new_page()
        page.set_default_timeout(self._timeout_ms)
        await page.goto(url, wait_until="domcontentloaded")
        page_id = f"page-{next(self._ids)}"
        self._pages[page_id] = page
        return PageHandle(page_id=page_id, url=page.url)

    async def navigate(self, page_id: str, url: str) -> PageHandle:
        page = self._page(page_id)
        await page.goto(url, wait_until="domcontentloaded")
        return PageHandle(page_id=page_id, url=page.url)

    async def click(self, page_id: str, selector: str, wait_for_navigation: bool = False) -> Dict[str, Any]:
        page = self._page(page_id)
        if wait_for_navigation:
            async with page.expect_navigation(wait_until="load"):
                await page.click(selector)
        else:
            await page.click(selector)
        return {"success": True, "pageId": page_id}

    async def type(self, page_id: str, selector: str, value: str) -> Dict[str, Any]:
        await self._page(page_id).fill(selector, value)
        return {"success": True}

    async def extract(self, page_id: str, selector: str, *, fmt: str = "text", multiple: bool = False) -> Any:
        locator = self._page(page_id).locator(selector)
        if multiple:
            if fmt == "html":
                return [await item.inner_html() for item in await locator.all()]
            return await locator.all_inner_texts()
        first = locator.first
        return await (first.inner_html() if fmt == "html" else first.inner_text())

    async def wait_for_selector(self, page_id: str, selector: str, timeout_ms: Optional[float] = None) -> None:
        await self._page(page_id).wait_for_selector(selector, timeout=timeout_ms)

    async def wait_for_navigation(self, page_id: str, timeout_ms: Optional[float] = None) -> None:
        await self._page(page_id).wait_for_load_state("load", timeout=timeout_ms)

    async def screenshot(self, page_id: str, *, full_page: bool = True) -> bytes:
        return await self._page(page_id).screenshot(full_page=full_page)

    async def close(self) -> None:
        for page in list(self._pages.values()):
            try:
                if not page.is_closed():
                    await asyncio.wait_for(page.close(), timeout=2.0)
            except Exception as e:
                logger.debug(f"Page close error (may already be closed): {e}")
        self._pages.clear()
        if self._browser is not None:
            try:
                await asyncio.wait_for(self._browser.close(), timeout=2.0)
            except Exception as e:
                logger.debug(f"Browser close error (may already be closed): {e}")
            self._browser = None
        if self._playwright is not None:
            try:
                await asyncio.wait_for(self._playwright.stop(), timeout=2.0)
            except Exception as e:
                logger.debug(f"Playwright stop error (may already be stopped): {e}")
            self._playwright = None


def playwright_driver_factory(settings: Settings) -> DriverFactory:
    async def _factory() -> BrowserDriver:
        return PlaywrightDriver(
            browser_name=settings.playwright_browser,
            headless=settings.playwright_headless,
            timeout=settings.playwright_timeout_seconds,
        )

    return _factory


class LocalBackend:
    """Run compiled commands against a local :class:`BrowserDriver`."""

    def __init__(self, driver_factory: DriverFactory) -> None:
        self._driver_factory = driver_factory

    async def run_commands(self, commands: Sequence[Command], request: CreateTaskRequest) -> NormalizedResult:
        metadata = request.metadata or {}
        trace = ExecutionTrace(
            task_key=str(metadata.get("taskKey") or request.task_type),
            user_id=str(metadata.get("userId") or "anonymous"),
            workflow_id=metadata.get("workflowId"),
        )
        logs: List[LogEntry] = [LogEntry.now("info", f"Running {len(commands)} command(s) locally")]
        output: Dict[str, Any] = {}

        driver = await self._driver_factory()
        page_id: Optional[str] = None
        status = TaskStatus.COMPLETED
        error: Optional[NormalizedError] = None
        try:
            for index, command in enumerate(commands, start=1):
                step_id = f"step-{index}"
                started_at = utcnow_iso()
                outcome, page_id = await execute_command(driver, command, page_id)
                if isinstance(command, ExtractCommand):
                    output[command.as_] = outcome
                trace.record(step_id, command.args(), outcome, tool=f"browser.{command.kind}", started_at=started_at)
                logs.append(LogEntry.now("info", f"{step_id}: {command_label(command)}"))
        except (PlaywrightTimeoutError, asyncio.TimeoutError) as exc:
            status = TaskStatus.TIMEOUT
            error = NormalizedError(code=results.TIMEOUT, message=str(exc) or "Local command timed out")
            logs.append(LogEntry.now("error", error.message))
        except Exception as exc:
            logger.warning("Local execution failed: %s", exc)
            status = TaskStatus.FAILED
            error = NormalizedError(code=results.LOCAL_EXECUTION_ERROR, message=str(exc) or type(exc).__name__)
            logs.append(LogEntry.now("error", error.message))
        finally:
            trace.finish()
            try:
                await driver.close()
            except Exception as cleanup_error:
                logger.warning(f"Error during driver cleanup: {cleanup_error}")

        return NormalizedResult(
            status=status,
            output=output if status == TaskStatus.COMPLETED else (output or None),
            error=error,
            debug=ResultDebug(attempts=1, backend="local", logs=logs),
            trace=trace,
        )


async def execute_command(driver: BrowserDriver, command: Command, page_id: Optional[str]) -> tuple[Any, Optional[str]]:
    """Run one command; returns its outcome and the page id to use next."""

    if isinstance(command, GotoCommand):
        if page_id is None:
            handle = await driver.open_page(command.url)
        else:
            handle = await driver.navigate(page_id, command.url)
        return {"url": handle.url}, handle.page_id

    if page_id is None:
        raise RuntimeError(f"'{command.kind}' requires an open page; start the script with goto")

    if isinstance(command, ClickCommand):
        return await driver.click(page_id, command.selector), page_id
    if isinstance(command, FillCommand):
        return await driver.type(page_id, command.selector, command.value), page_id
    if isinstance(command, WaitForSelectorCommand):
        await driver.wait_for_selector(page_id, command.selector, command.timeout_ms)
        return {"found": True}, page_id
    if isinstance(command, WaitForNavigationCommand):
        await driver.wait_for_navigation(page_id, command.timeout_ms)
        return {"navigated": True}, page_id
    if isinstance(command, ExtractCommand):
        return await driver.extract(page_id, command.selector, multiple=bool(command.multiple)), page_id
    raise TypeError(f"Unhandled command type: {type(command).__name__}")


class BrowserToolInvoker:
    """Workflow tool invoker that maps ``browser.<kind>`` tools onto one driver.

    Step inputs are the command's args, so a step with tool ``browser.fill``
    and inputs ``{"selector": "#q", "value": "shoes"}`` runs a fill command on
    the page opened by the most recent ``browser.goto``.
    """

    TOOL_PREFIX = "browser."

    def __init__(self, driver: BrowserDriver) -> None:
        self._driver = driver
        self._page_id: Optional[str] = None

    async def __call__(self, tool: str, inputs: Any) -> Any:
        if not tool.startswith(self.TOOL_PREFIX):
            raise ValueError(f"Unknown tool {tool!r}; expected a {self.TOOL_PREFIX}<command> tool")
        kind = tool[len(self.TOOL_PREFIX):]
        command = compile_structured([{"kind": kind, "args": inputs or {}}])[0]
        outcome, self._page_id = await execute_command(self._driver, command, self._page_id)
        return outcome
