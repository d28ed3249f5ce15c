"""Headless Chromium lifecycle for HTML to PDF rendering.

Each report job launches its own browser through Playwright, renders one
document and tears the browser down again. Handles are never shared between
jobs. :meth:`RenderEngine.session` is the only way callers should obtain one:
it releases the browser on every exit path.

Launch retry
------------
A launch that fails with a transient cause (the executable is still being
written, ``ETXTBSY``) is retried after a fixed 200 ms, up to
``max_attempts`` total attempts. Any other launch failure aborts at once.
"""
from __future__ import annotations

import asyncio
import errno
import logging
import os
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from playwright.async_api import async_playwright

from notification_service.core.errors import (
    BrowserLaunchError,
    BrowserNotFoundError,
    RenderError,
)

logger = logging.getLogger(__name__)

LAUNCH_RETRY_DELAY_S = 0.2
DEFAULT_LAUNCH_ATTEMPTS = 3

LOCAL_BROWSER_PATHS: tuple[str, ...] = (
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "/Applications/Brave Browser.app/Contents/MacOS/Brave Browser",
    "/Applications/Microsoft Edge.app/Contents/MacOS/Microsoft Edge",
    "/usr/bin/google-chrome",
    "/usr/bin/chromium",
    "/usr/bin/chromium-browser",
)

# Flags for containerised / serverless Chromium.
PRODUCTION_ARGS: tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-zygote",
    "--single-process",
    "--font-render-hinting=none",
)
PRODUCTION_VIEWPORT = {"width": 1920, "height": 1080}
LOCAL_VIEWPORT = {"width": 1200, "height": 800}


@dataclass(frozen=True)
class PdfOptions:
    format: str = "A4"
    print_background: bool = True
    margin: str = "20px"

    def as_kwargs(self) -> dict[str, Any]:
        return {
            "format": self.format,
            "print_background": self.print_background,
            "margin": {
                "top": self.margin,
                "bottom": self.margin,
                "left": self.margin,
                "right": self.margin,
            },
        }


@dataclass
class BrowserHandle:
    """One launched Chromium and the Playwright driver that owns it."""

    playwright: Any
    browser: Any
    viewport: dict[str, int]
    attempts: int
    released: bool = field(default=False)


def is_transient_launch_error(exc: BaseException) -> bool:
    """Return ``True`` if *exc* looks like an executable that is still busy.

    Covers a raw ``OSError`` from ``exec`` and the node-side ``spawn ETXTBSY``
    text that Playwright wraps in its own error type.
    """
    if isinstance(exc, OSError) and exc.errno == errno.ETXTBSY:
        return True
    message = str(exc)
    return "ETXTBSY" in message or "text file busy" in message.lower()


class RenderEngine:
    """Launch, use and release headless Chromium instances.

    Parameters
    ----------
    production:
        Use the Playwright-managed Chromium and container-safe flags.
    executable_override:
        Explicit browser path for local runs; checked before the probe list.
    candidate_paths:
        Local install locations probed in order.
    retry_delay_s:
        Fixed wait between transient launch failures.
    playwright_factory:
        Callable returning an object with an async ``start()``; defaults to
        :func:`playwright.async_api.async_playwright`.
    """

    def __init__(
        self,
        *,
        production: bool = False,
        executable_override: str | None = None,
        candidate_paths: Sequence[str] = LOCAL_BROWSER_PATHS,
        retry_delay_s: float = LAUNCH_RETRY_DELAY_S,
        playwright_factory: Callable[[], Any] = async_playwright,
    ) -> None:
        self.production = production
        self.executable_override = executable_override
        self.candidate_paths = tuple(candidate_paths)
        self.retry_delay_s = retry_delay_s
        self._playwright_factory = playwright_factory

    # -- executable ---------------------------------------------------------

    def resolve_executable(self, managed_path: str | None = None) -> str:
        """Return the Chromium binary to launch.

        In production the Playwright-managed build (*managed_path*) is used.
        Locally the override wins, then the first existing candidate path.
        """
        if self.production:
            if managed_path and os.path.exists(managed_path):
                return managed_path
            raise BrowserNotFoundError(
                "Managed Chromium is not installed; run `playwright install chromium`."
            )

        if self.executable_override:
            return self.executable_override

        for path in self.candidate_paths:
            if os.path.exists(path):
                return path

        raise BrowserNotFoundError(
            "Could not find a suitable browser. Install Google Chrome, Brave or "
            "Chromium, or set BROWSER_EXECUTABLE_PATH."
        )

    # -- lifecycle ----------------------------------------------------------

    async def launch(self, max_attempts: int = DEFAULT_LAUNCH_ATTEMPTS) -> BrowserHandle:
        """Start Chromium, retrying transient failures only."""
        playwright = await self._playwright_factory().start()
        try:
            executable = self.resolve_executable(playwright.chromium.executable_path)
            launch_kwargs: dict[str, Any] = {
                "executable_path": executable,
                "headless": True,
                "args": list(PRODUCTION_ARGS) if self.production else [],
            }
            viewport = PRODUCTION_VIEWPORT if self.production else LOCAL_VIEWPORT

            attempt = 0
            while True:
                attempt += 1
                try:
                    browser = await playwright.chromium.launch(**launch_kwargs)
                except Exception as exc:
                    if attempt < max_attempts and is_transient_launch_error(exc):
                        logger.warning(
                            "Browser launch failed (attempt %d), retrying in %dms",
                            attempt,
                            int(self.retry_delay_s * 1000),
                        )
                        await asyncio.sleep(self.retry_delay_s)
                        continue
                    raise BrowserLaunchError(
                        f"Browser launch failed after {attempt} attempt(s): {exc}",
                        attempts=attempt,
                    ) from exc
                break
        except BaseException:
            await playwright.stop()
            raise

        logger.debug("Browser launched on attempt %d", attempt)
        return BrowserHandle(
            playwright=playwright,
            browser=browser,
            viewport=dict(viewport),
            attempts=attempt,
        )

    async def render(
        self,
        handle: BrowserHandle,
        html: str,
        options: PdfOptions | None = None,
    ) -> bytes:
        """Load *html* into a fresh page and export it as a PDF."""
        options = options or PdfOptions()
        try:
            page = await handle.browser.new_page(viewport=handle.viewport)
            try:
                await page.set_content(html, wait_until="load")
                pdf = await page.pdf(**options.as_kwargs())
            finally:
                await page.close()
        except Exception as exc:
            raise RenderError(f"PDF export failed: {exc}") from exc
        return bytes(pdf)

    async def release(self, handle: BrowserHandle) -> None:
        """Close the browser and stop its driver."""
        if handle.released:
            return
        handle.released = True
        try:
            await handle.browser.close()
        finally:
            await handle.playwright.stop()
        logger.debug("Browser released")

    @asynccontextmanager
    async def session(
        self, max_attempts: int = DEFAULT_LAUNCH_ATTEMPTS
    ) -> AsyncIterator[BrowserHandle]:
        """Launch a browser for the duration of the ``async with`` block."""
        handle = await self.launch(max_attempts=max_attempts)
        try:
            yield handle
        finally:
            await self.release(handle)
