from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient


class FakeBrowserStack:
    """Playwright driver, browser and page doubles wired together."""

    def __init__(self, pdf_bytes: bytes = b"%PDF-1.4 fake") -> None:
        self.page = MagicMock()
        self.page.set_content = AsyncMock()
        self.page.pdf = AsyncMock(return_value=pdf_bytes)
        self.page.close = AsyncMock()

        self.browser = MagicMock()
        self.browser.new_page = AsyncMock(return_value=self.page)
        self.browser.close = AsyncMock()

        self.playwright = MagicMock()
        self.playwright.chromium.executable_path = "/opt/managed/chromium"
        self.playwright.chromium.launch = AsyncMock(return_value=self.browser)
        self.playwright.stop = AsyncMock()

        self.starter = MagicMock()
        self.starter.start = AsyncMock(return_value=self.playwright)

    def factory(self):
        return self.starter

    @property
    def launch(self) -> AsyncMock:
        return self.playwright.chromium.launch


@pytest.fixture
def browser_stack() -> FakeBrowserStack:
    return FakeBrowserStack()


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch) -> TestClient:
    monkeypatch.setenv("APP_NAME", "uniz-notification-service")

    from notification_service.core.settings import get_settings

    get_settings.cache_clear()

    from notification_service.main import app

    with TestClient(app) as test_client:
        yield test_client

    get_settings.cache_clear()
