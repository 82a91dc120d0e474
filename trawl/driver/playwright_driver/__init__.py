"""Playwright-backed page access for JavaScript-heavy websites.

This module provides PageAccess/PageSource implementations that drive a real
browser, so "load more" controls and infinite scroll can be paginated.
"""

from trawl.driver.playwright_driver.playwright_page import (
    PlaywrightPage,
    PlaywrightPageSource,
)

__all__ = ["PlaywrightPage", "PlaywrightPageSource"]
