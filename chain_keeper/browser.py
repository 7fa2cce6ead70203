"""Getting hold of a chat tab: attach to a running Chrome over CDP, or launch
a persistent Chromium profile so logins survive between runs."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from playwright.async_api import BrowserContext, Page, async_playwright

from chain_keeper.errors import ChainKeeperError
from chain_keeper.sites import resolve_adapter


def find_chat_page(context: BrowserContext, adapters) -> Optional[Page]:
    """First open page whose hostname belongs to a supported site."""
    for pg in context.pages:
        if resolve_adapter(pg.url, adapters).supported:
            return pg
    return None


async def _open_page(context, adapters, start_url):
    page = find_chat_page(context, adapters)
    if page:
        print(f"[Init] Found chat tab: {page.url}")
        return page
    print(f"[Init] Opening new tab at {start_url} ...")
    page = context.pages[0] if context.pages and context.pages[0].url == "about:blank" else await context.new_page()
    await page.goto(start_url, wait_until="domcontentloaded")
    return page


@asynccontextmanager
async def open_chat_page(system, adapters, profile_dir=None):
    """
    Yields a Page on a supported chat site.

    With `profile_dir` (argument or config) a persistent Chromium context
    is launched; otherwise we connect to Chrome started with
    --remote-debugging-port at `system['cdp_url']`.
    """
    profile_dir = profile_dir or system.get("profile_dir")
    start_url = system.get("start_url") or "https://chatgpt.com/"

    async with async_playwright() as p:
        if profile_dir:
            profile_path = Path(profile_dir)
            profile_path.mkdir(parents=True, exist_ok=True)
            context = await p.chromium.launch_persistent_context(str(profile_path), headless=False)
            print(f"[Conn] Launched persistent profile at {profile_path}")
            try:
                yield await _open_page(context, adapters, start_url)
            finally:
                await context.close()
        else:
            cdp_url = system["cdp_url"]
            try:
                browser = await p.chromium.connect_over_cdp(cdp_url)
            except Exception as e:
                print(f"[Error] Connection failed: {e}")
                print("Make sure Chrome is running with --remote-debugging-port=9222")
                raise ChainKeeperError(f"Could not connect to Chrome at {cdp_url}") from e
            print(f"[Conn] Connected to Chrome at {cdp_url}")
            context = browser.contexts[0] if browser.contexts else await browser.new_context()
            yield await _open_page(context, adapters, start_url)
