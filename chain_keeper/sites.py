"""
Site adapter registry.

Each supported chat UI gets one immutable SiteAdapter built from
selectors.yaml. Everything that depends on host markup lives here, so
markup drift means editing selectors, not the replay or watcher logic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import partial
from typing import Awaitable, Callable, Optional
from urllib.parse import urlparse

from chain_keeper.composer import open_composer
from chain_keeper.locator import exists, locate, locate_all

FLEX_DISPLAYS = ("flex", "inline-flex")


@dataclass(frozen=True)
class TranscriptRules:
    messages: str = ""
    role_attribute: Optional[str] = None
    user_values: tuple = ("user",)
    assistant_values: tuple = ("assistant",)
    user_selector: Optional[str] = None
    user_classes: tuple = ()
    assistant_classes: tuple = ()


@dataclass(frozen=True)
class SiteAdapter:
    id: str
    hosts: tuple = ()
    composer_selectors: tuple = ()
    send_selectors: tuple = ()
    assistant_selector: Optional[str] = None
    transcript: TranscriptRules = field(default_factory=TranscriptRules)
    toolbar_strategy: Callable[..., Awaitable] = field(default=None, compare=False)
    generating_probe: Callable[..., Awaitable] = field(default=None, compare=False)

    @property
    def supported(self):
        return self.id != "other"

    async def locate_composer(self, dom):
        return await open_composer(await locate(dom, self.composer_selectors))

    async def locate_send_control(self, dom):
        return await locate(dom, self.send_selectors)

    async def locate_toolbar_anchor(self, dom):
        if self.toolbar_strategy is None:
            return None
        return await self.toolbar_strategy(dom)

    async def is_generating(self, dom):
        if self.generating_probe is None:
            return False
        return await self.generating_probe(dom)


# ==============================================================================
# Strategies
# ==============================================================================

async def flex_row_anchor(dom, send_selectors=(), boundaries=(), fallbacks=()):
    """
    Finds a container for injected controls. Climbs from the send control
    to the first flex/inline-flex ancestor, never past a form/fieldset
    boundary; falls back to the send control's direct parent. When no send
    control is present the site's fallback containers are tried.
    """
    send = await locate(dom, send_selectors)
    if send is None:
        for fallback in fallbacks:
            container = await locate(dom, [fallback["container"]])
            if container is None:
                continue
            prefer = fallback.get("prefer")
            if prefer:
                inner = await locate(container, [prefer])
                if inner is not None:
                    return inner
            return container
        return None

    first_parent = await send.parent()
    parent = first_parent
    while parent is not None:
        if await parent.display() in FLEX_DISPLAYS:
            return parent
        if await parent.tag_name() in boundaries:
            break
        parent = await parent.parent()
    return first_parent


async def streaming_probe(dom, stop_selectors=(), streaming_selectors=(),
                          scope="page", assistant_selector=None):
    """
    True while the host is producing a response: a stop control is shown,
    or a streaming marker is present (on the page, or inside the most
    recent assistant message when scope is 'last_assistant').
    """
    if await exists(dom, stop_selectors):
        return True
    if not streaming_selectors:
        return False
    if scope == "last_assistant":
        if not assistant_selector:
            return False
        messages = await locate_all(dom, assistant_selector)
        if not messages:
            return False
        return await exists(messages[-1], streaming_selectors)
    return await exists(dom, streaming_selectors)


# ==============================================================================
# Registry
# ==============================================================================

UNSUPPORTED = SiteAdapter(id="other")


def _tuple(value):
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(value)


def build_adapter(site_id, entry):
    assistant = entry.get("assistant_message")
    streaming = entry.get("streaming") or {}
    transcript = entry.get("transcript") or {}
    role_classes = transcript.get("role_classes") or {}

    return SiteAdapter(
        id=site_id,
        hosts=_tuple(entry.get("hosts")),
        composer_selectors=_tuple(entry.get("composer")),
        send_selectors=_tuple(entry.get("send")),
        assistant_selector=assistant,
        transcript=TranscriptRules(
            messages=transcript.get("messages", ""),
            role_attribute=transcript.get("role_attribute"),
            user_values=_tuple(transcript.get("user_values", ["user"])),
            assistant_values=_tuple(transcript.get("assistant_values", ["assistant"])),
            user_selector=transcript.get("user_selector"),
            user_classes=_tuple(role_classes.get("user")),
            assistant_classes=_tuple(role_classes.get("assistant")),
        ),
        toolbar_strategy=partial(
            flex_row_anchor,
            send_selectors=_tuple(entry.get("toolbar_send") or entry.get("send")),
            boundaries=tuple(b.upper() for b in _tuple(entry.get("toolbar_boundaries"))),
            fallbacks=tuple(entry.get("toolbar_fallbacks") or ()),
        ),
        generating_probe=partial(
            streaming_probe,
            stop_selectors=_tuple(entry.get("stop")),
            streaming_selectors=_tuple(streaming.get("selectors")),
            scope=streaming.get("scope", "page"),
            assistant_selector=assistant,
        ),
    )


def build_adapters(selectors):
    return {site_id: build_adapter(site_id, entry)
            for site_id, entry in (selectors.get("sites") or {}).items()}


def resolve_adapter(url, adapters):
    """Picks the adapter whose host list covers the page's hostname."""
    host = (urlparse(url or "").hostname or "").lower()
    if host:
        for adapter in adapters.values():
            for candidate in adapter.hosts:
                if host == candidate or host.endswith("." + candidate):
                    return adapter
    return UNSUPPORTED
