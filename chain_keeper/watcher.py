"""
Attachment and navigation watching.

The host UIs re-render whole containers and navigate client-side, so our
controls get wiped out at arbitrary times. `Attacher.attach()` is an
idempotent "make sure they exist" check; `Watcher` decides when to run it:
on every DOM mutation, and once (after a short settle delay) per address
change. Mutations that arrive while an address change is settling are
folded into that single cycle.
"""

import asyncio
from collections import namedtuple

Control = namedtuple("Control", "id label text action")

CONTROLS = (
    Control("cwc-embed-improve", "Improve Prompt", "Optimize", "improve"),
    Control("cwc-embed-next", "Suggest Next Prompt", "AutoPrompt", "next"),
    Control("cwc-embed-save", "Save Conversation Chain", "Save Chain", "save"),
)

# Installed in the page (init script + current document). Mutation
# notifications are coalesced: while one is in flight, later ones only
# mark the page dirty and trigger a single follow-up.
OBSERVER_JS = """(() => {
  if (window.__chainKeeperInstalled) return
  window.__chainKeeperInstalled = true

  const notify = payload => {
    try {
      if (window.__chainKeeperNotify) return Promise.resolve(window.__chainKeeperNotify(payload))
    } catch (e) {}
    return Promise.resolve()
  }

  let inFlight = false
  let dirty = false
  const onMutation = () => {
    if (inFlight) { dirty = true; return }
    inFlight = true
    notify({ kind: "mutation" }).catch(() => {}).finally(() => {
      inFlight = false
      if (dirty) { dirty = false; onMutation() }
    })
  }
  const observe = () => {
    new MutationObserver(onMutation).observe(document.documentElement, { subtree: true, childList: true })
  }
  if (document.documentElement) observe()
  else document.addEventListener("DOMContentLoaded", observe)

  let lastUrl = location.href
  const checkUrlChange = () => {
    if (location.href !== lastUrl) {
      lastUrl = location.href
      notify({ kind: "address", href: lastUrl })
    }
  }
  window.addEventListener("popstate", checkUrlChange)
  for (const name of ["pushState", "replaceState"]) {
    const original = history[name]
    history[name] = function (...args) {
      const result = original.apply(this, args)
      checkUrlChange()
      return result
    }
  }
})()"""


class Attacher:
    def __init__(self, dom, adapter):
        self.dom = dom
        self.adapter = adapter
        self._waiting_logged = False

    async def control(self, control_id):
        el = await self.dom.by_id(control_id)
        if el is None or not await el.is_connected():
            return None
        return el

    async def controls_present(self):
        for control in CONTROLS:
            if await self.control(control.id) is None:
                return False
        return True

    async def attach(self, next_enabled=False):
        """
        Ensures exactly one of each control sits under the toolbar anchor.
        Returns False (silently deferring) when the anchor is not there yet.
        """
        if not self.adapter.supported:
            return False
        if await self.controls_present():
            return True

        anchor = await self.adapter.locate_toolbar_anchor(self.dom)
        if anchor is None:
            if not self._waiting_logged:
                print("[Attach] Toolbar container not found, will retry on next mutation")
                self._waiting_logged = True
            return False
        self._waiting_logged = False

        for control in CONTROLS:
            disabled = control.action == "next" and not next_enabled
            if await anchor.append_control(control.id, control.label, control.text,
                                           control.action, disabled=disabled):
                print(f"[Attach] Injected {control.id}")
        return True


class Watcher:
    def __init__(self, attach, settle_delay=0.1, initial_url="", sleep=asyncio.sleep):
        """attach: async callable performing one re-attachment cycle."""
        self.attach = attach
        self.settle_delay = settle_delay
        self.sleep = sleep
        self.cycles = 0
        self._last_url = initial_url
        self._pending = None
        self._running = False
        self._rerun = False

    @property
    def navigation_pending(self):
        return self._pending is not None and not self._pending.done()

    async def run_cycle(self):
        # Requests arriving mid-cycle collapse into one follow-up cycle.
        if self._running:
            self._rerun = True
            return
        self._running = True
        try:
            while True:
                self._rerun = False
                self.cycles += 1
                try:
                    await self.attach()
                except Exception as e:
                    print(f"[Attach Error] {e}")
                if not self._rerun:
                    break
        finally:
            self._running = False

    async def on_mutation(self):
        if self.navigation_pending:
            return
        await self.run_cycle()

    def on_address(self, url):
        """Returns True when `url` is a new address (a settle+attach is scheduled)."""
        if url == self._last_url:
            return False
        print(f"[Watch] URL changed, re-attaching: {url}")
        self._last_url = url
        if not self.navigation_pending:
            self._pending = asyncio.ensure_future(self._settle_then_attach())
        return True

    async def _settle_then_attach(self):
        await self.sleep(self.settle_delay)
        await self.run_cycle()

    async def wait_idle(self):
        if self._pending is not None:
            await self._pending

    def close(self):
        if self.navigation_pending:
            self._pending.cancel()
