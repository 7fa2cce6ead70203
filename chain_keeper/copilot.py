# ==============================================================================
# Copilot: one attached chat tab
# ==============================================================================

import asyncio

from chain_keeper.dom import PageDom
from chain_keeper.errors import ChainKeeperError, ConcurrentReplayRejected, ElementNotFound, ServiceError
from chain_keeper.extractor import extract_conversation_chain, latest_response
from chain_keeper.models import CATEGORIES, ScoreData, Session
from chain_keeper.replay import ReplayEngine
from chain_keeper.sites import resolve_adapter
from chain_keeper.feedback import Toaster
from chain_keeper.watcher import CONTROLS, OBSERVER_JS, Attacher, Watcher

BINDING_NAME = "__chainKeeperNotify"
CONVERSATION_MIN_CHARS = 20
BUSY_LABEL = "⏳"


def fallback_title(prompt):
    return prompt[:30].replace("\n", " ").strip()


class Copilot:
    """
    Owns the session state of one page and wires the pieces together:
    watcher -> attach (controls + latest response), control clicks ->
    improve / suggest next / save chain, and chain replay.
    """

    def __init__(self, dom, adapters, config, library=None, service=None, sleep=asyncio.sleep):
        self.dom = dom
        self.system = config["system"]
        self.library = library
        self.service = service
        self.adapter = resolve_adapter(dom.url, adapters)
        self.session = Session(site=self.adapter.id, url=dom.url)
        self.toaster = Toaster(dom)
        self.attacher = Attacher(dom, self.adapter)
        self.watcher = Watcher(self.attach, settle_delay=self.system.get("nav_settle_delay", 0.1),
                               initial_url=dom.url, sleep=sleep)
        self.engine = ReplayEngine(dom, self.adapter, self.session, self.toaster,
                                   settings=self.system, sleep=sleep)
        self.actions = {
            "improve": self.improve,
            "next": self.suggest_next,
            "save": self.save_chain,
        }
        self._tasks = set()

    @classmethod
    def for_page(cls, page, adapters, config, library=None, service=None):
        return cls(PageDom(page), adapters, config, library=library, service=service)

    # --------------------------------------------------------------------------
    # Live page wiring
    # --------------------------------------------------------------------------

    async def install(self):
        """Hooks the page (bindings, observer, navigation) and attaches once."""
        page = self.dom.page
        print(f"[Watch] Embedded controls loading: {self.adapter.id} {self.dom.url}")
        await page.expose_binding(BINDING_NAME, self._on_notify)
        await page.add_init_script(OBSERVER_JS)
        await page.evaluate(OBSERVER_JS)
        page.on("framenavigated", self._on_frame_navigated)
        await self.watcher.run_cycle()

    async def _on_notify(self, source, payload):
        kind = (payload or {}).get("kind")
        if kind == "mutation":
            await self.watcher.on_mutation()
        elif kind == "address":
            self._on_address(payload.get("href") or self.dom.url)
        elif kind == "action":
            self.spawn(self.run_action(payload.get("action")))

    def _on_frame_navigated(self, frame):
        if frame == self.dom.page.main_frame:
            self._on_address(frame.url)

    def _on_address(self, url):
        self.session.url = url
        self.watcher.on_address(url)

    def spawn(self, coro):
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self):
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self):
        self.watcher.close()
        self.engine.cancel()
        for task in list(self._tasks):
            task.cancel()

    # --------------------------------------------------------------------------
    # Attach cycle
    # --------------------------------------------------------------------------

    async def attach(self):
        await self.attacher.attach(next_enabled=self.session.has_conversation)
        await self.detect_ai_response()

    async def detect_ai_response(self):
        text = await latest_response(self.dom, self.adapter)
        if len(text) <= CONVERSATION_MIN_CHARS:
            return
        self.session.last_ai_response = text
        if not self.session.has_conversation:
            self.session.has_conversation = True
            await self._set_control_disabled("next", False)

    async def _set_control_disabled(self, action, disabled):
        control = next(c for c in CONTROLS if c.action == action)
        el = await self.attacher.control(control.id)
        if el is not None:
            await el.set_disabled(disabled)

    # --------------------------------------------------------------------------
    # Control actions
    # --------------------------------------------------------------------------

    async def run_action(self, action):
        """
        Runs one control action. The control shows a busy label while it runs
        and is always restored afterwards; failures become error toasts.
        """
        handler = self.actions.get(action)
        if handler is None:
            print(f"[Watch] Unknown action: {action}")
            return
        control = next(c for c in CONTROLS if c.action == action)
        button = await self.attacher.control(control.id)
        previous = None
        if button is not None:
            previous = await button.get_label()
            await button.set_label(BUSY_LABEL)
            await button.set_disabled(True)

        try:
            await handler()
        except ChainKeeperError as e:
            print(f"[Action Error] {action}: {e}")
            await self.toaster.toast(str(e), ok=False)
        except Exception as e:
            print(f"[Action Error] {action}: {type(e).__name__}: {e}")
            await self.toaster.toast(f"{control.text} failed: {e}", ok=False)
        finally:
            if button is not None:
                try:
                    label = previous if previous and previous != BUSY_LABEL else control.text
                    await button.set_label(label)
                    await button.set_disabled(action == "next" and not self.session.has_conversation)
                except Exception as e:
                    print(f"[Watch] Could not restore {control.id}: {e}")

    async def _composer(self):
        composer = await self.adapter.locate_composer(self.dom)
        if composer is None:
            raise ElementNotFound("composer", "Editor not found on this page")
        return composer

    async def improve(self):
        composer = await self._composer()
        current = (await composer.get_text()).strip()
        if not current:
            await self.toaster.toast("Type something first, then click Optimize", ok=False)
            return
        self.session.last_original_prompt = current

        try:
            score = ScoreData.from_reply(await self.service.score_prompt(current))
        except ServiceError as e:
            raise ServiceError(f"Error contacting scorer ({e})") from e
        if not score.rewrite:
            raise ServiceError("Scorer returned no rewrite")

        revised = score.score
        try:
            revised_reply = await self.service.score_prompt(score.rewrite)
            revised = int(revised_reply.get("score", score.score))
        except (ServiceError, TypeError, ValueError) as e:
            print(f"[Service] Revised scoring failed, keeping original score: {e}")
        score.revised_score = revised
        self.session.last_score = score

        await composer.set_text(score.rewrite)
        improvement = revised - score.score
        suffix = f" (+{improvement})" if improvement > 0 else ""
        await self.toaster.toast(f"Optimized: {score.score} → {revised}{suffix}")

    async def suggest_next(self):
        if not self.session.has_conversation or not self.session.last_ai_response:
            await self.toaster.toast("Have a conversation first!", ok=False)
            return

        last_prompt = self.session.last_original_prompt
        if not last_prompt:
            chain = await self.extract_chain()
            last_prompt = chain[-1].prompt if chain else ""
        limit = self.system.get("response_limit", 2000)

        try:
            data = await self.service.suggest_next(last_prompt, self.session.last_ai_response[:limit])
        except ServiceError as e:
            raise ServiceError(f"Error generating next prompt ({e})") from e

        suggestions = [s.strip() for s in (data.get("suggestions") or [])
                       if isinstance(s, str) and s.strip()]
        self.session.suggestions = suggestions
        if not suggestions:
            await self.toaster.toast("No suggestions received", ok=False)
            return

        for i, suggestion in enumerate(suggestions, start=1):
            print(f"[Suggest] {i}. {suggestion}")
        composer = await self._composer()
        await composer.set_text(suggestions[0])
        await self.toaster.toast("Next prompts suggested")

    async def extract_chain(self):
        return extract_conversation_chain(await self.dom.snapshot(), self.adapter)

    async def infer_metadata(self, prompt, fallback=None):
        """Title and category for `prompt`; `fallback` (or its first 30 chars) titles it on failure."""
        fallback = fallback or fallback_title(prompt)
        try:
            data = await self.service.infer_metadata(prompt)
        except ServiceError as e:
            print(f"[Service] Metadata inference failed: {e}")
            await self.toaster.toast(f"Could not infer a title, using \"{fallback}\"", ok=False)
            return fallback, "other"
        title = (data.get("title") or "").strip() or fallback
        category = data.get("category") if data.get("category") in CATEGORIES else "other"
        return title, category

    async def save_chain(self):
        """
        Saves the visible conversation as a chain. With no transcript on the
        page, falls back to saving the last optimized prompt.
        """
        chain = await self.extract_chain()
        if not chain:
            if self.session.last_original_prompt:
                return await self.save_prompt()
            await self.toaster.toast("No conversation to save", ok=False)
            return None
        title, category = await self.infer_metadata(chain[0].prompt)
        template = self.library.add(title, chain[0].prompt, category, chain=chain)
        await self.toaster.toast(f"Conversation chain saved ({len(chain)} steps)")
        return template

    async def save_prompt(self):
        """Saves the last optimized prompt (the rewrite when there is one) with its score."""
        score = self.session.last_score
        prompt = (score.rewrite if score else "") or self.session.last_original_prompt
        if not prompt:
            await self.toaster.toast("Optimize a prompt first, then save it", ok=False)
            return None
        goal = score.goal if score else None
        title, category = await self.infer_metadata(prompt, fallback=goal)
        value = None
        if score is not None:
            value = score.revised_score or score.score
        template = self.library.add(title, prompt, category, score=value)
        await self.toaster.toast(f"Prompt saved: {template.title}")
        return template

    # --------------------------------------------------------------------------
    # Replay
    # --------------------------------------------------------------------------

    async def replay(self, steps):
        """Replays `steps`; a request while another replay runs is a no-op."""
        try:
            return await self.engine.start_replay(steps)
        except ConcurrentReplayRejected as e:
            await self.toaster.toast(str(e), ok=False)
            return None
