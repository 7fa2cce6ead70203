# ==============================================================================
# Chain Replay Engine
# ==============================================================================

import asyncio
from functools import partial

from chain_keeper.detector import CompletionDetector, interruptible_sleep
from chain_keeper.errors import ConcurrentReplayRejected
from chain_keeper.models import DetectionPhase, ReplayPhase, ReplayState, Turn

TIMING_KEYS = ("poll_interval", "settle_delay", "max_checks", "initial_delay")


class ReplayEngine:
    """
    Replays a stored chain against the live page:
    insert prompt -> wait for the send button to enable -> click send ->
    wait for the response to finish -> next step.

    At most one replay runs per session; it lives in `session.replay` while
    active and is discarded when it finishes, aborts or is cancelled.
    """

    def __init__(self, dom, adapter, session, toaster, settings=None, sleep=asyncio.sleep):
        settings = settings or {}
        self.dom = dom
        self.adapter = adapter
        self.session = session
        self.toaster = toaster
        self.sleep = sleep
        self.submit_delay = settings.get("submit_delay", 0.5)
        self.timing = {k: settings[k] for k in TIMING_KEYS if k in settings}
        self._abort = None

    @property
    def active(self):
        return self.session.replay is not None and self.session.replay.is_active

    async def start_replay(self, steps):
        """
        Runs the whole chain and returns the final ReplayState (phase done or
        aborted). Raises ConcurrentReplayRejected, without touching the
        running replay, when one is already active.
        """
        if self.active:
            raise ConcurrentReplayRejected()

        turns = [s if isinstance(s, Turn) else Turn.from_dict(s) for s in steps]
        state = ReplayState(steps=turns)
        abort = asyncio.Event()
        # Claimed before the first await so an overlapping start sees it.
        self.session.replay = state
        self._abort = abort
        state.phase = ReplayPhase.INSERTING if turns else ReplayPhase.DONE

        try:
            await self._run(state, abort)
        except Exception:
            state.abort()
            raise
        finally:
            if self.session.replay is state:
                self.session.replay = None
            if self._abort is abort:
                self._abort = None
        return state

    def cancel(self):
        """Aborts the running replay; pending waits return immediately."""
        state = self.session.replay
        if state is None or not state.is_active:
            return False
        state.abort()
        if self._abort is not None:
            self._abort.set()
        print(f"[Replay] Cancelled at step {state.cursor + 1}/{state.total}")
        return True

    async def _cancelled(self, state, abort):
        if not abort.is_set():
            return False
        state.abort()
        await self.toaster.toast("Chain replay cancelled", ok=False)
        return True

    async def _run(self, state, abort):
        total = state.total
        print(f"[Replay] Starting {total}-step chain")

        while state.cursor < total:
            if await self._cancelled(state, abort):
                return
            step_no = state.cursor + 1

            # 1-2. insert the prompt
            state.phase = ReplayPhase.INSERTING
            composer = await self.adapter.locate_composer(self.dom)
            if composer is None:
                state.abort()
                print(f"[Replay] Composer not found at step {step_no}")
                await self.toaster.toast("Composer not found", ok=False)
                return
            await composer.set_text(state.current.prompt)
            await self.toaster.toast(f"Step {step_no}/{total}: Prompt inserted")

            # 3. let the host enable its send button
            await interruptible_sleep(self.submit_delay, abort, self.sleep)
            if await self._cancelled(state, abort):
                return

            state.phase = ReplayPhase.SUBMITTING
            send = await self.adapter.locate_send_control(self.dom)
            if send is None:
                state.abort()
                print("[Replay] Send button not found, manual submission required")
                await self.toaster.toast("Send button not found. Please submit manually", ok=False)
                return

            # 4. submit and wait for the response
            await send.click()
            print(f"[Replay] Auto-sent prompt {step_no}")
            state.phase = ReplayPhase.AWAITING
            detector = CompletionDetector(
                partial(self.adapter.is_generating, self.dom),
                abort=abort,
                sleep=self.sleep,
                **self.timing,
            )
            phase = await detector.await_completion()
            if await self._cancelled(state, abort):
                return
            if phase == DetectionPhase.TIMED_OUT:
                await self.toaster.toast("Timeout waiting for response, continuing", ok=False)

            # 5. advance
            state.advance()
            print(f"[Replay] Response {step_no} complete")
            if state.phase != ReplayPhase.DONE:
                await self.toaster.toast(f"Step {step_no}/{total} complete")

        state.phase = ReplayPhase.DONE
        await self.toaster.toast("Chain replay complete")
