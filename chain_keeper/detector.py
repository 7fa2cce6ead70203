"""
Generation-completion detector.

Chat UIs expose no "response finished" event, so completion is inferred by
polling the site's is-generating probe:

    unknown -> generating -> settling -> done
                    \\-> timedOut   (probe still true after max_checks polls)

Once the probe reports not-generating the detector waits one settle delay,
which covers the gap between the UI hiding its streaming indicator and
the final text landing in the DOM. A timeout is a soft failure: the
caller gets `timedOut` back and decides whether to continue.
"""

import asyncio

from chain_keeper.errors import DetectionTimeout
from chain_keeper.models import DetectionPhase, DetectionState


class CompletionDetector:
    def __init__(self, probe, poll_interval=1.0, settle_delay=1.5, max_checks=120,
                 initial_delay=2.0, abort=None, sleep=asyncio.sleep):
        """
        probe: async callable returning True while the host is generating.
        abort: optional asyncio.Event; once set, pending waits return early
               and polling stops.
        sleep: injectable for tests.
        """
        self.probe = probe
        self.poll_interval = poll_interval
        self.settle_delay = settle_delay
        self.max_checks = max_checks
        self.initial_delay = initial_delay
        self.abort = abort
        self.sleep = sleep
        self.state = DetectionState()

    @property
    def aborted(self):
        return self.abort is not None and self.abort.is_set()

    async def tick(self):
        """One poll: evaluate the probe and move the state machine."""
        self.state.checks += 1
        try:
            generating = await self.probe()
        except Exception as e:
            print(f"[Detect] Probe failed, treating as not generating: {e}")
            generating = False

        if generating:
            if self.state.checks >= self.max_checks:
                self.state.phase = DetectionPhase.TIMED_OUT
            else:
                self.state.phase = DetectionPhase.GENERATING
        else:
            self.state.phase = DetectionPhase.SETTLING
        return self.state.phase

    async def await_completion(self, strict=False):
        """
        Polls until done or timed out and returns the final phase. If the
        abort event fires, returns the phase reached so far without waiting
        further. With strict=True a timeout raises DetectionTimeout.
        """
        self.state = DetectionState()
        await self.pause(self.initial_delay)

        while not self.aborted:
            phase = await self.tick()
            if phase == DetectionPhase.TIMED_OUT:
                print(f"[Detect] Response timeout after {self.state.checks} checks, proceeding anyway")
                if strict:
                    raise DetectionTimeout(f"still generating after {self.state.checks} checks")
                return phase
            if phase == DetectionPhase.SETTLING:
                await self.pause(self.settle_delay)
                if self.aborted:
                    break
                self.state.phase = DetectionPhase.DONE
                return self.state.phase
            await self.pause(self.poll_interval)

        return self.state.phase

    async def pause(self, seconds):
        await interruptible_sleep(seconds, self.abort, self.sleep)


async def interruptible_sleep(seconds, abort=None, sleep=asyncio.sleep):
    """Sleeps for `seconds`, returning early as soon as `abort` is set."""
    if seconds <= 0:
        return
    if abort is None:
        await sleep(seconds)
        return
    if abort.is_set():
        return

    sleeper = asyncio.ensure_future(sleep(seconds))
    waiter = asyncio.ensure_future(abort.wait())
    try:
        await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (sleeper, waiter):
            if not task.done():
                task.cancel()
