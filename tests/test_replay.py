import asyncio

import pytest

from chain_keeper.errors import ConcurrentReplayRejected
from chain_keeper.feedback import Toaster
from chain_keeper.models import ReplayPhase, Session, Turn
from chain_keeper.replay import ReplayEngine

from conftest import CHATGPT_HTML
from fakes import FakeDom

SEND = 'button[data-testid="send-button"]'

STEPS = [
    Turn("Outline a blog post about tide pools"),
    Turn("Expand section two", "Section two covers..."),
    Turn("Write a closing paragraph"),
]


def make_engine(dom, adapter, config, sleep, session=None):
    session = session or Session(site=adapter.id, url=dom.url)
    return ReplayEngine(dom, adapter, session, Toaster(dom), config["system"], sleep=sleep)


def messages(engine):
    return [message for message, _ in engine.toaster.history]


async def test_replays_every_step_in_order(chatgpt, chatgpt_dom, config, fake_sleep):
    sent = []

    async def composer_text():
        return await (await chatgpt_dom.query("textarea")).get_value()

    def on_click(el):
        sent.append(chatgpt_dom.values[id(chatgpt_dom.select("textarea")[0])])

    chatgpt_dom.on_click = on_click
    engine = make_engine(chatgpt_dom, chatgpt, config, fake_sleep)

    state = await engine.start_replay(STEPS)

    assert state.phase == ReplayPhase.DONE
    assert state.cursor == len(STEPS)
    assert sent == [t.prompt for t in STEPS]
    assert await composer_text() == STEPS[-1].prompt
    assert chatgpt_dom.events_for(SEND).count("click") == 3
    assert engine.session.replay is None
    # submit delay, initial delay, settle delay per step
    assert fake_sleep.calls == [0.5, 2.0, 1.5] * 3
    assert messages(engine) == [
        "Step 1/3: Prompt inserted", "Step 1/3 complete",
        "Step 2/3: Prompt inserted", "Step 2/3 complete",
        "Step 3/3: Prompt inserted",
        "Chain replay complete",
    ]


async def test_accepts_stored_step_dicts(chatgpt, chatgpt_dom, config, fake_sleep):
    engine = make_engine(chatgpt_dom, chatgpt, config, fake_sleep)
    state = await engine.start_replay([{"prompt": "Hello", "response": "Hi!"}])
    assert state.phase == ReplayPhase.DONE
    assert state.steps == [Turn("Hello", "Hi!")]


async def test_empty_chain_completes_immediately(chatgpt, chatgpt_dom, config, fake_sleep):
    engine = make_engine(chatgpt_dom, chatgpt, config, fake_sleep)
    state = await engine.start_replay([])
    assert state.phase == ReplayPhase.DONE
    assert state.cursor == 0
    assert fake_sleep.calls == []
    assert messages(engine) == ["Chain replay complete"]


async def test_missing_send_control_aborts_after_insert(chatgpt, config, fake_sleep):
    dom = FakeDom('<form class="stretch"><textarea id="prompt-textarea"></textarea></form>')
    engine = make_engine(dom, chatgpt, config, fake_sleep)

    state = await engine.start_replay(STEPS)

    assert state.phase == ReplayPhase.ABORTED
    assert state.cursor == 0
    assert dom.values[id(dom.select("textarea")[0])] == STEPS[0].prompt
    assert engine.toaster.history[-1] == ("Send button not found. Please submit manually", False)
    assert engine.session.replay is None


async def test_missing_composer_aborts(chatgpt, config, fake_sleep):
    engine = make_engine(FakeDom("<div></div>"), chatgpt, config, fake_sleep)
    state = await engine.start_replay(STEPS)
    assert state.phase == ReplayPhase.ABORTED
    assert state.cursor == 0
    assert engine.toaster.history[-1] == ("Composer not found", False)


async def test_timeout_is_reported_and_replay_continues(chatgpt, config, fake_sleep):
    dom = FakeDom(CHATGPT_HTML)
    dom.append_html("form", '<button data-testid="stop-button">Stop</button>')
    engine = make_engine(dom, chatgpt, config, fake_sleep)

    state = await engine.start_replay(STEPS[:2])

    assert state.phase == ReplayPhase.DONE
    assert state.cursor == 2
    assert messages(engine).count("Timeout waiting for response, continuing") == 2
    # max_checks is 5: four poll intervals between five probe evaluations
    assert fake_sleep.calls[:6] == [0.5, 2.0, 1.0, 1.0, 1.0, 1.0]


async def test_concurrent_start_is_rejected_and_cancel_stops_the_first(chatgpt, chatgpt_dom, config):
    gate = asyncio.Event()

    async def blocking(seconds):
        await gate.wait()

    session = Session(site="chatgpt", url=chatgpt_dom.url)
    first = make_engine(chatgpt_dom, chatgpt, config, blocking, session=session)
    second = make_engine(chatgpt_dom, chatgpt, config, blocking, session=session)

    task = asyncio.ensure_future(first.start_replay(STEPS))
    await asyncio.sleep(0)
    running = session.replay
    assert running is not None and running.is_active

    with pytest.raises(ConcurrentReplayRejected):
        await second.start_replay([Turn("Something else")])
    with pytest.raises(ConcurrentReplayRejected):
        await first.start_replay([Turn("Something else")])
    assert session.replay is running
    assert running.phase == ReplayPhase.INSERTING

    assert first.cancel() is True
    state = await asyncio.wait_for(task, timeout=1)

    assert state is running
    assert state.phase == ReplayPhase.ABORTED
    assert state.cursor == 0
    assert session.replay is None
    assert chatgpt_dom.events_for(SEND) == []
    assert first.toaster.history[-1] == ("Chain replay cancelled", False)


async def test_cancel_without_running_replay(chatgpt, chatgpt_dom, config, fake_sleep):
    engine = make_engine(chatgpt_dom, chatgpt, config, fake_sleep)
    assert engine.cancel() is False
