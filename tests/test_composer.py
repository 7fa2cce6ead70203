from chain_keeper.composer import ContentComposer, ValueComposer, open_composer

from fakes import FakeDom

HTML = """
<textarea id="prompt-textarea"></textarea>
<div id="editor" contenteditable="true"><p>old draft</p></div>
"""


async def test_capability_probe_picks_variant():
    dom = FakeDom(HTML)
    assert isinstance(await open_composer(await dom.query("textarea")), ValueComposer)
    assert isinstance(await open_composer(await dom.query("#editor")), ContentComposer)
    assert await open_composer(None) is None


async def test_value_backed_round_trip_and_notifications():
    dom = FakeDom(HTML)
    composer = await open_composer(await dom.query("textarea"))

    await composer.set_text("Summarize this article")

    assert await composer.get_text() == "Summarize this article"
    assert dom.events_for("textarea") == ["set_value", "input", "change", "focus"]


async def test_content_backed_round_trip_replaces_text_and_moves_caret():
    dom = FakeDom(HTML)
    composer = await open_composer(await dom.query("#editor"))
    assert (await composer.get_text()).strip() == "old draft"

    await composer.set_text("Write a haiku about rain")

    assert await composer.get_text() == "Write a haiku about rain"
    assert dom.select("#editor p") == []
    assert dom.events_for("#editor") == ["set_content", "caret", "input", "change", "focus"]


async def test_empty_value_reads_as_empty_string():
    dom = FakeDom(HTML)
    composer = await open_composer(await dom.query("textarea"))
    assert await composer.get_text() == ""
