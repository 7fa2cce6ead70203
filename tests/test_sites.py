import pytest

from chain_keeper.composer import ContentComposer, ValueComposer
from chain_keeper.sites import UNSUPPORTED, build_adapter, resolve_adapter

from fakes import FakeDom


@pytest.mark.parametrize("url, site", [
    ("https://chatgpt.com/c/123", "chatgpt"),
    ("https://chat.openai.com/", "chatgpt"),
    ("https://claude.ai/new", "claude"),
    ("https://claude.ai/chat/abc", "claude"),
    ("https://example.com/chatgpt.com", "other"),
    ("https://platform.openai.com/", "other"),
    ("", "other"),
])
def test_resolve_adapter_by_hostname(adapters, url, site):
    assert resolve_adapter(url, adapters).id == site


def test_unsupported_adapter_disables_automation(adapters):
    adapter = resolve_adapter("https://example.com", adapters)
    assert adapter is UNSUPPORTED
    assert not adapter.supported


async def test_unsupported_adapter_finds_nothing(chatgpt_dom):
    assert await UNSUPPORTED.locate_composer(chatgpt_dom) is None
    assert await UNSUPPORTED.locate_send_control(chatgpt_dom) is None
    assert await UNSUPPORTED.locate_toolbar_anchor(chatgpt_dom) is None
    assert await UNSUPPORTED.is_generating(chatgpt_dom) is False


async def test_chatgpt_locates_controls(chatgpt, chatgpt_dom):
    assert isinstance(await chatgpt.locate_composer(chatgpt_dom), ValueComposer)
    send = await chatgpt.locate_send_control(chatgpt_dom)
    assert send.tag["data-testid"] == "send-button"


async def test_claude_locates_content_composer(claude, claude_dom):
    assert isinstance(await claude.locate_composer(claude_dom), ContentComposer)
    send = await claude.locate_send_control(claude_dom)
    assert send.tag["aria-label"] == "Send Message"


async def test_toolbar_anchor_is_nearest_flex_ancestor(chatgpt, chatgpt_dom):
    anchor = await chatgpt.locate_toolbar_anchor(chatgpt_dom)
    assert anchor.tag["class"] == ["toolbar"]


async def test_toolbar_climb_stops_at_form_boundary(chatgpt):
    dom = FakeDom("""
      <div style="display:flex" class="outside">
        <form class="stretch"><div class="a"><span class="b"><button data-testid="send-button">Send</button></span></div></form>
      </div>""")
    anchor = await chatgpt.locate_toolbar_anchor(dom)
    # no flex ancestor inside the form: fall back to the send control's parent
    assert anchor.tag.name == "span"


async def test_toolbar_fallback_when_send_control_missing(chatgpt, claude):
    dom = FakeDom('<form class="w-full stretch"><textarea></textarea></form>')
    anchor = await chatgpt.locate_toolbar_anchor(dom)
    assert anchor.tag.name == "form"

    dom = FakeDom('<fieldset><div style="display: flex" class="row"></div></fieldset>')
    anchor = await claude.locate_toolbar_anchor(dom)
    assert anchor.tag["class"] == ["row"]

    dom = FakeDom('<fieldset><div class="row"></div></fieldset>')
    anchor = await claude.locate_toolbar_anchor(dom)
    assert anchor.tag.name == "fieldset"

    assert await claude.locate_toolbar_anchor(FakeDom("<div></div>")) is None


async def test_chatgpt_generating_probe(chatgpt, chatgpt_dom):
    assert await chatgpt.is_generating(chatgpt_dom) is False

    chatgpt_dom.append_html("form", '<button data-testid="stop-button" aria-label="Stop streaming">Stop</button>')
    assert await chatgpt.is_generating(chatgpt_dom) is True


async def test_chatgpt_streaming_marker_only_counts_on_last_assistant(chatgpt):
    dom = FakeDom("""
      <div data-message-author-role="assistant"><div class="result-streaming">old</div></div>
      <div data-message-author-role="assistant"><div>new</div></div>""")
    assert await chatgpt.is_generating(dom) is False

    dom = FakeDom("""
      <div data-message-author-role="assistant"><div>old</div></div>
      <div data-message-author-role="assistant"><div class="result-streaming">new</div></div>""")
    assert await chatgpt.is_generating(dom) is True


async def test_claude_streaming_marker_anywhere(claude, claude_dom):
    assert await claude.is_generating(claude_dom) is False
    claude_dom.append_html(".conversation", '<div data-is-streaming="true">typing...</div>')
    assert await claude.is_generating(claude_dom) is True


def test_build_adapter_accepts_minimal_entry():
    adapter = build_adapter("mini", {"hosts": "mini.chat", "composer": ["textarea"]})
    assert adapter.hosts == ("mini.chat",)
    assert adapter.composer_selectors == ("textarea",)
    assert adapter.send_selectors == ()
    assert adapter.supported
