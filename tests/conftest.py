import pytest

from chain_keeper.config import load_selectors
from chain_keeper.sites import build_adapters

from fakes import FakeDom, FakeSleep

CHATGPT_HTML = """
<html><body><main>
  <div id="thread">
    <div data-message-author-role="user"><div class="whitespace-pre-wrap">Explain recursion</div></div>
    <div data-message-author-role="assistant"><div class="markdown">Recursion is when a function calls itself.</div></div>
    <div data-message-author-role="user"><div class="whitespace-pre-wrap">Give an example in Python</div></div>
    <div data-message-author-role="assistant"><div class="markdown">def f(n): return 1 if n == 0 else n * f(n - 1)</div></div>
  </div>
  <form class="w-full stretch">
    <textarea id="prompt-textarea"></textarea>
    <div class="toolbar" style="display: flex">
      <div class="wrap"><span class="slot"><button data-testid="send-button" aria-label="Send prompt">Send</button></span></div>
    </div>
  </form>
</main></body></html>
"""

CLAUDE_HTML = """
<html><body><main>
  <div class="conversation">
    <div class="font-user-message"><div data-testid="user-message">Hi Claude</div></div>
    <div class="font-claude-message" data-is-streaming="false"><p>Hello! How can I help you today?</p></div>
  </div>
  <fieldset>
    <div contenteditable="true" data-testid="message-editor" class="ProseMirror"></div>
    <div class="row" style="display:flex"><button aria-label="Send Message">Send</button></div>
  </fieldset>
</main></body></html>
"""


@pytest.fixture(scope="session")
def selectors():
    return load_selectors()


@pytest.fixture(scope="session")
def adapters(selectors):
    return build_adapters(selectors)


@pytest.fixture
def chatgpt(adapters):
    return adapters["chatgpt"]


@pytest.fixture
def claude(adapters):
    return adapters["claude"]


@pytest.fixture
def chatgpt_dom():
    return FakeDom(CHATGPT_HTML, url="https://chatgpt.com/c/123")


@pytest.fixture
def claude_dom():
    return FakeDom(CLAUDE_HTML, url="https://claude.ai/chat/xyz")


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def config():
    return {
        "system": {
            "poll_interval": 1.0,
            "settle_delay": 1.5,
            "max_checks": 5,
            "initial_delay": 2.0,
            "submit_delay": 0.5,
            "nav_settle_delay": 0.01,
            "response_limit": 2000,
        }
    }
