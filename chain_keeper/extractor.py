# ==============================================================================
# Conversation Extractor
# ==============================================================================

from bs4 import BeautifulSoup

from chain_keeper.locator import locate_all
from chain_keeper.models import Turn

USER = "user"
ASSISTANT = "assistant"


def classify_role(element, rules):
    """
    Decides whether a transcript element was written by the user or the
    assistant, using the site's role markers:
      1. an explicit role attribute (ChatGPT),
      2. a selector that only matches user messages,
      3. the nearest ancestor whose class names mention a role (Claude).
    Elements with no marker at all count as assistant output.
    """
    if rules.role_attribute:
        value = element.get(rules.role_attribute)
        if value in rules.user_values:
            return USER
        if value in rules.assistant_values:
            return ASSISTANT
        return None

    if rules.user_selector and element.css.match(rules.user_selector):
        return USER

    markers = rules.user_classes + rules.assistant_classes
    node = element
    while node is not None:
        classes = node.get("class") or []
        class_str = " ".join(classes) if isinstance(classes, list) else str(classes)
        if markers and any(m in class_str for m in markers):
            lowered = class_str.lower()
            if any(m.lower() in lowered for m in rules.user_classes):
                return USER
            return ASSISTANT
        node = node.parent
    return ASSISTANT


def extract_conversation_chain(html, adapter):
    """
    Rebuilds the (prompt, response) turns from a page snapshot.

    Messages are scanned in document order. A user message overwrites the
    pending prompt; an assistant message pairs with the pending prompt (if
    any) and clears it. A prompt still pending at the end becomes a final
    turn without response. Empty messages are skipped.
    """
    rules = adapter.transcript
    if not adapter.supported or not rules.messages:
        return []

    soup = BeautifulSoup(html, "html.parser")
    chain = []
    pending = None

    for el in soup.select(rules.messages):
        text = el.get_text().strip()
        if not text:
            continue
        role = classify_role(el, rules)
        if role == USER:
            pending = text
        elif role == ASSISTANT and pending:
            chain.append(Turn(prompt=pending, response=text))
            pending = None

    if pending:
        chain.append(Turn(prompt=pending))
    return chain


async def latest_response(dom, adapter):
    """Text of the most recent assistant message on the live page, or ''."""
    if not adapter.assistant_selector:
        return ""
    messages = await locate_all(dom, adapter.assistant_selector)
    if not messages:
        return ""
    return (await messages[-1].get_text()).strip()
