"""
Thin async wrappers around a Playwright Page and its ElementHandles.

Every DOM read or write the automation performs goes through PageDom /
DomElement, so the rest of the package never touches Playwright directly
and tests can swap in a fake document with the same surface.
"""

from playwright.async_api import ElementHandle, Page

# ==============================================================================
# Page-side scripts
# ==============================================================================

# Walk the prototype chain to the native setter; React shadows `value` on the
# instance and ignores writes that go through the shadow.
SET_NATIVE_VALUE_JS = """(el, text) => {
  let proto = Object.getPrototypeOf(el)
  while (proto) {
    const d = Object.getOwnPropertyDescriptor(proto, "value")
    if (d && d.set) { d.set.call(el, text); return }
    proto = Object.getPrototypeOf(proto)
  }
  el.value = text
}"""

NOTIFY_INPUT_JS = """el => {
  el.dispatchEvent(new Event("input", { bubbles: true }))
  el.dispatchEvent(new Event("change", { bubbles: true }))
  try { el.dispatchEvent(new InputEvent("input", { bubbles: true })) } catch (e) {}
}"""

CARET_TO_END_JS = """el => {
  try {
    const sel = window.getSelection()
    const range = document.createRange()
    range.selectNodeContents(el)
    range.collapse(false)
    sel.removeAllRanges()
    sel.addRange(range)
  } catch (e) {}
}"""

# Existence check and insertion happen in one page turn so two overlapping
# attach cycles can never produce duplicates.
APPEND_CONTROL_JS = """(anchor, control) => {
  const existing = document.getElementById(control.id)
  if (existing && existing.isConnected) return false
  if (existing) existing.remove()
  const btn = document.createElement("button")
  btn.id = control.id
  btn.type = "button"
  btn.textContent = control.text
  btn.title = control.label
  btn.setAttribute("aria-label", control.label)
  btn.setAttribute("data-chain-keeper", control.action)
  btn.disabled = !!control.disabled
  Object.assign(btn.style, {
    display: "inline-flex", alignItems: "center", justifyContent: "center",
    padding: "0 10px", height: "32px", borderRadius: "8px", flexShrink: "0",
    border: "1px solid rgba(0,0,0,0.1)", background: "transparent",
    fontSize: "12px", cursor: "pointer", opacity: control.disabled ? "0.4" : "1"
  })
  btn.addEventListener("click", ev => {
    ev.preventDefault()
    ev.stopPropagation()
    if (window.__chainKeeperNotify) window.__chainKeeperNotify({ kind: "action", action: control.action })
  })
  anchor.appendChild(btn)
  return true
}"""

SET_DISABLED_JS = """(el, disabled) => {
  el.disabled = disabled
  el.style.opacity = disabled ? "0.4" : "1"
  el.style.cursor = disabled ? "not-allowed" : "pointer"
}"""

TOAST_JS = """([msg, ok]) => {
  const id = "cwc-toast"
  const old = document.getElementById(id)
  if (old) old.remove()
  const t = document.createElement("div")
  t.id = id
  t.textContent = msg
  Object.assign(t.style, {
    position: "fixed", bottom: "24px", right: "24px", padding: "12px 16px",
    borderRadius: "8px", fontSize: "13px", zIndex: "2147483647",
    color: "white", background: ok ? "#111827" : "#dc2626",
    boxShadow: "0 4px 12px rgba(0,0,0,0.1)"
  })
  document.documentElement.appendChild(t)
  setTimeout(() => t.remove(), 2300)
}"""


# ==============================================================================
# Wrappers
# ==============================================================================

def _wrap(handle):
    if handle is None:
        return None
    element = handle.as_element()
    return DomElement(element) if element is not None else None


class DomElement:
    def __init__(self, handle: ElementHandle):
        self.handle = handle

    async def tag_name(self):
        return (await self.handle.evaluate("el => el.tagName")).upper()

    async def parent(self):
        return _wrap(await self.handle.evaluate_handle("el => el.parentElement"))

    async def display(self):
        return await self.handle.evaluate("el => window.getComputedStyle(el).display")

    async def has_value(self):
        """Capability probe: does the node carry a settable `value`?"""
        return await self.handle.evaluate("el => el.value !== undefined")

    async def get_value(self):
        return await self.handle.evaluate("el => el.value || ''")

    async def set_value(self, text):
        await self.handle.evaluate(SET_NATIVE_VALUE_JS, text)

    async def get_text(self):
        return await self.handle.evaluate("el => el.innerText || el.textContent || ''")

    async def set_content(self, text):
        await self.handle.evaluate("(el, text) => { el.textContent = text }", text)

    async def caret_to_end(self):
        await self.handle.evaluate(CARET_TO_END_JS)

    async def notify_input(self):
        await self.handle.evaluate(NOTIFY_INPUT_JS)

    async def focus(self):
        await self.handle.evaluate("el => el.focus()")

    async def click(self):
        # Plain DOM click: no actionability waits on a button the host may
        # still be enabling.
        await self.handle.evaluate("el => el.click()")

    async def query(self, selector):
        return _wrap(await self.handle.query_selector(selector))

    async def query_all(self, selector):
        return [DomElement(h) for h in await self.handle.query_selector_all(selector)]

    async def is_connected(self):
        return await self.handle.evaluate("el => el.isConnected")

    async def append_control(self, control_id, label, text, action, disabled=False):
        control = {"id": control_id, "label": label, "text": text,
                   "action": action, "disabled": disabled}
        return await self.handle.evaluate(APPEND_CONTROL_JS, control)

    async def get_label(self):
        return await self.handle.evaluate("el => el.textContent || ''")

    async def set_label(self, text):
        await self.handle.evaluate("(el, text) => { el.textContent = text }", text)

    async def set_disabled(self, disabled):
        await self.handle.evaluate(SET_DISABLED_JS, disabled)


class PageDom:
    def __init__(self, page: Page):
        self.page = page

    @property
    def url(self):
        return self.page.url

    async def query(self, selector):
        return _wrap(await self.page.query_selector(selector))

    async def query_all(self, selector):
        return [DomElement(h) for h in await self.page.query_selector_all(selector)]

    async def by_id(self, element_id):
        return await self.query(f'[id="{element_id}"]')

    async def snapshot(self):
        return await self.page.content()

    async def show_toast(self, message, ok=True):
        await self.page.evaluate(TOAST_JS, [message, ok])
