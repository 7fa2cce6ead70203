"""
Composer handles: one get/set-text contract over two kinds of input.

Value-backed composers (textarea, input) carry a `value` property;
content-backed ones (contenteditable divs) carry rendered text. The
variant is chosen once by probing the node when it is discovered.

Host UIs are reactive and only re-render on the events they observe, so
every write is followed by synthetic input/change notifications.
"""


class ComposerHandle:
    kind = None

    def __init__(self, element):
        self._element = element

    async def get_text(self):
        raise NotImplementedError

    async def set_text(self, text):
        raise NotImplementedError

    def __repr__(self):
        return f"<{type(self).__name__}>"


class ValueComposer(ComposerHandle):
    kind = "value"

    async def get_text(self):
        return await self._element.get_value()

    async def set_text(self, text):
        await self._element.set_value(text)
        await self._element.notify_input()
        await self._element.focus()


class ContentComposer(ComposerHandle):
    kind = "content"

    async def get_text(self):
        return await self._element.get_text()

    async def set_text(self, text):
        await self._element.set_content(text)
        await self._element.caret_to_end()
        await self._element.notify_input()
        await self._element.focus()


async def open_composer(element):
    if element is None:
        return None
    if await element.has_value():
        return ValueComposer(element)
    return ContentComposer(element)
