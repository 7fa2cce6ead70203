from collections import deque

HISTORY_SIZE = 50


class Toaster:
    """
    Ephemeral user notifications: a tagged console line, plus a short-lived
    toast in the page when one is attached.
    """

    def __init__(self, dom=None):
        self.dom = dom
        self.history = deque(maxlen=HISTORY_SIZE)

    async def toast(self, message, ok=True):
        print(f"[Toast] {message}" if ok else f"[Toast Error] {message}")
        self.history.append((message, ok))
        if self.dom is None:
            return
        try:
            await self.dom.show_toast(message, ok)
        except Exception as e:
            print(f"[Toast] Could not render in page: {e}")
