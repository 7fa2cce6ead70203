"""
Client for the remote prompt scoring service.

`send()` keeps the request/response contract of a message bus: a request
is a dict with a `type` and its fields, the reply is always
{"ok": True, "data": ...} or {"ok": False, "error": "..."} and it never
raises. The typed helpers unwrap the reply and raise ServiceError.
"""

import httpx

from chain_keeper.errors import ServiceError

ENDPOINTS = {
    "scorePrompt": "/score",
    "suggestNext": "/suggest-next",
    "inferMetadata": "/infer-metadata",
}


def _payload(message, api_key):
    kind = message.get("type")
    if kind == "scorePrompt":
        body = {"text": message.get("text", "")}
    elif kind == "suggestNext":
        body = {"last_prompt": message.get("lastPrompt", ""),
                "last_response": message.get("lastResponse", "")}
    else:
        body = {"prompt": message.get("prompt", "")}
    body["api_key"] = api_key or ""
    return body


class ServiceClient:
    def __init__(self, base_url, api_key_source=None, timeout=60, transport=None):
        """
        api_key_source: callable returning the current credential (or None);
        read on every call so a key saved mid-session is picked up.
        """
        self.base_url = base_url.rstrip("/")
        self.api_key_source = api_key_source or (lambda: "")
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout,
                                         transport=transport)

    async def aclose(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def send(self, message):
        kind = message.get("type")
        path = ENDPOINTS.get(kind)
        if path is None:
            return {"ok": False, "error": f"Unknown request type: {kind}"}

        try:
            res = await self._client.post(path, json=_payload(message, self.api_key_source()))
            if res.status_code >= 400:
                raise ServiceError(f"HTTP {res.status_code}")
            data = res.json()
        except (httpx.HTTPError, ServiceError, ValueError) as e:
            print(f"[Service Error] {kind}: {e}")
            return {"ok": False, "error": str(e) or type(e).__name__}
        return {"ok": True, "data": data}

    async def _request(self, message):
        reply = await self.send(message)
        if not reply.get("ok"):
            raise ServiceError(reply.get("error") or "request failed")
        data = reply["data"]
        if not isinstance(data, dict):
            raise ServiceError(f"Malformed reply to {message.get('type')}: expected an object")
        return data

    async def score_prompt(self, text):
        return await self._request({"type": "scorePrompt", "text": text})

    async def suggest_next(self, last_prompt, last_response):
        return await self._request({"type": "suggestNext", "lastPrompt": last_prompt,
                                    "lastResponse": last_response})

    async def infer_metadata(self, prompt):
        return await self._request({"type": "inferMetadata", "prompt": prompt})
