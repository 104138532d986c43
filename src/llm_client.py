import os
from dataclasses import dataclass
from typing import List, Dict, Optional

import httpx

FALLBACK_REPLY = "Sorry, I couldn't generate a response."


class LLMError(Exception):
    def __init__(self, message: str, status: Optional[int] = None, body: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body


@dataclass
class Completion:
    text: str
    tokens_used: int = 0


class LLMClient:
    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.api_key = os.environ.get("GEMINI_API_KEY", "")
        self.base_url = os.environ.get(
            "GEMINI_API_URL", "https://generativelanguage.googleapis.com/v1beta"
        ).rstrip("/")
        self.timeout = float(os.environ.get("LLM_TIMEOUT", "120"))
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {"Content-Type": "application/json"}
        if self.api_key:
            headers["x-goog-api-key"] = self.api_key
        return headers

    def _build_payload(
        self,
        system_prompt: str,
        user_text: str,
        history: Optional[List[Dict[str, str]]],
    ) -> dict:
        contents = []
        for message in history or []:
            role = {"user": "user", "assistant": "model"}.get(message.get("role", ""))
            if role is None:
                continue
            contents.append({"role": role, "parts": [{"text": message.get("content", "")}]})
        contents.append({"role": "user", "parts": [{"text": user_text}]})
        return {
            "contents": contents,
            "systemInstruction": {"parts": [{"text": system_prompt}]},
        }

    async def generate(
        self,
        model: str,
        system_prompt: str,
        user_text: str,
        history: Optional[List[Dict[str, str]]] = None,
    ) -> Completion:
        payload = self._build_payload(system_prompt, user_text, history)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    f"{self.base_url}/models/{model}:generateContent",
                    headers=self._headers(),
                    json=payload,
                )
        except httpx.HTTPError as e:
            raise LLMError(f"Gemini API request failed: {e}") from e

        if response.is_error:
            raise LLMError("Gemini API error", status=response.status_code, body=response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise LLMError("Failed to parse Gemini response", body=response.text) from e

        candidates = data.get("candidates") or []
        text = ""
        if candidates:
            parts = candidates[0].get("content", {}).get("parts") or []
            if parts:
                text = str(parts[0].get("text", "")).strip()
        usage = data.get("usageMetadata") or {}
        tokens = usage.get("totalTokenCount") or 0
        return Completion(text=text or FALLBACK_REPLY, tokens_used=max(int(tokens), 0))
