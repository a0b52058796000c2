"""Google Gemini API adapter."""

from __future__ import annotations

from typing import Dict, List, Optional

import httpx

from .base import (
    BaseAdapter,
    ChatRequest,
    ChatResponse,
    LLMExecutionException,
    LLMUnavailableException,
    Provider,
    Usage,
)
from .credentials import CredentialsManager

DEFAULT_MODEL = "gemini-2.5-pro"
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class GeminiAdapter(BaseAdapter):
    """Adapter for Gemini generateContent API."""

    provider = Provider.GEMINI

    def __init__(
        self,
        credentials: CredentialsManager | None = None,
        default_model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 300.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.credentials = credentials or CredentialsManager()
        self.default_model = default_model
        self.base_url = (self.credentials.get_base_url(Provider.GEMINI, base_url) or base_url).rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def chat(self, request: ChatRequest) -> ChatResponse:
        api_key = self._api_key()
        payload = self._build_payload(request)
        model = request.model or self.default_model
        url = f"{self.base_url}/models/{model}:generateContent"

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                resp = await client.post(url, json=payload, headers={"x-goog-api-key": api_key})
                resp.raise_for_status()
                data = resp.json()
            except httpx.HTTPError as exc:
                raise LLMExecutionException(f"Gemini request failed: {exc}") from exc
            except ValueError as exc:
                raise LLMExecutionException(f"Gemini returned malformed JSON: {exc}") from exc

        text = self._extract_text(data)
        candidates = data.get("candidates") or [{}]
        finish_reason = candidates[0].get("finishReason")
        if not text:
            raise LLMExecutionException(f"Gemini returned no text (finish reason: {finish_reason})")

        return ChatResponse(
            content=text,
            provider=self.provider,
            model=model,
            usage=self._parse_usage(data.get("usageMetadata")),
            finish_reason=finish_reason,
            metadata={"candidates": len(data.get("candidates") or [])},
        )

    def _build_payload(self, request: ChatRequest) -> Dict[str, object]:
        contents: List[Dict[str, object]] = []
        for message in request.messages:
            role = "model" if message.role == "model" else "user"
            contents.append(
                {
                    "role": role,
                    "parts": [{"text": message.content}],
                }
            )

        payload: Dict[str, object] = {"contents": contents}
        if request.system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": request.system_instruction}]}

        generation_config: Dict[str, object] = {}
        if request.temperature is not None:
            generation_config["temperature"] = request.temperature
        if request.max_tokens is not None:
            generation_config["maxOutputTokens"] = request.max_tokens
        if generation_config:
            payload["generationConfig"] = generation_config
        return payload

    def _extract_text(self, data: Dict[str, object]) -> str:
        candidates = data.get("candidates") or []
        for candidate in candidates:
            parts = (candidate.get("content") or {}).get("parts") or []
            # Thought summaries are not part of the answer.
            texts = [
                p.get("text")
                for p in parts
                if isinstance(p, dict) and p.get("text") and not p.get("thought")
            ]
            if texts:
                return "".join(texts)
        return ""

    def _parse_usage(self, payload: Optional[Dict[str, object]]) -> Optional[Usage]:
        if not payload:
            return None
        prompt = int(payload.get("promptTokenCount") or 0)
        completion = int(payload.get("candidatesTokenCount") or 0)
        total = int(payload.get("totalTokenCount") or prompt + completion)
        return Usage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)

    def _api_key(self) -> str:
        api_key = self.credentials.get_api_key(Provider.GEMINI)
        if not api_key:
            raise LLMUnavailableException("GEMINI_API_KEY (or GOOGLE_API_KEY / API_KEY) not configured.")
        return api_key
