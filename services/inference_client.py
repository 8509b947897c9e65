"""Lightweight client for the hosted inference (Messages) API."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional

import requests

from config.settings import settings

logger = logging.getLogger(__name__)


class InferenceCallError(RuntimeError):
    """Raised when the inference API cannot be reached or returns an error response."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class InferenceClient:
    """Simple wrapper around the Messages HTTP API.

    ``complete`` takes a system instruction and a user payload and returns
    the assistant's free-form text.  Requests are not retried; callers
    decide whether a failure is fatal.
    """

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        api_version: Optional[str] = None,
    ) -> None:
        url = base_url or getattr(settings, "inference_base_url", "https://api.anthropic.com")
        if not url.startswith("http"):
            url = f"https://{url}"
        self.base_url = url.rstrip("/")
        self.api_key = api_key or getattr(settings, "anthropic_api_key", None)
        self.model = model or getattr(settings, "inference_model", "claude-sonnet-4-20250514")
        self.timeout = timeout or getattr(settings, "inference_timeout", 90.0)
        self.api_version = api_version or getattr(settings, "inference_api_version", "2023-06-01")
        self._session = requests.Session()

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------
    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "anthropic-version": self.api_version,
        }
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        headers = kwargs.pop("headers", {})
        headers.update(self._headers())
        try:
            response = self._session.request(
                method,
                url,
                headers=headers,
                timeout=self.timeout,
                **kwargs,
            )
            response.raise_for_status()
            return response
        except requests.HTTPError as exc:
            status_code = exc.response.status_code if exc.response is not None else None
            message = exc.response.text if exc.response is not None else str(exc)
            raise InferenceCallError(
                f"API Error: {status_code} - {message}", status_code=status_code
            ) from exc
        except requests.RequestException as exc:
            raise InferenceCallError(str(exc)) from exc

    @staticmethod
    def _coerce_message_content(payload: Dict[str, Any]) -> str:
        blocks = payload.get("content") or []
        texts = []
        for block in blocks:
            if isinstance(block, dict) and block.get("type", "text") == "text":
                text = block.get("text")
                if isinstance(text, str):
                    texts.append(text)
        return "".join(texts)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def complete(self, system_prompt: str, user_prompt: str, *, max_tokens: int = 1024) -> str:
        """Send one system + user exchange and return the response text."""

        payload: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": int(max_tokens),
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_prompt}],
        }
        logger.debug("Inference request (%s, max_tokens=%s)", self.model, max_tokens)
        response = self._request("POST", "/v1/messages", json=payload)
        try:
            data = response.json() if response.content else {}
        except ValueError as exc:
            raise InferenceCallError(f"inference response was not JSON: {exc}") from exc
        if data.get("stop_reason") == "max_tokens":
            logger.warning("Inference response truncated at %s tokens", max_tokens)
        text = self._coerce_message_content(data)
        logger.debug("Inference response text: %s", text)
        return text


_CLIENT_LOCK = threading.Lock()
_CLIENT: Optional[InferenceClient] = None


def get_inference_client() -> InferenceClient:
    """Return a process-wide inference client."""

    global _CLIENT
    if _CLIENT is None:
        with _CLIENT_LOCK:
            if _CLIENT is None:
                _CLIENT = InferenceClient()
    return _CLIENT


__all__ = ["InferenceClient", "InferenceCallError", "get_inference_client"]
