# apps/api/ghostops/wiring/openai_responses.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from openai import OpenAI

from ghostops.core.errors import ConfigError


@dataclass(frozen=True)
class GeneratedText:
    text: str
    incomplete: bool = False


class OpenAIResponses:
    """
    Text generation through the OpenAI Responses API.
    Retries are owned by the caller, so the SDK's own retries are disabled.
    """

    def __init__(self, api_key: str):
        self.api_key = api_key
        self._client: Optional[OpenAI] = None

    def _get_client(self) -> OpenAI:
        if self._client is None:
            if not self.api_key:
                raise ConfigError("OPENAI_API_KEY is not set in environment")
            self._client = OpenAI(api_key=self.api_key, max_retries=0)
        return self._client

    def create(
        self,
        *,
        model: str,
        input: List[Dict[str, str]],
        max_output_tokens: int,
        timeout_s: float,
    ) -> GeneratedText:
        client = self._get_client()
        resp = client.responses.create(
            model=model,
            input=input,
            max_output_tokens=max_output_tokens,
            # slightly above the wall-clock limit so the abandoned call ends on its own
            timeout=timeout_s + 5.0,
        )

        text = (getattr(resp, "output_text", None) or "").strip()
        incomplete = getattr(resp, "status", None) == "incomplete" or bool(
            getattr(resp, "incomplete_details", None)
        )
        return GeneratedText(text=text, incomplete=incomplete)
