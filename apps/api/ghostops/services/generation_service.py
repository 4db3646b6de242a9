# apps/api/ghostops/services/generation_service.py

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import openai

from ghostops.core.config import ProductSettings
from ghostops.core.timeouts import CallOutcome, call_with_timeout
from ghostops.services.prompts import CONTINUE_PROMPT, prompt_set

logger = logging.getLogger(__name__)

TRUNC_MARKER = "— FIN TRONQUÉE (demander la suite)"

RETRYABLE_STATUSES = {408, 429, 500, 502, 503, 504}

MAX_TURN_CHARS = 3000
MAX_HISTORY_CHARS = 12000
MAX_LAST_ASSISTANT_CHARS = 8000
MIN_TRUNCATION_LEN = 200
MIN_RETRY_BUDGET = 650

_TERMINAL = re.compile(r"[.!?…)]\s*$")


def clamp_text(value: Any, max_chars: int) -> str:
    t = value.strip() if isinstance(value, str) else ""
    if len(t) > max_chars:
        return t[:max_chars] + "…"
    return t


def normalize_history(raw: Any) -> List[Dict[str, str]]:
    """
    Keep user/assistant turns with text, clamp each one, then keep the most
    recent turns that fit the total budget (20 chars of overhead per turn).
    """
    if not isinstance(raw, list):
        return []

    turns: List[Dict[str, str]] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        role = item.get("role")
        role = role.strip() if isinstance(role, str) else ""
        content = item.get("content")
        if not isinstance(content, str):
            content = item.get("text") if isinstance(item.get("text"), str) else ""
        if role in ("user", "assistant") and content.strip():
            turns.append({"role": role, "content": clamp_text(content, MAX_TURN_CHARS)})

    kept: List[Dict[str, str]] = []
    total = 0
    for turn in reversed(turns):
        size = len(turn["content"]) + 20
        if total + size > MAX_HISTORY_CHARS:
            break
        kept.append(turn)
        total += size
    kept.reverse()
    return kept


def has_assistant_turn(history: List[Dict[str, str]]) -> bool:
    return any(t["role"] == "assistant" for t in history)


def looks_truncated(text: str) -> bool:
    t = (text or "").strip()
    if not t or len(t) < MIN_TRUNCATION_LEN:
        return False
    return not _TERMINAL.search(t)


def ensure_trunc_marker(text: str) -> str:
    t = (text or "").strip()
    if not t or TRUNC_MARKER in t:
        return t
    return f"{t}\n\n{TRUNC_MARKER}"


def retry_budget(budget: int) -> int:
    return max(MIN_RETRY_BUDGET, int(budget * 0.65))


@dataclass(frozen=True)
class GenerationContext:
    message: str
    history: List[Dict[str, str]] = field(default_factory=list)
    last_assistant: str = ""
    is_continue: bool = False
    is_followup: bool = False


@dataclass
class GenerationResult:
    ok: bool
    reply: str = ""
    incomplete: bool = False
    reason: Optional[str] = None
    status_code: Optional[int] = None
    message: str = ""
    model: str = ""
    max_output_tokens: int = 0
    retried: bool = False
    fallback_max_out: Optional[int] = None

    def debug(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "max_output_tokens": self.max_output_tokens,
            "retried": self.retried,
            "fallbackMaxOut": self.fallback_max_out,
            "upstreamStatus": self.status_code,
            "message": self.message,
        }


@dataclass(frozen=True)
class _Attempt:
    outcome: CallOutcome
    timed_out: bool
    status_code: Optional[int]
    retryable: bool
    message: str


def _classify(outcome: CallOutcome) -> _Attempt:
    if outcome.ok:
        return _Attempt(outcome, False, 200, False, "")
    if outcome.timed_out:
        return _Attempt(outcome, True, 504, True, "timed out")

    err = outcome.error
    if isinstance(err, openai.APITimeoutError):
        return _Attempt(outcome, True, 504, True, "timed out")
    if isinstance(err, openai.APIStatusError):
        status = int(getattr(err, "status_code", 0) or 502)
        return _Attempt(outcome, False, status, status in RETRYABLE_STATUSES, str(err)[:300])
    if isinstance(err, openai.APIConnectionError):
        return _Attempt(outcome, False, 502, True, "connection error")
    # anything else is a fault, not a collaborator answer
    raise err


class GenerationOrchestrator:
    def __init__(self, generator, *, timeout_s: float):
        self.generator = generator
        self.timeout_s = timeout_s

    def build_input(self, product: ProductSettings, ctx: GenerationContext) -> List[Dict[str, str]]:
        prompts = prompt_set(product.key)
        if ctx.is_continue:
            last = ctx.last_assistant
            if not last:
                last = next((t["content"] for t in reversed(ctx.history) if t["role"] == "assistant"), "")
            user_prompt = CONTINUE_PROMPT.format(last_assistant=last or "(not provided)", marker=TRUNC_MARKER)
        elif ctx.is_followup:
            user_prompt = prompts.followup.format(message=ctx.message)
        else:
            user_prompt = prompts.initial.format(message=ctx.message)

        messages = [{"role": "system", "content": prompts.system.format(marker=TRUNC_MARKER)}]
        messages.extend({"role": t["role"], "content": t["content"]} for t in ctx.history)
        messages.append({"role": "user", "content": user_prompt})
        return messages

    def _attempt(self, *, model: str, input: List[Dict[str, str]], budget: int) -> _Attempt:
        outcome = call_with_timeout(
            self.generator.create,
            self.timeout_s,
            model=model,
            input=input,
            max_output_tokens=budget,
            timeout_s=self.timeout_s,
        )
        return _classify(outcome)

    def run(self, product: ProductSettings, ctx: GenerationContext) -> GenerationResult:
        model = product.model_followup if (ctx.is_continue or ctx.is_followup) else product.model_initial
        budget = product.max_output_tokens_continue if ctx.is_continue else product.max_output_tokens
        messages = self.build_input(product, ctx)

        result = GenerationResult(ok=False, model=model, max_output_tokens=budget)

        attempt = self._attempt(model=model, input=messages, budget=budget)
        if not attempt.outcome.ok and attempt.retryable:
            result.retried = True
            result.fallback_max_out = retry_budget(budget)
            logger.info(
                "generation retry product=%s status=%s budget=%s",
                product.key, attempt.status_code, result.fallback_max_out,
            )
            attempt = self._attempt(model=model, input=messages, budget=result.fallback_max_out)

        if not attempt.outcome.ok:
            result.status_code = attempt.status_code
            result.message = attempt.message
            result.reason = "generation_timeout" if attempt.timed_out else "generation_failed"
            return result

        generated = attempt.outcome.value
        reply = (generated.text or "").strip()
        if not reply:
            result.reason = "empty_reply"
            result.status_code = 502
            return result

        if generated.incomplete or looks_truncated(reply):
            reply = ensure_trunc_marker(reply)

        result.ok = True
        result.reply = reply
        result.incomplete = bool(generated.incomplete)
        return result
