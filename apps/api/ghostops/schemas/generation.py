# apps/api/ghostops/schemas/generation.py

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class GenerationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    message: Optional[str] = None
    description: Optional[str] = None

    # normalised in the service; anything that is not a list of turns is dropped there
    history: Any = Field(
        default=None,
        validation_alias=AliasChoices("history", "conversation", "messages"),
    )

    cs_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("cs_id", "csId"))
    session_token: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("sessionToken", "token")
    )
    continue_: bool = Field(default=False, validation_alias=AliasChoices("continue", "continue_"))
    last_assistant: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("last_assistant", "lastAssistant")
    )

    def effective_message(self) -> str:
        return (self.message or "").strip() or (self.description or "").strip()


class SessionMeta(BaseModel):
    createdNewSession: bool
    authMode: str
    maxIters: int
    ttlSeconds: int


class GenerationMeta(BaseModel):
    truncMarker: str
    model: str
    followup: bool
    continue_: bool = Field(serialization_alias="continue")
    historyUsed: int
    max_output_tokens: int
    timeoutS: float
    incomplete: bool
    productLock: bool
    retried: bool
    fallbackMaxOut: Optional[int] = None
    session: SessionMeta
    serverNow: int
    latencyMs: int


class GenerationResponse(BaseModel):
    ok: bool = True
    reply: str
    sessionToken: str
    itersLeft: int = Field(..., ge=0)
    expiresAt: int
    meta: GenerationMeta

    def to_body(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)
