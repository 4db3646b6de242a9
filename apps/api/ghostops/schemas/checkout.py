from pydantic import BaseModel, Field
from typing import Optional


class VerifyCheckoutRequest(BaseModel):
    cs_id: str = Field(..., pattern=r"^cs_")


class VerifyCheckoutResponse(BaseModel):
    ok: bool = True
    verified: bool
    status: Optional[str] = None
    payment_status: Optional[str] = None
    mode: Optional[str] = None
    livemode: Optional[bool] = None
    amount_total: Optional[int] = None
    currency: Optional[str] = None
    id: Optional[str] = None
