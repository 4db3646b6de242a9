from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from typing import Any, Dict, Literal, Optional


class ActivateRightRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    cs_id: str = Field(..., min_length=1, validation_alias=AliasChoices("cs_id", "csId"))
    niveau_produit: Literal["diagnostic", "studio", "pre-brief"] = Field(
        ..., validation_alias=AliasChoices("niveau_produit", "niveauProduit")
    )


class StripeRef(BaseModel):
    cs_id: str
    paid: bool


class UserRef(BaseModel):
    id: str
    email: Optional[str] = None


class ActivateRightResponse(BaseModel):
    ok: bool = True
    activated: bool = True
    droit: Dict[str, Any]
    stripe: StripeRef
    user: UserRef
