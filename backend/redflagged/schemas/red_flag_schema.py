from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Severity = Literal["low", "medium", "high", "critical"]

FlagCategory = Literal[
    "pricing",
    "history",
    "title",
    "data-gap",
    "listing",
    "ownership",
    "disaster",
    "seller",
]


class RedFlag(BaseModel):
    """A discrete risk finding about the vehicle or listing.

    Produced by the Red Flag generator from collected source data and
    consumed read-only by the Verdict Assembly engine.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Stable flag identifier, e.g. 'title-brands'")
    title: str = Field(..., description="Short human-readable headline")
    description: str = Field(default="", description="One or two sentence explanation")
    severity: Severity
    category: FlagCategory
    expanded_details: Optional[str] = Field(
        default=None,
        description="Longer explanation shown on paid reports",
    )
    methodology: Optional[str] = Field(
        default=None,
        description="How the signal was computed",
    )
    is_premium: bool = Field(default=False)
    data_source: Optional[str] = Field(
        default=None,
        description="Upstream source the finding came from",
    )
