from typing import Optional

from pydantic import BaseModel


class MarkPaidRequest(BaseModel):
    method: str = "CASH"  # CASH|TRANSFER


class TripToggleRequest(BaseModel):
    templateId: int
    date: str
    notes: Optional[str] = None


class PricingUpdate(BaseModel):
    passenger: str
    package: str
