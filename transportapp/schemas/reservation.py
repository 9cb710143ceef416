from typing import List, Optional

from pydantic import BaseModel, Field


class ReservationCreate(BaseModel):
    tripDate: str
    direction: str = ""
    departTime: str = ""
    templateId: Optional[int] = None
    type: str = "PASSENGER"
    seats: int = 1
    customerName: str
    phone: str = ""
    packageDetails: str = ""
    paymentMethod: str = "COUNTER"
    transferRef: Optional[str] = None
    passengerNames: List[str] = Field(default_factory=list)


class ReservationCreated(BaseModel):
    folio: str
    status: str
    publicToken: str
    publicUrl: str
    unitPrice: str
    amountTotal: str
    currency: str
    pricingVersion: int


class AvailabilitySlot(BaseModel):
    time: str
    available: int
    templateId: int


class ReservationView(BaseModel):
    folio: str
    status: str
    type: str
    seats: int
    direction: str
    routeLabel: str
    tripDate: str
    departTime: str
    customerName: str
    phone: str
    packageDetails: Optional[str] = None
    paymentMethod: str
    unitPrice: str
    amountTotal: str
    currency: str
    passengers: List[str] = Field(default_factory=list)
    ticketCode: Optional[str] = None
    canPayOnline: bool = False
