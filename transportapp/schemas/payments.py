from typing import Optional

from pydantic import BaseModel


class CheckoutSessionOut(BaseModel):
    sessionId: str
    url: Optional[str] = None
    clientSecret: Optional[str] = None
    publishableKey: Optional[str] = None
