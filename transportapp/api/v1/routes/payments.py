from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from transportapp.db.session import get_db
from transportapp.api.deps import get_gateway
from transportapp.core.config import settings
from transportapp.schemas.payments import CheckoutSessionOut
from transportapp.services.checkout_service import ensure_checkout_session
from transportapp.services.ticket_service import ensure_public_token
from transportapp.services.webhook_service import process_webhook

router = APIRouter(tags=["payments"])


@router.post("/checkout/t/{token}/create-session", response_model=CheckoutSessionOut)
def create_checkout_session(token: str, req: Request, db: Session = Depends(get_db), gateway=Depends(get_gateway)):
    base = (settings.BASE_URL or str(req.base_url)).rstrip("/") + "/api/v1"
    return ensure_checkout_session(db, gateway, token, base_url=base)


@router.post("/checkout/{reservation_id}/create-session")
def legacy_checkout_session(reservation_id: int, db: Session = Depends(get_db)):
    token = ensure_public_token(db, reservation_id)
    db.commit()
    # 307 keeps the method and body
    return RedirectResponse(url=f"/api/v1/checkout/t/{token}/create-session", status_code=307)


async def raw_body(req: Request) -> bytes:
    return await req.body()


# sync route: row-lock waits run in the threadpool, off the event loop
@router.post("/webhooks/stripe")
def stripe_webhook(
    body: bytes = Depends(raw_body),
    stripe_signature: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
):
    return process_webhook(db, body, stripe_signature)
