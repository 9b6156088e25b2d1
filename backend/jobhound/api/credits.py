import json
import logging

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.user import User
from ..services.credits import get_available_credits, list_lots, lot_to_public
from ..services.payments import create_checkout_session, handle_stripe_event, verify_webhook
from ..utils.dependencies import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Credits"])


class CheckoutRequest(BaseModel):
    returnUrl: str | None = None


@router.get("/credits")
def get_credits(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return {
        "success": True,
        "available": get_available_credits(db, user.id),
        "lots": [lot_to_public(lot) for lot in list_lots(db, user.id)],
    }


@router.post("/create-checkout")
def create_checkout(
    payload: CheckoutRequest | None = None,
    user: User = Depends(get_current_user),
):
    session = create_checkout_session(user=user, return_url=payload.returnUrl if payload else None)
    return {"success": True, **session}


@router.post("/stripe-webhook")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    body = await request.body()
    try:
        verify_webhook(body, request.headers.get("stripe-signature"))
    except stripe.SignatureVerificationError as e:
        logger.warning("stripe webhook rejected: %s", e.user_message)
        raise HTTPException(status_code=400, detail=f"Webhook signature verification failed: {e.user_message}")
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid webhook payload")

    # The handler works on the plain decoded dict rather than the SDK's Event object.
    event = json.loads(body)
    if not isinstance(event, dict):
        raise HTTPException(status_code=400, detail="Invalid webhook payload")

    return handle_stripe_event(db, event)
