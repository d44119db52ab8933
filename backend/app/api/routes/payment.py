import json
import logging
from datetime import datetime, timezone
from typing import Any

import stripe
from fastapi import APIRouter, HTTPException, Request
from sqlmodel import Session

from app import crud
from app.api.deps import CurrentUser, SessionDep, record_event_safely
from app.core.config import settings
from app.models import User
from app.schemas import CamelModel

router = APIRouter()
logger = logging.getLogger(__name__)


class Plan(CamelModel):
    id: str
    name: str
    price: float
    currency: str = "usd"
    interval: str = "month"
    # -1 means unlimited
    analyses_per_month: int
    features: list[str]


SUBSCRIPTION_PLANS: dict[str, Plan] = {
    "starter": Plan(
        id="starter",
        name="Starter",
        price=9.99,
        analyses_per_month=10,
        features=["Standard analyses", "Limited history", "Email support"],
    ),
    "pro": Plan(
        id="pro",
        name="Pro",
        price=29.99,
        analyses_per_month=100,
        features=[
            "Detailed analyses",
            "Full history",
            "Investment analyses",
            "Priority support",
        ],
    ),
    "enterprise": Plan(
        id="enterprise",
        name="Enterprise",
        price=99.99,
        analyses_per_month=-1,
        features=["Unlimited analyses", "API access", "Dedicated support", "Custom reports"],
    ),
}

FREE_PLAN = Plan(
    id="free",
    name="Free",
    price=0,
    analyses_per_month=3,
    features=["3 analyses per month", "Community support"],
)


class PlansResponse(CamelModel):
    success: bool = True
    plans: list[Plan]
    stripe_configured: bool


class CheckoutRequest(CamelModel):
    plan_id: str


class CheckoutResponse(CamelModel):
    success: bool = True
    session_id: str
    url: str | None = None


class SubscriptionStatus(CamelModel):
    status: str
    plan: Plan
    analyses_used_this_month: int
    analyses_remaining: int
    has_stripe_customer: bool


class SubscriptionStatusResponse(CamelModel):
    success: bool = True
    subscription: SubscriptionStatus


def start_of_month(now: datetime | None = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def remaining_analyses(plan: Plan, used: int) -> int:
    if plan.analyses_per_month == -1:
        return -1
    return max(0, plan.analyses_per_month - used)


def _ensure_customer(session: Session, user: User) -> str:
    if user.stripe_customer_id:
        return user.stripe_customer_id
    customer = stripe.Customer.create(
        api_key=settings.STRIPE_SECRET_KEY,
        email=user.email,
        metadata={"userId": str(user.id)},
    )
    crud.update_user_fields(session=session, db_user=user, stripe_customer_id=customer.id)
    logger.info("Created Stripe customer %s for user %s", customer.id, user.id)
    return customer.id


@router.get("/plans", response_model=PlansResponse)
def read_plans() -> Any:
    return PlansResponse(
        plans=list(SUBSCRIPTION_PLANS.values()),
        stripe_configured=settings.stripe_enabled,
    )


@router.post("/create-checkout-session", response_model=CheckoutResponse)
def create_checkout_session(
    body: CheckoutRequest,
    request: Request,
    session: SessionDep,
    current_user: CurrentUser,
) -> Any:
    """
    Start a Stripe Checkout subscription for one of the paid plans.
    """
    if not settings.stripe_enabled:
        raise HTTPException(status_code=503, detail="Payment service is not configured")

    plan = SUBSCRIPTION_PLANS.get(body.plan_id)
    if not plan:
        raise HTTPException(status_code=400, detail="Invalid plan")

    try:
        customer_id = _ensure_customer(session, current_user)
        label = "Unlimited" if plan.analyses_per_month == -1 else plan.analyses_per_month
        checkout = stripe.checkout.Session.create(
            api_key=settings.STRIPE_SECRET_KEY,
            customer=customer_id,
            payment_method_types=["card"],
            line_items=[
                {
                    "price_data": {
                        "currency": plan.currency,
                        "product_data": {
                            "name": plan.name,
                            "description": f"{label} analyses per month",
                        },
                        "unit_amount": round(plan.price * 100),
                        "recurring": {"interval": plan.interval},
                    },
                    "quantity": 1,
                }
            ],
            mode="subscription",
            success_url=f"{settings.FRONTEND_HOST}/?payment=success&session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{settings.FRONTEND_HOST}/?payment=cancelled",
            metadata={"userId": str(current_user.id), "planId": plan.id},
        )
    except stripe.StripeError as exc:
        logger.error("Stripe checkout failed for user %s: %s", current_user.id, exc)
        record_event_safely(
            session,
            request,
            "payment_error",
            user_id=current_user.id,
            details={"error": str(exc), "planId": plan.id},
        )
        raise HTTPException(
            status_code=500, detail="Error creating the payment session"
        ) from exc

    record_event_safely(
        session,
        request,
        "payment_session_created",
        user_id=current_user.id,
        details={"planId": plan.id, "sessionId": checkout.id, "amount": plan.price},
    )
    return CheckoutResponse(session_id=checkout.id, url=checkout.url)


def _handle_checkout_completed(
    session: Session, request: Request, payload: dict[str, Any]
) -> None:
    metadata = payload.get("metadata")
    if not isinstance(metadata, dict):
        metadata = {}
    plan = SUBSCRIPTION_PLANS.get(str(metadata.get("planId", "")))
    try:
        user = session.get(User, int(metadata.get("userId", "")))
    except (TypeError, ValueError):
        user = None
    if not plan or not user:
        logger.error("Checkout %s references unknown plan or user: %s", payload.get("id"), metadata)
        return

    crud.update_user_fields(session=session, db_user=user, subscription_status=plan.id)
    record_event_safely(
        session,
        request,
        "payment_successful",
        user_id=user.id,
        details={"planId": plan.id, "sessionId": payload.get("id"), "amount": plan.price},
    )
    logger.info("Payment succeeded for user %s, plan %s", user.id, plan.id)


def _handle_invoice_paid(session: Session, request: Request, payload: dict[str, Any]) -> None:
    user = crud.get_user_by_stripe_customer(
        session=session, customer_id=str(payload.get("customer") or "")
    )
    if not user:
        return
    record_event_safely(
        session,
        request,
        "subscription_renewed",
        user_id=user.id,
        details={
            "invoiceId": payload.get("id"),
            "amount": (payload.get("amount_paid") or 0) / 100,
        },
    )
    logger.info("Subscription renewed for user %s", user.id)


def _handle_subscription_deleted(
    session: Session, request: Request, payload: dict[str, Any]
) -> None:
    user = crud.get_user_by_stripe_customer(
        session=session, customer_id=str(payload.get("customer") or "")
    )
    if not user:
        return
    crud.update_user_fields(session=session, db_user=user, subscription_status=FREE_PLAN.id)
    record_event_safely(
        session,
        request,
        "subscription_cancelled",
        user_id=user.id,
        details={"subscriptionId": payload.get("id")},
    )
    logger.info("Subscription cancelled for user %s", user.id)


WEBHOOK_HANDLERS = {
    "checkout.session.completed": _handle_checkout_completed,
    "invoice.payment_succeeded": _handle_invoice_paid,
    "customer.subscription.deleted": _handle_subscription_deleted,
}


@router.post("/webhook")
async def stripe_webhook(request: Request, session: SessionDep) -> dict[str, bool]:
    if not settings.stripe_enabled or not settings.STRIPE_WEBHOOK_SECRET:
        raise HTTPException(status_code=503, detail="Webhook is not configured")

    payload = (await request.body()).decode("utf-8")
    signature = request.headers.get("stripe-signature", "")
    try:
        stripe.WebhookSignature.verify_header(
            payload,
            signature,
            settings.STRIPE_WEBHOOK_SECRET,
            tolerance=stripe.Webhook.DEFAULT_TOLERANCE,
        )
        event = json.loads(payload)
    except (ValueError, stripe.SignatureVerificationError) as exc:
        logger.warning("Rejected Stripe webhook: %s", exc)
        raise HTTPException(status_code=400, detail="Invalid webhook signature") from exc

    if not isinstance(event, dict):
        logger.warning("Rejected Stripe webhook: payload is not a JSON object")
        raise HTTPException(status_code=400, detail="Invalid webhook payload")

    event_type = event.get("type")
    handler = WEBHOOK_HANDLERS.get(event_type) if isinstance(event_type, str) else None
    if handler is None:
        logger.info("Ignoring Stripe event %s", event_type)
        return {"received": True}

    data = event.get("data")
    obj = data.get("object") if isinstance(data, dict) else None
    handler(session, request, obj if isinstance(obj, dict) else {})
    return {"received": True}


@router.get("/subscription-status", response_model=SubscriptionStatusResponse)
def read_subscription_status(session: SessionDep, current_user: CurrentUser) -> Any:
    plan = SUBSCRIPTION_PLANS.get(current_user.subscription_status, FREE_PLAN)
    used = crud.count_user_analyses_since(
        session=session, user_id=current_user.id, since=start_of_month()
    )
    return SubscriptionStatusResponse(
        subscription=SubscriptionStatus(
            status=current_user.subscription_status or FREE_PLAN.id,
            plan=plan,
            analyses_used_this_month=used,
            analyses_remaining=remaining_analyses(plan, used),
            has_stripe_customer=bool(current_user.stripe_customer_id),
        )
    )
