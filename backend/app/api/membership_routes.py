from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Dict

from fastapi import APIRouter, HTTPException, Query

from app.schemas import MembershipInfo, PremiumFeature, PricingPlan, SubscriptionRequest
from app.services.storage import User, storage


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/membership", tags=["membership"])


PRICING_PLANS: Dict[str, PricingPlan] = {
    "monthly": PricingPlan(plan_type="monthly", price=4.99, billing_period="month", savings=0),
    # Percentage savings compared to monthly
    "yearly": PricingPlan(plan_type="yearly", price=39.99, billing_period="year", savings=20),
}

PREMIUM_FEATURES = [
    PremiumFeature(title="Unlimited Fitness Goals", description="Create and track as many goals as you want"),
    PremiumFeature(title="Fitbit Integration", description="Automatically sync your Fitbit data"),
    PremiumFeature(title="Advanced Analytics", description="Get detailed insights on your progress"),
    PremiumFeature(title="Custom Workout Plans", description="Access personalized workout recommendations"),
    PremiumFeature(title="Priority Support", description="Get help when you need it most"),
]


def _add_months(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    # Clamp the day for shorter months (Jan 31 + 1 month -> Feb 28/29)
    for day in range(moment.day, 0, -1):
        try:
            return moment.replace(year=year, month=month, day=day)
        except ValueError:
            continue
    return moment + timedelta(days=30 * months)


def membership_expiry(plan_type: str, now: datetime) -> datetime:
    return _add_months(now, 12 if plan_type == "yearly" else 1)


def _membership_info(user: User) -> MembershipInfo:
    is_pro = user.membership_type == "pro" and (
        user.membership_expiry is None or user.membership_expiry > datetime.utcnow()
    )
    return MembershipInfo(
        user_id=user.id,
        membership_type="pro" if is_pro else "free",
        membership_expiry=user.membership_expiry if is_pro else None,
        benefits=[f.title for f in PREMIUM_FEATURES] if is_pro else [],
    )


def _get_user_or_404(user_id: int) -> User:
    user = storage.get_user(user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("/plans")
def list_plans() -> Dict[str, object]:
    return {
        "plans": [plan.model_dump() for plan in PRICING_PLANS.values()],
        "features": [feature.model_dump() for feature in PREMIUM_FEATURES],
    }


@router.get("/", response_model=MembershipInfo)
def get_membership(user_id: int = Query(...)) -> MembershipInfo:
    return _membership_info(_get_user_or_404(user_id))


@router.post("/subscribe", response_model=MembershipInfo)
def subscribe(body: SubscriptionRequest, user_id: int = Query(...)) -> MembershipInfo:
    """Simulated checkout: no payment provider is contacted."""
    user = _get_user_or_404(user_id)
    expiry = membership_expiry(body.plan_type, datetime.utcnow())
    storage.update_user_membership(user.id, "pro", expiry)
    user = storage.update_stripe_info(
        user.id,
        user.stripe_customer_id or f"cus_mock_{secrets.token_hex(8)}",
        f"sub_mock_{secrets.token_hex(8)}",
    )
    logger.info("user %s subscribed to %s plan until %s", user.id, body.plan_type, expiry.isoformat())
    return _membership_info(user)
