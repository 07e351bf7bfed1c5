"""
Tests for plans, the monthly grant and Stripe bookkeeping.
"""

from datetime import datetime
from unittest.mock import patch

import pytest

from promptreel.config import settings
from promptreel.exceptions import ValidationError
from promptreel.models import CreditTransaction
from promptreel.services import billing_service, credit_service

FIRST_OF_MONTH = datetime(2026, 11, 1, 0, 5)


class TestPlans:
    def test_available_plans(self):
        plans = billing_service.get_available_plans()

        assert plans == [
            {
                "id": "pro",
                "credits": 30,
                "name": "Pro Plan",
                "monthly_price": 100,
                "description": "30 credits per month + rollover",
            }
        ]

    def test_unknown_plan(self):
        with pytest.raises(ValidationError):
            billing_service.get_plan_config("enterprise")

    def test_stripe_status_mapping(self):
        assert billing_service.map_stripe_status("trialing") == "active"
        assert billing_service.map_stripe_status("canceled") == "cancelled"
        assert billing_service.map_stripe_status("unpaid") == "past_due"
        assert billing_service.map_stripe_status(None) == "inactive"


class TestMonthlyGrant:
    def test_skipped_when_not_first(self, db, make_user):
        make_user("sub", credits=5, plan_id="pro", subscription_status="active")

        result = billing_service.grant_monthly_credits(db, now=datetime(2026, 11, 2))

        assert result["skipped"] is True
        assert result["granted_to_users"] == 0
        assert credit_service.get_balance(db, "sub")["credits"] == 5

    def test_grants_active_subscribers_only(self, db, make_user):
        make_user("sub", credits=5, plan_id="pro", subscription_status="active")
        make_user("lapsed", credits=5, plan_id="pro", subscription_status="cancelled")

        result = billing_service.grant_monthly_credits(db, now=FIRST_OF_MONTH)

        assert result["granted_to_users"] == 1
        assert credit_service.get_balance(db, "sub")["credits"] == 35
        assert credit_service.get_balance(db, "lapsed")["credits"] == 5
        tx = db.query(CreditTransaction).filter(CreditTransaction.user_id == "sub").one()
        assert tx.type == "bonus"
        assert tx.amount == 30
        assert tx.description == "Monthly subscription credits"

    def test_grant_is_capped(self, db, make_user):
        make_user("rich", credits=190, plan_id="pro", subscription_status="active")

        billing_service.grant_monthly_credits(db, now=FIRST_OF_MONTH)

        assert credit_service.get_balance(db, "rich")["credits"] == 200
        tx = db.query(CreditTransaction).filter(CreditTransaction.user_id == "rich").one()
        assert tx.amount == 10
        assert tx.description == "Monthly subscription credits (capped at 200)"

    def test_user_at_cap_gets_nothing(self, db, make_user):
        make_user("capped", credits=200, plan_id="pro", subscription_status="active")

        result = billing_service.grant_monthly_credits(db, now=FIRST_OF_MONTH)

        assert result["granted_to_users"] == 0
        assert db.query(CreditTransaction).count() == 0

    def test_purchases_are_not_capped(self, db, make_user):
        make_user("buyer", credits=200)

        result = credit_service.add(db, "buyer", 50, "Credit pack", "purchase")

        assert result["new_balance"] == 250


class TestDashboardAccess:
    def test_new_user(self, db):
        result = billing_service.check_dashboard_access(db, "ghost")
        assert result["has_access"] is False
        assert result["reason"] == "new_user_no_credits"

    def test_credits_grant_access(self, db, make_user):
        make_user("user-1", credits=2)

        result = billing_service.check_dashboard_access(db, "user-1")

        assert result["has_access"] is True
        assert result["reason"] == "has_credits"

    def test_subscription_grants_access(self, db, make_user):
        make_user("user-1", credits=0, plan_name="Pro Plan", subscription_status="active")

        result = billing_service.check_dashboard_access(db, "user-1")

        assert result["has_access"] is True
        assert result["is_active_subscriber"] is True
        assert result["reason"] == "active_subscription"

    def test_no_credits_no_plan(self, db, make_user):
        make_user("user-1", credits=0)

        result = billing_service.check_dashboard_access(db, "user-1")

        assert result["has_access"] is False
        assert result["reason"] == "no_subscription_or_credits"


class TestCancel:
    def test_cancel_keeps_credits(self, db, make_user):
        make_user("user-1", credits=12, plan_id="pro", subscription_status="active")

        result = billing_service.cancel_subscription(db, "user-1")

        assert result["success"] is True
        balance = credit_service.get_balance(db, "user-1")
        assert balance["credits"] == 12
        assert balance["plan_id"] is None
        assert balance["plan_name"] == "No Plan"
        assert balance["subscription_status"] == "cancelled"

    def test_cancel_schedules_stripe_cancellation(self, db, make_user, monkeypatch):
        make_user(
            "user-1", credits=3, plan_id="pro", subscription_status="active",
            stripe_subscription_id="sub_123",
        )
        monkeypatch.setattr(settings, "stripe_secret_key", "sk_test_123")

        with patch("promptreel.services.billing_service.stripe.Subscription.modify") as modify:
            billing_service.cancel_subscription(db, "user-1")

        modify.assert_called_once_with("sub_123", cancel_at_period_end=True)


class TestStripeSync:
    def test_update_plan_from_stripe(self, db, make_user, monkeypatch):
        monkeypatch.setattr(settings, "stripe_price_pro", "price_pro")
        record = make_user("user-1", credits=3, stripe_customer_id="cus_1")

        result = billing_service.update_plan_from_stripe(
            db,
            record,
            {
                "id": "sub_1",
                "status": "active",
                "items": {"data": [{"price": {"id": "price_pro"}}]},
            },
        )

        assert result["plan_id"] == "pro"
        assert result["plan_name"] == "Pro Plan"
        assert result["subscription_status"] == "active"
        assert result["credits"] == 3
        assert billing_service.find_user_by_customer(db, "cus_1").stripe_subscription_id == "sub_1"
