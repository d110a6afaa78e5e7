"""Credit ledger against a real session: deductions, refunds, fallback balance, lazy expiry."""

from datetime import timedelta

import pytest

from studio_booking.core.exceptions import InsufficientCreditException, RepositoryException
from studio_booking.models.subscription import Subscription
from studio_booking.services.credit_service import CreditService


@pytest.fixture
def credit_service(db):
    return CreditService(db)


class TestDeduct:
    def test_metered_plan_loses_one_credit(self, db, credit_service, make_subscription, remaining, today):
        subscription = make_subscription("u1", credits=3)

        charge = credit_service.deduct("u1", today=today, use_transaction=True)

        assert charge.charged is True
        assert charge.subscription_id == subscription.id
        assert remaining(subscription) == 2

    def test_unlimited_plan_is_not_mutated(self, credit_service, make_subscription, remaining, today):
        subscription = make_subscription("u1", credits=None)

        charge = credit_service.deduct("u1", today=today, use_transaction=True)

        assert charge.charged is False
        assert remaining(subscription) is None

    def test_empty_plan_is_rejected_without_mutation(
        self, credit_service, make_subscription, remaining, today
    ):
        subscription = make_subscription("u1", credits=0)

        with pytest.raises(InsufficientCreditException):
            credit_service.deduct("u1", today=today, use_transaction=True)

        assert remaining(subscription) == 0

    def test_no_subscription(self, credit_service, today):
        with pytest.raises(InsufficientCreditException) as exc_info:
            credit_service.deduct("nobody", today=today)
        assert exc_info.value.details["subscription_id"] is None


class TestLazyExpiry:
    def test_lapsed_subscription_flips_to_expired_on_read(
        self, db, credit_service, make_subscription, today
    ):
        subscription = make_subscription("u1", credits=5, ends_in_days=-1)

        assert credit_service.get_active_subscription("u1", today) is None
        db.commit()
        db.expire_all()

        assert db.get(Subscription, subscription.id).status == "expired"

    def test_subscription_ending_today_is_still_active(self, credit_service, make_subscription, today):
        subscription = make_subscription("u1", credits=5, ends_in_days=0)

        assert credit_service.get_active_subscription("u1", today).id == subscription.id

    def test_expired_subscription_cannot_pay(self, credit_service, make_subscription, today):
        make_subscription("u1", credits=5, ends_in_days=-3)

        with pytest.raises(InsufficientCreditException):
            credit_service.deduct("u1", today=today)


class TestRefund:
    def test_refund_goes_back_to_active_subscription(
        self, credit_service, make_subscription, remaining, today
    ):
        subscription = make_subscription("u1", credits=2)

        result = credit_service.refund("u1", today=today, use_transaction=True)

        assert result.refunded is True
        assert result.target == "subscription"
        assert remaining(subscription) == 3

    def test_refund_without_active_plan_goes_to_fallback_balance(
        self, credit_service, make_subscription, today
    ):
        make_subscription("u1", credits=2, ends_in_days=-1)

        first = credit_service.refund("u1", today=today, use_transaction=True)
        second = credit_service.refund("u1", today=today, use_transaction=True)

        assert first.target == "fallback_balance"
        assert second.fallback_balance == 2
        summary = credit_service.get_credit_summary("u1", today=today)
        assert summary["has_active_subscription"] is False
        assert summary["fallback_credits"] == 2

    def test_refund_to_unlimited_plan_is_a_no_op(
        self, credit_service, make_subscription, remaining, today
    ):
        subscription = make_subscription("u1", credits=None)

        result = credit_service.refund("u1", today=today, use_transaction=True)

        assert result.refunded is True
        assert result.target == "unlimited"
        assert remaining(subscription) is None

    def test_refund_failure_is_reported_not_raised(
        self, db, credit_service, make_subscription, remaining, today, monkeypatch, caplog
    ):
        subscription = make_subscription("u1", credits=2)

        def _boom(subscription_id):
            raise RepositoryException("Failed to refund credit")

        monkeypatch.setattr(credit_service.subscription_repository, "increment_credit", _boom)

        result = credit_service.refund("u1", today=today, use_transaction=True)

        assert result.refunded is False
        assert result.target == "failed"
        assert "credit_refund_failed" in caplog.text
        assert remaining(subscription) == 2


class TestCreditSummary:
    def test_summary_for_metered_plan(self, credit_service, make_subscription, today):
        subscription = make_subscription("u1", credits=4, equipment_access="reformer")

        summary = credit_service.get_credit_summary("u1", today=today)

        assert summary["subscription_id"] == subscription.id
        assert summary["remaining_credits"] == 4
        assert summary["unlimited"] is False
        assert summary["equipment_access"] == "reformer"
        assert summary["end_date"] == (today + timedelta(days=30)).isoformat()
        assert summary["fallback_credits"] == 0
