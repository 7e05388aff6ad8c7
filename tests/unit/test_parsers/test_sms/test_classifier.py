"""
Unit tests for transaction classification and spend categorization.
"""

import pytest

from debttrack.parsers.sms.classifier import (
    CLASSIFICATION_RULES,
    DEFAULT_CATEGORY,
    ClassificationRule,
    categorize,
    classify_transaction,
    is_reward,
    is_statement_message,
)
from debttrack.parsers.sms.models import TransactionType


class TestClassificationRule:
    """Tests for a single rule row."""

    def test_keyword_required(self):
        rule = ClassificationRule(type=TransactionType.FEE, keywords=(r"\bfee\b",))
        assert rule.matches("Annual fee of Rs.500")
        assert not rule.matches("Rs.500 spent")

    def test_requires_and_excludes(self):
        rule = ClassificationRule(
            type=TransactionType.PAYMENT,
            keywords=(r"payment",),
            requires=(r"received",),
            excludes=(r"failed",),
        )
        assert rule.matches("payment received")
        assert not rule.matches("payment due")
        assert not rule.matches("payment received but failed")


class TestClassifyTransaction:
    """Tests for the ordered classification table."""

    @pytest.mark.parametrize("text,expected", [
        ("You have spent Rs.2,500.00 at AMAZON", TransactionType.PURCHASE),
        ("Card XX6000 debited for INR 212.20", TransactionType.PURCHASE),
        ("Payment of Rs 8,000.00 has been received on your Card XX6000", TransactionType.PAYMENT),
        ("Thank you for your payment of Rs.5,000", TransactionType.PAYMENT),
        ("Transaction of INR 75 at CANVA has been reversed", TransactionType.REFUND),
        ("Refund of Rs.300 processed to your card", TransactionType.REFUND),
        ("Rs.300 credited to your card XX1234", TransactionType.REFUND),
        ("Late payment charges of Rs.750 levied", TransactionType.FEE),
        ("Annual fee Rs.499 charged", TransactionType.FEE),
        ("Interest of Rs.1,200 charged on card", TransactionType.INTEREST),
        ("Cash withdrawal of Rs.2,000 on credit card", TransactionType.CASH_ADVANCE),
        ("Statement for your card has been generated", TransactionType.STATEMENT),
        ("Reminder: Rs.5,000 is due on 04-09-25", TransactionType.REMINDER),
        ("Pay Total Due of Rs 3,61,544.58", TransactionType.REMINDER),
    ])
    def test_classify(self, text, expected):
        assert classify_transaction(text) == expected

    def test_refund_precedes_purchase(self):
        """Test a reversed purchase is a refund, not a purchase."""
        assert classify_transaction("Txn of Rs.75 debited has been reversed") == TransactionType.REFUND

    def test_payment_credited_is_payment(self):
        """Test "payment ... credited" is a payment, not a refund."""
        text = "Your payment of Rs.5,000 has been credited to card XX1234"
        assert classify_transaction(text) == TransactionType.PAYMENT

    def test_payment_needs_confirmation(self):
        """Test a bare mention of payment is not a payment transaction."""
        assert classify_transaction("Delayed/No payments are reported") == TransactionType.BALANCE_UPDATE

    def test_fees_link_is_not_fee(self):
        assert classify_transaction("To view the fees & charges, visit https://x.in") != TransactionType.FEE

    def test_merchant_default_purchase(self):
        assert classify_transaction("Rs.444 FLIPKART PA", merchant="FLIPKART PA") == TransactionType.PURCHASE

    def test_default_balance_update(self):
        assert classify_transaction("Available limit: Rs.47,500.00") == TransactionType.BALANCE_UPDATE

    def test_table_order(self):
        """Test refund rules come before payment, payment before purchase."""
        order = [rule.type for rule in CLASSIFICATION_RULES]
        assert order.index(TransactionType.REFUND) < order.index(TransactionType.PAYMENT)
        assert order.index(TransactionType.PAYMENT) < order.index(TransactionType.PURCHASE)
        assert order.index(TransactionType.PURCHASE) < order.index(TransactionType.STATEMENT)
        assert order[-1] == TransactionType.REMINDER


class TestCategorize:
    """Tests for spend categorization."""

    @pytest.mark.parametrize("merchant,expected", [
        ("ZOMATO", "Food & Dining"),
        ("SWIGGY", "Food & Dining"),
        ("AMAZON", "Shopping"),
        ("FLIPKART PA", "Shopping"),
        ("UBER", "Transport"),
        ("NETFLIX", "Entertainment"),
        ("AIRTEL", "Utilities"),
        ("APOLLO PHARMACY", "Medical"),
        ("UDEMY", "Education"),
    ])
    def test_categorize(self, merchant, expected):
        assert categorize(merchant) == expected

    def test_unknown_merchant(self):
        assert categorize("CANVA* PAAA") == DEFAULT_CATEGORY

    def test_no_merchant(self):
        assert categorize(None, "") == DEFAULT_CATEGORY

    def test_text_used(self):
        assert categorize(None, "spent at a restaurant") == "Food & Dining"

    def test_word_boundary(self):
        """Test "ola" inside another word does not select Transport."""
        assert categorize("MOTOROLA") == DEFAULT_CATEGORY


class TestRewardAndStatement:
    """Tests for reward and statement message detection."""

    def test_cash_back_reward(self):
        assert is_reward("You have earned a total cash back of INR 22.00 in August")

    def test_reward_points(self):
        assert is_reward("500 reward points credited to your card")

    def test_not_reward(self):
        assert not is_reward("You have spent Rs.2,500.00 at AMAZON")
        assert not is_reward("Get 5% cash back on your next purchase")

    def test_statement_message(self):
        assert is_statement_message("Statement for your card has been generated.")
        assert is_statement_message("Your bill has been generated. Total due Rs.5,000")
        assert is_statement_message("Statement: Total amt Rs.100, Min amt due Rs.10")

    def test_not_statement_message(self):
        assert not is_statement_message("To view / download the statement, visit https://x.in")
        assert not is_statement_message("You have spent Rs.2,500.00 at AMAZON")
