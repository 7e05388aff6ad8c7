"""
Shared pytest fixtures for debttrack tests.

Provides sample bank messages, a fixed scan clock and an in-memory ledger
store.
"""

import pytest
import sys
from pathlib import Path
from datetime import datetime

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from debttrack.core.config import ScanConfig
from debttrack.core.database import LedgerStore
from debttrack.parsers.sms.models import RawMessage, datetime_to_ms
from debttrack.parsers.sms.parser import MessageParser


# Scan clock used by every test that needs "now"
SCAN_NOW = datetime(2025, 9, 1, 12, 0)

HDFC_PURCHASE = (
    "You have spent Rs.2,500.00 on your HDFC Bank Credit Card xx1234 at AMAZON on 15-Aug-24. "
    "Available limit: Rs.47,500.00"
)

ICICI_MULTI = (
    "Payment of Rs 8,000.00 has been received on your ICICI Bank Credit Card XX6000 through Bharat "
    "Bill Payment System on 21-JUL-25.ICICI Bank Credit Card XX6000 debited for INR 212.20 on 24-Jun-25 "
    "for UPI-881684068980-ZOMATO. To dispute call 18001080/SMS BLOCK 6000 to 9215676766Pay Total Due "
    "of Rs 3,61,544.58 or Minimum Due Rs 20,420.00 by 30-Aug-25 for ICICI Bank Credit Card XX4001. "
    "Delayed/No payments are reported to Credit Bureaus.Payment of Rs 8,000.00 has been received on "
    "your ICICI Bank Credit Card XX6000 through Bharat Bill Payment System on 20-JUN-25."
)

AXIS_STATEMENT = (
    "Statement for your Axis Bank Credit Card no. XX2546 has been generated.\n"
    "Due on: 04-09-25\n"
    "Total amt: INR  Dr. 84356.07\n"
    "Min amt due: INR  Dr. 5893.00\n"
    "To pay, visit axisbank.com/ccpaynow\n"
    "To view the fees & charges, visit https://ccm.axbk.in/AXISBK/ApCh7aMn\n"
    "To view / download the statement, visit https://ccm.axbk.in/AXISBK/sTve2DYIYou have earned a total "
    "cash back of INR 22.00 in August on your Flipkart Axis Bank Credit CardXX2546. It will be credited "
    "in the next statement. T&C."
)

AXIS_SPENT = (
    "Spent\nCard no. XX2546\nINR 444\n09-08-25 14:29:25\nFLIPKART PA\nAvl Lmt INR 8240.31\n"
    "SMS BLOCK 2546 to 919951860002, if not you - Axis Bank"
)

AXIS_REVERSAL = (
    "Transaction of INR 75 on Axis Bank Credit Card no. XX2546 on 17-08-25 10:55:12 IST at CANVA* PAAA "
    "has been reversed. Available limit: INR 3052.39. Call 18001035577, if not done by you - Axis Bank"
)

SBI_PURCHASE = (
    "SBI Card transaction: Rs.1,200 spent at SWIGGY on Card xx5678 on 15-Aug-24. "
    "Available limit: Rs.88,800"
)

DEBIT_CARD_ALERT = "Rs.500 withdrawn from ATM using your HDFC Bank Debit Card xx1111 on 10-Aug-25."


def ms(*args) -> int:
    """Epoch milliseconds for a naive UTC datetime."""
    return datetime_to_ms(datetime(*args))


@pytest.fixture
def scan_now():
    """Fixed scan time."""
    return SCAN_NOW


@pytest.fixture
def config():
    """Default scan configuration."""
    return ScanConfig()


@pytest.fixture
def parser(config):
    """Message parser with the built-in bank signatures."""
    return MessageParser(config)


@pytest.fixture
def hdfc_message():
    return RawMessage("AD-HDFCBK", HDFC_PURCHASE, ms(2024, 8, 15, 10, 0))


@pytest.fixture
def icici_message():
    return RawMessage("ICICIBK", ICICI_MULTI, ms(2025, 8, 23, 9, 0))


@pytest.fixture
def axis_statement_message():
    return RawMessage("AXISBK", AXIS_STATEMENT, ms(2025, 8, 22, 9, 0))


@pytest.fixture
def axis_spent_message():
    return RawMessage("AXISBK", AXIS_SPENT, ms(2025, 8, 9, 9, 0))


@pytest.fixture
def axis_reversal_message():
    return RawMessage("AXISBK", AXIS_REVERSAL, ms(2025, 8, 17, 5, 30))


@pytest.fixture
def raw_records():
    """Loosely shaped source records, as a message source returns them."""
    return [
        {"address": "ICICIBK", "body": ICICI_MULTI, "date": str(ms(2025, 8, 23, 9, 0))},
        {"address": "AXISBK", "body": AXIS_STATEMENT, "date": str(ms(2025, 8, 22, 9, 0))},
        {"address": "AXISBK", "body": AXIS_SPENT, "date": str(ms(2025, 8, 9, 9, 0))},
        {"address": "AXISBK", "body": AXIS_REVERSAL, "date": str(ms(2025, 8, 17, 5, 30))},
        {"address": "AD-HDFCBK", "body": HDFC_PURCHASE, "date": str(ms(2024, 8, 15, 10, 0))},
        {"address": "AD-SBICAR", "body": SBI_PURCHASE, "date": str(ms(2024, 8, 15, 11, 0))},
        {"address": "AD-HDFCBK", "body": DEBIT_CARD_ALERT, "date": str(ms(2025, 8, 10, 8, 0))},
        {"address": "VM-SWIGGY", "body": "Your order is on the way!", "date": str(ms(2025, 8, 10, 9, 0))},
    ]


@pytest.fixture
def store():
    """Fresh in-memory ledger store."""
    ledger = LedgerStore(":memory:")
    ledger.connect()
    yield ledger
    ledger.close()
