from datetime import datetime, timezone
from decimal import Decimal

from db.models import AccountType
from statements.account_info import (
    extract_account_info,
    extract_statement_period,
    parse_statement_date,
)

CHASE_TEXT = """JPMorgan Chase Bank, N.A.
Chase Total Checking
Account ending in 4321
Statement Period: 01/01/2024 - 01/31/2024
New Balance: $1,250.00
COFFEE SHOP $4.50
"""


def test_extracts_institution_last_four_balance_and_type():
    info = extract_account_info(CHASE_TEXT)

    assert info.financial_institution == "Chase"
    assert info.last_four_digits == "4321"
    assert info.balance == Decimal("1250.00")
    assert info.account_type == AccountType.CHECKING
    assert info.account_name is None


def test_last_four_from_masked_account_number():
    info = extract_account_info("Wells Fargo\nAccount Number: XXXX-XXXX-5678\n")

    assert info.financial_institution == "Wells Fargo"
    assert info.last_four_digits == "5678"


def test_last_four_from_bare_mask():
    info = extract_account_info("Capital One\nCard **** 9012\n")

    assert info.last_four_digits == "9012"


def test_credit_card_wins_over_other_keywords():
    text = "Discover\nCredit Card Statement\nMinimum Payment Due $35.00\nsavings tips inside\n"
    assert extract_account_info(text).account_type == AccountType.CREDIT_CARD


def test_account_name_line():
    info = extract_account_info("Ally Bank\nAccount Name: Rainy Day Fund\nAccount ending in 1111\n")

    assert info.account_name == "Rainy Day Fund"


def test_negative_balance():
    info = extract_account_info("Ending Balance: -$45.10")
    assert info.balance == Decimal("-45.10")


def test_nothing_recognizable():
    info = extract_account_info("hello world")

    assert info.financial_institution is None
    assert info.last_four_digits is None
    assert info.balance is None
    assert info.account_type is None


def test_institution_needs_whole_word():
    assert extract_account_info("Our citizens advisory board").financial_institution is None


def test_numeric_period():
    period = extract_statement_period(CHASE_TEXT)

    assert period.start == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert period.end == datetime(2024, 1, 31, tzinfo=timezone.utc)


def test_written_period_and_reversed_order():
    period = extract_statement_period("For January 31, 2024 through January 1, 2024")

    assert period.start == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert period.end == datetime(2024, 1, 31, tzinfo=timezone.utc)


def test_missing_period():
    period = extract_statement_period("no dates here")
    assert period.start is None and period.end is None


def test_parse_statement_date_formats():
    assert parse_statement_date("03/15/24") == datetime(2024, 3, 15, tzinfo=timezone.utc)
    assert parse_statement_date("Mar 15, 2024") == datetime(2024, 3, 15, tzinfo=timezone.utc)
    assert parse_statement_date("not a date") is None
