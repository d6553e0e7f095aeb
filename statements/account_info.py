from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

from db.models import AccountType

# Display name -> spellings seen on statements (matched case-insensitively)
KNOWN_INSTITUTIONS: dict[str, tuple[str, ...]] = {
    "Chase": ("jpmorgan chase", "chase"),
    "Bank of America": ("bank of america", "bankofamerica"),
    "Wells Fargo": ("wells fargo",),
    "Citi": ("citibank", "citi"),
    "Capital One": ("capital one",),
    "American Express": ("american express", "amex"),
    "Discover": ("discover",),
    "U.S. Bank": ("u.s. bank", "us bank"),
    "PNC": ("pnc bank", "pnc"),
    "TD Bank": ("td bank",),
    "Truist": ("truist",),
    "Ally Bank": ("ally bank",),
    "Charles Schwab": ("charles schwab", "schwab"),
    "Fidelity": ("fidelity",),
    "USAA": ("usaa",),
    "Navy Federal": ("navy federal",),
}

ENDING_IN_RE = re.compile(r"ending\s+in[:\s]*(\d{4})\b", re.IGNORECASE)
ACCOUNT_NUMBER_RE = re.compile(r"account\s*(?:number|no\.?|#)\s*:?\s*([0-9xX*•\- ]{4,})", re.IGNORECASE)
MASKED_NUMBER_RE = re.compile(r"[xX*•]{2,}[\s\-]*(\d{4})\b")

BALANCE_RE = re.compile(
    r"(?:new|ending|closing|current|statement)\s+balance[:\s]*(-?)\$?\s*(-?[\d,]+\.\d{2})",
    re.IGNORECASE,
)

ACCOUNT_NAME_RE = re.compile(r"account\s+name[:\s]+([^\n]+)", re.IGNORECASE)

ACCOUNT_TYPE_KEYWORDS = (
    (AccountType.CREDIT_CARD, ("credit card", "minimum payment due", "credit limit")),
    (AccountType.SAVINGS, ("savings",)),
    (AccountType.CHECKING, ("checking",)),
    (AccountType.INVESTMENT, ("brokerage", "investment account", "portfolio")),
    (AccountType.LOAN, ("loan", "mortgage")),
)

_MONTH_DATE = r"(?:jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)[a-z]*\.?\s+\d{1,2},?\s+\d{2,4}"
_NUMERIC_DATE = r"\d{1,2}/\d{1,2}/\d{2,4}"
_DATE = rf"(?:{_MONTH_DATE}|{_NUMERIC_DATE})"
PERIOD_RE = re.compile(rf"({_DATE})\s*(?:-|–|to|through|thru)\s*({_DATE})", re.IGNORECASE)

DATE_FORMATS = (
    "%m/%d/%Y",
    "%m/%d/%y",
    "%B %d, %Y",
    "%B %d %Y",
    "%b %d, %Y",
    "%b %d %Y",
    "%b. %d, %Y",
    "%b. %d %Y",
)


@dataclass
class AccountInfo:
    financial_institution: Optional[str] = None
    last_four_digits: Optional[str] = None
    balance: Optional[Decimal] = None
    account_name: Optional[str] = None
    account_type: Optional[AccountType] = None


@dataclass
class StatementPeriod:
    start: Optional[datetime] = None
    end: Optional[datetime] = None


def _find_institution(lowered: str) -> Optional[str]:
    for display, spellings in KNOWN_INSTITUTIONS.items():
        for spelling in spellings:
            if re.search(rf"\b{re.escape(spelling)}\b", lowered):
                return display
    return None


def _find_last_four(text: str) -> Optional[str]:
    match = ENDING_IN_RE.search(text)
    if match:
        return match.group(1)
    match = ACCOUNT_NUMBER_RE.search(text)
    if match:
        digits = re.sub(r"\D", "", match.group(1))
        if len(digits) >= 4:
            return digits[-4:]
    match = MASKED_NUMBER_RE.search(text)
    return match.group(1) if match else None


def _find_balance(text: str) -> Optional[Decimal]:
    match = BALANCE_RE.search(text)
    if not match:
        return None
    sign, raw = match.groups()
    try:
        value = Decimal(raw.replace(",", ""))
    except InvalidOperation:
        return None
    return -abs(value) if sign == "-" else value


def _find_account_type(lowered: str) -> Optional[AccountType]:
    for account_type, keywords in ACCOUNT_TYPE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return account_type
    return None


def extract_account_info(text: str) -> AccountInfo:
    """Best-effort account metadata from OCR text. Missing fields stay None."""
    lowered = text.lower()
    name_match = ACCOUNT_NAME_RE.search(text)
    return AccountInfo(
        financial_institution=_find_institution(lowered),
        last_four_digits=_find_last_four(text),
        balance=_find_balance(text),
        account_name=name_match.group(1).strip() if name_match else None,
        account_type=_find_account_type(lowered),
    )


def parse_statement_date(value: str) -> Optional[datetime]:
    cleaned = re.sub(r"\s+", " ", value.strip())
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def extract_statement_period(text: str) -> StatementPeriod:
    match = PERIOD_RE.search(text)
    if not match:
        return StatementPeriod()
    start, end = (parse_statement_date(part) for part in match.groups())
    if start and end and start > end:
        start, end = end, start
    return StatementPeriod(start=start, end=end)
