from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

logger = logging.getLogger(__name__)

# `$` followed by digits, a decimal point and exactly two digits
DOLLAR_AMOUNT_RE = re.compile(r"\$\d+\.\d{2}")


@dataclass(frozen=True)
class ParsedTransaction:
    description: str
    amount: Decimal
    date: datetime
    # Untrimmed source line
    raw_text: str = ""


def parse_transactions(text: str, now: Optional[datetime] = None) -> List[ParsedTransaction]:
    """
    Placeholder line-item parser.

    Every line holding a dollar amount becomes one transaction: the trimmed
    line is the description and the first amount on the line is the value.
    The transaction date is not read from the line; all rows are stamped
    with `now`. Later amounts on the same line, credits/debits and
    currencies are ignored.
    """
    stamp = now or datetime.now(timezone.utc)
    transactions: List[ParsedTransaction] = []
    for line in text.splitlines():
        match = DOLLAR_AMOUNT_RE.search(line)
        if match is None:
            continue
        transactions.append(
            ParsedTransaction(
                description=line.strip(),
                amount=Decimal(match.group(0).lstrip("$")),
                date=stamp,
                raw_text=line,
            )
        )
    logger.info(f"Parsed {len(transactions)} potential transactions")
    return transactions
