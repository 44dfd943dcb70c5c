import csv
import re
from decimal import Decimal, InvalidOperation
from io import StringIO
from typing import Iterable

from aggregation import TransactionRecord

EXPORT_COLUMNS = ["Date", "Description", "Category", "Type", "Amount"]


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^bash\s*",
        r"^sh\s*",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def parse_amount(value: str, *, allow_negative: bool = False) -> int:
    clean = (
        value.strip()
        .replace("₹", "")
        .replace("€", "")
        .replace("$", "")
        .replace(" ", "")
    )
    clean = clean.replace(",", "")
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    if not amount.is_finite():
        raise ValueError("Invalid amount")
    cents = int((amount * 100).quantize(Decimal("1")))
    if cents < 0 and not allow_negative:
        raise ValueError("Amount must be positive")
    return cents


def cents_to_units(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))


def export_transactions(transactions: Iterable[TransactionRecord]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(EXPORT_COLUMNS)
    for txn in transactions:
        writer.writerow(
            [
                txn.date.isoformat(),
                sanitize_csv_value(txn.description),
                sanitize_csv_value(txn.category),
                txn.type.value,
                f"{txn.amount:.2f}",
            ]
        )
    return output.getvalue()
