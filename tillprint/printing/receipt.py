"""Receipt layout for 32-column thermal paper.

Builds a ``ReceiptDocument``: plain text lines tagged with the directives
the encoder turns into ESC/POS commands. Layout rules are fixed so that
receipts look the same whichever client printed them.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from tillprint.printing.schemas import ReceiptData, ReceiptItem, ReceiptType

RECEIPT_WIDTH = 32
HEADER_NAME_MAX = 28
ITEM_NAME_MAX = 24
FEED_LINES = 3
CENT = Decimal("0.01")

DOUBLE_RULE = "=" * RECEIPT_WIDTH
SINGLE_RULE = "-" * RECEIPT_WIDTH

THANK_YOU_LINES = (
    "        Thank you for your      ",
    "           purchase!            ",
)


class Directive(str, enum.Enum):
    """Formatting applied to a receipt line."""

    BOLD = "bold"
    CENTER = "center"
    CUT = "cut"
    FEED = "feed"


@dataclass(frozen=True)
class Line:
    """One logical receipt line."""

    text: str = ""
    directives: frozenset[Directive] = field(default_factory=frozenset)

    def has(self, directive: Directive) -> bool:
        return directive in self.directives


@dataclass(frozen=True)
class ReceiptDocument:
    """Immutable sequence of receipt lines."""

    lines: tuple[Line, ...]

    def __iter__(self):
        return iter(self.lines)

    def __len__(self) -> int:
        return len(self.lines)

    @property
    def texts(self) -> list[str]:
        """Printable text of every line that carries text."""
        return [
            line.text
            for line in self.lines
            if not (line.has(Directive.CUT) or line.has(Directive.FEED))
        ]


def _line(text: str, *directives: Directive) -> Line:
    return Line(text=text, directives=frozenset(directives))


def _money(value: float) -> str:
    """Format an amount with two decimals, rounding exact ties away from zero.

    Rounds the exact binary value of the float, so 1.125 becomes "1.13" while
    1.005 (stored as 1.00499...) stays "1.00". Negative zero prints as "0.00".
    """
    if value == 0:
        value = 0.0
    return f"{Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP):.2f}"


def format_header(business_name: str) -> str:
    """Build the 32-character header line.

    The business name is cut to 28 characters, uppercased and suffixed with
    " POS"; the result is left-padded and cut to exactly 32 characters.

    Args:
        business_name: Business display name.

    Returns:
        str: Header line, always RECEIPT_WIDTH characters long.
    """
    name = business_name[:HEADER_NAME_MAX]
    return f"{name.upper()} POS".rjust(RECEIPT_WIDTH)[:RECEIPT_WIDTH]


def format_item(item: ReceiptItem) -> list[str]:
    """Two lines for an item: truncated name, then quantity and prices."""
    return [
        item.name[:ITEM_NAME_MAX],
        f"  {item.quantity} x {_money(item.unit_price)} = {_money(item.line_total)}",
    ]


def format_receipt(data: ReceiptData, business_name: str) -> ReceiptDocument:
    """Lay out a sale, refund, return or test receipt.

    Args:
        data: Order data.
        business_name: Business display name for the header.

    Returns:
        ReceiptDocument: The laid-out receipt.
    """
    header = (Directive.CENTER, Directive.BOLD)
    lines: list[Line] = [
        _line(DOUBLE_RULE, *header),
        _line(format_header(business_name), *header),
        _line(DOUBLE_RULE, *header),
        _line(f"Order: {data.order_number}"),
        _line(f"Date: {data.date}"),
        _line(f"Type: {data.type.value}"),
        _line(SINGLE_RULE),
    ]

    for item in data.items:
        lines.extend(_line(text) for text in format_item(item))

    lines.append(_line(SINGLE_RULE))
    lines.append(_line(f"Subtotal: {_money(data.subtotal)}"))
    if data.discount_amount > 0:
        lines.append(_line(f"Discount: -{_money(data.discount_amount)}"))
    lines.append(_line(f"Tax: {_money(data.tax)}"))
    lines.append(_line(SINGLE_RULE))
    lines.append(_line(f"TOTAL: {_money(data.total)}", Directive.BOLD))
    lines.append(_line(DOUBLE_RULE))
    lines.extend(_line(text, Directive.CENTER) for text in THANK_YOU_LINES)
    lines.append(_line(DOUBLE_RULE))
    lines.append(_line("", Directive.FEED))
    lines.append(_line("", Directive.CUT))

    return ReceiptDocument(lines=tuple(lines))


def format_receipt_date(value: datetime) -> str:
    """Format a timestamp like "1/15/2026, 3:04:05 PM"."""
    hour = value.hour % 12 or 12
    meridiem = "AM" if value.hour < 12 else "PM"
    return f"{value.month}/{value.day}/{value.year}, {hour}:{value:%M:%S} {meridiem}"


def build_test_receipt_data(now: datetime | None = None) -> ReceiptData:
    """Fixed receipt used by the test page."""
    return ReceiptData(
        order_number="TEST-001",
        date=format_receipt_date(now or datetime.now()),
        type=ReceiptType.TEST,
        items=[
            ReceiptItem(name="Test Item 1", quantity=1, unit_price=10.00, line_total=10.00),
            ReceiptItem(name="Test Item 2", quantity=2, unit_price=5.00, line_total=10.00),
        ],
        subtotal=20.00,
        discount_amount=0,
        tax=2.00,
        total=22.00,
    )
