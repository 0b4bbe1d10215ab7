"""
Order tally calculations shared by the buying, selling and dashboard views
"""
import logging
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

LEADING_NUMBER = re.compile(r"[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


@dataclass(frozen=True)
class TallySummary:
    total_investment: float = 0.0
    total_selling: float = 0.0
    total_tax: float = 0.0
    net_selling: float = 0.0
    profit: float = 0.0
    profit_percentage: float = 0.0
    malformed_count: int = 0

    @property
    def is_profit(self):
        return self.profit >= 0

    def to_dict(self, places=2):
        """Rounded, camelCase view for the JSON API"""
        return {
            'totalInvestment': round(self.total_investment, places),
            'totalSelling': round(self.total_selling, places),
            'totalTax': round(self.total_tax, places),
            'netSelling': round(self.net_selling, places),
            'profit': round(self.profit, places),
            'profitPercentage': round(self.profit_percentage, places),
            'isProfit': self.is_profit,
            'malformedCount': self.malformed_count,
        }


def _read(record, names):
    for name in names:
        if isinstance(record, Mapping):
            if name in record:
                return record[name]
        elif hasattr(record, name):
            return getattr(record, name)
    return None


def parse_amount(value):
    """
    Parse a numeric field. Missing or blank is 0.0, malformed is None.

    Strings are read up to the end of their leading number, so "1200.50 INR"
    is 1200.5; a string with no leading number is malformed.
    """
    if value is None:
        return 0.0
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return 0.0
        match = LEADING_NUMBER.match(value)
        if not match:
            return None
        value = match.group(0)
    if isinstance(value, bool):
        return None
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(amount) or math.isinf(amount):
        return None
    return amount


def coerce_amount(value):
    """Parse a numeric field, counting anything unparseable as 0.0"""
    amount = parse_amount(value)
    return 0.0 if amount is None else amount


def _sum_field(records, names):
    total = 0.0
    malformed = 0
    for record in records:
        value = _read(record, names)
        amount = parse_amount(value)
        if amount is None:
            malformed += 1
            logger.warning("Treating malformed %s value %r as 0", names[-1], value)
            continue
        total += amount
    return total, malformed


def compute_tally(purchases, sales):
    """
    Reduce purchase records and sale records into a single TallySummary.

    Records may be mappings (camelCase or snake_case keys) or model objects.
    Unparseable amounts count as 0 and are reported in malformed_count.
    """
    purchases = list(purchases or [])
    sales = list(sales or [])

    total_investment, bad_investment = _sum_field(purchases, ('total_amount', 'totalAmount'))
    total_selling, bad_selling = _sum_field(sales, ('total_amount', 'totalAmount'))
    total_tax, bad_tax = _sum_field(sales, ('tax_amount', 'taxAmount'))

    profit = total_selling - total_investment
    if total_investment > 0:
        profit_percentage = (profit / total_investment) * 100
    else:
        profit_percentage = 0.0

    return TallySummary(
        total_investment=total_investment,
        total_selling=total_selling,
        total_tax=total_tax,
        net_selling=total_selling - total_tax,
        profit=profit,
        profit_percentage=profit_percentage,
        malformed_count=bad_investment + bad_selling + bad_tax,
    )


def derive_purchase_totals(quantity, price_per_packet, pieces_per_packet):
    """Derived fields stored on a purchase before it is saved"""
    quantity = coerce_amount(quantity)
    price_per_packet = coerce_amount(price_per_packet)
    pieces_per_packet = coerce_amount(pieces_per_packet)

    if pieces_per_packet > 0:
        price_per_piece = price_per_packet / pieces_per_packet
    else:
        price_per_piece = 0.0

    return {
        'total_pieces': quantity * pieces_per_packet,
        'total_amount': quantity * price_per_packet,
        'price_per_piece': round(price_per_piece, 2),
    }


def calculate_sale_totals(items, tax_rate):
    """Line totals, subtotal, tax and grand total for a sale"""
    tax_rate = coerce_amount(tax_rate)
    lines = []
    subtotal = 0.0

    for item in items:
        price = coerce_amount(_read(item, ('price_per_piece', 'pricePerPiece')))
        quantity = coerce_amount(_read(item, ('quantity',)))
        total_price = price * quantity
        subtotal += total_price
        lines.append(total_price)

    tax_amount = subtotal * tax_rate / 100
    return {
        'line_totals': lines,
        'subtotal': subtotal,
        'tax_rate': tax_rate,
        'tax_amount': tax_amount,
        'total_amount': subtotal + tax_amount,
    }


def summarize_sales(sales):
    """Sales count, revenue, tax and average sale value"""
    sales = list(sales or [])
    total_revenue, _ = _sum_field(sales, ('total_amount', 'totalAmount'))
    total_tax, _ = _sum_field(sales, ('tax_amount', 'taxAmount'))
    count = len(sales)

    return {
        'totalSales': count,
        'totalRevenue': round(total_revenue, 2),
        'totalTax': round(total_tax, 2),
        'averageSaleValue': round(total_revenue / count, 2) if count else 0.0,
    }
