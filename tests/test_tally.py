import logging
from decimal import Decimal
from types import SimpleNamespace

import pytest

from tally import (TallySummary, calculate_sale_totals, coerce_amount, compute_tally,
                   derive_purchase_totals, parse_amount, summarize_sales)


def test_empty_inputs_give_zero_summary():
    summary = compute_tally([], [])

    assert summary == TallySummary()
    assert summary.profit_percentage == 0
    assert summary.is_profit


def test_basic_profit_example():
    summary = compute_tally([{'totalAmount': 1000}],
                            [{'totalAmount': 1500, 'taxAmount': 50}])

    assert summary.total_investment == 1000
    assert summary.total_selling == 1500
    assert summary.total_tax == 50
    assert summary.net_selling == 1450
    assert summary.profit == 500
    assert summary.profit_percentage == 50


def test_loss_has_negative_percentage():
    summary = compute_tally([{'totalAmount': '2000'}], [{'totalAmount': '1500', 'taxAmount': '0'}])

    assert summary.profit == -500
    assert summary.profit_percentage == -25
    assert not summary.is_profit


def test_malformed_amount_counts_as_zero(caplog):
    with caplog.at_level(logging.WARNING, logger='tally'):
        summary = compute_tally([{'totalAmount': 'abc'}], [])

    assert summary.total_investment == 0
    assert summary.malformed_count == 1
    assert 'abc' in caplog.text


def test_missing_and_blank_amounts_are_not_malformed():
    summary = compute_tally([{'totalAmount': None}, {'totalAmount': ' '}, {}],
                            [{'totalAmount': 100}])

    assert summary.total_investment == 0
    assert summary.total_selling == 100
    assert summary.malformed_count == 0


def test_no_investment_guards_percentage():
    summary = compute_tally([], [{'totalAmount': 750, 'taxAmount': 35}])

    assert summary.profit == 750
    assert summary.profit_percentage == 0


@pytest.mark.parametrize('purchases, sales', [
    ([{'totalAmount': 0.1}, {'totalAmount': 0.2}], [{'totalAmount': 0.3, 'taxAmount': 0.01}]),
    ([{'totalAmount': '1234.56'}], [{'totalAmount': 99.99}, {'totalAmount': 'x'}]),
    ([{'totalAmount': 1e9}], []),
])
def test_profit_identity_holds_exactly(purchases, sales):
    summary = compute_tally(purchases, sales)

    assert summary.profit == summary.total_selling - summary.total_investment


def test_compute_tally_is_idempotent():
    purchases = [{'totalAmount': 321.5}, {'totalAmount': '78.25'}]
    sales = [{'totalAmount': 500, 'taxAmount': 23.8}]

    assert compute_tally(purchases, sales) == compute_tally(purchases, sales)


def test_accepts_model_objects_and_decimals():
    purchases = [SimpleNamespace(total_amount=Decimal('2500.00'))]
    sales = [SimpleNamespace(total_amount=Decimal('3150.00'), tax_amount=Decimal('150.00'))]

    summary = compute_tally(purchases, sales)

    assert summary.total_investment == 2500
    assert summary.net_selling == 3000
    assert summary.profit_percentage == pytest.approx(26)


def test_to_dict_rounds_for_api():
    summary = compute_tally([{'totalAmount': 3}], [{'totalAmount': 4, 'taxAmount': 0}])

    data = summary.to_dict()

    assert data['profitPercentage'] == 33.33
    assert data['profit'] == 1
    assert data['isProfit'] is True
    assert data['malformedCount'] == 0


@pytest.mark.parametrize('value, expected', [
    ('12.5', 12.5),
    (7, 7.0),
    (Decimal('3.10'), 3.1),
    (None, 0.0),
    ('', 0.0),
    ('nan', None),
    ('inf', None),
    (True, None),
    ([1], None),
])
def test_parse_amount(value, expected):
    assert parse_amount(value) == expected


def test_coerce_amount_defaults_to_zero():
    assert coerce_amount('not a number') == 0.0
    assert coerce_amount('42') == 42.0


def test_derive_purchase_totals():
    totals = derive_purchase_totals(10, Decimal('250'), 12)

    assert totals['total_pieces'] == 120
    assert totals['total_amount'] == 2500
    assert totals['price_per_piece'] == 20.83


def test_derive_purchase_totals_guards_zero_pieces():
    totals = derive_purchase_totals(4, 100, 0)

    assert totals['total_pieces'] == 0
    assert totals['total_amount'] == 400
    assert totals['price_per_piece'] == 0


def test_calculate_sale_totals():
    items = [
        {'pricePerPiece': 100, 'quantity': 3},
        {'price_per_piece': Decimal('12.50'), 'quantity': 2},
    ]

    totals = calculate_sale_totals(items, 5)

    assert totals['line_totals'] == [300, 25]
    assert totals['subtotal'] == 325
    assert totals['tax_amount'] == 16.25
    assert totals['total_amount'] == 341.25


def test_summarize_sales():
    assert summarize_sales([]) == {
        'totalSales': 0,
        'totalRevenue': 0.0,
        'totalTax': 0.0,
        'averageSaleValue': 0.0,
    }

    stats = summarize_sales([{'totalAmount': 100, 'taxAmount': 5},
                             {'totalAmount': 200, 'taxAmount': 10}])

    assert stats['totalSales'] == 2
    assert stats['totalRevenue'] == 300
    assert stats['totalTax'] == 15
    assert stats['averageSaleValue'] == 150


@pytest.mark.parametrize('value, expected', [
    ('1200.50 INR', 1200.5),
    ('  42abc', 42.0),
    ('-3.5e2 units', -350.0),
    ('.5', 0.5),
    ('Rs. 100', None),
])
def test_parse_amount_reads_leading_number(value, expected):
    assert parse_amount(value) == expected


def test_trailing_text_is_not_malformed():
    summary = compute_tally([{'totalAmount': '1200.50 INR'}], [])

    assert summary.total_investment == 1200.5
    assert summary.malformed_count == 0
