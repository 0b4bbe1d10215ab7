from datetime import datetime, timedelta

from app import db
from models import Sale


def _create(client, payload):
    response = client.post('/api/sales', json=payload)
    assert response.status_code == 201, response.get_json()
    return response.get_json()['data']


def test_create_sale_computes_totals(client, sale_payload):
    sale = _create(client, sale_payload())

    assert sale['subtotal'] == 3000.0
    assert sale['taxRate'] == 5.0
    assert sale['taxAmount'] == 150.0
    assert sale['totalAmount'] == 3150.0
    assert [item['totalPrice'] for item in sale['items']] == [2000.0, 1000.0]
    assert sale['items'][1]['isManual'] is True
    assert sale['customer'] == {
        'customerId': 1,
        'name': 'Ravi Kumar',
        'email': 'ravi.kumar@gmail.com',
        'address': '12 MG Road, Pune',
    }
    assert sale['agency']['gst'] == '27ABCDE1234F1Z5'


def test_client_totals_are_recomputed(client, sale_payload):
    sale = _create(client, sale_payload(subtotal=1, taxAmount=1, totalAmount=2))

    assert sale['totalAmount'] == 3150.0


def test_custom_tax_rate(client, sale_payload):
    sale = _create(client, sale_payload(taxRate=12))

    assert sale['taxRate'] == 12.0
    assert sale['taxAmount'] == 360.0
    assert sale['totalAmount'] == 3360.0


def test_invoice_numbers_are_sequential_per_month(client, sale_payload):
    prefix = f"INV-{datetime.utcnow().strftime('%Y%m')}"

    first = _create(client, sale_payload())
    second = _create(client, sale_payload())

    assert first['invoiceNo'] == f'{prefix}-0001'
    assert second['invoiceNo'] == f'{prefix}-0002'


def test_invoice_sequence_restarts_each_month(app):
    db.session.add(Sale(
        invoice_no='INV-202601-0009', customer_id=1, customer_name='A', customer_email='a@b.in',
        customer_address='addr', agency_name='Ag', agency_address='addr', agency_phone='1',
        agency_email='ag@b.in', agency_gst='G'))
    db.session.commit()

    assert Sale.generate_invoice_no(datetime(2026, 1, 20)) == 'INV-202601-0010'
    assert Sale.generate_invoice_no(datetime(2026, 2, 1)) == 'INV-202602-0001'


def test_missing_sections_are_rejected(client, sale_payload):
    response = client.post('/api/sales', json=sale_payload(items=[]))

    assert response.status_code == 400
    assert response.get_json()['message'] == 'Missing required fields'


def test_invalid_line_is_rejected(client, sale_payload):
    payload = sale_payload()
    payload['items'][0]['quantity'] = 0
    payload['customer']['email'] = 'not-an-email'

    response = client.post('/api/sales', json=payload)

    assert response.status_code == 400
    errors = response.get_json()['errors']
    assert any(error.startswith('items[0].quantity') for error in errors)
    assert any(error.startswith('customer.email') for error in errors)


def test_list_sales_paginated(client, sale_payload):
    for _ in range(3):
        _create(client, sale_payload())

    body = client.get('/api/sales?limit=2&page=2').get_json()

    assert len(body['data']) == 1
    assert body['pagination']['totalItems'] == 3
    assert body['pagination']['currentPage'] == 2
    assert body['data'][0]['invoiceNo'].endswith('-0001')


def test_list_sales_by_date_range(client, sale_payload):
    _create(client, sale_payload())
    today = datetime.utcnow().strftime('%Y-%m-%d')

    included = client.get(f'/api/sales?startDate={today}&endDate={today}').get_json()
    excluded = client.get('/api/sales?startDate=2001-01-01&endDate=2001-01-31').get_json()

    assert included['pagination']['totalItems'] == 1
    assert excluded['data'] == []


def test_sales_stats(app, client, sale_payload):
    _create(client, sale_payload())
    old = _create(client, sale_payload(taxRate=0))
    sale = db.session.get(Sale, old['id'])
    sale.date = datetime.utcnow() - timedelta(days=60)
    db.session.commit()

    everything = client.get('/api/sales/stats').get_json()['data']
    this_week = client.get('/api/sales/stats?period=week').get_json()['data']

    assert everything == {
        'totalSales': 2,
        'totalRevenue': 6150.0,
        'totalTax': 150.0,
        'averageSaleValue': 3075.0,
    }
    assert this_week['totalSales'] == 1
    assert this_week['totalRevenue'] == 3150.0


def test_sales_stats_rejects_unknown_period(client):
    assert client.get('/api/sales/stats?period=decade').status_code == 400


def test_lookup_by_invoice_number(client, sale_payload):
    sale = _create(client, sale_payload())

    response = client.get(f"/api/sales/invoice/{sale['invoiceNo']}")

    assert response.get_json()['data']['id'] == sale['id']
    assert client.get('/api/sales/invoice/INV-000000-0000').status_code == 404


def test_get_sale_by_invoice_or_id(client, sale_payload):
    sale = _create(client, sale_payload())

    by_invoice = client.get(f"/api/sales/{sale['invoiceNo']}").get_json()['data']
    by_id = client.get(f"/api/sales/{sale['id']}").get_json()['data']

    assert by_invoice == by_id
    assert client.get('/api/sales/12345').status_code == 404


def test_sales_by_customer(client, sale_payload):
    _create(client, sale_payload())
    other = sale_payload()
    other['customer']['customerId'] = 2
    _create(client, other)

    body = client.get('/api/sales/customer/2').get_json()

    assert len(body['data']) == 1
    assert body['data'][0]['customer']['customerId'] == 2


def test_non_object_body_is_rejected(client):
    response = client.post('/api/sales', json=[1, 2])

    assert response.status_code == 400
    assert response.get_json()['message'] == 'Missing required fields'
