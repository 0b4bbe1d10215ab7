import os

os.environ['DATABASE_URL'] = 'sqlite://'
os.environ.setdefault('LOG_LEVEL', 'WARNING')

import pytest

from app import app as flask_app, db


@pytest.fixture
def app():
    flask_app.config.update(TESTING=True)
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def slip_payload():
    """Factory for a valid payment slip request body"""
    def _make(**overrides):
        payload = {
            'sellerType': 'factory',
            'sellerName': 'Balaji Steel Works',
            'productName': 'Steel Tumbler',
            'quantity': 10,
            'pricePerPacket': 250,
            'piecesPerPacket': 12,
            'buyerName': 'Shree Agency',
            'phoneNumber': '9876543210',
            'address': '4 Market Yard, Pune',
            'fileName': 'slip.png',
            'fileType': 'image/png',
            'fileSize': 2048,
            'fileData': 'data:image/png;base64,iVBORw0KGgo=',
        }
        payload.update(overrides)
        return payload
    return _make


@pytest.fixture
def sale_payload():
    """Factory for a valid sale request body: subtotal 3000, 5% tax"""
    def _make(**overrides):
        payload = {
            'customer': {
                'customerId': 1,
                'name': 'Ravi Kumar',
                'email': 'ravi.kumar@gmail.com',
                'address': '12 MG Road, Pune',
            },
            'agency': {
                'name': 'Shree Agency',
                'address': '4 Market Yard, Pune',
                'phone': '9876543210',
                'email': 'accounts@shreeagency.in',
                'gst': '27ABCDE1234F1Z5',
            },
            'items': [
                {'itemId': '1', 'itemName': 'Steel Tumbler', 'pricePerPiece': 50,
                 'quantity': 40, 'isManual': False},
                {'itemId': 'manual-1', 'itemName': 'Packing charges', 'pricePerPiece': 1000,
                 'quantity': 1, 'isManual': True},
            ],
        }
        payload.update(overrides)
        return payload
    return _make


@pytest.fixture
def user_payload():
    def _make(**overrides):
        payload = {
            'name': 'Priya Sharma',
            'email': 'priya.sharma@gmail.com',
            'password': 'secret123',
        }
        payload.update(overrides)
        return payload
    return _make
