from datetime import datetime
from app import db
from werkzeug.security import generate_password_hash, check_password_hash
from sqlalchemy import func

SELLER_TYPES = ('factory', 'agent')
SLIP_STATUSES = ('Pending', 'Completed', 'Cancelled')
USER_ROLES = ('User', 'Editor', 'Admin')
USER_STATUSES = ('Active', 'Inactive')


def _money(value):
    return float(value) if value is not None else 0.0


def _iso(value):
    return value.isoformat() if value else None


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='User')  # User, Editor, Admin
    status = db.Column(db.String(20), nullable=False, default='Active')  # Active, Inactive
    bio = db.Column(db.Text, default='')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    @staticmethod
    def next_user_id():
        """Public user numbers are sequential: highest existing number plus one"""
        highest = db.session.query(func.max(User.user_id)).scalar()
        return (highest or 0) + 1

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'name': self.name,
            'email': self.email,
            'role': self.role,
            'status': self.status,
            'bio': self.bio or '',
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }


class Item(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    item_name = db.Column(db.String(200), unique=True, nullable=False, index=True)
    price_per_piece = db.Column(db.Numeric(10, 2), nullable=False)
    qr_code = db.Column(db.String(100), unique=True, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'itemName': self.item_name,
            'pricePerPiece': _money(self.price_per_piece),
            'qrCode': self.qr_code,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }


class PaymentSlip(db.Model):
    """A recorded stock purchase together with its uploaded payment slip"""
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(40), unique=True, nullable=False, index=True)

    # Slip file, stored as the base64 data URL the admin panel uploads
    file_name = db.Column(db.String(255), nullable=False)
    file_type = db.Column(db.String(50), nullable=False)
    file_size = db.Column(db.Integer, nullable=False)
    file_data = db.Column(db.Text, nullable=False)
    upload_date = db.Column(db.DateTime, default=datetime.utcnow)

    seller_type = db.Column(db.String(20), nullable=False)  # factory, agent
    seller_name = db.Column(db.String(100), nullable=False, index=True)
    product_name = db.Column(db.String(200), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)  # packets
    price_per_packet = db.Column(db.Numeric(10, 2), nullable=False)
    pieces_per_packet = db.Column(db.Integer, nullable=False)

    # Derived from the three purchase fields above
    total_pieces = db.Column(db.Integer, nullable=False)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    price_per_piece = db.Column(db.Numeric(10, 2), nullable=False)

    buyer_name = db.Column(db.String(100), nullable=False, index=True)
    phone_number = db.Column(db.String(20), nullable=False)
    address = db.Column(db.String(255), nullable=False)

    status = db.Column(db.String(20), default='Pending')  # Pending, Completed, Cancelled
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def apply_totals(self, totals):
        self.total_pieces = int(totals['total_pieces'])
        self.total_amount = totals['total_amount']
        self.price_per_piece = totals['price_per_piece']

    def to_dict(self, include_file=True):
        data = {
            'id': self.id,
            'orderId': self.order_id,
            'fileName': self.file_name,
            'fileType': self.file_type,
            'fileSize': self.file_size,
            'uploadDate': _iso(self.upload_date),
            'sellerType': self.seller_type,
            'sellerName': self.seller_name,
            'productName': self.product_name,
            'quantity': self.quantity,
            'pricePerPacket': _money(self.price_per_packet),
            'piecesPerPacket': self.pieces_per_packet,
            'totalPieces': self.total_pieces,
            'totalAmount': _money(self.total_amount),
            'pricePerPiece': _money(self.price_per_piece),
            'buyerName': self.buyer_name,
            'phoneNumber': self.phone_number,
            'address': self.address,
            'status': self.status,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }
        if include_file:
            data['fileData'] = self.file_data
        return data


class Sale(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    invoice_no = db.Column(db.String(20), unique=True, nullable=False, index=True)

    # Customer and agency are snapshotted onto the invoice
    customer_id = db.Column(db.Integer, nullable=False, index=True)
    customer_name = db.Column(db.String(100), nullable=False)
    customer_email = db.Column(db.String(120), nullable=False)
    customer_address = db.Column(db.String(255), nullable=False)

    agency_name = db.Column(db.String(100), nullable=False)
    agency_address = db.Column(db.String(255), nullable=False)
    agency_phone = db.Column(db.String(20), nullable=False)
    agency_email = db.Column(db.String(120), nullable=False)
    agency_gst = db.Column(db.String(30), nullable=False)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax_rate = db.Column(db.Numeric(5, 2), nullable=False, default=5)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    items = db.relationship('SaleItem', backref='sale', lazy=True, cascade='all, delete-orphan',
                            order_by='SaleItem.id')

    @staticmethod
    def generate_invoice_no(now=None):
        """Generate the next invoice number for the month, e.g. INV-202610-0007"""
        now = now or datetime.utcnow()
        prefix = f"INV-{now.strftime('%Y%m')}"

        last_sale = Sale.query.filter(
            Sale.invoice_no.like(f"{prefix}-%")
        ).order_by(Sale.invoice_no.desc()).first()

        if last_sale:
            sequence = int(last_sale.invoice_no.split('-')[-1]) + 1
        else:
            sequence = 1

        return f"{prefix}-{sequence:04d}"

    def to_dict(self):
        return {
            'id': self.id,
            'invoiceNo': self.invoice_no,
            'customer': {
                'customerId': self.customer_id,
                'name': self.customer_name,
                'email': self.customer_email,
                'address': self.customer_address,
            },
            'agency': {
                'name': self.agency_name,
                'address': self.agency_address,
                'phone': self.agency_phone,
                'email': self.agency_email,
                'gst': self.agency_gst,
            },
            'items': [item.to_dict() for item in self.items],
            'subtotal': _money(self.subtotal),
            'taxRate': _money(self.tax_rate),
            'taxAmount': _money(self.tax_amount),
            'totalAmount': _money(self.total_amount),
            'date': _iso(self.date),
            'createdAt': _iso(self.created_at),
        }


class SaleItem(db.Model):
    """Individual line within a sale; manual lines have no catalogue item"""
    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey('sale.id'), nullable=False)
    item_id = db.Column(db.String(100), nullable=False)
    item_name = db.Column(db.String(200), nullable=False)
    price_per_piece = db.Column(db.Numeric(10, 2), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    total_price = db.Column(db.Numeric(12, 2), nullable=False)
    is_manual = db.Column(db.Boolean, default=False)

    def to_dict(self):
        return {
            'itemId': self.item_id,
            'itemName': self.item_name,
            'pricePerPiece': _money(self.price_per_piece),
            'quantity': self.quantity,
            'totalPrice': _money(self.total_price),
            'isManual': bool(self.is_manual),
        }


class AuditLog(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(100), nullable=False)
    table_name = db.Column(db.String(50), nullable=False)
    record_id = db.Column(db.Integer, nullable=False)
    old_values = db.Column(db.Text)
    new_values = db.Column(db.Text)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow)
    ip_address = db.Column(db.String(45))
