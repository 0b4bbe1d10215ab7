from datetime import datetime
from flask import request, make_response
from sqlalchemy import func, cast
from sqlalchemy.exc import IntegrityError

from app import app, db
from models import User, Item, PaymentSlip, Sale, SaleItem
from forms import PaymentSlipForm, PaymentSlipStatusForm, ItemForm, UserForm, UserUpdateForm
from multi_item_forms import SaleForm
from tally import compute_tally, derive_purchase_totals, calculate_sale_totals, summarize_sales
from utils import (log_action, generate_order_id, generate_qr_code, form_payload, form_errors,
                   success_response, error_response, parse_date, period_start, format_currency)

INVOICE_RETRIES = 3

SLIP_SORT_FIELDS = {
    'createdAt': PaymentSlip.created_at,
    'totalAmount': PaymentSlip.total_amount,
    'sellerName': PaymentSlip.seller_name,
    'buyerName': PaymentSlip.buyer_name,
}


def _json_body():
    """Parsed JSON object body; anything else (missing, malformed, a list) reads as empty"""
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _page_args(default_limit=10):
    page = max(request.args.get('page', 1, type=int), 1)
    limit = min(max(request.args.get('limit', default_limit, type=int), 1), 100)
    return page, limit


def _pagination(page_obj):
    return {
        'currentPage': page_obj.page,
        'totalPages': page_obj.pages,
        'totalItems': page_obj.total,
        'itemsPerPage': page_obj.per_page,
    }


def _date_range_args(required=False):
    """Read startDate/endDate from the query string; raises ValueError when invalid"""
    start_raw = request.args.get('startDate')
    end_raw = request.args.get('endDate')
    if required and not (start_raw and end_raw):
        raise ValueError('Start date and end date are required')
    if bool(start_raw) != bool(end_raw):
        raise ValueError('Both startDate and endDate must be provided')
    return parse_date(start_raw), parse_date(end_raw, end_of_day=True)


@app.route('/api/health')
def health():
    return success_response(message='Server is running',
                            timestamp=datetime.utcnow().isoformat() + 'Z')


# Payment slips (buying)

def _fill_payment_slip(slip, form):
    slip.seller_type = form.seller_type.data
    slip.seller_name = form.seller_name.data.strip()
    slip.product_name = form.product_name.data.strip()
    slip.quantity = form.quantity.data
    slip.price_per_packet = form.price_per_packet.data
    slip.pieces_per_packet = form.pieces_per_packet.data
    slip.buyer_name = form.buyer_name.data.strip()
    slip.phone_number = form.phone_number.data.strip()
    slip.address = form.address.data.strip()

    if form.has_file:
        slip.file_name = form.file_name.data
        slip.file_type = form.file_type.data
        slip.file_size = form.file_size.data
        slip.file_data = form.file_data.data
        slip.upload_date = datetime.utcnow()

    slip.apply_totals(derive_purchase_totals(
        form.quantity.data, form.price_per_packet.data, form.pieces_per_packet.data))


@app.route('/api/payment-slips', methods=['POST'])
def create_payment_slip():
    form = PaymentSlipForm(formdata=form_payload(_json_body()))
    if not form.validate():
        return error_response('Validation failed', errors=form_errors(form.errors))

    slip = PaymentSlip(order_id=generate_order_id())
    _fill_payment_slip(slip, form)

    try:
        db.session.add(slip)
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        app.logger.error(f"Error creating payment slip: {str(e)}")
        return error_response('Duplicate order ID generated. Please try again.')

    log_action('create', 'payment_slip', slip.id, request.remote_addr,
               new_values=slip.to_dict(include_file=False))
    app.logger.info(f"Payment slip {slip.order_id} recorded for {format_currency(slip.total_amount)}")
    return success_response(slip.to_dict(), 'Payment slip created successfully', 201)


@app.route('/api/payment-slips', methods=['GET'])
def list_payment_slips():
    page, limit = _page_args()
    sort = request.args.get('sort', '-createdAt')
    column = SLIP_SORT_FIELDS.get(sort.lstrip('-'))
    if column is None:
        return error_response(f'Cannot sort by {sort}')
    order = column.desc() if sort.startswith('-') else column.asc()

    slips = PaymentSlip.query.order_by(order, PaymentSlip.id.desc()).paginate(
        page=page, per_page=limit, error_out=False)

    return success_response([slip.to_dict() for slip in slips.items],
                            pagination=_pagination(slips))


@app.route('/api/payment-slips/date-range')
def payment_slips_by_date_range():
    try:
        start_date, end_date = _date_range_args(required=True)
    except ValueError as e:
        return error_response(str(e))

    slips = PaymentSlip.query.filter(
        PaymentSlip.created_at >= start_date,
        PaymentSlip.created_at <= end_date
    ).order_by(PaymentSlip.created_at.desc()).all()

    return success_response([slip.to_dict() for slip in slips])


@app.route('/api/payment-slips/<order_id>', methods=['GET'])
def get_payment_slip(order_id):
    slip = PaymentSlip.query.filter_by(order_id=order_id).first()
    if not slip:
        return error_response('Payment slip not found', 404)
    return success_response(slip.to_dict())


@app.route('/api/payment-slips/<order_id>', methods=['PUT'])
def update_payment_slip(order_id):
    slip = PaymentSlip.query.filter_by(order_id=order_id).first()
    if not slip:
        return error_response('Payment slip not found', 404)

    form = PaymentSlipForm(formdata=form_payload(_json_body()), require_file=False)
    if not form.validate():
        return error_response('Validation failed', errors=form_errors(form.errors))

    old_values = slip.to_dict(include_file=False)
    _fill_payment_slip(slip, form)
    db.session.commit()

    log_action('update', 'payment_slip', slip.id, request.remote_addr,
               old_values=old_values, new_values=slip.to_dict(include_file=False))
    return success_response(slip.to_dict(), 'Payment slip updated successfully')


@app.route('/api/payment-slips/<order_id>/status', methods=['PATCH'])
def update_payment_slip_status(order_id):
    form = PaymentSlipStatusForm(formdata=form_payload(_json_body()))
    if not form.validate():
        return error_response('Invalid status value')

    slip = PaymentSlip.query.filter_by(order_id=order_id).first()
    if not slip:
        return error_response('Payment slip not found', 404)

    old_status = slip.status
    slip.status = form.status.data
    db.session.commit()

    log_action('update_status', 'payment_slip', slip.id, request.remote_addr,
               old_values={'status': old_status}, new_values={'status': slip.status})
    return success_response(slip.to_dict(), 'Payment slip status updated successfully')


@app.route('/api/payment-slips/<order_id>', methods=['DELETE'])
def delete_payment_slip(order_id):
    slip = PaymentSlip.query.filter_by(order_id=order_id).first()
    if not slip:
        return error_response('Payment slip not found', 404)

    slip_id = slip.id
    old_values = slip.to_dict(include_file=False)
    db.session.delete(slip)
    db.session.commit()

    log_action('delete', 'payment_slip', slip_id, request.remote_addr, old_values=old_values)
    return success_response(message='Payment slip deleted successfully')


# Items

def _item_conflict(item_name, qr_code, exclude_id=None):
    """Return an error message when the name or QR code is already taken"""
    name_query = Item.query.filter(func.lower(Item.item_name) == item_name.lower())
    qr_query = Item.query.filter(Item.qr_code == qr_code)
    if exclude_id is not None:
        name_query = name_query.filter(Item.id != exclude_id)
        qr_query = qr_query.filter(Item.id != exclude_id)

    if name_query.first():
        if exclude_id is not None:
            return 'Another item with this name already exists'
        return 'Item with this name already exists'
    if qr_query.first():
        if exclude_id is not None:
            return 'Another item with this QR code already exists'
        return 'QR code already exists'
    return None


@app.route('/api/items', methods=['POST'])
def create_item():
    form = ItemForm(formdata=form_payload(_json_body()))
    if not form.validate():
        return error_response('Validation error', errors=form_errors(form.errors))

    item_name = form.item_name.data.strip()
    qr_code = (form.qr_code.data or '').strip() or generate_qr_code()

    conflict = _item_conflict(item_name, qr_code)
    if conflict:
        return error_response(conflict)

    item = Item(item_name=item_name, price_per_piece=form.price_per_piece.data, qr_code=qr_code)
    try:
        db.session.add(item)
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        app.logger.error(f"Error creating item: {str(e)}")
        return error_response('Item with this name or QR code already exists')

    log_action('create', 'item', item.id, request.remote_addr, new_values=item.to_dict())
    return success_response(item.to_dict(), 'Item created successfully', 201)


@app.route('/api/items', methods=['GET'])
def list_items():
    items = Item.query.order_by(Item.created_at.desc(), Item.id.desc()).all()
    return success_response([item.to_dict() for item in items], count=len(items))


@app.route('/api/items/qr/<qr_code>')
def get_item_by_qr_code(qr_code):
    item = Item.query.filter_by(qr_code=qr_code).first()
    if not item:
        return error_response('Item not found', 404)
    return success_response(item.to_dict())


@app.route('/api/items/<int:item_id>', methods=['GET'])
def get_item(item_id):
    item = db.session.get(Item, item_id)
    if not item:
        return error_response('Item not found', 404)
    return success_response(item.to_dict())


@app.route('/api/items/<int:item_id>', methods=['PUT'])
def update_item(item_id):
    item = db.session.get(Item, item_id)
    if not item:
        return error_response('Item not found', 404)

    form = ItemForm(formdata=form_payload(_json_body()))
    if not form.validate():
        return error_response('Validation error', errors=form_errors(form.errors))

    item_name = form.item_name.data.strip()
    qr_code = (form.qr_code.data or '').strip() or item.qr_code

    conflict = _item_conflict(item_name, qr_code, exclude_id=item.id)
    if conflict:
        return error_response(conflict)

    old_values = item.to_dict()
    item.item_name = item_name
    item.price_per_piece = form.price_per_piece.data
    item.qr_code = qr_code
    db.session.commit()

    log_action('update', 'item', item.id, request.remote_addr,
               old_values=old_values, new_values=item.to_dict())
    return success_response(item.to_dict(), 'Item updated successfully')


@app.route('/api/items/<int:item_id>', methods=['DELETE'])
def delete_item(item_id):
    item = db.session.get(Item, item_id)
    if not item:
        return error_response('Item not found', 404)

    old_values = item.to_dict()
    db.session.delete(item)
    db.session.commit()

    log_action('delete', 'item', item_id, request.remote_addr, old_values=old_values)
    return success_response(message='Item deleted successfully')


# Sales

def _build_sale(form, totals):
    customer = form.customer.data
    agency = form.agency.data

    sale = Sale(
        invoice_no=Sale.generate_invoice_no(),
        customer_id=customer['customer_id'],
        customer_name=customer['name'],
        customer_email=customer['email'],
        customer_address=customer['address'],
        agency_name=agency['name'],
        agency_address=agency['address'],
        agency_phone=agency['phone'],
        agency_email=agency['email'],
        agency_gst=agency['gst'],
        subtotal=round(totals['subtotal'], 2),
        tax_rate=totals['tax_rate'],
        tax_amount=round(totals['tax_amount'], 2),
        total_amount=round(totals['total_amount'], 2),
        date=datetime.utcnow(),
    )
    for line, line_total in zip(form.items.data, totals['line_totals']):
        sale.items.append(SaleItem(
            item_id=line['item_id'],
            item_name=line['item_name'],
            price_per_piece=line['price_per_piece'],
            quantity=line['quantity'],
            total_price=round(line_total, 2),
            is_manual=line['is_manual'],
        ))
    return sale


@app.route('/api/sales', methods=['POST'])
def create_sale():
    payload = _json_body()
    if not payload.get('customer') or not payload.get('agency') or not payload.get('items'):
        return error_response('Missing required fields')

    form = SaleForm(formdata=form_payload(payload))
    if not form.validate():
        return error_response('Validation error', errors=form_errors(form.errors))

    tax_rate = form.tax_rate.data
    if tax_rate is None:
        tax_rate = app.config['DEFAULT_TAX_RATE']
    totals = calculate_sale_totals(form.items.data, tax_rate)

    # Invoice numbers are sequential per month; retry if another sale took ours
    for attempt in range(INVOICE_RETRIES):
        sale = _build_sale(form, totals)
        try:
            db.session.add(sale)
            db.session.commit()
            break
        except IntegrityError as e:
            db.session.rollback()
            app.logger.warning(f"Invoice number clash on attempt {attempt + 1}: {str(e)}")
    else:
        return error_response('Duplicate invoice number. Please try again.')

    log_action('create', 'sale', sale.id, request.remote_addr,
               new_values={'invoice_no': sale.invoice_no, 'total_amount': sale.total_amount})
    app.logger.info(f"Sale {sale.invoice_no} recorded for {format_currency(sale.total_amount)}")
    return success_response(sale.to_dict(), 'Sale completed successfully', 201)


@app.route('/api/sales', methods=['GET'])
def list_sales():
    page, limit = _page_args()
    try:
        start_date, end_date = _date_range_args()
    except ValueError as e:
        return error_response(str(e))

    query = Sale.query
    if start_date and end_date:
        query = query.filter(Sale.date >= start_date, Sale.date <= end_date)

    sales = query.order_by(Sale.date.desc(), Sale.id.desc()).paginate(
        page=page, per_page=limit, error_out=False)

    return success_response([sale.to_dict() for sale in sales.items],
                            pagination=_pagination(sales))


@app.route('/api/sales/stats')
def sales_stats():
    period = request.args.get('period', 'all')
    if period not in ('all', 'today', 'week', 'month'):
        return error_response('Period must be one of all, today, week, month')

    query = Sale.query
    start = period_start(period)
    if start is not None:
        query = query.filter(Sale.date >= start)

    return success_response(summarize_sales(query.all()))


@app.route('/api/sales/invoice/<invoice_no>')
def get_sale_by_invoice(invoice_no):
    sale = Sale.query.filter_by(invoice_no=invoice_no).first()
    if not sale:
        return error_response('Sale not found', 404)
    return success_response(sale.to_dict())


@app.route('/api/sales/customer/<int:customer_id>')
def sales_by_customer(customer_id):
    sales = Sale.query.filter_by(customer_id=customer_id).order_by(Sale.date.desc()).all()
    return success_response([sale.to_dict() for sale in sales])


@app.route('/api/sales/<sale_ref>')
def get_sale(sale_ref):
    """Look a sale up by invoice number first, then by numeric id"""
    sale = Sale.query.filter_by(invoice_no=sale_ref).first()
    if not sale and sale_ref.isdigit():
        sale = db.session.get(Sale, int(sale_ref))
    if not sale:
        return error_response('Sale not found', 404)
    return success_response(sale.to_dict())


# Users

@app.route('/api/users', methods=['GET'])
def list_users():
    query = User.query

    user_id = request.args.get('userId', '').strip()
    if user_id:
        if not user_id.isdigit():
            return error_response('userId must be a number')
        query = query.filter(User.user_id == int(user_id))

    name = request.args.get('name', '').strip()
    if name:
        query = query.filter(func.lower(User.name).contains(name.lower(), autoescape=True))

    email = request.args.get('email', '').strip()
    if email:
        query = query.filter(func.lower(User.email).contains(email.lower(), autoescape=True))

    users = query.order_by(User.user_id.asc()).all()
    return success_response(count=len(users), users=[user.to_dict() for user in users])


@app.route('/api/users', methods=['POST'])
def create_user():
    form = UserForm(formdata=form_payload(_json_body()))
    if not form.validate():
        return error_response('Validation error', errors=form_errors(form.errors))

    email = form.email.data.strip().lower()
    if User.query.filter_by(email=email).first():
        return error_response('User already exists')

    user = User(
        user_id=User.next_user_id(),
        name=form.name.data.strip(),
        email=email,
        role=form.role.data,
        status=form.status.data,
        bio=form.bio.data or '',
    )
    user.set_password(form.password.data)

    try:
        db.session.add(user)
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        app.logger.error(f"Error creating user: {str(e)}")
        return error_response('User already exists')

    log_action('create', 'user', user.id, request.remote_addr, new_values=user.to_dict())
    return success_response(message='User created successfully', status=201, user=user.to_dict())


@app.route('/api/users/emails')
def export_user_emails():
    """Plain-text list of registered email addresses, one per line"""
    emails = [email for (email,) in db.session.query(User.email).order_by(User.user_id).all() if email]
    response = make_response('\n'.join(emails))
    response.mimetype = 'text/plain'
    filename = f"registered-emails-{datetime.utcnow().strftime('%Y-%m-%d')}.txt"
    response.headers['Content-Disposition'] = f'attachment; filename={filename}'
    return response


@app.route('/api/users/<int:user_pk>', methods=['GET'])
def get_user(user_pk):
    user = db.session.get(User, user_pk)
    if not user:
        return error_response('User not found', 404)
    return success_response(user=user.to_dict())


@app.route('/api/users/<int:user_pk>', methods=['PUT'])
def update_user(user_pk):
    user = db.session.get(User, user_pk)
    if not user:
        return error_response('User not found', 404)

    form = UserUpdateForm(formdata=form_payload(_json_body()))
    if not form.validate():
        return error_response('Validation error', errors=form_errors(form.errors))

    old_values = user.to_dict()
    if form.email.data:
        email = form.email.data.strip().lower()
        if User.query.filter(User.email == email, User.id != user.id).first():
            return error_response('Another user already uses this email')
        user.email = email
    if form.name.data:
        user.name = form.name.data.strip()
    if form.role.data:
        user.role = form.role.data
    if form.status.data:
        user.status = form.status.data
    if form.bio.raw_data:
        user.bio = form.bio.data or ''
    db.session.commit()

    log_action('update', 'user', user.id, request.remote_addr,
               old_values=old_values, new_values=user.to_dict())
    return success_response(user=user.to_dict())


@app.route('/api/users/<int:user_pk>', methods=['DELETE'])
def delete_user(user_pk):
    user = db.session.get(User, user_pk)
    if not user:
        return error_response('User not found', 404)

    old_values = user.to_dict()
    db.session.delete(user)
    db.session.commit()

    log_action('delete', 'user', user_pk, request.remote_addr, old_values=old_values)
    return success_response(message='User deleted successfully')


# Tally and dashboard

def _amount_rows(query, *columns):
    """Amount columns read back as text so hand-edited rows reach the tally unconverted"""
    rows = query.with_entities(*[cast(column, db.String).label(column.key) for column in columns])
    return [row._asdict() for row in rows]


def _tally(slips_query, sales_query):
    summary = compute_tally(_amount_rows(slips_query, PaymentSlip.total_amount),
                            _amount_rows(sales_query, Sale.total_amount, Sale.tax_amount))
    if summary.malformed_count:
        app.logger.warning(f"Tally ignored {summary.malformed_count} malformed amount(s)")
    return summary


@app.route('/api/tally')
def tally():
    """Investment vs. revenue summary over purchases and sales"""
    try:
        start_date, end_date = _date_range_args()
    except ValueError as e:
        return error_response(str(e))

    slips_query = PaymentSlip.query
    sales_query = Sale.query
    if start_date and end_date:
        slips_query = slips_query.filter(PaymentSlip.created_at >= start_date,
                                         PaymentSlip.created_at <= end_date)
        sales_query = sales_query.filter(Sale.date >= start_date, Sale.date <= end_date)

    return success_response(_tally(slips_query, sales_query).to_dict())


@app.route('/api/dashboard/summary')
def dashboard_summary():
    recent_sales = Sale.query.order_by(Sale.date.desc(), Sale.id.desc()).limit(5).all()

    return success_response({
        'totalItems': Item.query.count(),
        'totalPaymentSlips': PaymentSlip.query.count(),
        'pendingPaymentSlips': PaymentSlip.query.filter_by(status='Pending').count(),
        'totalSales': Sale.query.count(),
        'totalUsers': User.query.count(),
        'tally': _tally(PaymentSlip.query, Sale.query).to_dict(),
        'recentSales': [sale.to_dict() for sale in recent_sales],
    })


@app.errorhandler(404)
def not_found_error(error):
    return error_response('Route not found', 404)

@app.errorhandler(405)
def method_not_allowed_error(error):
    return error_response('Method not allowed', 405)

@app.errorhandler(413)
def payload_too_large_error(error):
    return error_response('Request body is too large', 413)

@app.errorhandler(500)
def internal_error(error):
    db.session.rollback()
    app.logger.error(f"Unhandled error: {getattr(error, 'original_exception', error)}")
    return error_response('Internal server error', 500)
