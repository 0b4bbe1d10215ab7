import re
import json
import secrets
import string
from datetime import datetime, timedelta
from flask import current_app, jsonify
from werkzeug.datastructures import MultiDict
from app import db
from models import AuditLog

ALLOWED_SLIP_TYPES = {'image/jpeg', 'image/png', 'image/gif', 'application/pdf'}

BASE36_ALPHABET = string.digits + string.ascii_uppercase

def allowed_slip_type(file_type):
    """Check if an uploaded payment slip has an accepted MIME type"""
    return file_type in ALLOWED_SLIP_TYPES

def log_action(action, table_name, record_id, ip_address, old_values=None, new_values=None):
    """Log data changes for audit trail"""
    try:
        audit_log = AuditLog(
            action=action,
            table_name=table_name,
            record_id=record_id,
            old_values=json.dumps(old_values, default=str) if old_values else None,
            new_values=json.dumps(new_values, default=str) if new_values else None,
            ip_address=ip_address
        )
        db.session.add(audit_log)
        db.session.commit()
    except Exception as e:
        current_app.logger.error(f"Failed to log action: {str(e)}")
        db.session.rollback()

def to_base36(number):
    if number == 0:
        return '0'
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(BASE36_ALPHABET[remainder])
    return ''.join(reversed(digits))

def generate_order_id(now=None):
    """Order ids look like ORD-<base36 ms timestamp>-<5 random chars>"""
    now = now or datetime.utcnow()
    timestamp = to_base36(int(now.timestamp() * 1000))
    suffix = ''.join(secrets.choice(BASE36_ALPHABET) for _ in range(5))
    return f"ORD-{timestamp}-{suffix}"

def generate_qr_code(now=None):
    """QR code payload: millisecond timestamp followed by six random digits"""
    now = now or datetime.utcnow()
    return f"{int(now.timestamp() * 1000)}{secrets.randbelow(1000000):06d}"

def snake_case(name):
    return re.sub(r'(?<!^)(?=[A-Z])', '_', name).lower()

def _flatten(value, prefix, out):
    if isinstance(value, dict):
        for key, inner in value.items():
            name = snake_case(key)
            _flatten(inner, f"{prefix}-{name}" if prefix else name, out)
    elif isinstance(value, list):
        for index, inner in enumerate(value):
            _flatten(inner, f"{prefix}-{index}", out)
    elif value is None:
        return
    elif isinstance(value, bool):
        out.append((prefix, 'true' if value else 'false'))
    elif isinstance(value, float) and value.is_integer():
        out.append((prefix, str(int(value))))
    else:
        out.append((prefix, str(value)))

def form_payload(payload):
    """
    Turn a camelCase JSON body into WTForms form data.

    Nested objects and lists use the FormField/FieldList naming scheme,
    so {"items": [{"itemName": "x"}]} becomes items-0-item_name.
    """
    pairs = []
    _flatten(payload or {}, '', pairs)
    return MultiDict(pairs)

def form_errors(errors, prefix=''):
    """Flatten a WTForms errors structure into readable messages"""
    messages = []
    if isinstance(errors, dict):
        for field, inner in errors.items():
            label = f"{prefix}.{field}" if prefix else str(field)
            messages.extend(form_errors(inner, label))
    elif isinstance(errors, (list, tuple)):
        for index, inner in enumerate(errors):
            if isinstance(inner, (dict, list, tuple)):
                messages.extend(form_errors(inner, f"{prefix}[{index}]"))
            else:
                messages.append(f"{prefix}: {inner}" if prefix else str(inner))
    return messages

def success_response(data=None, message=None, status=200, **extra):
    body = {'success': True}
    if message:
        body['message'] = message
    if data is not None:
        body['data'] = data
    body.update(extra)
    return jsonify(body), status

def error_response(message, status=400, errors=None):
    body = {'success': False, 'message': message}
    if errors:
        body['errors'] = errors
    return jsonify(body), status

def parse_date(value, end_of_day=False):
    """Parse YYYY-MM-DD or ISO timestamps from query strings"""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        raise ValueError(f"Invalid date: {value}")
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None) - (parsed.utcoffset() or timedelta(0))
    if end_of_day and len(value) == 10:
        parsed = parsed + timedelta(days=1) - timedelta(microseconds=1)
    return parsed

def period_start(period, now=None):
    """Start of a reporting period: today, week, month or all (None)"""
    now = now or datetime.utcnow()
    if period == 'today':
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == 'week':
        return now - timedelta(days=7)
    if period == 'month':
        return now - timedelta(days=30)
    return None

def format_currency(amount):
    """Format amount as rupees"""
    return f"₹{float(amount):.2f}"
