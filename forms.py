from flask import current_app
from flask_wtf import FlaskForm
from wtforms import StringField, SelectField, DecimalField, TextAreaField, IntegerField
from wtforms.validators import DataRequired, InputRequired, Email, Length, NumberRange, Optional, ValidationError
from models import SELLER_TYPES, SLIP_STATUSES, USER_ROLES, USER_STATUSES
from utils import allowed_slip_type

class ApiForm(FlaskForm):
    """Forms fed from JSON request bodies; the API is stateless so no CSRF token"""
    class Meta:
        csrf = False

class PaymentSlipForm(ApiForm):
    seller_type = SelectField('Seller Type', choices=[(t, t.title()) for t in SELLER_TYPES],
                              validators=[DataRequired(message='Valid seller type is required (factory or agent)')])
    seller_name = StringField('Seller Name', validators=[
        DataRequired(), Length(min=2, max=100, message='Seller name must be at least 2 characters')])
    product_name = StringField('Product Name', validators=[
        DataRequired(), Length(min=2, max=200, message='Product name must be at least 2 characters')])

    quantity = IntegerField('Quantity (packets)', validators=[
        InputRequired(), NumberRange(min=1, message='Quantity must be at least 1')])
    price_per_packet = DecimalField('Price per Packet', validators=[
        InputRequired(), NumberRange(min=0, message='Price per packet cannot be negative')])
    pieces_per_packet = IntegerField('Pieces per Packet', validators=[
        InputRequired(), NumberRange(min=1, message='Pieces per packet must be at least 1')])

    buyer_name = StringField('Buyer Name', validators=[
        DataRequired(), Length(min=2, max=100, message='Buyer name must be at least 2 characters')])
    phone_number = StringField('Phone Number', validators=[
        DataRequired(), Length(min=10, max=20, message='Valid phone number is required')])
    address = StringField('Address', validators=[
        DataRequired(), Length(min=5, max=255, message='Address must be at least 5 characters')])

    file_name = StringField('File Name', validators=[Optional(), Length(max=255)])
    file_type = StringField('File Type', validators=[Optional()])
    file_size = IntegerField('File Size', validators=[Optional(), NumberRange(min=1)])
    file_data = TextAreaField('File Data', validators=[Optional()])

    def __init__(self, *args, require_file=True, **kwargs):
        super(PaymentSlipForm, self).__init__(*args, **kwargs)
        self.require_file = require_file

    def validate_file_type(self, file_type):
        if not allowed_slip_type(file_type.data):
            raise ValidationError('Only JPEG, PNG, GIF images and PDF files are allowed')

    def validate_file_size(self, file_size):
        if file_size.data is None or file_size.errors:
            return
        limit = current_app.config['MAX_SLIP_FILE_SIZE']
        if file_size.data > limit:
            raise ValidationError(f'File size should be less than {limit // (1024 * 1024)}MB')

    @property
    def has_file(self):
        return all(field.data for field in self.file_fields)

    @property
    def file_fields(self):
        return (self.file_name, self.file_type, self.file_size, self.file_data)

    def validate(self, extra_validators=None):
        valid = super(PaymentSlipForm, self).validate(extra_validators=extra_validators)
        provided = [field for field in self.file_fields if field.data]
        if (self.require_file or provided) and len(provided) < len(self.file_fields):
            self.file_data.errors.append('Payment slip file is required')
            return False
        return valid

class PaymentSlipStatusForm(ApiForm):
    status = SelectField('Status', choices=[(s, s) for s in SLIP_STATUSES],
                         validators=[DataRequired(message='Invalid status value')])

class ItemForm(ApiForm):
    item_name = StringField('Item Name', validators=[
        DataRequired(message='Item name is required'), Length(max=200)])
    price_per_piece = DecimalField('Price per Piece', validators=[
        InputRequired(message='Price per piece is required'),
        NumberRange(min=0, message='Price cannot be negative')])
    qr_code = StringField('QR Code', validators=[Optional(), Length(max=100)])

class UserForm(ApiForm):
    name = StringField('Name', validators=[DataRequired(message='Name is required'), Length(min=2, max=100)])
    email = StringField('Email', validators=[
        DataRequired(message='Email is required'), Email(message='Please enter a valid email')])
    password = StringField('Password', validators=[
        DataRequired(message='Password is required'), Length(min=6)])
    role = SelectField('Role', choices=[(r, r) for r in USER_ROLES], default='User')
    status = SelectField('Status', choices=[(s, s) for s in USER_STATUSES], default='Active')
    bio = TextAreaField('Bio', validators=[Optional(), Length(max=1000)])

class UserUpdateForm(ApiForm):
    name = StringField('Name', validators=[Optional(), Length(min=2, max=100)])
    email = StringField('Email', validators=[Optional(), Email(message='Please enter a valid email')])
    role = SelectField('Role', choices=[(r, r) for r in USER_ROLES], validators=[Optional()])
    status = SelectField('Status', choices=[(s, s) for s in USER_STATUSES], validators=[Optional()])
    bio = TextAreaField('Bio', validators=[Length(max=1000)])
