"""
Forms for multi-item sales
"""
from wtforms import StringField, IntegerField, DecimalField, BooleanField, FieldList, FormField
from wtforms.validators import DataRequired, InputRequired, Optional, NumberRange, Length, Email
from forms import ApiForm

class SaleItemForm(ApiForm):
    """Form for individual items within a sale"""
    item_id = StringField('Item', validators=[DataRequired(), Length(max=100)])
    item_name = StringField('Item Name', validators=[DataRequired(), Length(max=200)])
    price_per_piece = DecimalField('Price per Piece', validators=[InputRequired(), NumberRange(min=0)], places=2)
    quantity = IntegerField('Quantity', validators=[InputRequired(), NumberRange(min=1)], default=1)
    is_manual = BooleanField('Manual Entry')

class CustomerForm(ApiForm):
    customer_id = IntegerField('Customer ID', validators=[InputRequired(), NumberRange(min=1)])
    name = StringField('Customer Name', validators=[DataRequired(), Length(max=100)])
    email = StringField('Email', validators=[DataRequired(), Email()])
    address = StringField('Address', validators=[DataRequired(), Length(max=255)])

class AgencyForm(ApiForm):
    name = StringField('Agency Name', validators=[DataRequired(), Length(max=100)])
    address = StringField('Address', validators=[DataRequired(), Length(max=255)])
    phone = StringField('Phone', validators=[DataRequired(), Length(max=20)])
    email = StringField('Email', validators=[DataRequired(), Email()])
    gst = StringField('GST Number', validators=[DataRequired(), Length(max=30)])

class SaleForm(ApiForm):
    """Form for creating multi-item sales"""
    customer = FormField(CustomerForm)
    agency = FormField(AgencyForm)
    items = FieldList(FormField(SaleItemForm), min_entries=1)
    tax_rate = DecimalField('Tax Rate (%)', validators=[Optional(), NumberRange(min=0, max=100)])
