from wtforms import FieldList, FloatField, FormField, IntegerField, StringField, URLField
from wtforms.validators import AnyOf, DataRequired, InputRequired, Length, NumberRange, Optional, URL

from school_erp.forms import IsoDateField, JsonBooleanField, JsonForm, OptionalFormField, RawJsonField, SubForm

PAYMENT_MODES = ('CASH', 'BANK', 'UPI', 'ONLINE')
DISCOUNT_TYPES = ('PERCENTAGE', 'FIXED_AMOUNT', 'SIBLING', 'SCHOLARSHIP')
SERVICE_TYPES = ('TRANSPORT', 'LIBRARY', 'LAB', 'SPORTS', 'MEALS')
GATEWAYS = ('RAZORPAY', 'PAYU', 'PAYTM', 'STRIPE')


class InstallmentForm(SubForm):
    installment_name = StringField(validators=[DataRequired(), Length(max=50)])
    due_date = IsoDateField(validators=[InputRequired()])
    amount = FloatField(validators=[InputRequired(), NumberRange(min=0.01)])


class FeeStructureForm(JsonForm):
    strict = True

    fee_head_name = StringField(validators=[DataRequired(), Length(max=100)])
    class_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    academic_year_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    amount = FloatField(validators=[InputRequired(), NumberRange(min=0.01)])
    installments = FieldList(FormField(InstallmentForm),
                             validators=[Length(min=1, message='At least one installment is required')])
    is_mandatory = JsonBooleanField(default=True)
    description = StringField(validators=[Optional(), Length(max=255)])


class FeeAssignmentForm(JsonForm):
    strict = True

    student_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    fee_structure_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    discount_percentage = FloatField(validators=[Optional(), NumberRange(min=0, max=100)], default=0)
    discount_amount = FloatField(validators=[Optional(), NumberRange(min=0)], default=0)
    special_instructions = StringField(validators=[Optional(), Length(max=255)])


class DiscountForm(JsonForm):
    strict = True

    student_fee_assignment_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    discount_type = StringField(validators=[DataRequired(), AnyOf(DISCOUNT_TYPES)])
    discount_percentage = FloatField(validators=[Optional(), NumberRange(min=0, max=100)])
    discount_amount = FloatField(validators=[Optional(), NumberRange(min=0)])
    reason = StringField(validators=[DataRequired(), Length(max=255)])
    valid_until = IsoDateField(validators=[Optional()])


class ServiceAssignmentForm(JsonForm):
    strict = True

    student_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    service_type = StringField(validators=[DataRequired(), AnyOf(SERVICE_TYPES)])
    monthly_fee = FloatField(validators=[InputRequired(), NumberRange(min=0.01)])
    start_date = IsoDateField(validators=[InputRequired()])
    end_date = IsoDateField(validators=[Optional()])
    route_details = StringField(validators=[Optional(), Length(max=255)])


class LateFeeRuleForm(JsonForm):
    strict = True

    rule_name = StringField(validators=[Optional(), Length(max=100)])
    student_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    class_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    rule_type = StringField(validators=[DataRequired(), AnyOf(('GLOBAL', 'CLASS_SPECIFIC', 'STUDENT_SPECIFIC'))])
    grace_period_days = IntegerField(validators=[InputRequired(), NumberRange(min=0)])
    late_fee_percentage = FloatField(validators=[Optional(), NumberRange(min=0, max=100)])
    late_fee_fixed = FloatField(validators=[Optional(), NumberRange(min=0)])
    max_late_fee = FloatField(validators=[Optional(), NumberRange(min=0)])
    effective_from = IsoDateField(validators=[InputRequired()])


class CollectionForm(JsonForm):
    strict = True

    student_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    amount = FloatField(validators=[InputRequired(), NumberRange(min=0.01)])
    payment_mode = StringField(validators=[DataRequired(), AnyOf(PAYMENT_MODES)])
    payment_date = IsoDateField(validators=[Optional()])
    installment_ids = FieldList(IntegerField(validators=[InputRequired(), NumberRange(min=1)]))
    late_fee_amount = FloatField(validators=[Optional(), NumberRange(min=0)], default=0)
    reference_number = StringField(validators=[Optional(), Length(max=100)])
    remarks = StringField(validators=[Optional(), Length(max=255)])


class GatewayPaymentForm(JsonForm):
    strict = True

    student_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    amount = FloatField(validators=[InputRequired(), NumberRange(min=0.01)])
    gateway_name = StringField(validators=[DataRequired(), AnyOf(GATEWAYS)])
    return_url = URLField(validators=[DataRequired(), URL(require_tld=False)])
    webhook_url = URLField(validators=[Optional(), URL(require_tld=False)])
    installment_ids = FieldList(IntegerField(validators=[InputRequired(), NumberRange(min=1)]))
    metadata = RawJsonField()


class BankDetailsForm(SubForm):
    account_number = StringField(validators=[DataRequired(), Length(max=20)])
    ifsc_code = StringField(validators=[DataRequired(), Length(max=15)])
    account_holder = StringField(validators=[DataRequired(), Length(max=100)])


class RefundForm(JsonForm):
    strict = True

    receipt_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    refund_amount = FloatField(validators=[InputRequired(), NumberRange(min=0.01)])
    refund_reason = StringField(validators=[DataRequired(), Length(max=255)])
    refund_mode = StringField(validators=[DataRequired(), AnyOf(PAYMENT_MODES)])
    bank_details = OptionalFormField(BankDetailsForm)


class FeeReportForm(JsonForm):
    strict = True

    report_type = StringField(validators=[
        DataRequired(), AnyOf(('COLLECTION', 'DEFAULTERS', 'RECONCILIATION', 'CLASS_WISE')),
    ])
    date_from = IsoDateField(validators=[InputRequired()])
    date_to = IsoDateField(validators=[InputRequired()])
    class_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    payment_mode = StringField(validators=[Optional(), AnyOf(PAYMENT_MODES)])
    include_pending = JsonBooleanField(default=True)


class ForecastForm(JsonForm):
    strict = True

    academic_year_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    forecast_months = IntegerField(validators=[InputRequired(), NumberRange(min=1, max=12)])
    include_optional_services = JsonBooleanField(default=True)
    scenario = StringField(validators=[Optional(), AnyOf(('CONSERVATIVE', 'REALISTIC', 'OPTIMISTIC'))],
                           default='REALISTIC')
