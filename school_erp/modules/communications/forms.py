from wtforms import FieldList, FormField, IntegerField, StringField
from wtforms.validators import AnyOf, DataRequired, Email, InputRequired, Length, NumberRange, Optional

from school_erp.forms import IsoDateTimeField, JsonBooleanField, JsonForm, OptionalFormField, RawJsonField, SubForm

MESSAGE_TYPES = ('SMS', 'EMAIL', 'WHATSAPP', 'IN_APP')
AUDIENCES = ('ALL_USERS', 'STUDENTS', 'PARENTS', 'TEACHERS', 'ADMINS', 'CUSTOM')
PRIORITIES = ('LOW', 'MEDIUM', 'HIGH', 'URGENT')
CATEGORIES = ('GENERAL', 'ACADEMIC', 'ADMINISTRATIVE', 'EMERGENCY', 'EVENT')
ALERT_TYPES = ('EMERGENCY', 'WEATHER', 'SECURITY', 'HEALTH', 'SYSTEM', 'OTHER')
SEVERITIES = ('INFO', 'WARNING', 'CRITICAL', 'EMERGENCY')


def _id_list():
    return FieldList(IntegerField(validators=[InputRequired(), NumberRange(min=1)]))


class RecipientForm(SubForm):
    user_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    phone = StringField(validators=[Optional(), Length(min=10, max=15)])
    email = StringField(validators=[Optional(), Email()])
    name = StringField(validators=[Optional(), Length(max=200)])


class MessageForm(JsonForm):
    strict = True

    message_type = StringField(validators=[DataRequired(), AnyOf(MESSAGE_TYPES)])
    template_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    recipient_type = StringField(validators=[DataRequired(), AnyOf(AUDIENCES)])
    recipients = FieldList(FormField(RecipientForm),
                           validators=[Length(min=1, message='At least one recipient is required')])
    subject = StringField(validators=[Optional(), Length(max=200)])
    content = StringField(validators=[DataRequired(), Length(min=1, max=2000)])
    variables = RawJsonField()
    schedule_at = IsoDateTimeField(validators=[Optional()])
    priority = StringField(validators=[Optional(), AnyOf(PRIORITIES)], default='MEDIUM')
    track_delivery = JsonBooleanField(default=True)


class AttachmentForm(SubForm):
    file_name = StringField(validators=[DataRequired(), Length(max=255)])
    file_path = StringField(validators=[DataRequired(), Length(max=500)])
    file_size = IntegerField(validators=[InputRequired(), NumberRange(min=1)])


class AnnouncementForm(JsonForm):
    strict = True

    title = StringField(validators=[DataRequired(), Length(min=1, max=100)])
    content = StringField(validators=[DataRequired(), Length(min=1, max=1000)])
    target_audience = StringField(validators=[DataRequired(), AnyOf(AUDIENCES)])
    specific_recipients = _id_list()
    school_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    class_ids = _id_list()
    priority = StringField(validators=[Optional(), AnyOf(PRIORITIES)], default='MEDIUM')
    display_from = IsoDateTimeField(validators=[Optional()])
    display_until = IsoDateTimeField(validators=[Optional()])
    is_dismissible = JsonBooleanField(default=True)
    requires_acknowledgment = JsonBooleanField(default=False)
    category = StringField(validators=[Optional(), AnyOf(CATEGORIES)], default='GENERAL')
    attachments = FieldList(FormField(AttachmentForm))


class ScopeForm(SubForm):
    school_ids = _id_list()
    class_ids = _id_list()


class AlertForm(JsonForm):
    strict = True

    alert_title = StringField(validators=[DataRequired(), Length(min=1, max=100)])
    alert_message = StringField(validators=[DataRequired(), Length(min=1, max=500)])
    alert_type = StringField(validators=[DataRequired(), AnyOf(ALERT_TYPES)])
    severity = StringField(validators=[DataRequired(), AnyOf(SEVERITIES)])
    channels = FieldList(StringField(validators=[DataRequired(), AnyOf(MESSAGE_TYPES)]),
                         validators=[Length(min=1, message='At least one channel is required')])
    target_audience = StringField(validators=[DataRequired(), AnyOf(AUDIENCES)])
    specific_recipients = _id_list()
    geographic_scope = OptionalFormField(ScopeForm)
    auto_escalate = JsonBooleanField(default=False)
    escalation_delay_minutes = IntegerField(validators=[Optional(), NumberRange(min=1, max=60)])
    requires_response = JsonBooleanField(default=False)
    response_options = FieldList(StringField(validators=[DataRequired(), Length(max=100)]))
    expires_at = IsoDateTimeField(validators=[Optional()])


class AlertResponseForm(JsonForm):
    strict = True

    response = StringField(validators=[DataRequired(), Length(max=100)])
