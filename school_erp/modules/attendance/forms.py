from wtforms import FieldList, FloatField, FormField, IntegerField, StringField
from wtforms.validators import AnyOf, DataRequired, InputRequired, Length, NumberRange, Optional, Regexp

from school_erp.forms import IsoDateField, JsonBooleanField, JsonForm, SubForm

ATTENDANCE_STATUSES = ('PRESENT', 'ABSENT', 'LATE', 'HALF_DAY')
LEAVE_TYPES = ('SICK', 'CASUAL', 'EMERGENCY', 'FAMILY', 'OTHER')
REPORT_TYPES = ('DAILY', 'WEEKLY', 'MONTHLY', 'CUSTOM', 'DEFAULTERS')


class AttendanceRecordForm(SubForm):
    student_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    status = StringField(validators=[DataRequired(), AnyOf(ATTENDANCE_STATUSES)])
    remarks = StringField(validators=[Optional(), Length(max=255)])
    arrival_time = StringField(validators=[Optional(), Regexp(r'^\d{2}:\d{2}:\d{2}$', message='Use HH:MM:SS')])


class DailyAttendanceForm(JsonForm):
    strict = True

    date = IsoDateField(validators=[InputRequired()])
    class_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    section_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    attendance_records = FieldList(FormField(AttendanceRecordForm),
                                   validators=[Length(min=1, message='At least one record is required')])
    marked_by = IntegerField(validators=[Optional(), NumberRange(min=1)])


class LeaveDocumentForm(SubForm):
    document_type = StringField(validators=[DataRequired(), Length(max=50)])
    file_path = StringField(validators=[DataRequired(), Length(max=500)])


class LeaveApplicationForm(JsonForm):
    strict = True

    student_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    leave_type = StringField(validators=[DataRequired(), AnyOf(LEAVE_TYPES)])
    start_date = IsoDateField(validators=[InputRequired()])
    end_date = IsoDateField(validators=[InputRequired()])
    reason = StringField(validators=[DataRequired(), Length(min=10, max=500)])
    supporting_documents = FieldList(FormField(LeaveDocumentForm))
    applied_by = IntegerField(validators=[Optional(), NumberRange(min=1)])
    contact_number = StringField(validators=[Optional(), Length(min=10, max=15)])


class AttendanceReportForm(JsonForm):
    strict = True

    report_type = StringField(validators=[DataRequired(), AnyOf(REPORT_TYPES)])
    date_from = IsoDateField(validators=[InputRequired()])
    date_to = IsoDateField(validators=[InputRequired()])
    class_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    section_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    student_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    min_attendance_percentage = FloatField(validators=[Optional(), NumberRange(min=0, max=100)])
    include_leave_data = JsonBooleanField(default=False)
    format = StringField(validators=[Optional(), AnyOf(('JSON', 'PDF', 'EXCEL'))], default='JSON')


class AttendanceProfileForm(JsonForm):
    strict = True

    student_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    academic_year_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    include_monthly_breakdown = JsonBooleanField(default=True)
    include_leave_history = JsonBooleanField(default=True)
    include_patterns = JsonBooleanField(default=False)
