from wtforms import FieldList, FloatField, FormField, IntegerField, StringField
from wtforms.validators import AnyOf, DataRequired, InputRequired, Length, NumberRange, Optional, Regexp

from school_erp.forms import IsoDateField, JsonBooleanField, JsonForm, OptionalFormField, RawJsonField, SubForm
from school_erp.modules.fees.forms import PAYMENT_MODES

REPORT_FORMATS = ('JSON', 'PDF', 'EXCEL', 'CSV')
EXPORT_FORMATS = ('PDF', 'EXCEL', 'CSV')
REPORT_PERIODS = ('DAILY', 'WEEKLY', 'MONTHLY', 'QUARTERLY', 'YEARLY', 'CUSTOM')
DATA_SOURCES = ('STUDENTS', 'FEES', 'ATTENDANCE', 'USERS', 'CLASSES', 'ACADEMIC_YEARS')
AGGREGATIONS = ('SUM', 'COUNT', 'AVG', 'MIN', 'MAX', 'NONE')


def _format_field():
    return StringField(validators=[Optional(), AnyOf(REPORT_FORMATS)], default='JSON')


class StudentFilterForm(SubForm):
    gender = StringField(validators=[Optional(), AnyOf(('MALE', 'FEMALE', 'OTHER'))])
    admission_status = StringField(validators=[Optional(), AnyOf(('PENDING', 'APPROVED', 'REJECTED'))])
    date_from = IsoDateField(validators=[Optional()])
    date_to = IsoDateField(validators=[Optional()])


class StudentProfileReportForm(JsonForm):
    strict = True

    report_scope = StringField(validators=[
        DataRequired(), AnyOf(('ALL_STUDENTS', 'CLASS_WISE', 'INDIVIDUAL', 'FILTERED')),
    ])
    class_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    section_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    student_ids = FieldList(IntegerField(validators=[InputRequired(), NumberRange(min=1)]))
    academic_year_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    include_admission_details = JsonBooleanField(default=True)
    include_parent_details = JsonBooleanField(default=True)
    include_documents = JsonBooleanField(default=False)
    include_transfers = JsonBooleanField(default=False)
    filters = OptionalFormField(StudentFilterForm)
    format = _format_field()


class FeeCollectionReportForm(JsonForm):
    strict = True

    report_period = StringField(validators=[DataRequired(), AnyOf(REPORT_PERIODS)])
    date_from = IsoDateField(validators=[InputRequired()])
    date_to = IsoDateField(validators=[InputRequired()])
    class_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    payment_mode = StringField(validators=[Optional(), AnyOf(PAYMENT_MODES)])
    include_pending_fees = JsonBooleanField(default=True)
    include_discounts = JsonBooleanField(default=True)
    include_refunds = JsonBooleanField(default=False)
    group_by = StringField(validators=[Optional(), AnyOf(('DATE', 'CLASS', 'PAYMENT_MODE', 'FEE_HEAD'))],
                           default='DATE')
    format = _format_field()


class AttendanceSummaryReportForm(JsonForm):
    strict = True

    report_period = StringField(validators=[DataRequired(), AnyOf(REPORT_PERIODS)])
    date_from = IsoDateField(validators=[InputRequired()])
    date_to = IsoDateField(validators=[InputRequired()])
    class_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    section_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    min_attendance_threshold = FloatField(validators=[Optional(), NumberRange(min=0, max=100)], default=75)
    include_leave_data = JsonBooleanField(default=False)
    group_by = StringField(validators=[Optional(), AnyOf(('CLASS', 'SECTION', 'MONTH', 'STUDENT'))],
                           default='CLASS')
    format = _format_field()


class AcademicPerformanceReportForm(JsonForm):
    strict = True

    academic_year_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    report_scope = StringField(validators=[
        DataRequired(),
        AnyOf(('SCHOOL_OVERVIEW', 'CLASS_PERFORMANCE', 'SUBJECT_ANALYSIS', 'TEACHER_PERFORMANCE')),
    ])
    class_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    subject_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    teacher_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    include_trends = JsonBooleanField(default=True)
    include_comparisons = JsonBooleanField(default=True)
    performance_metrics = FieldList(StringField(validators=[
        DataRequired(), AnyOf(('PASS_RATE', 'AVERAGE_MARKS', 'TOP_PERFORMERS', 'IMPROVEMENT_RATE')),
    ]))
    format = _format_field()


class ReportColumnForm(SubForm):
    field_name = StringField(validators=[DataRequired(), Length(max=64)])
    display_name = StringField(validators=[DataRequired(), Length(max=100)])
    data_type = StringField(validators=[DataRequired(), AnyOf(('STRING', 'NUMBER', 'DATE', 'BOOLEAN'))])
    format = StringField(validators=[Optional(), Length(max=50)])
    aggregation = StringField(validators=[Optional(), AnyOf(AGGREGATIONS)], default='NONE')


class GroupingForm(SubForm):
    group_by = FieldList(StringField(validators=[DataRequired(), Length(max=64)]))
    sort_by = StringField(validators=[Optional(), Length(max=64)])
    sort_order = StringField(validators=[Optional(), AnyOf(('ASC', 'DESC'))], default='ASC')


class CustomReportForm(JsonForm):
    strict = True

    report_name = StringField(validators=[DataRequired(), Length(min=1, max=200)])
    template_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    data_sources = FieldList(StringField(validators=[DataRequired(), AnyOf(DATA_SOURCES)]),
                             validators=[Length(min=1, message='At least one data source is required')])
    filters = RawJsonField()
    columns = FieldList(FormField(ReportColumnForm),
                        validators=[Length(min=1, message='At least one column is required')])
    grouping = OptionalFormField(GroupingForm)
    save_as_template = JsonBooleanField(default=False)
    format = _format_field()


class CustomStylingForm(SubForm):
    header_color = StringField(validators=[
        Optional(), Regexp(r'^#[0-9A-Fa-f]{6}$', message='Use a #RRGGBB colour'),
    ])
    font_size = IntegerField(validators=[Optional(), NumberRange(min=8, max=16)])
    include_logo = JsonBooleanField(default=True)


class ExportForm(JsonForm):
    strict = True

    report_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    export_format = StringField(validators=[DataRequired(), AnyOf(EXPORT_FORMATS)])
    include_charts = JsonBooleanField(default=True)
    include_summary = JsonBooleanField(default=True)
    page_orientation = StringField(validators=[Optional(), AnyOf(('PORTRAIT', 'LANDSCAPE'))], default='PORTRAIT')
    custom_styling = OptionalFormField(CustomStylingForm)
