from wtforms import IntegerField, StringField
from wtforms.validators import AnyOf, NumberRange, Optional, ValidationError

from school_erp.forms import IdListField, IsoDateField, JsonBooleanField, JsonForm

TIME_RANGES = ('TODAY', 'YESTERDAY', 'THIS_WEEK', 'LAST_WEEK', 'THIS_MONTH', 'LAST_MONTH', 'THIS_YEAR', 'CUSTOM')


class TimeRangeForm(JsonForm):
    time_range = StringField(validators=[Optional(), AnyOf(TIME_RANGES)], default='THIS_MONTH')
    date_from = IsoDateField(validators=[Optional()])
    date_to = IsoDateField(validators=[Optional()])

    def validate_time_range(self, field):
        if field.data != 'CUSTOM':
            return
        if self.date_from.data is None or self.date_to.data is None:
            raise ValidationError('date_from and date_to are required for CUSTOM time range')
        if self.date_to.data < self.date_from.data:
            raise ValidationError('End date cannot be before start date')


class TrustDashboardForm(TimeRangeForm):
    school_ids = IdListField()
    include_trends = JsonBooleanField(default=True)
    include_financial = JsonBooleanField(default=True)
    include_analytics = JsonBooleanField(default=True)


class SchoolDashboardForm(TimeRangeForm):
    school_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    class_ids = IdListField()
    include_class_breakdown = JsonBooleanField(default=True)
    include_fee_analytics = JsonBooleanField(default=True)
    include_staff_summary = JsonBooleanField(default=True)


class TeacherDashboardForm(TimeRangeForm):
    time_range = StringField(validators=[Optional(), AnyOf(TIME_RANGES)], default='THIS_WEEK')
    class_ids = IdListField()
    include_student_performance = JsonBooleanField(default=True)
    include_attendance_details = JsonBooleanField(default=True)
