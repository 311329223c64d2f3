from datetime import date

from wtforms import FieldList, FloatField, FormField, IntegerField, StringField
from wtforms.validators import (
    AnyOf, DataRequired, Email, InputRequired, Length, NumberRange, Optional, Regexp, ValidationError,
)

from school_erp.forms import IsoDateField, JsonBooleanField, JsonForm, OptionalFormField, SubForm
from school_erp.rbac import ACCOUNTANT, SCHOOL_ADMIN, TRUST_ADMIN

CODE_PATTERN = r'^[A-Z0-9_]+$'
SUBDOMAIN_PATTERN = r'^[a-z0-9-]+$'


class TrustSetupForm(JsonForm):
    strict = True

    trust_name = StringField(validators=[DataRequired(), Length(max=255)])
    trust_code = StringField(validators=[
        DataRequired(), Length(min=2, max=20),
        Regexp(CODE_PATTERN, message='Use uppercase letters, digits and underscores only'),
    ])
    description = StringField(validators=[Optional()])
    subdomain = StringField(validators=[
        DataRequired(), Length(max=50),
        Regexp(SUBDOMAIN_PATTERN, message='Use lowercase letters, digits and hyphens only'),
    ])
    contact_email = StringField(validators=[DataRequired(), Email()])
    contact_phone = StringField(validators=[Optional(), Length(min=10, max=15)])
    address = StringField(validators=[Optional()])
    is_active = JsonBooleanField(default=True)


class SchoolSetupForm(JsonForm):
    strict = True

    school_name = StringField(validators=[DataRequired(), Length(max=255)])
    school_code = StringField(validators=[
        DataRequired(), Length(min=2, max=20),
        Regexp(CODE_PATTERN, message='Use uppercase letters, digits and underscores only'),
    ])
    trust_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    address = StringField(validators=[Optional()])
    contact_email = StringField(validators=[DataRequired(), Email()])
    contact_phone = StringField(validators=[Optional(), Length(min=10, max=15)])
    principal_name = StringField(validators=[Optional(), Length(max=200)])
    established_year = IntegerField(validators=[Optional()])
    is_active = JsonBooleanField(default=True)

    def validate_established_year(self, field):
        if field.data is not None and not 1800 <= field.data <= date.today().year:
            raise ValidationError(f'Must be between 1800 and {date.today().year}')


class AcademicYearForm(JsonForm):
    strict = True

    school_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    year_name = StringField(validators=[DataRequired(), Length(max=50)])
    start_date = IsoDateField(validators=[InputRequired()])
    end_date = IsoDateField(validators=[InputRequired()])
    is_current = JsonBooleanField(default=False)
    is_active = JsonBooleanField(default=True)


class SectionForm(SubForm):
    section_name = StringField(validators=[DataRequired(), Length(max=10)])
    capacity = IntegerField(validators=[InputRequired(), NumberRange(min=1, max=200)])


class ClassForm(SubForm):
    class_name = StringField(validators=[DataRequired(), Length(max=50)])
    class_order = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    sections = FieldList(FormField(SectionForm))


class HouseForm(SubForm):
    house_name = StringField(validators=[DataRequired(), Length(max=50)])
    house_color = StringField(validators=[Optional(), Length(max=20)])


class ClassStructureForm(JsonForm):
    strict = True

    school_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    academic_year_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    classes = FieldList(FormField(ClassForm), validators=[Length(min=1, message='At least one class is required')])
    houses = FieldList(FormField(HouseForm))


class SubjectForm(SubForm):
    subject_name = StringField(validators=[DataRequired(), Length(max=100)])
    subject_code = StringField(validators=[DataRequired(), Length(max=10)])
    class_ids = FieldList(IntegerField(validators=[InputRequired(), NumberRange(min=1)]))


class GradeForm(SubForm):
    grade = StringField(validators=[DataRequired(), Length(max=5)])
    min_percentage = FloatField(validators=[InputRequired(), NumberRange(min=0, max=100)])
    max_percentage = FloatField(validators=[InputRequired(), NumberRange(min=0, max=100)])

    def validate_max_percentage(self, field):
        if self.min_percentage.data is not None and field.data is not None \
                and self.min_percentage.data > field.data:
            raise ValidationError('min_percentage must not exceed max_percentage')


class GradingSystemForm(SubForm):
    type = StringField(validators=[DataRequired(), AnyOf(('PERCENTAGE', 'GRADE', 'BOTH'))])
    pass_percentage = FloatField(validators=[Optional(), NumberRange(min=0, max=100)])
    grades = FieldList(FormField(GradeForm))


class AcademicStructureForm(JsonForm):
    strict = True

    school_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    subjects = FieldList(FormField(SubjectForm))
    grading_system = FormField(GradingSystemForm)


class SchoolConfigValuesForm(SubForm):
    session_timeout_minutes = IntegerField(validators=[Optional(), NumberRange(min=5, max=480)], default=60)
    fee_late_days = IntegerField(validators=[Optional(), NumberRange(min=0, max=365)], default=30)
    fee_late_penalty_percent = FloatField(validators=[Optional(), NumberRange(min=0, max=100)], default=5)
    attendance_required_percent = FloatField(validators=[Optional(), NumberRange(min=0, max=100)], default=75)
    academic_year_start_month = IntegerField(validators=[Optional(), NumberRange(min=1, max=12)], default=4)
    enable_sms = JsonBooleanField(default=True)
    enable_email = JsonBooleanField(default=True)
    enable_whatsapp = JsonBooleanField(default=False)


class SchoolConfigForm(JsonForm):
    strict = True

    school_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    config = OptionalFormField(SchoolConfigValuesForm)


class AdminUserForm(SubForm):
    email = StringField(validators=[DataRequired(), Email()])
    password = StringField(validators=[DataRequired(), Length(min=8, max=128)])
    full_name = StringField(validators=[DataRequired(), Length(max=255)])
    role = StringField(validators=[DataRequired(), AnyOf((TRUST_ADMIN, SCHOOL_ADMIN, ACCOUNTANT))])
    phone = StringField(validators=[Optional(), Length(min=10, max=15)])


class RoleSetupForm(JsonForm):
    strict = True

    school_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    admin_users = FieldList(FormField(AdminUserForm),
                            validators=[Length(min=1, message='At least one user is required')])
