"""Payload forms for wizard steps, built from the setup and fees forms."""
from wtforms import FieldList, FormField, IntegerField, StringField
from wtforms.validators import DataRequired, Email, InputRequired, Length, NumberRange, Optional

from school_erp.forms import IsoDateField, JsonBooleanField, JsonForm, SubForm
from school_erp.modules.setup.forms import (
    AdminUserForm, ClassForm, GradingSystemForm, HouseForm, SchoolConfigValuesForm, SchoolSetupForm,
    SubjectForm,
)


class SchoolEntryForm(SubForm):
    school_name = StringField(validators=[DataRequired(), Length(min=2, max=255)])
    school_code = StringField(validators=[DataRequired(), Length(min=2, max=20)])
    address = StringField(validators=[Optional(), Length(max=500)])
    contact_email = StringField(validators=[DataRequired(), Email()])
    contact_phone = StringField(validators=[Optional(), Length(min=10, max=15)])
    principal_name = StringField(validators=[Optional(), Length(max=255)])
    established_year = IntegerField(validators=[Optional(), NumberRange(min=1800)])


class SchoolsStepForm(JsonForm):
    strict = True

    schools = FieldList(FormField(SchoolEntryForm),
                        validators=[Length(min=1, max=10, message='Provide between 1 and 10 schools')])


class AcademicYearEntryForm(SubForm):
    year_name = StringField(validators=[DataRequired(), Length(max=50)])
    start_date = IsoDateField(validators=[InputRequired()])
    end_date = IsoDateField(validators=[InputRequired()])
    is_current = JsonBooleanField(default=False)


class AcademicStepForm(JsonForm):
    strict = True

    academic_years = FieldList(FormField(AcademicYearEntryForm),
                               validators=[Length(min=1, max=5, message='Provide between 1 and 5 academic years')])


class ClassStepForm(JsonForm):
    strict = True

    classes = FieldList(FormField(ClassForm), validators=[Length(min=1, message='At least one class is required')])
    houses = FieldList(FormField(HouseForm))


class GradingStepForm(JsonForm):
    strict = True

    grading_system = FormField(GradingSystemForm)
    subjects = FieldList(FormField(SubjectForm))


class SystemConfigStepForm(JsonForm):
    strict = True

    config = FormField(SchoolConfigValuesForm)


class AdminUsersStepForm(JsonForm):
    strict = True

    admin_users = FieldList(FormField(AdminUserForm),
                            validators=[Length(min=1, max=5, message='Provide between 1 and 5 users')])


class SchoolInfoStepForm(SchoolSetupForm):
    # The trust comes from the wizard caller
    trust_id = None


class SchoolAdminStepForm(JsonForm):
    strict = True

    first_name = StringField(validators=[DataRequired(), Length(min=2, max=100)])
    last_name = StringField(validators=[DataRequired(), Length(min=2, max=100)])
    email = StringField(validators=[DataRequired(), Email()])
    phone = StringField(validators=[Optional(), Length(min=10, max=15)])


class FeeCategoryForm(SubForm):
    name = StringField(validators=[DataRequired(), Length(max=100)])
    description = StringField(validators=[Optional(), Length(max=255)])
    is_mandatory = JsonBooleanField(default=True)
    is_refundable = JsonBooleanField(default=False)


class FeeCategoriesStepForm(JsonForm):
    strict = True

    categories = FieldList(FormField(FeeCategoryForm),
                           validators=[Length(min=1, message='At least one category is required')])


class NavigateForm(JsonForm):
    strict = True

    step_id = StringField(validators=[DataRequired(), Length(max=100)])
