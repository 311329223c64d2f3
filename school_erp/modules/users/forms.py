from wtforms import FieldList, FloatField, FormField, IntegerField, StringField
from wtforms.validators import AnyOf, DataRequired, Email, InputRequired, Length, NumberRange, Optional

from school_erp.forms import IsoDateField, IsoDateTimeField, JsonBooleanField, JsonForm, OptionalFormField, SubForm
from school_erp.rbac import ACCOUNTANT, PARENT, SCHOOL_ADMIN, STUDENT, TEACHER, TRUST_ADMIN

TENANT_ROLES = (TRUST_ADMIN, SCHOOL_ADMIN, TEACHER, ACCOUNTANT, PARENT, STUDENT)
RELATIONSHIPS = ('FATHER', 'MOTHER', 'GUARDIAN', 'GRANDPARENT', 'SIBLING', 'OTHER')


class UserListForm(JsonForm):
    role = StringField(validators=[Optional(), AnyOf(TENANT_ROLES)])
    school_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    search = StringField(validators=[Optional(), Length(max=100)])
    page = IntegerField(validators=[Optional(), NumberRange(min=1)], default=1)
    limit = IntegerField(validators=[Optional(), NumberRange(min=1, max=100)], default=50)


class UserCreateForm(JsonForm):
    strict = True

    email = StringField(validators=[DataRequired(), Email()])
    full_name = StringField(validators=[DataRequired(), Length(max=255)])
    phone = StringField(validators=[Optional(), Length(min=10, max=15)])
    role = StringField(validators=[DataRequired(), AnyOf(TENANT_ROLES)])
    school_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    password = StringField(validators=[DataRequired(), Length(min=8, max=128)])
    is_active = JsonBooleanField(default=True)
    employee_id = StringField(validators=[Optional(), Length(max=50)])
    designation = StringField(validators=[Optional(), Length(max=100)])
    department = StringField(validators=[Optional(), Length(max=100)])
    date_of_joining = IsoDateField(validators=[Optional()])
    qualification = StringField(validators=[Optional(), Length(max=255)])
    address = StringField(validators=[Optional(), Length(max=500)])
    emergency_contact_name = StringField(validators=[Optional(), Length(max=255)])
    emergency_contact_phone = StringField(validators=[Optional(), Length(max=15)])


class SchoolAssignmentForm(JsonForm):
    strict = True

    user_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    school_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    role = StringField(validators=[DataRequired(), AnyOf(TENANT_ROLES)])
    is_primary = JsonBooleanField(default=False)
    start_date = IsoDateField(validators=[Optional()])
    end_date = IsoDateField(validators=[Optional()])
    permissions = FieldList(StringField(validators=[DataRequired(), Length(max=100)]))


class RoleChangeForm(JsonForm):
    strict = True

    user_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    role = StringField(validators=[DataRequired(), AnyOf(TENANT_ROLES)])
    permissions = FieldList(StringField(validators=[DataRequired(), Length(max=100)]))
    effective_date = IsoDateTimeField(validators=[Optional()])
    expiry_date = IsoDateTimeField(validators=[Optional()])
    reason = StringField(validators=[Optional(), Length(max=255)])


class TeacherAllocationForm(JsonForm):
    strict = True

    teacher_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    class_ids = FieldList(IntegerField(validators=[InputRequired(), NumberRange(min=1)]),
                          validators=[Length(min=1, message='At least one class is required')])
    section_ids = FieldList(IntegerField(validators=[InputRequired(), NumberRange(min=1)]))
    subject_ids = FieldList(IntegerField(validators=[InputRequired(), NumberRange(min=1)]))
    academic_year_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    workload_hours = FloatField(validators=[Optional(), NumberRange(min=0, max=168)])
    is_class_teacher = JsonBooleanField(default=False)
    effective_date = IsoDateTimeField(validators=[Optional()])


class PersonalInfoForm(SubForm):
    full_name = StringField(validators=[DataRequired(), Length(max=255)])
    phone = StringField(validators=[Optional(), Length(min=10, max=15)])
    address = StringField(validators=[Optional(), Length(max=500)])
    date_of_birth = IsoDateField(validators=[Optional()])
    gender = StringField(validators=[Optional(), AnyOf(('MALE', 'FEMALE', 'OTHER'))])
    marital_status = StringField(validators=[Optional(), AnyOf(('SINGLE', 'MARRIED', 'DIVORCED', 'WIDOWED'))])


class ProfessionalInfoForm(SubForm):
    employee_id = StringField(validators=[Optional(), Length(max=50)])
    designation = StringField(validators=[DataRequired(), Length(max=100)])
    department = StringField(validators=[Optional(), Length(max=100)])
    date_of_joining = IsoDateField(validators=[Optional()])
    qualification = StringField(validators=[Optional(), Length(max=255)])
    experience_years = IntegerField(validators=[Optional(), NumberRange(min=0, max=50)])
    specialization = StringField(validators=[Optional(), Length(max=255)])


class EmergencyContactForm(SubForm):
    name = StringField(validators=[DataRequired(), Length(max=255)])
    phone = StringField(validators=[DataRequired(), Length(max=15)])
    relationship = StringField(validators=[DataRequired(), Length(max=50)])
    address = StringField(validators=[Optional(), Length(max=500)])


class StaffDocumentForm(SubForm):
    document_type = StringField(validators=[DataRequired(), Length(max=50)])
    document_number = StringField(validators=[DataRequired(), Length(max=100)])
    file_path = StringField(validators=[Optional(), Length(max=500)])


class StaffProfileForm(JsonForm):
    strict = True

    user_id = IntegerField(validators=[InputRequired(message='user_id is required'), NumberRange(min=1)])
    personal_info = FormField(PersonalInfoForm)
    professional_info = FormField(ProfessionalInfoForm)
    emergency_contact = OptionalFormField(EmergencyContactForm)
    documents = FieldList(FormField(StaffDocumentForm))


class ParentLinkForm(JsonForm):
    strict = True

    parent_user_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    student_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    relationship = StringField(validators=[DataRequired(), AnyOf(RELATIONSHIPS)])
    is_primary = JsonBooleanField(default=False)
    has_financial_responsibility = JsonBooleanField(default=False)
    can_pickup = JsonBooleanField(default=True)
    emergency_contact_priority = IntegerField(validators=[Optional(), NumberRange(min=1, max=5)])
    notes = StringField(validators=[Optional(), Length(max=500)])
