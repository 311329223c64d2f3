from wtforms import FieldList, IntegerField, StringField
from wtforms.validators import AnyOf, DataRequired, Email, InputRequired, Length, NumberRange, Optional

from school_erp.forms import IsoDateField, JsonBooleanField, JsonForm

GENDERS = ('MALE', 'FEMALE', 'OTHER')
STUDENT_STATUSES = ('PENDING', 'ACTIVE', 'REJECTED', 'INACTIVE', 'TRANSFERRED')


class StudentListForm(JsonForm):
    school_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    class_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    section_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    status = StringField(validators=[Optional(), AnyOf(STUDENT_STATUSES)])
    search = StringField(validators=[Optional(), Length(max=100)])
    page = IntegerField(validators=[Optional(), NumberRange(min=1)], default=1)
    limit = IntegerField(validators=[Optional(), NumberRange(min=1, max=100)], default=50)


class AdmissionForm(JsonForm):
    strict = True

    school_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    academic_year_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    admission_number = StringField(validators=[DataRequired(), Length(max=50)])
    first_name = StringField(validators=[DataRequired(), Length(max=100)])
    last_name = StringField(validators=[DataRequired(), Length(max=100)])
    date_of_birth = IsoDateField(validators=[InputRequired()])
    gender = StringField(validators=[DataRequired(), AnyOf(GENDERS)])
    class_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    section_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    house_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    father_name = StringField(validators=[Optional(), Length(max=255)])
    mother_name = StringField(validators=[Optional(), Length(max=255)])
    guardian_name = StringField(validators=[Optional(), Length(max=255)])
    contact_phone = StringField(validators=[DataRequired(), Length(min=10, max=15)])
    contact_email = StringField(validators=[Optional(), Email()])
    address = StringField(validators=[Optional(), Length(max=500)])
    previous_school = StringField(validators=[Optional(), Length(max=255)])
    medical_conditions = StringField(validators=[Optional(), Length(max=500)])
    application_date = IsoDateField(validators=[InputRequired()])


class AdmissionReviewForm(JsonForm):
    strict = True

    status = StringField(validators=[DataRequired(), AnyOf(('APPROVED', 'REJECTED'))])
    admission_date = IsoDateField(validators=[Optional()])
    remarks = StringField(validators=[Optional(), Length(max=500)])


class PromotionForm(JsonForm):
    strict = True

    student_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    academic_year_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    new_class_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    new_section_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    promotion_type = StringField(validators=[DataRequired(), AnyOf(('PROMOTION', 'READMISSION', 'REPEAT'))])
    effective_date = IsoDateField(validators=[InputRequired()])
    remarks = StringField(validators=[Optional(), Length(max=500)])


class TransferForm(JsonForm):
    strict = True

    student_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    from_school_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    to_school_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    transfer_date = IsoDateField(validators=[InputRequired()])
    reason = StringField(validators=[Optional(), Length(max=500)])
    approve = JsonBooleanField(default=False)


class RollAllocationForm(JsonForm):
    strict = True

    roll_number = StringField(validators=[DataRequired(), Length(max=20)])
    section_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    academic_year_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])


class StudentDetailsForm(JsonForm):
    strict = True

    sibling_student_ids = FieldList(IntegerField(validators=[InputRequired(), NumberRange(min=1)]))
    category = StringField(validators=[Optional(), Length(max=50)])
    subcaste = StringField(validators=[Optional(), Length(max=100)])
    religion = StringField(validators=[Optional(), Length(max=50)])
    nationality = StringField(validators=[Optional(), Length(max=50)])


class StudentDocumentForm(JsonForm):
    strict = True

    student_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    document_type = StringField(validators=[DataRequired(), Length(max=50)])
    file_name = StringField(validators=[DataRequired(), Length(max=255)])
    file_path = StringField(validators=[DataRequired(), Length(max=500)])
    file_size = IntegerField(validators=[Optional(), NumberRange(min=1)])
    mime_type = StringField(validators=[Optional(), Length(max=100)])
    description = StringField(validators=[Optional(), Length(max=255)])


class AnalyticsForm(JsonForm):
    strict = True

    school_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    academic_year_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    class_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    analytics_type = StringField(validators=[
        DataRequired(), AnyOf(('ENROLLMENT', 'PERFORMANCE', 'ATTENDANCE', 'DEMOGRAPHICS')),
    ])
    date_from = IsoDateField(validators=[Optional()])
    date_to = IsoDateField(validators=[Optional()])
