"""
Per-trust database models.

Every trust gets its own database (``school_erp_trust_<code>``) holding
these tables. They live on a separate declarative base so the master
metadata never creates them.
"""
from datetime import datetime

from sqlalchemy import (
    JSON, Boolean, Column, Date, DateTime, Float, ForeignKey, Integer,
    String, Text, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

TenantModel = declarative_base()


def _now():
    return datetime.utcnow()


# School structure

class School(TenantModel):
    __tablename__ = 'schools'

    id = Column(Integer, primary_key=True)
    trust_id = Column(Integer)
    school_name = Column(String(255), nullable=False)
    school_code = Column(String(20), nullable=False, unique=True)
    address = Column(Text)
    city = Column(String(100))
    state = Column(String(100))
    postal_code = Column(String(10))
    phone = Column(String(15))
    email = Column(String(255))
    principal_name = Column(String(200))
    established_year = Column(Integer)
    affiliation_board = Column(String(50))
    school_type = Column(String(30))
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=_now)
    updated_at = Column(DateTime, default=_now, onupdate=_now)

    def to_dict(self):
        return {
            'id': self.id,
            'school_name': self.school_name,
            'school_code': self.school_code,
            'city': self.city,
            'state': self.state,
            'phone': self.phone,
            'email': self.email,
            'principal_name': self.principal_name,
            'established_year': self.established_year,
            'affiliation_board': self.affiliation_board,
            'school_type': self.school_type,
            'is_active': bool(self.is_active),
            'created_at': self.created_at,
        }


class AcademicYear(TenantModel):
    __tablename__ = 'academic_years'

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer, ForeignKey('schools.id'), nullable=False)
    year_name = Column(String(50), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_current = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=_now)

    __table_args__ = (UniqueConstraint('school_id', 'year_name', name='unique_school_year_name'),)

    def to_dict(self):
        return {
            'id': self.id,
            'school_id': self.school_id,
            'year_name': self.year_name,
            'start_date': self.start_date,
            'end_date': self.end_date,
            'is_current': bool(self.is_current),
        }


class SchoolClass(TenantModel):
    __tablename__ = 'classes'

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer, ForeignKey('schools.id'), nullable=False)
    academic_year_id = Column(Integer, ForeignKey('academic_years.id'), nullable=False)
    class_name = Column(String(50), nullable=False)
    class_order = Column(Integer, nullable=False, default=0)
    description = Column(Text)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=_now)

    sections = relationship('Section', backref='school_class', order_by='Section.id')

    def to_dict(self):
        return {
            'id': self.id,
            'school_id': self.school_id,
            'academic_year_id': self.academic_year_id,
            'class_name': self.class_name,
            'class_order': self.class_order,
        }


class Section(TenantModel):
    __tablename__ = 'sections'

    id = Column(Integer, primary_key=True)
    class_id = Column(Integer, ForeignKey('classes.id'), nullable=False)
    section_name = Column(String(10), nullable=False)
    capacity = Column(Integer, default=40)
    class_teacher_id = Column(Integer)
    is_active = Column(Boolean, default=True, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'class_id': self.class_id,
            'section_name': self.section_name,
            'capacity': self.capacity,
        }


class House(TenantModel):
    __tablename__ = 'houses'

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer, ForeignKey('schools.id'), nullable=False)
    house_name = Column(String(50), nullable=False)
    house_color = Column(String(20))
    description = Column(Text)


class Subject(TenantModel):
    __tablename__ = 'subjects'

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer)
    subject_code = Column(String(20), nullable=False)
    subject_name = Column(String(100), nullable=False)
    subject_type = Column(String(20), default='CORE')
    description = Column(Text)
    is_active = Column(Boolean, default=True, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'subject_code': self.subject_code,
            'subject_name': self.subject_name,
            'subject_type': self.subject_type,
        }


class ClassSubject(TenantModel):
    __tablename__ = 'class_subjects'

    id = Column(Integer, primary_key=True)
    class_id = Column(Integer, ForeignKey('classes.id'), nullable=False)
    subject_id = Column(Integer, ForeignKey('subjects.id'), nullable=False)
    is_mandatory = Column(Boolean, default=True)
    periods_per_week = Column(Integer)

    __table_args__ = (UniqueConstraint('class_id', 'subject_id', name='unique_class_subject'),)


class TrustConfig(TenantModel):
    __tablename__ = 'trust_config'

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer)  # NULL for trust-wide keys
    config_key = Column(String(100), nullable=False)
    config_value = Column(JSON)
    updated_by = Column(Integer)
    updated_at = Column(DateTime, default=_now, onupdate=_now)

    __table_args__ = (UniqueConstraint('school_id', 'config_key', name='unique_school_config_key'),)


# Users

class User(TenantModel):
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100))
    phone = Column(String(15))
    role = Column(String(20), nullable=False)
    school_id = Column(Integer)
    permissions = Column(JSON)
    is_active = Column(Boolean, default=True, nullable=False)
    last_login = Column(DateTime)
    created_at = Column(DateTime, default=_now)
    updated_at = Column(DateTime, default=_now, onupdate=_now)

    @property
    def full_name(self):
        return ' '.join(part for part in (self.first_name, self.last_name) if part)

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'phone': self.phone,
            'role': self.role,
            'school_id': self.school_id,
            'is_active': bool(self.is_active),
            'created_at': self.created_at,
        }


class UserSchoolAssignment(TenantModel):
    __tablename__ = 'user_school_assignments'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    school_id = Column(Integer, ForeignKey('schools.id'), nullable=False)
    role = Column(String(20), nullable=False)
    is_primary = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    start_date = Column(Date)
    end_date = Column(Date)
    permissions = Column(JSON)
    assigned_by = Column(Integer)
    assigned_at = Column(DateTime, default=_now)


class UserRoleHistory(TenantModel):
    __tablename__ = 'user_role_history'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    previous_role = Column(String(20))
    new_role = Column(String(20), nullable=False)
    permissions = Column(JSON)
    effective_date = Column(Date)
    expiry_date = Column(Date)
    reason = Column(Text)
    changed_by = Column(Integer)
    created_at = Column(DateTime, default=_now)


class TeacherAssignment(TenantModel):
    __tablename__ = 'teacher_assignments'

    id = Column(Integer, primary_key=True)
    teacher_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    academic_year_id = Column(Integer, ForeignKey('academic_years.id'), nullable=False)
    class_id = Column(Integer, ForeignKey('classes.id'), nullable=False)
    section_id = Column(Integer)
    subject_id = Column(Integer)
    is_class_teacher = Column(Boolean, default=False, nullable=False)
    workload_hours = Column(Float, default=0)
    created_at = Column(DateTime, default=_now)


class UserProfile(TenantModel):
    __tablename__ = 'user_profiles'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, unique=True)
    employee_id = Column(String(50))
    designation = Column(String(100))
    department = Column(String(100))
    qualification = Column(String(255))
    experience_years = Column(Integer)
    joining_date = Column(Date)
    date_of_birth = Column(Date)
    gender = Column(String(10))
    specialization = Column(String(255))
    marital_status = Column(String(20))
    address = Column(Text)
    emergency_contact = Column(String(15))
    emergency_contact_name = Column(String(255))
    emergency_contact_relationship = Column(String(50))
    updated_at = Column(DateTime, default=_now, onupdate=_now)


class StaffDocument(TenantModel):
    __tablename__ = 'staff_documents'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    document_type = Column(String(50), nullable=False)
    document_number = Column(String(100))
    document_name = Column(String(255))
    file_path = Column(String(500))
    uploaded_at = Column(DateTime, default=_now, onupdate=_now)

    __table_args__ = (UniqueConstraint('user_id', 'document_type', name='unique_staff_document'),)


class ParentStudentLink(TenantModel):
    __tablename__ = 'parent_student_links'

    id = Column(Integer, primary_key=True)
    parent_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    student_id = Column(Integer, ForeignKey('students.id'), nullable=False)
    relationship_type = Column('relationship', String(20), nullable=False)
    is_primary = Column(Boolean, default=False, nullable=False)
    emergency_priority = Column(Integer)
    can_pickup = Column(Boolean, default=True)
    has_financial_responsibility = Column(Boolean, default=False)
    notes = Column(Text)
    created_at = Column(DateTime, default=_now)


# Students

class Student(TenantModel):
    __tablename__ = 'students'

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer, ForeignKey('schools.id'), nullable=False)
    admission_number = Column(String(50), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100))
    date_of_birth = Column(Date)
    gender = Column(String(10))
    class_id = Column(Integer, ForeignKey('classes.id'))
    section_id = Column(Integer, ForeignKey('sections.id'))
    academic_year_id = Column(Integer, ForeignKey('academic_years.id'))
    house_id = Column(Integer, ForeignKey('houses.id'))
    roll_number = Column(String(20))
    category = Column(String(50))
    subcaste = Column(String(100))
    religion = Column(String(50))
    nationality = Column(String(50))
    blood_group = Column(String(5))
    address = Column(Text)
    parent_name = Column(String(200))
    parent_phone = Column(String(15))
    parent_email = Column(String(255))
    previous_school = Column(String(255))
    medical_conditions = Column(String(500))
    status = Column(String(20), nullable=False, default='PENDING')
    is_active = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=_now)
    updated_at = Column(DateTime, default=_now, onupdate=_now)

    __table_args__ = (UniqueConstraint('school_id', 'admission_number', name='unique_school_admission'),)

    @property
    def full_name(self):
        return ' '.join(part for part in (self.first_name, self.last_name) if part)

    def to_dict(self):
        return {
            'id': self.id,
            'school_id': self.school_id,
            'admission_number': self.admission_number,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'date_of_birth': self.date_of_birth,
            'gender': self.gender,
            'class_id': self.class_id,
            'section_id': self.section_id,
            'academic_year_id': self.academic_year_id,
            'roll_number': self.roll_number,
            'category': self.category,
            'religion': self.religion,
            'nationality': self.nationality,
            'parent_name': self.parent_name,
            'parent_phone': self.parent_phone,
            'parent_email': self.parent_email,
            'status': self.status,
            'is_active': bool(self.is_active),
        }


class StudentAdmission(TenantModel):
    __tablename__ = 'student_admissions'

    id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey('students.id'), nullable=False)
    school_id = Column(Integer, nullable=False)
    academic_year_id = Column(Integer, nullable=False)
    class_id = Column(Integer, nullable=False)
    application_date = Column(Date, nullable=False)
    admission_date = Column(Date)
    previous_school = Column(String(200))
    status = Column(String(20), nullable=False, default='PENDING')
    remarks = Column(Text)
    reviewed_by = Column(Integer)
    reviewed_at = Column(DateTime)
    created_at = Column(DateTime, default=_now)

    def to_dict(self):
        return {
            'id': self.id,
            'student_id': self.student_id,
            'school_id': self.school_id,
            'class_id': self.class_id,
            'application_date': self.application_date,
            'admission_date': self.admission_date,
            'status': self.status,
            'remarks': self.remarks,
        }


class StudentPromotion(TenantModel):
    __tablename__ = 'student_promotions'

    id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey('students.id'), nullable=False)
    promotion_type = Column(String(20), nullable=False)
    from_class_id = Column(Integer)
    to_class_id = Column(Integer, nullable=False)
    to_section_id = Column(Integer)
    from_academic_year_id = Column(Integer)
    to_academic_year_id = Column(Integer, nullable=False)
    promotion_date = Column(Date, nullable=False)
    remarks = Column(Text)
    promoted_by = Column(Integer)
    created_at = Column(DateTime, default=_now)


class StudentTransfer(TenantModel):
    __tablename__ = 'student_transfers'

    id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey('students.id'), nullable=False)
    from_school_id = Column(Integer, nullable=False)
    to_school_id = Column(Integer, nullable=False)
    transfer_date = Column(Date, nullable=False)
    reason = Column(Text)
    status = Column(String(20), nullable=False, default='PENDING')
    requested_by = Column(Integer)
    approved_by = Column(Integer)
    created_at = Column(DateTime, default=_now)


class StudentSibling(TenantModel):
    __tablename__ = 'student_siblings'

    id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey('students.id'), nullable=False)
    sibling_id = Column(Integer, ForeignKey('students.id'), nullable=False)

    __table_args__ = (UniqueConstraint('student_id', 'sibling_id', name='unique_sibling_pair'),)


class StudentDocument(TenantModel):
    __tablename__ = 'student_documents'

    id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey('students.id'), nullable=False)
    document_type = Column(String(50), nullable=False)
    document_name = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)
    file_size = Column(Integer)
    mime_type = Column(String(100))
    description = Column(String(255))
    is_verified = Column(Boolean, default=False, nullable=False)
    uploaded_by = Column(Integer)
    uploaded_at = Column(DateTime, default=_now)

    def to_dict(self):
        return {
            'id': self.id,
            'student_id': self.student_id,
            'document_type': self.document_type,
            'document_name': self.document_name,
            'file_path': self.file_path,
            'file_size': self.file_size,
            'mime_type': self.mime_type,
            'is_verified': bool(self.is_verified),
            'uploaded_at': self.uploaded_at,
        }


# Fees

class FeeHead(TenantModel):
    __tablename__ = 'fee_heads'

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer)
    head_name = Column(String(100), nullable=False)
    description = Column(Text)
    is_mandatory = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=_now)


class FeeStructure(TenantModel):
    __tablename__ = 'fee_structures'

    id = Column(Integer, primary_key=True)
    fee_head_id = Column(Integer, ForeignKey('fee_heads.id'), nullable=False)
    class_id = Column(Integer, ForeignKey('classes.id'), nullable=False)
    academic_year_id = Column(Integer, ForeignKey('academic_years.id'), nullable=False)
    amount = Column(Float, nullable=False)
    due_date = Column(Date)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=_now)

    fee_head = relationship('FeeHead')
    installments = relationship('FeeInstallment', order_by='FeeInstallment.installment_number')


class FeeInstallment(TenantModel):
    __tablename__ = 'fee_installments'

    id = Column(Integer, primary_key=True)
    fee_structure_id = Column(Integer, ForeignKey('fee_structures.id'), nullable=False)
    installment_number = Column(Integer, nullable=False)
    installment_name = Column(String(50))
    amount = Column(Float, nullable=False)
    due_date = Column(Date, nullable=False)


class StudentFeeAssignment(TenantModel):
    __tablename__ = 'student_fee_assignments'

    id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey('students.id'), nullable=False)
    fee_structure_id = Column(Integer, ForeignKey('fee_structures.id'), nullable=False)
    total_amount = Column(Float, nullable=False)
    discount_type = Column(String(20))
    discount_percentage = Column(Float, default=0)
    discount_amount = Column(Float, default=0)
    final_amount = Column(Float, nullable=False)
    paid_amount = Column(Float, default=0, nullable=False)
    balance_amount = Column(Float, nullable=False)
    status = Column(String(20), default='PENDING', nullable=False)  # PENDING, PARTIAL, PAID
    special_instructions = Column(String(255))
    assigned_by = Column(Integer)
    assigned_at = Column(DateTime, default=_now)

    fee_structure = relationship('FeeStructure')

    __table_args__ = (UniqueConstraint('student_id', 'fee_structure_id', name='unique_student_structure'),)

    def to_dict(self):
        return {
            'id': self.id,
            'student_id': self.student_id,
            'fee_structure_id': self.fee_structure_id,
            'total_amount': self.total_amount,
            'discount_type': self.discount_type,
            'discount_percentage': self.discount_percentage,
            'discount_amount': self.discount_amount,
            'final_amount': self.final_amount,
            'paid_amount': self.paid_amount,
            'balance_amount': self.balance_amount,
            'status': self.status,
        }


class FeeDiscountLog(TenantModel):
    __tablename__ = 'fee_discount_logs'

    id = Column(Integer, primary_key=True)
    assignment_id = Column(Integer, ForeignKey('student_fee_assignments.id'), nullable=False)
    discount_type = Column(String(20), nullable=False)
    discount_percentage = Column(Float)
    discount_amount = Column(Float, nullable=False)
    previous_final_amount = Column(Float)
    new_final_amount = Column(Float)
    reason = Column(Text)
    approved_by = Column(Integer)
    valid_until = Column(Date)
    created_at = Column(DateTime, default=_now)


class StudentServiceAssignment(TenantModel):
    __tablename__ = 'student_service_assignments'

    id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey('students.id'), nullable=False)
    service_type = Column(String(20), nullable=False)
    monthly_amount = Column(Float, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    months = Column(Integer, nullable=False)
    total_amount = Column(Float, nullable=False)
    details = Column(JSON)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=_now)

    def to_dict(self):
        return {
            'id': self.id,
            'student_id': self.student_id,
            'service_type': self.service_type,
            'monthly_amount': self.monthly_amount,
            'start_date': self.start_date,
            'end_date': self.end_date,
            'months': self.months,
            'total_amount': self.total_amount,
            'details': self.details,
        }


class LateFeeRule(TenantModel):
    __tablename__ = 'late_fee_rules'

    id = Column(Integer, primary_key=True)
    rule_name = Column(String(100))
    rule_type = Column(String(20), nullable=False)
    class_id = Column(Integer)
    student_id = Column(Integer)
    late_fee_percentage = Column(Float)
    late_fee_amount = Column(Float)
    grace_period_days = Column(Integer, default=0)
    max_late_fee = Column(Float)
    effective_from = Column(Date)
    is_active = Column(Boolean, default=True, nullable=False)
    created_by = Column(Integer)
    created_at = Column(DateTime, default=_now)

    def to_dict(self):
        return {
            'id': self.id,
            'rule_name': self.rule_name,
            'rule_type': self.rule_type,
            'class_id': self.class_id,
            'student_id': self.student_id,
            'late_fee_percentage': self.late_fee_percentage,
            'late_fee_amount': self.late_fee_amount,
            'grace_period_days': self.grace_period_days,
            'max_late_fee': self.max_late_fee,
            'effective_from': self.effective_from,
            'is_active': bool(self.is_active),
        }


class FeeReceipt(TenantModel):
    __tablename__ = 'fee_receipts'

    id = Column(Integer, primary_key=True)
    receipt_number = Column(String(30), nullable=False, unique=True)
    student_id = Column(Integer, ForeignKey('students.id'), nullable=False)
    amount = Column(Float, nullable=False)
    payment_mode = Column(String(20), nullable=False)
    payment_date = Column(Date, nullable=False)
    late_fee_amount = Column(Float, default=0)
    reference_number = Column(String(100))
    remarks = Column(Text)
    status = Column(String(20), nullable=False, default='PAID')
    collected_by = Column(Integer)
    created_at = Column(DateTime, default=_now)

    allocations = relationship('FeeReceiptAllocation', order_by='FeeReceiptAllocation.id')


class FeeReceiptAllocation(TenantModel):
    __tablename__ = 'fee_receipt_allocations'

    id = Column(Integer, primary_key=True)
    receipt_id = Column(Integer, ForeignKey('fee_receipts.id'), nullable=False)
    assignment_id = Column(Integer, ForeignKey('student_fee_assignments.id'), nullable=False)
    amount = Column(Float, nullable=False)


class PaymentTransaction(TenantModel):
    __tablename__ = 'payment_transactions'

    id = Column(Integer, primary_key=True)
    transaction_id = Column(String(50), nullable=False, unique=True)
    student_id = Column(Integer, ForeignKey('students.id'), nullable=False)
    amount = Column(Float, nullable=False)
    gateway = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default='INITIATED')
    payment_url = Column(String(500))
    return_url = Column(String(500))
    webhook_url = Column(String(500))
    gateway_metadata = Column('metadata', JSON)
    installment_ids = Column(JSON)
    initiated_by = Column(Integer)
    created_at = Column(DateTime, default=_now)


class FeeRefund(TenantModel):
    __tablename__ = 'fee_refunds'

    id = Column(Integer, primary_key=True)
    receipt_id = Column(Integer, ForeignKey('fee_receipts.id'), nullable=False)
    amount = Column(Float, nullable=False)
    refund_mode = Column(String(20), nullable=False)
    reason = Column(Text, nullable=False)
    bank_details = Column(JSON)
    status = Column(String(20), nullable=False, default='PROCESSED')
    processed_by = Column(Integer)
    processed_at = Column(DateTime, default=_now)


# Attendance

class AttendanceDaily(TenantModel):
    __tablename__ = 'attendance_daily'

    id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey('students.id'), nullable=False)
    class_id = Column(Integer, nullable=False)
    section_id = Column(Integer)
    attendance_date = Column(Date, nullable=False)
    status = Column(String(10), nullable=False)
    remarks = Column(String(255))
    arrival_time = Column(String(8))
    marked_by = Column(Integer)
    created_at = Column(DateTime, default=_now)

    __table_args__ = (UniqueConstraint('student_id', 'attendance_date', name='unique_student_day'),)


class AttendanceSummary(TenantModel):
    __tablename__ = 'attendance_summary'

    id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey('students.id'), nullable=False)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    total_days = Column(Integer, default=0, nullable=False)
    present_days = Column(Integer, default=0, nullable=False)
    absent_days = Column(Integer, default=0, nullable=False)
    late_days = Column(Integer, default=0, nullable=False)
    half_days = Column(Integer, default=0, nullable=False)
    attendance_percentage = Column(Float, default=0)
    updated_at = Column(DateTime, default=_now, onupdate=_now)

    __table_args__ = (UniqueConstraint('student_id', 'year', 'month', name='unique_student_month'),)


class LeaveApplication(TenantModel):
    __tablename__ = 'leave_applications'

    id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey('students.id'), nullable=False)
    leave_type = Column(String(20), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    total_days = Column(Integer, nullable=False)
    reason = Column(Text, nullable=False)
    documents = Column(JSON)
    contact_number = Column(String(15))
    status = Column(String(20), nullable=False, default='PENDING')
    applied_by = Column(Integer)
    created_at = Column(DateTime, default=_now)

    def to_dict(self):
        return {
            'id': self.id,
            'student_id': self.student_id,
            'leave_type': self.leave_type,
            'start_date': self.start_date,
            'end_date': self.end_date,
            'total_days': self.total_days,
            'reason': self.reason,
            'status': self.status,
            'created_at': self.created_at,
        }


# Reports

class Report(TenantModel):
    __tablename__ = 'reports'

    id = Column(Integer, primary_key=True)
    report_type = Column(String(50), nullable=False)
    report_name = Column(String(200))
    parameters = Column(JSON)
    result = Column(JSON)
    generated_by = Column(Integer)
    created_at = Column(DateTime, default=_now)


class ReportTemplate(TenantModel):
    __tablename__ = 'report_templates'

    id = Column(Integer, primary_key=True)
    template_name = Column(String(200), nullable=False)
    data_source = Column(String(30), nullable=False)
    definition = Column(JSON, nullable=False)
    created_by = Column(Integer)
    created_at = Column(DateTime, default=_now)


class ReportExport(TenantModel):
    __tablename__ = 'report_exports'

    id = Column(Integer, primary_key=True)
    report_id = Column(Integer, ForeignKey('reports.id'), nullable=False)
    export_format = Column(String(10), nullable=False)
    file_name = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)
    file_size = Column(Integer)
    expires_at = Column(DateTime, nullable=False)
    created_by = Column(Integer)
    created_at = Column(DateTime, default=_now)


class ExamResult(TenantModel):
    __tablename__ = 'exam_results'

    id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey('students.id'), nullable=False)
    class_id = Column(Integer, nullable=False)
    subject_id = Column(Integer, nullable=False)
    teacher_id = Column(Integer)
    academic_year_id = Column(Integer)
    exam_name = Column(String(100), nullable=False)
    exam_date = Column(Date)
    marks_obtained = Column(Float, nullable=False)
    max_marks = Column(Float, nullable=False, default=100)
    grade = Column(String(5))


# Communications

class MessageTemplate(TenantModel):
    __tablename__ = 'message_templates'

    id = Column(Integer, primary_key=True)
    template_name = Column(String(100), nullable=False)
    message_type = Column(String(20))
    subject = Column(String(255))
    body = Column(Text, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=_now)


class Message(TenantModel):
    __tablename__ = 'messages'

    id = Column(Integer, primary_key=True)
    message_type = Column(String(20), nullable=False)
    subject = Column(String(255))
    body = Column(Text, nullable=False)
    template_id = Column(Integer)
    recipient_type = Column(String(20))
    priority = Column(String(10), default='NORMAL')
    status = Column(String(20), nullable=False, default='PENDING')
    sender_id = Column(Integer)
    scheduled_at = Column(DateTime)
    sent_at = Column(DateTime)
    created_at = Column(DateTime, default=_now)


class MessageRecipient(TenantModel):
    __tablename__ = 'message_recipients'

    id = Column(Integer, primary_key=True)
    message_id = Column(Integer, ForeignKey('messages.id'), nullable=False)
    recipient_user_id = Column(Integer)
    recipient_name = Column(String(200))
    recipient_phone = Column(String(15))
    recipient_email = Column(String(255))
    status = Column(String(20), nullable=False, default='PENDING')
    error_message = Column(String(255))
    delivered_at = Column(DateTime)
    created_at = Column(DateTime, default=_now)


class CommunicationCampaign(TenantModel):
    __tablename__ = 'communication_campaigns'

    id = Column(Integer, primary_key=True)
    campaign_name = Column(String(200), nullable=False)
    campaign_type = Column(String(20), nullable=False)
    recipient_count = Column(Integer, default=0)
    status = Column(String(20), default='ACTIVE')
    created_by = Column(Integer)
    created_at = Column(DateTime, default=_now)


class Announcement(TenantModel):
    __tablename__ = 'announcements'

    id = Column(Integer, primary_key=True)
    campaign_id = Column(Integer, ForeignKey('communication_campaigns.id'))
    title = Column(String(200), nullable=False)
    content = Column(Text, nullable=False)
    audience = Column(String(20), nullable=False)
    school_id = Column(Integer)
    class_ids = Column(JSON)
    priority = Column(String(10), default='NORMAL')
    display_from = Column(DateTime, nullable=False)
    display_until = Column(DateTime)
    category = Column(String(20), default='GENERAL')
    is_dismissible = Column(Boolean, default=True, nullable=False)
    requires_acknowledgment = Column(Boolean, default=False, nullable=False)
    created_by = Column(Integer)
    created_at = Column(DateTime, default=_now)


class AnnouncementAttachment(TenantModel):
    __tablename__ = 'announcement_attachments'

    id = Column(Integer, primary_key=True)
    announcement_id = Column(Integer, ForeignKey('announcements.id'), nullable=False)
    file_name = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)
    file_size = Column(Integer)


class AnnouncementAcknowledgment(TenantModel):
    __tablename__ = 'announcement_acknowledgments'

    id = Column(Integer, primary_key=True)
    announcement_id = Column(Integer, ForeignKey('announcements.id'), nullable=False)
    user_id = Column(Integer, nullable=False)
    acknowledged_at = Column(DateTime, default=_now)


class EmergencyAlert(TenantModel):
    __tablename__ = 'emergency_alerts'

    id = Column(Integer, primary_key=True)
    campaign_id = Column(Integer, ForeignKey('communication_campaigns.id'))
    title = Column(String(200), nullable=False)
    alert_type = Column(String(20), nullable=False)
    message = Column(Text, nullable=False)
    severity = Column(String(20), nullable=False)
    channels = Column(JSON, nullable=False)
    audience = Column(String(20), nullable=False)
    school_ids = Column(JSON)
    class_ids = Column(JSON)
    requires_response = Column(Boolean, default=False, nullable=False)
    response_options = Column(JSON)
    auto_escalate = Column(Boolean, default=False, nullable=False)
    escalation_delay_minutes = Column(Integer)
    expires_at = Column(DateTime)
    created_by = Column(Integer)
    created_at = Column(DateTime, default=_now)


class AlertResponse(TenantModel):
    __tablename__ = 'alert_responses'

    id = Column(Integer, primary_key=True)
    alert_id = Column(Integer, ForeignKey('emergency_alerts.id'), nullable=False)
    user_id = Column(Integer, nullable=False)
    response = Column(String(100), nullable=False)
    responded_at = Column(DateTime, default=_now)


# Audit

class AuditLog(TenantModel):
    __tablename__ = 'audit_logs'

    id = Column(Integer, primary_key=True)
    trust_id = Column(Integer)
    user_id = Column(Integer)
    activity_id = Column(String(50))
    event_type = Column(String(50), nullable=False)
    entity_type = Column(String(50))
    entity_id = Column(Integer)
    details = Column(JSON)
    ip_address = Column(String(45))
    user_agent = Column(String(500))
    created_at = Column(DateTime, default=_now)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'activity_id': self.activity_id,
            'event_type': self.event_type,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'details': self.details,
            'created_at': self.created_at,
        }
