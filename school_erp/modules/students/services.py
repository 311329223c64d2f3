"""Student lifecycle: admission, review, promotion, transfer and records."""
import logging
from datetime import datetime

from sqlalchemy import func

from school_erp.audit import record_tenant_event
from school_erp.errors import BusinessRuleError, ConflictError, InvalidStateError, NotFoundError
from school_erp.models.tenant import (
    AcademicYear, AttendanceDaily, ExamResult, House, School, SchoolClass, Section, Student,
    StudentAdmission, StudentDocument, StudentPromotion, StudentSibling, StudentTransfer,
)
from school_erp.modules.common import get_or_404, money

logger = logging.getLogger(__name__)

PRESENT_STATUSES = ('PRESENT', 'LATE', 'HALF_DAY')


def list_students(session, filters):
    query = session.query(Student)
    for key in ('school_id', 'class_id', 'section_id', 'status'):
        if filters.get(key):
            query = query.filter(getattr(Student, key) == filters[key])
    if filters.get('search'):
        pattern = f"%{filters['search']}%"
        query = query.filter(
            Student.first_name.ilike(pattern) | Student.last_name.ilike(pattern)
            | Student.admission_number.ilike(pattern)
        )
    page = filters.get('page') or 1
    limit = filters.get('limit') or 50
    total = query.count()
    students = query.order_by(Student.id).offset((page - 1) * limit).limit(limit).all()
    return {
        'students': [student.to_dict() for student in students],
        'pagination': {'page': page, 'limit': limit, 'total': total},
    }


def get_student(session, student_id):
    student = get_or_404(session, Student, student_id, 'Student not found')
    result = student.to_dict()
    result['full_name'] = student.full_name
    result['admissions'] = [
        row.to_dict() for row in session.query(StudentAdmission).filter_by(student_id=student.id)
    ]
    result['documents'] = [
        row.to_dict() for row in session.query(StudentDocument).filter_by(student_id=student.id)
    ]
    result['sibling_ids'] = [
        row.sibling_id for row in session.query(StudentSibling).filter_by(student_id=student.id)
    ]
    return result


def _check_placement(session, school_id, academic_year_id, class_id, section_id=None):
    get_or_404(session, School, school_id, 'School not found')
    year = session.get(AcademicYear, academic_year_id)
    if year is None or year.school_id != school_id:
        raise NotFoundError('Academic year not found')
    school_class = session.get(SchoolClass, class_id)
    if school_class is None or school_class.school_id != school_id:
        raise NotFoundError('Class not found')
    if section_id is not None:
        section = session.get(Section, section_id)
        if section is None or section.class_id != class_id:
            raise NotFoundError('Section not found')
    return school_class


def admit_student(session, data, trust_id, user_id=None):
    if session.query(Student).filter_by(school_id=data['school_id'],
                                        admission_number=data['admission_number']).first():
        raise ConflictError('Admission number already exists for this school')
    _check_placement(session, data['school_id'], data['academic_year_id'], data['class_id'],
                     data.get('section_id'))
    if data.get('house_id'):
        house = session.get(House, data['house_id'])
        if house is None or house.school_id != data['school_id']:
            raise NotFoundError('House not found')

    student = Student(
        school_id=data['school_id'],
        academic_year_id=data['academic_year_id'],
        admission_number=data['admission_number'],
        first_name=data['first_name'],
        last_name=data['last_name'],
        date_of_birth=data['date_of_birth'],
        gender=data['gender'],
        class_id=data['class_id'],
        section_id=data.get('section_id'),
        house_id=data.get('house_id'),
        parent_name=data.get('father_name') or data.get('mother_name') or data.get('guardian_name'),
        parent_phone=data['contact_phone'],
        parent_email=data.get('contact_email'),
        address=data.get('address'),
        previous_school=data.get('previous_school'),
        medical_conditions=data.get('medical_conditions'),
        status='PENDING',
        is_active=False,
    )
    session.add(student)
    session.flush()

    admission = StudentAdmission(
        student_id=student.id,
        school_id=data['school_id'],
        academic_year_id=data['academic_year_id'],
        class_id=data['class_id'],
        application_date=data['application_date'],
        previous_school=data.get('previous_school'),
        status='PENDING',
    )
    session.add(admission)
    session.flush()
    record_tenant_event(session, 'ADMISSION_CREATED', trust_id=trust_id, user_id=user_id,
                        activity_id='04-001', entity_type='student', entity_id=student.id,
                        details={'admission_number': student.admission_number})
    session.commit()
    logger.info('Admission %s created for student %s', admission.id, student.admission_number)

    return {
        'student_id': student.id,
        'admission_id': admission.id,
        'school_id': student.school_id,
        'admission_number': student.admission_number,
        'first_name': student.first_name,
        'last_name': student.last_name,
        'status': admission.status,
        'application_date': admission.application_date,
        'created_at': admission.created_at,
    }


def review_admission(session, admission_id, data, trust_id, user_id=None):
    admission = get_or_404(session, StudentAdmission, admission_id, 'Admission not found')
    if admission.status != 'PENDING':
        raise InvalidStateError('Admission has already been processed')
    if data['status'] == 'APPROVED' and not data.get('admission_date'):
        raise BusinessRuleError('admission_date is required for approval')

    student = session.get(Student, admission.student_id)
    admission.status = data['status']
    admission.remarks = data.get('remarks')
    admission.reviewed_by = user_id
    admission.reviewed_at = datetime.utcnow()
    if data['status'] == 'APPROVED':
        admission.admission_date = data['admission_date']
        student.status = 'ACTIVE'
        student.is_active = True
    else:
        student.status = 'REJECTED'
        student.is_active = False

    record_tenant_event(session, f"ADMISSION_{data['status']}", trust_id=trust_id, user_id=user_id,
                        activity_id='04-002', entity_type='student_admission', entity_id=admission.id)
    session.commit()
    return {
        'admission_id': admission.id,
        'status': admission.status,
        'admission_date': admission.admission_date,
        'remarks': admission.remarks,
        'reviewed_by': user_id,
        'updated_at': admission.reviewed_at,
    }


def promote_student(session, data, user_id=None):
    student = get_or_404(session, Student, data['student_id'], 'Student not found')
    year = get_or_404(session, AcademicYear, data['academic_year_id'], 'Academic year not found')
    new_class = get_or_404(session, SchoolClass, data['new_class_id'], 'Class not found')
    current_class = session.get(SchoolClass, student.class_id) if student.class_id else None
    promotion_type = data['promotion_type']

    if data.get('new_section_id'):
        section = session.get(Section, data['new_section_id'])
        if section is None or section.class_id != new_class.id:
            raise NotFoundError('Section not found')

    if promotion_type == 'REPEAT' and new_class.id != student.class_id:
        raise BusinessRuleError('A repeating student must stay in the same class')
    if promotion_type == 'PROMOTION':
        if current_class is not None and new_class.class_order <= current_class.class_order:
            raise BusinessRuleError('Promotion must move the student to a higher class')
    if promotion_type == 'READMISSION':
        if student.is_active:
            raise InvalidStateError('Only inactive students can be readmitted')
        student.is_active = True
        student.status = 'ACTIVE'

    previous_class_id = student.class_id
    session.add(StudentPromotion(
        student_id=student.id,
        promotion_type=promotion_type,
        from_class_id=previous_class_id,
        to_class_id=new_class.id,
        to_section_id=data.get('new_section_id'),
        from_academic_year_id=student.academic_year_id,
        to_academic_year_id=year.id,
        promotion_date=data['effective_date'],
        remarks=data.get('remarks'),
        promoted_by=user_id,
    ))
    student.class_id = new_class.id
    student.section_id = data.get('new_section_id')
    student.academic_year_id = year.id
    student.roll_number = None
    session.commit()

    return {
        'student_id': student.id,
        'academic_year_id': year.id,
        'previous_class_id': previous_class_id,
        'new_class_id': new_class.id,
        'promotion_type': promotion_type,
        'effective_date': data['effective_date'],
        'updated_at': student.updated_at,
    }


def transfer_student(session, data, user_id=None):
    if data['from_school_id'] == data['to_school_id']:
        raise BusinessRuleError('Source and destination schools must differ')
    student = get_or_404(session, Student, data['student_id'], 'Student not found')
    get_or_404(session, School, data['from_school_id'], 'Source school not found')
    get_or_404(session, School, data['to_school_id'], 'Destination school not found')
    if student.school_id != data['from_school_id']:
        raise BusinessRuleError('Student does not belong to the source school')
    if session.query(StudentTransfer).filter_by(student_id=student.id, status='PENDING').first():
        raise ConflictError('Student already has a pending transfer')

    approved = bool(data.get('approve'))
    transfer = StudentTransfer(
        student_id=student.id,
        from_school_id=data['from_school_id'],
        to_school_id=data['to_school_id'],
        transfer_date=data['transfer_date'],
        reason=data.get('reason'),
        status='APPROVED' if approved else 'PENDING',
        requested_by=user_id,
        approved_by=user_id if approved else None,
    )
    session.add(transfer)
    session.commit()
    return {
        'transfer_id': transfer.id,
        'student_id': student.id,
        'from_school_id': transfer.from_school_id,
        'to_school_id': transfer.to_school_id,
        'transfer_date': transfer.transfer_date,
        'status': transfer.status,
        'created_at': transfer.created_at,
    }


def allocate_roll(session, student_id, data):
    student = get_or_404(session, Student, student_id, 'Student not found')
    section = get_or_404(session, Section, data['section_id'], 'Section not found')
    if section.class_id != student.class_id:
        raise BusinessRuleError("Section does not belong to the student's class")

    taken = session.query(Student).filter(
        Student.section_id == section.id,
        Student.academic_year_id == data['academic_year_id'],
        Student.roll_number == data['roll_number'],
        Student.id != student.id,
    ).first()
    if taken:
        raise ConflictError(f"Roll number {data['roll_number']} is already allocated in this section")

    previous = student.roll_number
    student.roll_number = data['roll_number']
    student.section_id = section.id
    student.academic_year_id = data['academic_year_id']
    session.commit()
    return {
        'student_id': student.id,
        'roll_number': student.roll_number,
        'section_id': section.id,
        'previous_roll': previous,
        'updated_at': student.updated_at,
    }


def update_details(session, student_id, data):
    student = get_or_404(session, Student, student_id, 'Student not found')
    sibling_ids = data.get('sibling_student_ids') or []
    if student.id in sibling_ids:
        raise BusinessRuleError('A student cannot be their own sibling')

    siblings = []
    for sibling_id in sibling_ids:
        siblings.append(get_or_404(session, Student, sibling_id, f'Sibling student {sibling_id} not found'))

    for field in ('category', 'subcaste', 'religion', 'nationality'):
        if data.get(field) is not None:
            setattr(student, field, data[field])

    linked = 0
    for sibling in siblings:
        for a, b in ((student.id, sibling.id), (sibling.id, student.id)):
            if not session.query(StudentSibling).filter_by(student_id=a, sibling_id=b).first():
                session.add(StudentSibling(student_id=a, sibling_id=b))
        linked += 1
    session.commit()

    return {
        'student_id': student.id,
        'siblings_linked': linked,
        'category': student.category,
        'subcaste': student.subcaste,
        'religion': student.religion,
        'nationality': student.nationality,
        'updated_at': student.updated_at,
    }


def add_document(session, data, user_id=None):
    get_or_404(session, Student, data['student_id'], 'Student not found')
    document = StudentDocument(
        student_id=data['student_id'],
        document_type=data['document_type'],
        document_name=data['file_name'],
        file_path=data['file_path'],
        file_size=data.get('file_size'),
        mime_type=data.get('mime_type'),
        description=data.get('description'),
        uploaded_by=user_id,
    )
    session.add(document)
    session.commit()
    return {
        'document_id': document.id,
        'student_id': document.student_id,
        'document_type': document.document_type,
        'file_name': document.document_name,
        'file_path': document.file_path,
        'file_size': document.file_size,
        'uploaded_at': document.uploaded_at,
    }


def _scoped(query, data, column_map):
    for key, column in column_map.items():
        if data.get(key):
            query = query.filter(column == data[key])
    return query


def _enrollment(session, data):
    query = session.query(SchoolClass.class_name, Student.status, func.count(Student.id)) \
        .join(SchoolClass, Student.class_id == SchoolClass.id)
    query = _scoped(query, data, {
        'school_id': Student.school_id,
        'academic_year_id': Student.academic_year_id,
        'class_id': Student.class_id,
    })
    by_class = {}
    by_status = {}
    for class_name, status, count in query.group_by(SchoolClass.class_name, Student.status):
        by_class.setdefault(class_name, {})[status] = count
        by_status[status] = by_status.get(status, 0) + count
    return {'total_students': sum(by_status.values()), 'by_class': by_class, 'by_status': by_status}


def _performance(session, data):
    percent = func.avg(ExamResult.marks_obtained * 100.0 / ExamResult.max_marks)
    query = session.query(SchoolClass.class_name, percent, func.count(ExamResult.id)) \
        .join(SchoolClass, ExamResult.class_id == SchoolClass.id)
    query = _scoped(query, data, {
        'school_id': SchoolClass.school_id,
        'academic_year_id': ExamResult.academic_year_id,
        'class_id': ExamResult.class_id,
    })
    if data.get('date_from'):
        query = query.filter(ExamResult.exam_date >= data['date_from'])
    if data.get('date_to'):
        query = query.filter(ExamResult.exam_date <= data['date_to'])
    by_class = {
        class_name: {'average_percentage': money(average), 'results': count}
        for class_name, average, count in query.group_by(SchoolClass.class_name)
    }
    return {'by_class': by_class}


def _attendance(session, data):
    query = session.query(SchoolClass.class_name, AttendanceDaily.status, func.count(AttendanceDaily.id)) \
        .join(SchoolClass, AttendanceDaily.class_id == SchoolClass.id)
    query = _scoped(query, data, {
        'school_id': SchoolClass.school_id,
        'academic_year_id': SchoolClass.academic_year_id,
        'class_id': AttendanceDaily.class_id,
    })
    if data.get('date_from'):
        query = query.filter(AttendanceDaily.attendance_date >= data['date_from'])
    if data.get('date_to'):
        query = query.filter(AttendanceDaily.attendance_date <= data['date_to'])

    totals = {}
    for class_name, status, count in query.group_by(SchoolClass.class_name, AttendanceDaily.status):
        entry = totals.setdefault(class_name, {'total': 0, 'present': 0})
        entry['total'] += count
        if status in PRESENT_STATUSES:
            entry['present'] += count
    by_class = {
        name: {
            'records': entry['total'],
            'attendance_rate': money(entry['present'] * 100.0 / entry['total']) if entry['total'] else 0.0,
        }
        for name, entry in totals.items()
    }
    return {'by_class': by_class}


def _demographics(session, data):
    base = _scoped(session.query(Student), data, {
        'school_id': Student.school_id,
        'academic_year_id': Student.academic_year_id,
        'class_id': Student.class_id,
    }).filter(Student.is_active.is_(True))
    by_gender = dict(base.with_entities(Student.gender, func.count(Student.id)).group_by(Student.gender).all())
    by_category = dict(
        base.with_entities(Student.category, func.count(Student.id)).group_by(Student.category).all()
    )
    return {
        'by_gender': {key or 'UNSPECIFIED': count for key, count in by_gender.items()},
        'by_category': {key or 'UNSPECIFIED': count for key, count in by_category.items()},
    }


ANALYTICS = {
    'ENROLLMENT': _enrollment,
    'PERFORMANCE': _performance,
    'ATTENDANCE': _attendance,
    'DEMOGRAPHICS': _demographics,
}


def analytics(session, data):
    if data.get('date_from') and data.get('date_to') and data['date_from'] > data['date_to']:
        raise BusinessRuleError('date_from cannot be after date_to')
    parameters = {k: v for k, v in data.items() if v is not None and k != 'analytics_type'}
    return {
        'analytics_type': data['analytics_type'],
        'data': ANALYTICS[data['analytics_type']](session, data),
        'generated_at': datetime.utcnow(),
        'parameters': parameters,
    }
