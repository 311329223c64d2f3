"""Staff, parents and their school assignments inside a trust."""
import logging
from datetime import date, datetime

from school_erp.audit import record_tenant_event
from school_erp.errors import BusinessRuleError, ConflictError, ForbiddenError, NotFoundError, ValidationError
from school_erp.models.tenant import (
    AcademicYear, ParentStudentLink, School, SchoolClass, Section, StaffDocument, Student, Subject,
    TeacherAssignment, User, UserProfile, UserRoleHistory, UserSchoolAssignment,
)
from school_erp.modules.common import get_or_404
from school_erp.modules.setup.services import split_name
from school_erp.rbac import ACCOUNTANT, PARENT, SCHOOL_ADMIN, SYSTEM_ROLES, TEACHER, TRUST_ADMIN
from school_erp.security import hash_password

logger = logging.getLogger(__name__)

SCHOOL_LEVEL_ROLES = (SCHOOL_ADMIN, TEACHER, ACCOUNTANT)
MAX_WEEKLY_WORKLOAD = 40

DEFAULT_PERMISSIONS = {
    'TRUST_ADMIN': ['all'],
    'SCHOOL_ADMIN': ['school_management', 'user_management', 'student_management'],
    'TEACHER': ['class_management', 'attendance', 'grades'],
    'ACCOUNTANT': ['fee_management', 'financial_reports'],
    'PARENT': ['view_child_data', 'fee_payment'],
    'STUDENT': ['view_own_data'],
}


def default_permissions(role):
    return list(DEFAULT_PERMISSIONS.get(role, []))


def list_users(session, filters):
    query = session.query(User)
    if filters.get('role'):
        query = query.filter(User.role == filters['role'])
    if filters.get('school_id'):
        query = query.filter(User.school_id == filters['school_id'])
    if filters.get('search'):
        pattern = f"%{filters['search']}%"
        query = query.filter(
            User.email.ilike(pattern) | User.first_name.ilike(pattern) | User.last_name.ilike(pattern)
        )

    page = filters.get('page') or 1
    limit = filters.get('limit') or 50
    total = query.count()
    users = query.order_by(User.id).offset((page - 1) * limit).limit(limit).all()
    return {
        'users': [user.to_dict() for user in users],
        'pagination': {'page': page, 'limit': limit, 'total': total},
    }


def get_user(session, user_id):
    user = get_or_404(session, User, user_id, 'User not found')
    result = user.to_dict()
    result['full_name'] = user.full_name
    result['permissions'] = user.permissions or default_permissions(user.role)
    result['last_login'] = user.last_login
    result['assignments'] = [
        {'school_id': row.school_id, 'role': row.role, 'is_primary': bool(row.is_primary)}
        for row in session.query(UserSchoolAssignment).filter_by(user_id=user.id, is_active=True)
    ]
    profile = session.query(UserProfile).filter_by(user_id=user.id).first()
    if profile is not None:
        result['profile'] = {
            'employee_id': profile.employee_id,
            'designation': profile.designation,
            'department': profile.department,
            'date_of_joining': profile.joining_date,
        }
    return result


def create_user(session, data, trust_id, user_id=None):
    role = data['role']
    if data.get('school_id') and role not in SCHOOL_LEVEL_ROLES:
        if role == TRUST_ADMIN:
            raise BusinessRuleError('Trust-level roles cannot be assigned to a specific school')
        raise BusinessRuleError('Only school-level roles can be assigned to a specific school')
    if data.get('school_id'):
        get_or_404(session, School, data['school_id'], 'School not found')
    if session.query(User).filter_by(email=data['email']).first():
        raise ConflictError('User with this email already exists')

    first_name, last_name = split_name(data['full_name'])
    user = User(
        email=data['email'],
        password_hash=hash_password(data['password']),
        first_name=first_name,
        last_name=last_name,
        phone=data.get('phone'),
        role=role,
        school_id=data.get('school_id'),
        permissions=default_permissions(role),
        is_active=data.get('is_active', True),
    )
    session.add(user)
    session.flush()

    profile_fields = ('employee_id', 'designation', 'department', 'date_of_joining', 'qualification',
                      'address', 'emergency_contact_name', 'emergency_contact_phone')
    if any(data.get(field) for field in profile_fields):
        session.add(UserProfile(
            user_id=user.id,
            employee_id=data.get('employee_id'),
            designation=data.get('designation'),
            department=data.get('department'),
            joining_date=data.get('date_of_joining'),
            qualification=data.get('qualification'),
            address=data.get('address'),
            emergency_contact_name=data.get('emergency_contact_name'),
            emergency_contact=data.get('emergency_contact_phone'),
        ))

    record_tenant_event(session, 'USER_CREATED', trust_id=trust_id, user_id=user_id, activity_id='03-001',
                        entity_type='user', entity_id=user.id, details={'role': role})
    session.commit()
    logger.info('Created %s user %s', role, user.email)

    result = user.to_dict()
    result.pop('id')
    result.update(
        user_id=user.id,
        full_name=user.full_name,
        trust_id=trust_id,
        employee_id=data.get('employee_id'),
        designation=data.get('designation'),
        department=data.get('department'),
        updated_at=user.updated_at,
    )
    return result


def assign_school(session, data, user_id=None):
    user = get_or_404(session, User, data['user_id'], 'User not found')
    get_or_404(session, School, data['school_id'], 'School not found')
    if data['role'] not in SCHOOL_LEVEL_ROLES:
        raise BusinessRuleError('Invalid role for school assignment')
    if data.get('start_date') and data.get('end_date') and data['end_date'] < data['start_date']:
        raise BusinessRuleError('end_date cannot be before start_date')

    existing = session.query(UserSchoolAssignment).filter_by(
        user_id=user.id, school_id=data['school_id'], role=data['role'], is_active=True,
    ).first()
    if existing:
        raise ConflictError('User already has an active assignment to this school with this role')

    if data.get('is_primary'):
        session.query(UserSchoolAssignment).filter_by(user_id=user.id, is_primary=True) \
            .update({'is_primary': False})

    assignment = UserSchoolAssignment(
        user_id=user.id,
        school_id=data['school_id'],
        role=data['role'],
        is_primary=bool(data.get('is_primary')),
        start_date=data.get('start_date') or date.today(),
        end_date=data.get('end_date'),
        permissions=data.get('permissions') or [],
        assigned_by=user_id,
    )
    session.add(assignment)
    session.commit()
    return {
        'assignment_id': assignment.id,
        'user_id': assignment.user_id,
        'school_id': assignment.school_id,
        'role': assignment.role,
        'is_primary': bool(assignment.is_primary),
        'is_active': bool(assignment.is_active),
        'created_at': assignment.assigned_at,
    }


def change_role(session, data, caller, trust_id):
    user = get_or_404(session, User, data['user_id'], 'Target user not found')

    if data['role'] == TRUST_ADMIN and caller.get('role') != TRUST_ADMIN \
            and caller.get('role') not in SYSTEM_ROLES:
        raise ForbiddenError('Only TRUST_ADMIN can assign TRUST_ADMIN role')

    effective = data.get('effective_date') or datetime.utcnow()
    expiry = data.get('expiry_date')
    if expiry is not None and effective >= expiry:
        raise ValidationError('Expiry date must be after effective date')

    permissions = data.get('permissions') or default_permissions(data['role'])
    old_role = user.role
    user.role = data['role']
    user.permissions = permissions
    if data['role'] == TRUST_ADMIN:
        user.school_id = None

    session.add(UserRoleHistory(
        user_id=user.id,
        previous_role=old_role,
        new_role=data['role'],
        permissions=permissions,
        effective_date=effective.date(),
        expiry_date=expiry.date() if expiry else None,
        reason=data.get('reason'),
        changed_by=caller.get('user_id'),
    ))
    record_tenant_event(session, 'ROLE_CHANGED', trust_id=trust_id, user_id=caller.get('user_id'),
                        activity_id='03-003', entity_type='user', entity_id=user.id,
                        details={'old_role': old_role, 'new_role': data['role']})
    session.commit()
    return {
        'user_id': user.id,
        'old_role': old_role,
        'new_role': user.role,
        'permissions_granted': permissions,
        'effective_date': effective,
        'updated_by': caller.get('user_id'),
        'updated_at': datetime.utcnow(),
    }


def allocate_teacher(session, data):
    teacher = get_or_404(session, User, data['teacher_id'], 'Teacher not found')
    if teacher.role != TEACHER:
        raise BusinessRuleError('User is not a teacher')
    year = get_or_404(session, AcademicYear, data['academic_year_id'], 'Academic year not found')

    classes = []
    for class_id in data['class_ids']:
        school_class = session.get(SchoolClass, class_id)
        if school_class is None:
            raise NotFoundError(f'Class with ID {class_id} not found')
        classes.append(school_class)

    is_class_teacher = bool(data.get('is_class_teacher'))
    if is_class_teacher and len(classes) > 1:
        raise BusinessRuleError('A teacher can be class teacher for only one class')
    if is_class_teacher:
        current = session.query(TeacherAssignment).filter_by(
            class_id=classes[0].id, academic_year_id=year.id, is_class_teacher=True,
        ).first()
        if current is not None and current.teacher_id != teacher.id:
            raise ConflictError('Class already has a class teacher assigned')

    workload = data.get('workload_hours') or 0
    if workload > MAX_WEEKLY_WORKLOAD:
        raise BusinessRuleError(f'Weekly workload cannot exceed {MAX_WEEKLY_WORKLOAD} hours')

    sections = {s.id: s for s in session.query(Section).filter(Section.id.in_(data.get('section_ids') or []))}
    subjects = {s.id: s for s in session.query(Subject).filter(Subject.id.in_(data.get('subject_ids') or []))}

    session.query(TeacherAssignment).filter_by(teacher_id=teacher.id, academic_year_id=year.id).delete()

    allocations = []
    created = []
    for school_class in classes:
        class_sections = [s for s in sections.values() if s.class_id == school_class.id] or [None]
        for section in class_sections:
            for subject in list(subjects.values()) or [None]:
                row = TeacherAssignment(
                    teacher_id=teacher.id,
                    academic_year_id=year.id,
                    class_id=school_class.id,
                    section_id=section.id if section else None,
                    subject_id=subject.id if subject else None,
                    is_class_teacher=is_class_teacher,
                    workload_hours=workload,
                )
                session.add(row)
                created.append(row)
                allocations.append({
                    'class_id': school_class.id,
                    'class_name': school_class.class_name,
                    'section_id': section.id if section else None,
                    'section_name': section.section_name if section else None,
                    'subject_id': subject.id if subject else None,
                    'subject_name': subject.subject_name if subject else None,
                    'is_class_teacher': is_class_teacher,
                })

    if is_class_teacher:
        for section in sections.values():
            if section.class_id == classes[0].id:
                section.class_teacher_id = teacher.id
    session.commit()

    return {
        'allocation_id': created[0].id,
        'teacher_id': teacher.id,
        'teacher_name': teacher.full_name,
        'allocations': allocations,
        'total_workload_hours': workload,
        'academic_year': year.year_name,
        'created_at': created[0].created_at,
    }


def _apply(obj, values, changes, label):
    changed = False
    for attr, value in values.items():
        if value is not None and getattr(obj, attr) != value:
            setattr(obj, attr, value)
            changed = True
    if changed:
        changes.append(label)


def update_profile(session, data):
    user = get_or_404(session, User, data['user_id'], 'User not found')
    personal = data['personal_info']
    professional = data['professional_info']

    joining = professional.get('date_of_joining')
    if joining and joining > date.today():
        raise BusinessRuleError('Date of joining cannot be in the future')

    profile = session.query(UserProfile).filter_by(user_id=user.id).first()
    if profile is None:
        profile = UserProfile(user_id=user.id)
        session.add(profile)

    changes = []
    first_name, last_name = split_name(personal['full_name'])
    _apply(user, {'first_name': first_name, 'last_name': last_name, 'phone': personal.get('phone')},
           changes, 'personal_info')
    _apply(profile, {
        'address': personal.get('address'),
        'date_of_birth': personal.get('date_of_birth'),
        'gender': personal.get('gender'),
        'marital_status': personal.get('marital_status'),
    }, changes, 'personal_details')
    _apply(profile, {
        'employee_id': professional.get('employee_id'),
        'designation': professional.get('designation'),
        'department': professional.get('department'),
        'joining_date': joining,
        'qualification': professional.get('qualification'),
        'experience_years': professional.get('experience_years'),
        'specialization': professional.get('specialization'),
    }, changes, 'professional_info')

    contact = data.get('emergency_contact')
    if contact:
        _apply(profile, {
            'emergency_contact_name': contact['name'],
            'emergency_contact': contact['phone'],
            'emergency_contact_relationship': contact['relationship'],
        }, changes, 'emergency_contact')

    documents = data.get('documents') or []
    for item in documents:
        document = session.query(StaffDocument).filter_by(user_id=user.id,
                                                          document_type=item['document_type']).first()
        if document is None:
            document = StaffDocument(user_id=user.id, document_type=item['document_type'])
            session.add(document)
        document.document_number = item['document_number']
        document.file_path = item.get('file_path')
    if documents:
        changes.append('documents')

    session.commit()
    return {
        'user_id': user.id,
        'profile_updated': bool(changes),
        'changes_made': changes,
        'personal_info': {'full_name': user.full_name, 'phone': user.phone, 'address': profile.address},
        'professional_info': {
            'employee_id': profile.employee_id,
            'designation': profile.designation,
            'department': profile.department,
            'date_of_joining': profile.joining_date,
        },
        'updated_at': datetime.utcnow(),
    }


def link_parent(session, data):
    parent = get_or_404(session, User, data['parent_user_id'], 'Parent user not found')
    if parent.role != PARENT:
        raise BusinessRuleError('User is not a parent')
    student = get_or_404(session, Student, data['student_id'], 'Student not found')
    relationship = data['relationship']

    links = session.query(ParentStudentLink).filter_by(student_id=student.id)
    if data.get('is_primary'):
        primary = links.filter_by(relationship_type=relationship, is_primary=True).first()
        if primary is not None and primary.parent_id != parent.id:
            raise ConflictError(f'Student already has a primary {relationship.lower()}')
    if links.filter_by(parent_id=parent.id).first():
        raise ConflictError('Parent-student link already exists')

    priority = data.get('emergency_contact_priority')
    if priority and links.filter_by(emergency_priority=priority).first():
        raise ConflictError(f'Emergency contact priority {priority} is already assigned to another parent')

    link = ParentStudentLink(
        parent_id=parent.id,
        student_id=student.id,
        relationship_type=relationship,
        is_primary=bool(data.get('is_primary')),
        emergency_priority=priority,
        can_pickup=data.get('can_pickup', True),
        has_financial_responsibility=bool(data.get('has_financial_responsibility')),
        notes=data.get('notes'),
    )
    session.add(link)
    session.commit()
    return {
        'link_id': link.id,
        'parent_user_id': parent.id,
        'parent_name': parent.full_name,
        'parent_email': parent.email,
        'student_id': student.id,
        'student_name': student.full_name,
        'student_admission_number': student.admission_number,
        'relationship': relationship,
        'is_primary': bool(link.is_primary),
        'permissions': {
            'has_financial_responsibility': bool(link.has_financial_responsibility),
            'can_pickup': bool(link.can_pickup),
            'emergency_contact_priority': priority,
        },
        'created_at': link.created_at,
    }
