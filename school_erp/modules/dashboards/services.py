"""Read-only dashboards for trust admins, school admins and teachers."""
import logging
from datetime import date, datetime, timedelta

from sqlalchemy import case, func

from school_erp.errors import ForbiddenError, ValidationError
from school_erp.models.tenant import (
    AcademicYear, AttendanceDaily, AuditLog, FeeReceipt, LeaveApplication, School, SchoolClass, Section,
    Student, StudentFeeAssignment, TeacherAssignment, User, UserProfile,
)
from school_erp.modules.attendance.services import class_section_label, percentage, student_attendance_rows
from school_erp.modules.common import get_or_404, money
from school_erp.modules.fees.services import defaulters
from school_erp.rbac import SCHOOL_ADMIN, TEACHER

logger = logging.getLogger(__name__)

CRITICAL_BALANCE = 10000
LOW_ATTENDANCE = 75
CRITICAL_ATTENDANCE = 50
RECENT_ACTIVITY_LIMIT = 10
TOP_LIMIT = 5


def resolve_period(data, today=None):
    """Turn a named time range into an inclusive ``(date_from, date_to)`` pair."""
    today = today or date.today()
    time_range = data.get('time_range') or 'THIS_MONTH'
    if time_range == 'CUSTOM':
        return data['date_from'], data['date_to']
    if time_range == 'TODAY':
        return today, today
    if time_range == 'YESTERDAY':
        yesterday = today - timedelta(days=1)
        return yesterday, yesterday
    week_start = today - timedelta(days=today.weekday())
    if time_range == 'THIS_WEEK':
        return week_start, today
    if time_range == 'LAST_WEEK':
        return week_start - timedelta(days=7), week_start - timedelta(days=1)
    month_start = today.replace(day=1)
    if time_range == 'LAST_MONTH':
        last_month_end = month_start - timedelta(days=1)
        return last_month_end.replace(day=1), last_month_end
    if time_range == 'THIS_YEAR':
        return today.replace(month=1, day=1), today
    return month_start, today


def _present_count():
    return func.sum(case((AttendanceDaily.status == 'PRESENT', 1), else_=0))


def _attendance_by(session, key, date_from, date_to, *filters):
    """``{key: (present, total)}`` over attendance of students matching ``filters``."""
    query = session.query(key, _present_count(), func.count(AttendanceDaily.id)) \
        .select_from(AttendanceDaily) \
        .join(Student, AttendanceDaily.student_id == Student.id) \
        .filter(AttendanceDaily.attendance_date.between(date_from, date_to), *filters) \
        .group_by(key)
    return {row[0]: (row[1] or 0, row[2] or 0) for row in query}


def _collected_by(session, key, date_from, date_to, *filters):
    query = session.query(key, func.sum(FeeReceipt.amount)) \
        .select_from(FeeReceipt) \
        .join(Student, FeeReceipt.student_id == Student.id) \
        .filter(FeeReceipt.payment_date.between(date_from, date_to), *filters) \
        .group_by(key)
    return {row[0]: money(row[1]) for row in query}


def _pending_by(session, key, *filters):
    query = session.query(key, func.sum(StudentFeeAssignment.balance_amount)) \
        .select_from(StudentFeeAssignment) \
        .join(Student, StudentFeeAssignment.student_id == Student.id) \
        .filter(*filters).group_by(key)
    return {row[0]: money(row[1]) for row in query}


def _count_by(session, key, *filters):
    return dict(session.query(key, func.count()).filter(*filters).group_by(key).all())


def _rate(counts):
    present, total = counts
    return percentage(present, total)


def _combined_rate(counts):
    present = sum(item[0] for item in counts)
    total = sum(item[1] for item in counts)
    return percentage(present, total)


def _collection_trends(session, date_from, date_to, *filters):
    query = session.query(FeeReceipt.payment_date, func.sum(FeeReceipt.amount)) \
        .join(Student, FeeReceipt.student_id == Student.id) \
        .filter(FeeReceipt.payment_date.between(date_from, date_to), *filters) \
        .group_by(FeeReceipt.payment_date).order_by(FeeReceipt.payment_date)
    return [{'period': day.isoformat(), 'collected': money(amount)} for day, amount in query]


def _time_period(date_from, date_to):
    return {'from': date_from, 'to': date_to}


# Trust dashboard

def trust_dashboard(session, data, today=None):
    date_from, date_to = resolve_period(data, today)

    schools_query = session.query(School).filter(School.is_active.is_(True))
    if data.get('school_ids'):
        schools_query = schools_query.filter(School.id.in_(data['school_ids']))
    schools = schools_query.order_by(School.id).all()
    ids = [school.id for school in schools]
    in_schools = Student.school_id.in_(ids)

    students = _count_by(session, Student.school_id, Student.is_active.is_(True), in_schools)
    teachers = _count_by(session, User.school_id, User.role == TEACHER, User.is_active.is_(True),
                         User.school_id.in_(ids))
    collected = _collected_by(session, Student.school_id, date_from, date_to, in_schools)
    pending = _pending_by(session, Student.school_id, in_schools)
    attendance = _attendance_by(session, Student.school_id, date_from, date_to, in_schools)

    total_collected = money(sum(collected.values()))
    total_pending = money(sum(pending.values()))
    now = datetime.utcnow()
    overview = []
    for school in schools:
        school_collected = collected.get(school.id, 0.0)
        overview.append({
            'school_id': school.id,
            'school_name': school.school_name,
            'student_count': students.get(school.id, 0),
            'teacher_count': teachers.get(school.id, 0),
            'fee_collection_rate': percentage(school_collected, school_collected + pending.get(school.id, 0.0)),
            'attendance_rate': _rate(attendance.get(school.id, (0, 0))),
            'last_updated': now,
        })

    result = {
        'dashboard_type': 'TRUST_ADMIN',
        'time_period': _time_period(date_from, date_to),
        'summary': {
            'total_schools': len(schools),
            'total_students': sum(students.values()),
            'total_teachers': sum(teachers.values()),
            'total_revenue': total_collected,
            'pending_fees': total_pending,
            'overall_attendance_rate': _combined_rate(attendance.values()),
        },
        'schools_overview': overview,
        'generated_at': now,
    }

    if data.get('include_financial'):
        names = {school.id: school.school_name for school in schools}
        student_schools = dict(session.query(Student.id, Student.school_id).filter(in_schools))
        top = [row for row in defaulters(session, date_to) if row['student_id'] in student_schools][:TOP_LIMIT]
        financial = {
            'collection_efficiency': percentage(total_collected, total_collected + total_pending),
            'top_defaulters': [
                {
                    'school_name': names[student_schools[row['student_id']]],
                    'student_name': row['student_name'],
                    'pending_amount': row['outstanding_amount'],
                    'overdue_days': row['overdue_days'],
                }
                for row in top
            ],
        }
        if data.get('include_trends'):
            financial['revenue_trends'] = _collection_trends(session, date_from, date_to, in_schools)
        result['financial_summary'] = financial

    if data.get('include_analytics'):
        monthly = {}
        query = session.query(AttendanceDaily.attendance_date, AttendanceDaily.status) \
            .join(Student, AttendanceDaily.student_id == Student.id) \
            .filter(AttendanceDaily.attendance_date.between(date_from, date_to), in_schools)
        for day, status in query:
            counts = monthly.setdefault(day.strftime('%Y-%m'), [0, 0])
            counts[0] += status == 'PRESENT'
            counts[1] += 1
        result['attendance_analytics'] = {
            'attendance_trends': [
                {'period': period, 'attendance_rate': _rate(counts)} for period, counts in sorted(monthly.items())
            ],
            'school_comparison': [
                {'school_name': row['school_name'], 'attendance_rate': row['attendance_rate']} for row in overview
            ],
        }
    return result


# School dashboard

def _dashboard_school_id(data, user):
    school_id = data.get('school_id') or user.get('school_id')
    if not school_id:
        raise ValidationError('school_id is required')
    if user.get('role') == SCHOOL_ADMIN and user.get('school_id') and school_id != user['school_id']:
        raise ForbiddenError('Access denied for this school')
    return school_id


def _recent_activities(session, limit=RECENT_ACTIVITY_LIMIT):
    rows = session.query(AuditLog, User).outerjoin(User, AuditLog.user_id == User.id) \
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit)
    return [
        {
            'activity_type': log.event_type,
            'description': f"{log.event_type} - {log.entity_type or 'System'}",
            'timestamp': log.created_at,
            'user_name': user.full_name if user is not None else 'System',
        }
        for log, user in rows
    ]


def school_dashboard(session, data, user, today=None):
    date_from, date_to = resolve_period(data, today)
    school = get_or_404(session, School, _dashboard_school_id(data, user), 'School not found')
    year = session.query(AcademicYear).filter_by(school_id=school.id, is_current=True).first()

    student_filters = [Student.school_id == school.id]
    classes_query = session.query(SchoolClass).filter(SchoolClass.school_id == school.id,
                                                      SchoolClass.is_active.is_(True))
    if data.get('class_ids'):
        student_filters.append(Student.class_id.in_(data['class_ids']))
        classes_query = classes_query.filter(SchoolClass.id.in_(data['class_ids']))
    classes = classes_query.order_by(SchoolClass.class_order, SchoolClass.id).all()

    students = _count_by(session, Student.class_id, Student.is_active.is_(True), *student_filters)
    collected = _collected_by(session, Student.class_id, date_from, date_to, *student_filters)
    pending = _pending_by(session, Student.class_id, *student_filters)
    attendance = _attendance_by(session, Student.class_id, date_from, date_to, *student_filters)
    teachers = session.query(User).filter(User.school_id == school.id, User.role == TEACHER,
                                          User.is_active.is_(True)).all()

    total_students = sum(students.values())
    result = {
        'dashboard_type': 'SCHOOL_ADMIN',
        'school_info': {
            'school_id': school.id,
            'school_name': school.school_name,
            'academic_year': year.year_name if year else None,
        },
        'time_period': _time_period(date_from, date_to),
        'summary': {
            'total_students': total_students,
            'total_teachers': len(teachers),
            'total_classes': len(classes),
            'total_fee_collected': money(sum(collected.values())),
            'pending_fees': money(sum(pending.values())),
            'average_attendance': _combined_rate(attendance.values()),
        },
        'recent_activities': _recent_activities(session),
        'generated_at': datetime.utcnow(),
    }

    class_ids = [c.id for c in classes]
    assigned_classes = set()
    if class_ids:
        assigned_classes = {row[0] for row in session.query(TeacherAssignment.class_id)
                            .filter(TeacherAssignment.class_id.in_(class_ids))}
        assigned_classes |= {row[0] for row in session.query(Section.class_id)
                             .filter(Section.class_id.in_(class_ids), Section.class_teacher_id.isnot(None))}

    if data.get('include_class_breakdown'):
        result['class_analytics'] = [
            {
                'class_id': c.id,
                'class_name': c.class_name,
                'student_count': students.get(c.id, 0),
                'attendance_rate': _rate(attendance.get(c.id, (0, 0))),
                'fee_collection_rate': percentage(collected.get(c.id, 0.0),
                                                  collected.get(c.id, 0.0) + pending.get(c.id, 0.0)),
                'teacher_assigned': c.id in assigned_classes,
            }
            for c in classes
        ]

    if data.get('include_fee_analytics'):
        school_students = {row[0] for row in session.query(Student.id).filter(*student_filters)}
        overdue = [row for row in defaulters(session, date_to) if row['student_id'] in school_students]
        result['fee_analytics'] = {
            'collection_trends': _collection_trends(session, date_from, date_to, *student_filters),
            'defaulter_summary': {
                'total_defaulters': len(overdue),
                'total_pending': money(sum(row['outstanding_amount'] for row in overdue)),
                'critical_cases': sum(1 for row in overdue if row['outstanding_amount'] > CRITICAL_BALANCE),
            },
        }

    if data.get('include_staff_summary'):
        teacher_ids = [t.id for t in teachers]
        allocated = set()
        if teacher_ids:
            allocated = {row[0] for row in session.query(TeacherAssignment.teacher_id)
                         .filter(TeacherAssignment.teacher_id.in_(teacher_ids))}
        result['staff_summary'] = {
            'active_teachers': len(teachers),
            'teacher_student_ratio': money(total_students / len(teachers)) if teachers else 0.0,
            'pending_assignments': len(set(teacher_ids) - allocated),
        }
    return result


# Teacher dashboard

def _teacher_sections(session, teacher_id, class_ids=None):
    query = session.query(TeacherAssignment, SchoolClass) \
        .join(SchoolClass, TeacherAssignment.class_id == SchoolClass.id) \
        .filter(TeacherAssignment.teacher_id == teacher_id)
    if class_ids:
        query = query.filter(TeacherAssignment.class_id.in_(class_ids))

    seen = {}
    for assignment, school_class in query.order_by(SchoolClass.class_order, TeacherAssignment.id):
        seen.setdefault((school_class.id, assignment.section_id), school_class)
    return seen


def _today_attendance(session, class_id, section_id, day):
    query = session.query(AttendanceDaily.status, func.count(AttendanceDaily.id)) \
        .filter(AttendanceDaily.class_id == class_id, AttendanceDaily.attendance_date == day)
    if section_id:
        query = query.filter(AttendanceDaily.section_id == section_id)
    counts = dict(query.group_by(AttendanceDaily.status).all())
    return {
        'present': counts.get('PRESENT', 0),
        'absent': counts.get('ABSENT', 0),
        'marked': bool(counts),
    }


def _student_issues(row):
    issues = ['Critical attendance' if row['attendance_percentage'] < CRITICAL_ATTENDANCE else 'Low attendance']
    if row['absent_days'] >= 3:
        issues.append(f"{row['absent_days']} absences in period")
    return issues


def teacher_dashboard(session, data, user, today=None):
    today = today or date.today()
    date_from, date_to = resolve_period(data, today)
    teacher = get_or_404(session, User, user.get('user_id'), 'Teacher not found')
    profile = session.query(UserProfile).filter_by(user_id=teacher.id).first()

    sections = _teacher_sections(session, teacher.id, data.get('class_ids'))
    section_names = {}
    if sections:
        section_ids = [section_id for _, section_id in sections if section_id]
        section_names = dict(session.query(Section.id, Section.section_name).filter(Section.id.in_(section_ids))) \
            if section_ids else {}

    my_classes = []
    student_rows = []
    upcoming = []
    for (class_id, section_id), school_class in sections.items():
        rows = student_attendance_rows(session, date_from, date_to, class_id=class_id, section_id=section_id)
        student_rows.extend(rows)
        today_counts = _today_attendance(session, class_id, section_id, today)
        my_classes.append({
            'class_id': class_id,
            'class_name': school_class.class_name,
            'section': section_names.get(section_id),
            'student_count': len(rows),
            'today_attendance': today_counts,
            'recent_attendance_rate': _combined_rate(
                [(row['present_days'], row['total_days']) for row in rows]
            ),
        })
        if not today_counts['marked'] and today.weekday() < 5:
            label = class_section_label(school_class.class_name, section_names.get(section_id))
            upcoming.append({
                'task_type': 'ATTENDANCE_MARKING',
                'description': f'Mark attendance for {label}',
                'due_date': today,
                'priority': 'HIGH',
            })

    student_ids = [row['student_id'] for row in student_rows]
    if student_ids:
        leaves = session.query(LeaveApplication).filter(
            LeaveApplication.student_id.in_(student_ids),
            LeaveApplication.status == 'PENDING',
        ).order_by(LeaveApplication.start_date)
        names = {row['student_id']: row['student_name'] for row in student_rows}
        for leave in leaves:
            upcoming.append({
                'task_type': 'LEAVE_APPROVAL',
                'description': f"Review {leave.leave_type.lower()} leave for {names[leave.student_id]}",
                'due_date': leave.start_date,
                'priority': 'MEDIUM',
            })

    result = {
        'dashboard_type': 'TEACHER',
        'teacher_info': {
            'teacher_id': teacher.id,
            'teacher_name': teacher.full_name,
            'designation': profile.designation if profile else None,
        },
        'time_period': _time_period(date_from, date_to),
        'summary': {
            'total_classes': len(my_classes),
            'total_students': len(student_rows),
            'classes_today': sum(1 for c in my_classes if c['today_attendance']['marked']),
            'average_attendance': _combined_rate(
                [(row['present_days'], row['total_days']) for row in student_rows]
            ),
            'pending_tasks': len(upcoming),
        },
        'my_classes': my_classes,
        'upcoming_tasks': upcoming,
        'generated_at': datetime.utcnow(),
    }

    if data.get('include_attendance_details'):
        daily = {}
        if student_ids:
            query = session.query(AttendanceDaily.attendance_date, _present_count(), func.count(AttendanceDaily.id)) \
                .filter(AttendanceDaily.student_id.in_(student_ids),
                        AttendanceDaily.attendance_date.between(date_from, date_to)) \
                .group_by(AttendanceDaily.attendance_date).order_by(AttendanceDaily.attendance_date)
            daily = {day: (present or 0, total or 0) for day, present, total in query}
        result['attendance_summary'] = {
            'weekly_trends': [{'date': day, 'attendance_rate': _rate(counts)} for day, counts in daily.items()],
            'class_comparison': [
                {'class_name': c['class_name'], 'attendance_rate': c['recent_attendance_rate']} for c in my_classes
            ],
        }

    if data.get('include_student_performance'):
        recorded = [row for row in student_rows if row['total_days']]
        ranked = sorted(recorded, key=lambda row: row['attendance_percentage'], reverse=True)
        result['student_performance'] = {
            'top_performers': [
                {
                    'student_id': row['student_id'],
                    'student_name': row['student_name'],
                    'class_name': row['class_name'],
                    'attendance_rate': row['attendance_percentage'],
                }
                for row in ranked[:TOP_LIMIT]
            ],
            'attention_needed': [
                {
                    'student_id': row['student_id'],
                    'student_name': row['student_name'],
                    'class_name': row['class_name'],
                    'attendance_rate': row['attendance_percentage'],
                    'issues': _student_issues(row),
                }
                for row in sorted(recorded, key=lambda row: row['attendance_percentage'])
                if row['attendance_percentage'] < LOW_ATTENDANCE
            ][:TOP_LIMIT],
        }
    logger.debug('Built teacher dashboard for user %s', teacher.id)
    return result
