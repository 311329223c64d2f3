"""Daily attendance, leave applications, attendance reports and profiles."""
import logging
from collections import Counter
from datetime import date, datetime, timedelta

from sqlalchemy import case, func

from school_erp.errors import BusinessRuleError, ConflictError, NotFoundError, ValidationError
from school_erp.models.tenant import (
    AcademicYear, AttendanceDaily, AttendanceSummary, LeaveApplication, SchoolClass, Section, Student,
)
from school_erp.modules.common import money
from school_erp.exporters import write_report_file

logger = logging.getLogger(__name__)

DEFAULT_MIN_ATTENDANCE = 75
MAX_LEAVE_DAYS = 30
MAX_REPORT_DAYS = 365
TREND_THRESHOLD = 5
WEEKDAYS = ('Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday')


def percentage(part, whole):
    return money(part * 100 / whole) if whole else 0.0


def school_days_between(date_from, date_to):
    """Weekdays in the inclusive range."""
    days = 0
    current = date_from
    while current <= date_to:
        if current.weekday() < 5:
            days += 1
        current += timedelta(days=1)
    return days


def _status_count(status):
    return func.sum(case((AttendanceDaily.status == status, 1), else_=0))


def refresh_monthly_summary(session, student_id, day):
    month_start = day.replace(day=1)
    next_month = (month_start + timedelta(days=32)).replace(day=1)
    counts = dict(session.query(AttendanceDaily.status, func.count(AttendanceDaily.id)).filter(
        AttendanceDaily.student_id == student_id,
        AttendanceDaily.attendance_date >= month_start,
        AttendanceDaily.attendance_date < next_month,
    ).group_by(AttendanceDaily.status).all())

    summary = session.query(AttendanceSummary).filter_by(
        student_id=student_id, year=day.year, month=day.month,
    ).first()
    if summary is None:
        summary = AttendanceSummary(student_id=student_id, year=day.year, month=day.month)
        session.add(summary)
    summary.present_days = counts.get('PRESENT', 0)
    summary.absent_days = counts.get('ABSENT', 0)
    summary.late_days = counts.get('LATE', 0)
    summary.half_days = counts.get('HALF_DAY', 0)
    summary.total_days = sum(counts.values())
    summary.attendance_percentage = percentage(summary.present_days, summary.total_days)
    return summary


def _class_students(session, class_id, section_id=None):
    query = session.query(Student).filter(Student.class_id == class_id, Student.is_active.is_(True))
    if section_id:
        query = query.filter(Student.section_id == section_id)
    return query.all()


def mark_daily(session, data, user_id=None):
    day = data['date']
    if day > date.today():
        raise BusinessRuleError('Cannot mark attendance for future dates')

    existing = session.query(AttendanceDaily.id).filter(
        AttendanceDaily.attendance_date == day,
        AttendanceDaily.class_id == data['class_id'],
    )
    if data.get('section_id'):
        existing = existing.filter(AttendanceDaily.section_id == data['section_id'])
    if existing.first():
        raise ConflictError('Attendance already marked for this date and class')

    records = data['attendance_records']
    student_ids = [record['student_id'] for record in records]
    if len(set(student_ids)) != len(student_ids):
        raise ValidationError('Each student can only appear once per day')

    class_students = {student.id for student in _class_students(session, data['class_id'], data.get('section_id'))}
    for student_id in student_ids:
        if student_id not in class_students:
            raise BusinessRuleError(f'Student ID {student_id} does not belong to the specified class/section')

    marked_by = data.get('marked_by') or user_id
    for record in records:
        session.add(AttendanceDaily(
            student_id=record['student_id'],
            class_id=data['class_id'],
            section_id=data.get('section_id'),
            attendance_date=day,
            status=record['status'],
            remarks=record.get('remarks'),
            arrival_time=record.get('arrival_time'),
            marked_by=marked_by,
        ))
    session.flush()
    for student_id in student_ids:
        refresh_monthly_summary(session, student_id, day)
    session.commit()

    counts = Counter(record['status'] for record in records)
    logger.info('Marked attendance for class %s on %s (%d records)', data['class_id'], day, len(records))
    return {
        'date': day,
        'class_id': data['class_id'],
        'section_id': data.get('section_id'),
        'total_students': len(class_students),
        'present_count': counts['PRESENT'],
        'absent_count': counts['ABSENT'],
        'late_count': counts['LATE'],
        'half_day_count': counts['HALF_DAY'],
        'attendance_percentage': percentage(counts['PRESENT'], len(class_students)),
        'records_created': len(records),
        'marked_at': datetime.utcnow(),
    }


def apply_leave(session, data, user_id=None):
    start, end = data['start_date'], data['end_date']
    if end < start:
        raise ValidationError('End date cannot be before start date')
    total_days = (end - start).days + 1
    if total_days > MAX_LEAVE_DAYS:
        raise BusinessRuleError(
            'Leave application cannot exceed 30 days. Please contact administration for longer leaves'
        )

    student = session.get(Student, data['student_id'])
    if student is None or not student.is_active:
        raise NotFoundError('Student not found')

    overlapping = session.query(LeaveApplication.id).filter(
        LeaveApplication.student_id == student.id,
        LeaveApplication.status.in_(('PENDING', 'APPROVED')),
        LeaveApplication.start_date <= end,
        LeaveApplication.end_date >= start,
    ).first()
    if overlapping:
        raise ConflictError('Student already has a leave application for overlapping dates')

    leave = LeaveApplication(
        student_id=student.id,
        leave_type=data['leave_type'],
        start_date=start,
        end_date=end,
        total_days=total_days,
        reason=data['reason'],
        documents=data.get('supporting_documents') or None,
        contact_number=data.get('contact_number'),
        status='PENDING',
        applied_by=data.get('applied_by') or user_id,
    )
    session.add(leave)
    session.commit()

    result = leave.to_dict()
    result.update(leave_application_id=leave.id, application_date=leave.created_at.date())
    return result


def approved_leave_days(session, student_ids, date_from, date_to):
    days = Counter()
    if not student_ids:
        return days
    leaves = session.query(LeaveApplication).filter(
        LeaveApplication.student_id.in_(student_ids),
        LeaveApplication.status == 'APPROVED',
        LeaveApplication.start_date <= date_to,
        LeaveApplication.end_date >= date_from,
    )
    for leave in leaves:
        overlap = (min(leave.end_date, date_to) - max(leave.start_date, date_from)).days + 1
        days[leave.student_id] += overlap
    return days


def class_section_label(class_name, section_name):
    if not class_name:
        return ''
    return f'{class_name}-{section_name}' if section_name else class_name


def student_attendance_rows(session, date_from, date_to, class_id=None, section_id=None, student_id=None,
                            school_id=None):
    """Per-student status counts for active students; either bound may be None."""
    joined = AttendanceDaily.student_id == Student.id
    if date_from is not None:
        joined &= AttendanceDaily.attendance_date >= date_from
    if date_to is not None:
        joined &= AttendanceDaily.attendance_date <= date_to
    query = session.query(
        Student.id, Student.first_name, Student.last_name, Student.class_id,
        SchoolClass.class_name, Section.section_name,
        func.count(AttendanceDaily.id),
        _status_count('PRESENT'), _status_count('ABSENT'), _status_count('LATE'), _status_count('HALF_DAY'),
    ).outerjoin(AttendanceDaily, joined).outerjoin(SchoolClass, Student.class_id == SchoolClass.id) \
        .outerjoin(Section, Student.section_id == Section.id) \
        .filter(Student.is_active.is_(True))

    if school_id:
        query = query.filter(Student.school_id == school_id)
    if class_id:
        query = query.filter(Student.class_id == class_id)
    if section_id:
        query = query.filter(Student.section_id == section_id)
    if student_id:
        query = query.filter(Student.id == student_id)
    query = query.group_by(Student.id, Student.first_name, Student.last_name, Student.class_id,
                           SchoolClass.class_name, Section.section_name).order_by(Student.id)

    rows = []
    for (sid, first, last, row_class_id, class_name, section_name,
         total, present, absent, late, half) in query:
        total, present = total or 0, present or 0
        rows.append({
            'student_id': sid,
            'student_name': ' '.join(part for part in (first, last) if part),
            'class_id': row_class_id,
            'class_name': class_name,
            'class_section': class_section_label(class_name, section_name),
            'total_days': total,
            'present_days': present,
            'absent_days': absent or 0,
            'late_days': late or 0,
            'half_days': half or 0,
            'attendance_percentage': percentage(present, total),
        })
    return rows


def _breakdown(session, report_type, data):
    """Marked records grouped by day, ISO week or month."""
    query = session.query(AttendanceDaily.attendance_date, AttendanceDaily.status).filter(
        AttendanceDaily.attendance_date >= data['date_from'],
        AttendanceDaily.attendance_date <= data['date_to'],
    )
    if data.get('class_id'):
        query = query.filter(AttendanceDaily.class_id == data['class_id'])
    if data.get('section_id'):
        query = query.filter(AttendanceDaily.section_id == data['section_id'])
    if data.get('student_id'):
        query = query.filter(AttendanceDaily.student_id == data['student_id'])

    buckets = {}
    for day, status in query:
        if report_type == 'DAILY':
            key = day.isoformat()
        elif report_type == 'WEEKLY':
            year, week, _ = day.isocalendar()
            key = f'{year}-W{week:02d}'
        else:
            key = day.strftime('%Y-%m')
        bucket = buckets.setdefault(key, Counter())
        bucket[status] += 1
        bucket['total'] += 1

    return [
        {
            'period': key,
            'total_records': counts['total'],
            'present': counts['PRESENT'],
            'absent': counts['ABSENT'],
            'late': counts['LATE'],
            'half_day': counts['HALF_DAY'],
            'attendance_percentage': percentage(counts['PRESENT'], counts['total']),
        }
        for key, counts in sorted(buckets.items())
    ]


def report(session, data):
    date_from, date_to = data['date_from'], data['date_to']
    if date_to < date_from:
        raise ValidationError('End date cannot be before start date')
    if (date_to - date_from).days > MAX_REPORT_DAYS:
        raise BusinessRuleError('Report period cannot exceed 1 year')

    threshold = data.get('min_attendance_percentage')
    if threshold is None:
        threshold = DEFAULT_MIN_ATTENDANCE

    rows = student_attendance_rows(session, date_from, date_to, data.get('class_id'),
                                   data.get('section_id'), data.get('student_id'))
    if data.get('include_leave_data'):
        leave_days = approved_leave_days(session, [row['student_id'] for row in rows], date_from, date_to)
        for row in rows:
            row['leave_days'] = leave_days[row['student_id']]

    defaulters = [row for row in rows if row['attendance_percentage'] < threshold]
    summary = {
        'total_students': len(rows),
        'total_school_days': school_days_between(date_from, date_to),
        'average_attendance': money(sum(r['attendance_percentage'] for r in rows) / len(rows)) if rows else 0.0,
        'defaulter_count': len(defaulters),
        'perfect_attendance_count': sum(1 for r in rows if r['attendance_percentage'] == 100),
    }

    report_type = data['report_type']
    result = {
        'report_type': report_type,
        'period': {'from': date_from, 'to': date_to},
        'summary': summary,
        'data': defaulters if report_type == 'DEFAULTERS' else rows,
        'generated_at': datetime.utcnow(),
    }
    if report_type in ('DAILY', 'WEEKLY', 'MONTHLY'):
        result['breakdown'] = _breakdown(session, report_type, data)

    export_format = data.get('format') or 'JSON'
    if export_format != 'JSON':
        title = f'Attendance report ({report_type.title()}) {date_from} to {date_to}'
        _, path, _ = write_report_file(export_format, f'attendance_{report_type.lower()}', title,
                                       result['data'], summary)
        result['file_path'] = path
    return result


def longest_absence_run(statuses):
    longest = run = 0
    for status in statuses:
        run = run + 1 if status == 'ABSENT' else 0
        longest = max(longest, run)
    return longest


def _attendance_patterns(records):
    absences = Counter(WEEKDAYS[r.attendance_date.weekday()] for r in records if r.status == 'ABSENT')
    frequent = [day for day, count in absences.most_common() if count >= 2]

    trend = 'STABLE'
    if len(records) >= 2:
        half = len(records) // 2
        first, second = records[:half], records[half:]
        first_rate = percentage(sum(1 for r in first if r.status == 'PRESENT'), len(first))
        second_rate = percentage(sum(1 for r in second if r.status == 'PRESENT'), len(second))
        if second_rate - first_rate > TREND_THRESHOLD:
            trend = 'IMPROVING'
        elif first_rate - second_rate > TREND_THRESHOLD:
            trend = 'DECLINING'

    return {
        'frequent_absent_days': frequent,
        'consecutive_absences': longest_absence_run(r.status for r in records),
        'improvement_trend': trend,
    }


def _class_ranking(session, student, date_from, date_to):
    if not student.class_id:
        return None
    rows = student_attendance_rows(session, date_from, date_to, class_id=student.class_id)
    ranked = sorted(rows, key=lambda row: row['attendance_percentage'], reverse=True)
    for position, row in enumerate(ranked, start=1):
        if row['student_id'] == student.id:
            return position
    return None


def profile(session, data):
    student = session.get(Student, data['student_id'])
    if student is None or not student.is_active:
        raise NotFoundError('Student not found')

    year_id = data.get('academic_year_id') or student.academic_year_id
    year = session.get(AcademicYear, year_id) if year_id else None
    if data.get('academic_year_id') and year is None:
        raise NotFoundError('Academic year not found')
    date_from = year.start_date if year else None
    date_to = year.end_date if year else None

    records = session.query(AttendanceDaily).filter(AttendanceDaily.student_id == student.id)
    if year is not None:
        records = records.filter(AttendanceDaily.attendance_date.between(date_from, date_to))
    records = records.order_by(AttendanceDaily.attendance_date).all()
    counts = Counter(record.status for record in records)

    school_class = session.get(SchoolClass, student.class_id) if student.class_id else None
    section = session.get(Section, student.section_id) if student.section_id else None
    result = {
        'student_id': student.id,
        'student_info': {
            'name': student.full_name,
            'admission_number': student.admission_number,
            'class_section': class_section_label(school_class and school_class.class_name,
                                                 section and section.section_name),
            'academic_year': year.year_name if year else None,
        },
        'overall_summary': {
            'total_school_days': len(records),
            'total_present': counts['PRESENT'],
            'total_absent': counts['ABSENT'],
            'total_late': counts['LATE'],
            'total_half_days': counts['HALF_DAY'],
            'overall_percentage': percentage(counts['PRESENT'], len(records)),
            'ranking_in_class': _class_ranking(session, student, date_from, date_to),
        },
        'generated_at': datetime.utcnow(),
    }

    if data.get('include_monthly_breakdown'):
        summaries = session.query(AttendanceSummary).filter_by(student_id=student.id) \
            .order_by(AttendanceSummary.year, AttendanceSummary.month).all()
        result['monthly_breakdown'] = [
            {
                'month_year': f'{row.year:04d}-{row.month:02d}',
                'school_days': row.total_days,
                'present': row.present_days,
                'absent': row.absent_days,
                'late': row.late_days,
                'half_days': row.half_days,
                'percentage': row.attendance_percentage,
            }
            for row in summaries
            if year is None or date_from.replace(day=1) <= date(row.year, row.month, 1) <= date_to
        ]

    if data.get('include_leave_history'):
        leaves = session.query(LeaveApplication).filter_by(student_id=student.id) \
            .order_by(LeaveApplication.start_date.desc()).all()
        result['leave_history'] = [
            {
                'leave_type': leave.leave_type,
                'start_date': leave.start_date,
                'end_date': leave.end_date,
                'days': leave.total_days,
                'status': leave.status,
                'reason': leave.reason,
            }
            for leave in leaves
        ]

    if data.get('include_patterns'):
        result['attendance_patterns'] = _attendance_patterns(records)
    return result
