"""
Stored reports: student profiles, fee collection, attendance, academic
performance and the custom report builder, plus file exports.

Every generated report is saved to ``reports`` with its parameters and a
snapshot of the result so it can be exported later.
"""
import logging
import os
from collections import Counter, defaultdict
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func

from school_erp.errors import NotFoundError, ValidationError
from school_erp.models.tenant import (
    AcademicYear, AttendanceDaily, ExamResult, FeeHead, FeeReceipt, FeeReceiptAllocation, FeeRefund,
    FeeStructure, Report, ReportExport, ReportTemplate, SchoolClass, Section, Student, StudentAdmission,
    StudentDocument, StudentFeeAssignment, StudentTransfer, Subject, User,
)
from school_erp.modules.attendance.services import (
    approved_leave_days, longest_absence_run, percentage, school_days_between, student_attendance_rows,
)
from school_erp.modules.common import get_or_404, money
from school_erp.modules.fees.services import defaulters as fee_defaulters, receipts_in_range
from school_erp.exporters import MIME_TYPES, write_report_file
from school_erp.modules.setup.services import get_trust_config
from school_erp.responses import to_json

logger = logging.getLogger(__name__)

MAX_REPORT_DAYS = 365
CUSTOM_ROW_LIMIT = 1000
DEFAULT_PASS_PERCENTAGE = 40

# Main row list of each stored report, used for file exports
REPORT_ROWS = {
    'STUDENT_PROFILE': 'students',
    'FEE_COLLECTION': 'breakdown',
    'ATTENDANCE': 'attendance_data',
    'ACADEMIC_PERFORMANCE': 'performance_data',
    'CUSTOM': 'data',
}


def _check_range(data):
    if data['date_to'] < data['date_from']:
        raise ValidationError('date_to cannot be before date_from')
    if (data['date_to'] - data['date_from']).days > MAX_REPORT_DAYS:
        raise ValidationError('Report period cannot exceed 1 year')


def _save(session, report_type, name, data, result, user_id):
    """Persist the report, attach its id and write a file for non-JSON formats."""
    export_format = data.get('format') or 'JSON'
    if export_format != 'JSON':
        rows = result.get(REPORT_ROWS[report_type]) or []
        _, path, _ = write_report_file(export_format, report_type.lower(), name, rows, result.get('summary'))
        result['file_path'] = path

    row = Report(
        report_type=report_type,
        report_name=name,
        parameters=to_json(data),
        result=to_json(result),
        generated_by=user_id,
    )
    session.add(row)
    session.commit()
    logger.info('Generated %s report %s', report_type, row.id)
    return dict(result, report_id=row.id, report_type=report_type)


# Student profiles

def _student_query(session, data):
    scope = data['report_scope']
    if scope == 'CLASS_WISE' and not data.get('class_id'):
        raise ValidationError('class_id is required for CLASS_WISE reports')
    if scope == 'INDIVIDUAL' and not data.get('student_ids'):
        raise ValidationError('student_ids is required for INDIVIDUAL reports')

    query = session.query(Student)
    if data.get('academic_year_id'):
        query = query.filter(Student.academic_year_id == data['academic_year_id'])
    if scope == 'INDIVIDUAL':
        query = query.filter(Student.id.in_(data['student_ids']))
    elif scope in ('CLASS_WISE', 'FILTERED'):
        if data.get('class_id'):
            query = query.filter(Student.class_id == data['class_id'])
        if data.get('section_id'):
            query = query.filter(Student.section_id == data['section_id'])

    filters = data.get('filters') or {}
    if scope == 'FILTERED':
        if filters.get('gender'):
            query = query.filter(Student.gender == filters['gender'])
        admission_filters = []
        if filters.get('admission_status'):
            admission_filters.append(StudentAdmission.status == filters['admission_status'])
        if filters.get('date_from'):
            admission_filters.append(StudentAdmission.application_date >= filters['date_from'])
        if filters.get('date_to'):
            admission_filters.append(StudentAdmission.application_date <= filters['date_to'])
        if admission_filters:
            matching = session.query(StudentAdmission.student_id).filter(*admission_filters)
            query = query.filter(Student.id.in_(matching))
    return query.order_by(Student.id)


def student_profiles(session, data, user_id=None):
    students = _student_query(session, data).all()
    ids = [s.id for s in students]
    classes = {c.id: c.class_name for c in session.query(SchoolClass)}
    sections = {s.id: s.section_name for s in session.query(Section)}

    admissions = {}
    documents = Counter()
    transfers = defaultdict(list)
    if ids:
        for admission in session.query(StudentAdmission).filter(StudentAdmission.student_id.in_(ids)) \
                .order_by(StudentAdmission.id):
            admissions[admission.student_id] = admission
        if data.get('include_documents'):
            documents.update(dict(
                session.query(StudentDocument.student_id, func.count(StudentDocument.id))
                .filter(StudentDocument.student_id.in_(ids)).group_by(StudentDocument.student_id).all()
            ))
        if data.get('include_transfers'):
            for transfer in session.query(StudentTransfer).filter(StudentTransfer.student_id.in_(ids)):
                transfers[transfer.student_id].append({
                    'from_school_id': transfer.from_school_id,
                    'to_school_id': transfer.to_school_id,
                    'transfer_date': transfer.transfer_date,
                    'status': transfer.status,
                })

    rows = []
    for student in students:
        class_name = classes.get(student.class_id, '')
        section_name = sections.get(student.section_id)
        row = {
            'student_id': student.id,
            'admission_number': student.admission_number,
            'name': student.full_name,
            'class_section': f'{class_name}-{section_name}' if section_name else class_name,
            'date_of_birth': student.date_of_birth,
            'gender': student.gender,
            'is_active': bool(student.is_active),
        }
        admission = admissions.get(student.id)
        if data.get('include_admission_details'):
            row['admission_date'] = admission.admission_date if admission else None
            row['admission_status'] = admission.status if admission else None
        if data.get('include_parent_details'):
            row['parent_details'] = {
                'parent_name': student.parent_name,
                'contact_phone': student.parent_phone,
                'contact_email': student.parent_email,
            }
        if data.get('include_documents'):
            row['documents_count'] = documents[student.id]
        if data.get('include_transfers'):
            row['transfers'] = transfers[student.id]
        rows.append(row)

    result = {
        'generated_at': datetime.utcnow(),
        'total_students': len(rows),
        'summary': {'total_students': len(rows), 'active_students': sum(1 for r in rows if r['is_active'])},
        'students': rows,
    }
    return _save(session, 'STUDENT_PROFILE', f"Student profiles ({data['report_scope']})", data, result, user_id)


# Fee collection

def _fee_group_key(receipt, group_by, student_classes):
    if group_by == 'CLASS':
        return student_classes.get(receipt.student_id) or 'Unassigned'
    if group_by == 'PAYMENT_MODE':
        return receipt.payment_mode
    return receipt.payment_date.isoformat()


def fee_collection(session, data, user_id=None):
    _check_range(data)
    group_by = data.get('group_by') or 'DATE'
    receipts = receipts_in_range(session, data)
    receipt_ids = [r.id for r in receipts]

    student_classes = dict(
        session.query(Student.id, SchoolClass.class_name).join(SchoolClass, Student.class_id == SchoolClass.id)
    )
    refunds = Counter()
    if receipt_ids and data.get('include_refunds'):
        for receipt_id, amount in session.query(FeeRefund.receipt_id, func.sum(FeeRefund.amount)) \
                .filter(FeeRefund.receipt_id.in_(receipt_ids)).group_by(FeeRefund.receipt_id):
            refunds[receipt_id] = money(amount)

    groups = {}

    def bucket(label):
        return groups.setdefault(label, {
            'period_label': label, 'collected_amount': 0.0, 'pending_amount': 0.0,
            'receipt_count': 0, 'students': set(), 'refunds_processed': 0.0,
        })

    if group_by == 'FEE_HEAD':
        allocations = []
        if receipt_ids:
            allocations = session.query(FeeReceiptAllocation.receipt_id, FeeReceiptAllocation.amount,
                                        FeeHead.head_name, StudentFeeAssignment.student_id) \
                .join(StudentFeeAssignment, FeeReceiptAllocation.assignment_id == StudentFeeAssignment.id) \
                .join(FeeStructure, StudentFeeAssignment.fee_structure_id == FeeStructure.id) \
                .join(FeeHead, FeeStructure.fee_head_id == FeeHead.id) \
                .filter(FeeReceiptAllocation.receipt_id.in_(receipt_ids)).all()
        seen = set()
        for receipt_id, amount, head_name, student_id in allocations:
            entry = bucket(head_name)
            entry['collected_amount'] = money(entry['collected_amount'] + amount)
            entry['students'].add(student_id)
            if (head_name, receipt_id) not in seen:
                seen.add((head_name, receipt_id))
                entry['receipt_count'] += 1
    else:
        for receipt in receipts:
            entry = bucket(_fee_group_key(receipt, group_by, student_classes))
            entry['collected_amount'] = money(entry['collected_amount'] + receipt.amount)
            entry['receipt_count'] += 1
            entry['students'].add(receipt.student_id)
            entry['refunds_processed'] = money(entry['refunds_processed'] + refunds[receipt.id])

    pending_query = session.query(StudentFeeAssignment)
    if data.get('class_id'):
        pending_query = pending_query.join(Student, StudentFeeAssignment.student_id == Student.id) \
            .filter(Student.class_id == data['class_id'])
    assignments = pending_query.all()
    total_pending = money(sum(a.balance_amount for a in assignments))
    if group_by in ('CLASS', 'FEE_HEAD'):
        for assignment in assignments:
            if group_by == 'CLASS':
                label = student_classes.get(assignment.student_id) or 'Unassigned'
            else:
                label = assignment.fee_structure.fee_head.head_name
            if label in groups:
                groups[label]['pending_amount'] = money(groups[label]['pending_amount'] + assignment.balance_amount)

    breakdown = []
    for label in sorted(groups):
        entry = groups[label]
        item = {
            'period_label': label,
            'collected_amount': entry['collected_amount'],
            'pending_amount': entry['pending_amount'],
            'receipt_count': entry['receipt_count'],
            'student_count': len(entry['students']),
        }
        if data.get('include_refunds'):
            item['refunds_processed'] = entry['refunds_processed']
        breakdown.append(item)

    total_collected = money(sum(r.amount for r in receipts))
    paying_students = {r.student_id for r in receipts}
    summary = {
        'total_collected': total_collected,
        'total_pending': total_pending,
        'total_students': len(paying_students),
        'total_receipts': len(receipts),
        'collection_efficiency': percentage(total_collected, total_collected + total_pending),
        'average_collection_per_student': money(total_collected / len(paying_students)) if paying_students else 0.0,
    }
    if data.get('include_discounts'):
        summary['total_discounts'] = money(sum(a.discount_amount or 0 for a in assignments))
    if data.get('include_refunds'):
        summary['total_refunds'] = money(sum(refunds.values()))

    defaulters = [
        {
            'student_id': row['student_id'],
            'student_name': row['student_name'],
            'class_section': student_classes.get(row['student_id']) or '',
            'pending_amount': row['outstanding_amount'],
            'overdue_days': row['overdue_days'],
        }
        for row in fee_defaulters(session, data['date_to'], data.get('class_id'), data.get('include_pending_fees'))
    ]

    result = {
        'period': {'from': data['date_from'], 'to': data['date_to']},
        'summary': summary,
        'breakdown': breakdown,
        'defaulters': defaulters,
        'generated_at': datetime.utcnow(),
    }
    return _save(session, 'FEE_COLLECTION', f"Fee collection ({data['report_period']})", data, result, user_id)


# Attendance summary

def _monthly_attendance(session, data):
    query = session.query(AttendanceDaily.attendance_date, AttendanceDaily.status, AttendanceDaily.student_id) \
        .filter(AttendanceDaily.attendance_date.between(data['date_from'], data['date_to']))
    if data.get('class_id'):
        query = query.filter(AttendanceDaily.class_id == data['class_id'])
    if data.get('section_id'):
        query = query.filter(AttendanceDaily.section_id == data['section_id'])

    months = {}
    for day, status, student_id in query:
        entry = months.setdefault(day.strftime('%Y-%m'), {'students': set(), 'counts': Counter()})
        entry['students'].add(student_id)
        entry['counts'][status] += 1
        entry['counts']['total'] += 1
    return [
        {
            'group_label': label,
            'student_count': len(entry['students']),
            'total_present': entry['counts']['PRESENT'],
            'total_absent': entry['counts']['ABSENT'],
            'total_late': entry['counts']['LATE'],
            'attendance_percentage': percentage(entry['counts']['PRESENT'], entry['counts']['total']),
        }
        for label, entry in sorted(months.items())
    ]


def _grouped_attendance(rows, group_by):
    key = {
        'CLASS': lambda row: row['class_name'] or 'Unassigned',
        'SECTION': lambda row: row['class_section'] or 'Unassigned',
        'STUDENT': lambda row: row['student_name'],
    }[group_by]
    groups = {}
    for row in rows:
        entry = groups.setdefault(key(row), Counter())
        entry['students'] += 1
        entry['present'] += row['present_days']
        entry['absent'] += row['absent_days']
        entry['late'] += row['late_days']
        entry['total'] += row['total_days']
        entry['leave'] += row.get('leave_days', 0)
    return [
        {
            'group_label': label,
            'student_count': entry['students'],
            'total_present': entry['present'],
            'total_absent': entry['absent'],
            'total_late': entry['late'],
            'attendance_percentage': percentage(entry['present'], entry['total']),
            'leave_days': entry['leave'],
        }
        for label, entry in sorted(groups.items())
    ]


def attendance_summary(session, data, user_id=None):
    _check_range(data)
    threshold = data.get('min_attendance_threshold')
    if threshold is None:
        threshold = 75
    group_by = data.get('group_by') or 'CLASS'

    rows = student_attendance_rows(session, data['date_from'], data['date_to'],
                                   data.get('class_id'), data.get('section_id'))
    if data.get('include_leave_data'):
        leave = approved_leave_days(session, [r['student_id'] for r in rows], data['date_from'], data['date_to'])
        for row in rows:
            row['leave_days'] = leave[row['student_id']]

    if group_by == 'MONTH':
        attendance_data = _monthly_attendance(session, data)
    else:
        attendance_data = _grouped_attendance(rows, group_by)
        if not data.get('include_leave_data'):
            for item in attendance_data:
                item.pop('leave_days')

    below = [row for row in rows if row['attendance_percentage'] < threshold]
    defaulters = []
    for row in below:
        statuses = session.query(AttendanceDaily.status).filter(
            AttendanceDaily.student_id == row['student_id'],
            AttendanceDaily.attendance_date.between(data['date_from'], data['date_to']),
        ).order_by(AttendanceDaily.attendance_date)
        defaulters.append({
            'student_id': row['student_id'],
            'student_name': row['student_name'],
            'class_section': row['class_section'],
            'attendance_percentage': row['attendance_percentage'],
            'total_absences': row['absent_days'],
            'consecutive_absences': longest_absence_run(status for (status,) in statuses),
        })

    total_records = sum(r['total_days'] for r in rows)
    summary = {
        'total_students': len(rows),
        'total_school_days': school_days_between(data['date_from'], data['date_to']),
        'overall_attendance_rate': percentage(sum(r['present_days'] for r in rows), total_records),
        'students_above_threshold': len(rows) - len(below),
        'students_below_threshold': len(below),
        'perfect_attendance_count': sum(1 for r in rows if r['attendance_percentage'] == 100),
    }
    result = {
        'period': {'from': data['date_from'], 'to': data['date_to']},
        'summary': summary,
        'attendance_data': attendance_data,
        'defaulters': defaulters,
        'generated_at': datetime.utcnow(),
    }
    return _save(session, 'ATTENDANCE', f"Attendance summary ({data['report_period']})", data, result, user_id)


# Academic performance

SCOPE_REQUIREMENTS = {
    'CLASS_PERFORMANCE': 'class_id',
    'SUBJECT_ANALYSIS': 'subject_id',
    'TEACHER_PERFORMANCE': 'teacher_id',
}


def pass_percentage(session, school_id):
    grading = get_trust_config(session, 'grading_system', school_id=school_id) or {}
    if isinstance(grading, dict) and grading.get('pass_percentage'):
        return float(grading['pass_percentage'])
    return DEFAULT_PASS_PERCENTAGE


def _score(result):
    return result.marks_obtained * 100.0 / result.max_marks if result.max_marks else 0.0


def _trend(first, last):
    if last - first > 5:
        return 'IMPROVING'
    if first - last > 5:
        return 'DECLINING'
    return 'STABLE'


def _performance_rows(results, entity_key, entity_type, pass_mark):
    grouped = defaultdict(list)
    for result in results:
        grouped[entity_key(result)].append(result)

    rows = []
    for name, items in sorted(grouped.items()):
        scores = [_score(r) for r in items]
        grades = Counter(r.grade for r in items if r.grade)
        row = {
            'entity_name': name,
            'entity_type': entity_type,
            'student_count': len({r.student_id for r in items}),
            'pass_rate': percentage(sum(1 for s in scores if s >= pass_mark), len(scores)),
            'average_marks': money(sum(scores) / len(scores)),
            'highest_marks': money(max(scores)),
            'lowest_marks': money(min(scores)),
        }
        if grades:
            row['grade_distribution'] = dict(grades)
        rows.append(row)
    return rows


def academic_performance(session, data, user_id=None):
    year = get_or_404(session, AcademicYear, data['academic_year_id'], 'Academic year not found')
    scope = data['report_scope']
    required = SCOPE_REQUIREMENTS.get(scope)
    if required and not data.get(required):
        raise ValidationError(f'{required} is required for {scope}')

    query = session.query(ExamResult).filter(ExamResult.academic_year_id == year.id)
    if data.get('class_id'):
        query = query.filter(ExamResult.class_id == data['class_id'])
    if data.get('subject_id'):
        query = query.filter(ExamResult.subject_id == data['subject_id'])
    if data.get('teacher_id'):
        query = query.filter(ExamResult.teacher_id == data['teacher_id'])
    results = query.order_by(ExamResult.exam_date, ExamResult.id).all()

    pass_mark = pass_percentage(session, year.school_id)
    classes = {c.id: c.class_name for c in session.query(SchoolClass)}
    subjects = {s.id: s.subject_name for s in session.query(Subject)}

    def class_name(r):
        return classes.get(r.class_id, f'Class {r.class_id}')

    def subject_name(r):
        return subjects.get(r.subject_id, f'Subject {r.subject_id}')

    if scope in ('SCHOOL_OVERVIEW', 'SUBJECT_ANALYSIS'):
        performance = _performance_rows(results, class_name, 'CLASS', pass_mark)
    else:
        performance = _performance_rows(results, subject_name, 'SUBJECT', pass_mark)

    by_class = _performance_rows(results, class_name, 'CLASS', pass_mark)
    scores = [_score(r) for r in results]
    summary = {
        'total_students': len({r.student_id for r in results}),
        'total_classes': len({r.class_id for r in results}),
        'overall_pass_rate': percentage(sum(1 for s in scores if s >= pass_mark), len(scores)),
        'average_score': money(sum(scores) / len(scores)) if scores else 0.0,
        'pass_percentage': pass_mark,
    }
    if by_class:
        summary['top_performing_class'] = max(by_class, key=lambda row: row['average_marks'])['entity_name']

    exams = []
    for result in results:
        if result.exam_name not in exams:
            exams.append(result.exam_name)
    exam_averages = []
    for exam in exams:
        exam_scores = [_score(r) for r in results if r.exam_name == exam]
        exam_averages.append((exam, money(sum(exam_scores) / len(exam_scores))))
    if len(exam_averages) >= 2:
        summary['improvement_trend'] = _trend(exam_averages[0][1], exam_averages[-1][1])

    report = {
        'academic_year': year.year_name,
        'scope': scope,
        'summary': summary,
        'performance_data': performance,
        'generated_at': datetime.utcnow(),
    }
    if data.get('include_trends'):
        trends = []
        previous = None
        for exam, average in exam_averages:
            item = {'period': exam, 'metric': 'AVERAGE_MARKS', 'value': average}
            if previous:
                item['change_percentage'] = percentage(average - previous, previous)
            trends.append(item)
            previous = average
        report['trends'] = trends

    if 'TOP_PERFORMERS' in (data.get('performance_metrics') or []):
        per_student = defaultdict(list)
        for result in results:
            per_student[result.student_id].append(_score(result))
        names = {s.id: s.full_name for s in session.query(Student).filter(Student.id.in_(list(per_student)))} \
            if per_student else {}
        ranked = sorted(per_student.items(), key=lambda item: sum(item[1]) / len(item[1]), reverse=True)[:10]
        report['top_performers'] = [
            {'student_id': sid, 'student_name': names.get(sid), 'average_marks': money(sum(s) / len(s))}
            for sid, s in ranked
        ]
    return _save(session, 'ACADEMIC_PERFORMANCE', f'Academic performance ({scope})', data, report, user_id)


# Custom reports

CUSTOM_SOURCES = {
    'STUDENTS': (Student, (
        'id', 'school_id', 'admission_number', 'first_name', 'last_name', 'date_of_birth', 'gender',
        'class_id', 'section_id', 'academic_year_id', 'roll_number', 'category', 'religion', 'blood_group',
        'status', 'is_active', 'created_at',
    )),
    'FEES': (StudentFeeAssignment, (
        'id', 'student_id', 'fee_structure_id', 'total_amount', 'discount_type', 'discount_amount',
        'final_amount', 'paid_amount', 'balance_amount', 'status', 'assigned_at',
    )),
    'ATTENDANCE': (AttendanceDaily, (
        'id', 'student_id', 'class_id', 'section_id', 'attendance_date', 'status', 'marked_by', 'created_at',
    )),
    'USERS': (User, (
        'id', 'email', 'first_name', 'last_name', 'phone', 'role', 'school_id', 'is_active', 'last_login',
        'created_at',
    )),
    'CLASSES': (SchoolClass, (
        'id', 'school_id', 'academic_year_id', 'class_name', 'class_order', 'is_active', 'created_at',
    )),
    'ACADEMIC_YEARS': (AcademicYear, (
        'id', 'school_id', 'year_name', 'start_date', 'end_date', 'is_current', 'created_at',
    )),
}

AGGREGATES = {
    'SUM': func.sum,
    'COUNT': func.count,
    'AVG': func.avg,
    'MIN': func.min,
    'MAX': func.max,
}


def _custom_column(model, allowed, source, name):
    if name not in allowed:
        raise ValidationError(f"Unknown column '{name}' for data source {source}")
    return getattr(model, name)


def _custom_query(session, data):
    source = data['data_sources'][0]
    model, allowed = CUSTOM_SOURCES[source]

    selected = {}
    grouped = []
    aggregated = any((c.get('aggregation') or 'NONE') != 'NONE' for c in data['columns'])
    for column in data['columns']:
        name = column['field_name']
        attribute = _custom_column(model, allowed, source, name)
        aggregation = column.get('aggregation') or 'NONE'
        if aggregation == 'NONE':
            selected[name] = attribute.label(name)
            grouped.append(name)
        else:
            selected[name] = AGGREGATES[aggregation](attribute).label(name)
    query = session.query(*selected.values())

    filters = data.get('filters') or {}
    if not isinstance(filters, dict):
        raise ValidationError('filters must be an object')
    for name, value in filters.items():
        attribute = _custom_column(model, allowed, source, name)
        query = query.filter(attribute.in_(value) if isinstance(value, list) else attribute == value)

    grouping = data.get('grouping') or {}
    for name in grouping.get('group_by') or []:
        _custom_column(model, allowed, source, name)
        if name not in grouped:
            grouped.append(name)
    if aggregated and grouped:
        query = query.group_by(*(getattr(model, name) for name in grouped))

    sort_by = grouping.get('sort_by')
    if sort_by:
        if aggregated and sort_by in selected:
            sort = selected[sort_by]
        else:
            sort = _custom_column(model, allowed, source, sort_by)
        query = query.order_by(sort.desc() if grouping.get('sort_order') == 'DESC' else sort.asc())
    return query.limit(CUSTOM_ROW_LIMIT)


def custom_report(session, data, user_id=None):
    if data.get('template_id'):
        get_or_404(session, ReportTemplate, data['template_id'], 'Report template not found')

    rows = [dict(row._mapping) for row in _custom_query(session, data)]
    for row in rows:
        for key, value in row.items():
            if isinstance(value, float):
                row[key] = money(value)

    template_id = data.get('template_id')
    if data.get('save_as_template'):
        template = ReportTemplate(
            template_name=data['report_name'],
            data_source=data['data_sources'][0],
            definition=to_json({k: data.get(k) for k in ('data_sources', 'columns', 'filters', 'grouping')}),
            created_by=user_id,
        )
        session.add(template)
        session.flush()
        template_id = template.id

    result = {
        'report_name': data['report_name'],
        'template_id': template_id,
        'columns': [
            {'field_name': c['field_name'], 'display_name': c['display_name'], 'data_type': c['data_type']}
            for c in data['columns']
        ],
        'total_rows': len(rows),
        'data': rows,
        'generated_at': datetime.utcnow(),
    }
    return _save(session, 'CUSTOM', data['report_name'], data, result, user_id)


# Exports

def export_report(session, data, user_id=None):
    report = get_or_404(session, Report, data['report_id'], 'Report not found')
    snapshot = report.result or {}
    rows = snapshot.get(REPORT_ROWS.get(report.report_type, 'data')) or []
    summary = snapshot.get('summary') if data.get('include_summary') else None
    styling = data.get('custom_styling') or {}

    file_name, path, size = write_report_file(
        data['export_format'], f'report_{report.id}', report.report_name or report.report_type, rows, summary,
        orientation=data.get('page_orientation'),
        header_color=styling.get('header_color'),
        font_size=styling.get('font_size'),
    )
    export = ReportExport(
        report_id=report.id,
        export_format=data['export_format'],
        file_name=file_name,
        file_path=path,
        file_size=size,
        expires_at=datetime.utcnow() + timedelta(days=current_app.config['EXPORT_TTL_DAYS']),
        created_by=user_id,
    )
    session.add(export)
    session.commit()

    return {
        'export_id': export.id,
        'original_report_id': report.id,
        'export_format': export.export_format,
        'file_path': export.file_path,
        'file_size': export.file_size,
        'download_url': f'/api/v1/reports/download/{export.id}',
        'expires_at': export.expires_at,
        'created_at': export.created_at,
    }


def export_file(session, export_id, now=None):
    """Return ``(path, file_name, mimetype)`` for an unexpired export."""
    export = session.get(ReportExport, export_id)
    now = now or datetime.utcnow()
    if export is None or export.expires_at <= now or not os.path.exists(export.file_path):
        raise NotFoundError('Export not found or expired')
    return export.file_path, export.file_name, MIME_TYPES[export.export_format]
