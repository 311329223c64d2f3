"""Fee structures, assignments, collection, refunds and forecasting."""
import logging
import math
import secrets
from datetime import date, datetime, timedelta
from urllib.parse import urlencode

from sqlalchemy import func

from school_erp.audit import record_tenant_event
from school_erp.errors import BusinessRuleError, ConflictError, NotFoundError, ValidationError
from school_erp.models.tenant import (
    AcademicYear, FeeDiscountLog, FeeHead, FeeInstallment, FeeReceipt, FeeReceiptAllocation, FeeRefund,
    FeeStructure, LateFeeRule, PaymentTransaction, SchoolClass, Student, StudentFeeAssignment,
    StudentServiceAssignment,
)
from school_erp.modules.common import get_or_404, money

logger = logging.getLogger(__name__)

AMOUNT_TOLERANCE = 0.01

SCENARIO_FACTORS = {
    'CONSERVATIVE': 0.7,
    'REALISTIC': 0.85,
    'OPTIMISTIC': 0.95,
}

GATEWAY_CHECKOUT_URLS = {
    'RAZORPAY': 'https://api.razorpay.com/v1/checkout/embedded',
    'PAYU': 'https://secure.payu.in/_payment',
    'PAYTM': 'https://securegw.paytm.in/theia/processTransaction',
    'STRIPE': 'https://checkout.stripe.com/pay',
}


def _settle(assignment):
    """Recompute balance and status from final and paid amounts."""
    assignment.balance_amount = money(max(assignment.final_amount - assignment.paid_amount, 0))
    if assignment.balance_amount <= 0:
        assignment.status = 'PAID'
    elif assignment.paid_amount > 0:
        assignment.status = 'PARTIAL'
    else:
        assignment.status = 'PENDING'


def create_structure(session, data):
    installment_total = sum(item['amount'] for item in data['installments'])
    if abs(installment_total - data['amount']) > AMOUNT_TOLERANCE:
        raise BusinessRuleError('Total installment amount must equal fee head amount')

    school_class = get_or_404(session, SchoolClass, data['class_id'], 'Class not found')
    get_or_404(session, AcademicYear, data['academic_year_id'], 'Academic year not found')

    duplicate = session.query(FeeStructure).join(FeeHead).filter(
        FeeHead.head_name == data['fee_head_name'],
        FeeStructure.class_id == data['class_id'],
        FeeStructure.academic_year_id == data['academic_year_id'],
    ).first()
    if duplicate:
        raise ConflictError('Fee head already exists for this class and academic year')

    head = FeeHead(
        school_id=school_class.school_id,
        head_name=data['fee_head_name'],
        description=data.get('description'),
        is_mandatory=data.get('is_mandatory', True),
    )
    session.add(head)
    session.flush()

    installments = sorted(data['installments'], key=lambda item: item['due_date'])
    structure = FeeStructure(
        fee_head_id=head.id,
        class_id=data['class_id'],
        academic_year_id=data['academic_year_id'],
        amount=money(data['amount']),
        due_date=installments[-1]['due_date'],
    )
    session.add(structure)
    session.flush()
    for number, item in enumerate(installments, start=1):
        session.add(FeeInstallment(
            fee_structure_id=structure.id,
            installment_number=number,
            installment_name=item['installment_name'],
            amount=money(item['amount']),
            due_date=item['due_date'],
        ))
    session.commit()

    return {
        'fee_structure_id': structure.id,
        'fee_head_id': head.id,
        'fee_head_name': head.head_name,
        'class_id': structure.class_id,
        'academic_year_id': structure.academic_year_id,
        'total_amount': structure.amount,
        'installments_created': len(installments),
        'created_at': structure.created_at,
    }


def _active_student(session, student_id):
    student = session.get(Student, student_id)
    if student is None or not student.is_active:
        raise NotFoundError('Student not found or inactive')
    return student


def assign_fee(session, data, user_id=None):
    percentage = data.get('discount_percentage') or 0
    fixed = data.get('discount_amount') or 0
    if percentage > 0 and fixed > 0:
        raise BusinessRuleError('Cannot apply both percentage and fixed amount discount')

    _active_student(session, data['student_id'])
    structure = get_or_404(session, FeeStructure, data['fee_structure_id'], 'Fee structure not found')
    if session.query(StudentFeeAssignment).filter_by(student_id=data['student_id'],
                                                     fee_structure_id=structure.id).first():
        raise ConflictError('Fee structure already assigned to this student')

    total = structure.amount
    discount = money(total * percentage / 100) if percentage else money(fixed)
    if discount > total:
        raise BusinessRuleError('Discount cannot exceed the total amount')

    final = money(total - discount)
    assignment = StudentFeeAssignment(
        student_id=data['student_id'],
        fee_structure_id=structure.id,
        total_amount=total,
        discount_type='PERCENTAGE' if percentage else ('FIXED_AMOUNT' if fixed else None),
        discount_percentage=percentage,
        discount_amount=discount,
        final_amount=final,
        paid_amount=0,
        balance_amount=final,
        status='PAID' if final <= 0 else 'PENDING',
        special_instructions=data.get('special_instructions'),
        assigned_by=user_id,
    )
    session.add(assignment)
    session.commit()

    return {
        'assignment_id': assignment.id,
        'student_id': assignment.student_id,
        'fee_structure_id': assignment.fee_structure_id,
        'total_amount': assignment.total_amount,
        'discount_applied': discount,
        'final_amount': assignment.final_amount,
        'balance_amount': assignment.balance_amount,
        'created_at': assignment.assigned_at,
    }


def apply_discount(session, data, user_id=None):
    discount_type = data['discount_type']
    percentage = data.get('discount_percentage')
    fixed = data.get('discount_amount')
    if discount_type == 'PERCENTAGE' and not percentage:
        raise ValidationError('Discount percentage is required for percentage discount type')
    if discount_type == 'FIXED_AMOUNT' and not fixed:
        raise ValidationError('Discount amount is required for fixed amount discount type')
    if discount_type in ('SIBLING', 'SCHOLARSHIP') and not (percentage or fixed):
        raise ValidationError('Provide a discount percentage or amount')

    assignment = get_or_404(session, StudentFeeAssignment, data['student_fee_assignment_id'],
                            'Student fee assignment not found')

    use_percentage = bool(percentage) and discount_type != 'FIXED_AMOUNT'
    if use_percentage:
        discount = money(assignment.total_amount * percentage / 100)
    else:
        discount = money(fixed)
    if discount > assignment.total_amount:
        raise BusinessRuleError('Discount cannot exceed the total amount')

    previous_final = assignment.final_amount
    assignment.discount_type = discount_type
    assignment.discount_percentage = percentage if use_percentage else 0
    assignment.discount_amount = discount
    assignment.final_amount = money(assignment.total_amount - discount)
    _settle(assignment)

    session.add(FeeDiscountLog(
        assignment_id=assignment.id,
        discount_type=discount_type,
        discount_percentage=percentage,
        discount_amount=discount,
        previous_final_amount=previous_final,
        new_final_amount=assignment.final_amount,
        reason=data['reason'],
        approved_by=user_id,
        valid_until=data.get('valid_until'),
    ))
    session.commit()

    return {
        'assignment_id': assignment.id,
        'discount_type': discount_type,
        'discount_applied': discount,
        'final_amount': assignment.final_amount,
        'new_balance': assignment.balance_amount,
        'updated_at': datetime.utcnow(),
    }


def _one_year_later(start):
    try:
        return start.replace(year=start.year + 1)
    except ValueError:
        # 29 February
        return start.replace(year=start.year + 1, day=28)


def assign_service(session, data):
    start = data['start_date']
    end = data.get('end_date') or _one_year_later(start)
    if end <= start:
        raise BusinessRuleError('End date must be after start date')

    get_or_404(session, Student, data['student_id'], 'Student not found')
    overlap = session.query(StudentServiceAssignment).filter(
        StudentServiceAssignment.student_id == data['student_id'],
        StudentServiceAssignment.service_type == data['service_type'],
        StudentServiceAssignment.is_active.is_(True),
        StudentServiceAssignment.start_date <= end,
        StudentServiceAssignment.end_date >= start,
    ).first()
    if overlap:
        raise ConflictError('Overlapping service assignment exists for this student')

    months = math.ceil((end - start).days / 30)
    service = StudentServiceAssignment(
        student_id=data['student_id'],
        service_type=data['service_type'],
        monthly_amount=money(data['monthly_fee']),
        start_date=start,
        end_date=end,
        months=months,
        total_amount=money(data['monthly_fee'] * months),
        details={'route_details': data['route_details']} if data.get('route_details') else None,
    )
    session.add(service)
    session.commit()

    return {
        'service_assignment_id': service.id,
        'student_id': service.student_id,
        'service_type': service.service_type,
        'monthly_fee': service.monthly_amount,
        'start_date': service.start_date,
        'end_date': service.end_date,
        'total_months': service.months,
        'total_amount': service.total_amount,
        'created_at': service.created_at,
    }


def create_late_fee_rule(session, data, user_id=None):
    rule_type = data['rule_type']
    if rule_type == 'CLASS_SPECIFIC' and not data.get('class_id'):
        raise ValidationError('class_id is required for CLASS_SPECIFIC rules')
    if rule_type == 'STUDENT_SPECIFIC' and not data.get('student_id'):
        raise ValidationError('student_id is required for STUDENT_SPECIFIC rules')

    percentage = data.get('late_fee_percentage')
    fixed = data.get('late_fee_fixed')
    if percentage is None and fixed is None:
        raise ValidationError('Either late_fee_percentage or late_fee_fixed is required')
    if percentage is not None and fixed is not None:
        raise ValidationError('Provide late_fee_percentage or late_fee_fixed, not both')

    class_id = data.get('class_id') if rule_type == 'CLASS_SPECIFIC' else None
    student_id = data.get('student_id') if rule_type == 'STUDENT_SPECIFIC' else None
    if class_id:
        get_or_404(session, SchoolClass, class_id, 'Class not found')
    if student_id:
        get_or_404(session, Student, student_id, 'Student not found')

    superseded = session.query(LateFeeRule).filter_by(
        rule_type=rule_type, class_id=class_id, student_id=student_id, is_active=True,
    ).update({'is_active': False})

    rule = LateFeeRule(
        rule_name=data.get('rule_name') or f'{rule_type.title()} late fee',
        rule_type=rule_type,
        class_id=class_id,
        student_id=student_id,
        late_fee_percentage=percentage,
        late_fee_amount=fixed,
        grace_period_days=data['grace_period_days'],
        max_late_fee=data.get('max_late_fee'),
        effective_from=data['effective_from'],
        created_by=user_id,
    )
    session.add(rule)
    session.commit()

    result = rule.to_dict()
    result.update(rule_id=rule.id, rules_deactivated=superseded, created_at=rule.created_at)
    return result


def _next_receipt_number(session, on_date):
    prefix = f"RCP-{on_date.strftime('%Y%m%d')}-"
    issued = session.query(func.count(FeeReceipt.id)).filter(FeeReceipt.receipt_number.like(prefix + '%')).scalar()
    return f'{prefix}{(issued or 0) + 1:04d}'


def _outstanding_assignments(session, student_id, installment_ids=None):
    query = session.query(StudentFeeAssignment).join(FeeStructure).filter(
        StudentFeeAssignment.student_id == student_id,
        StudentFeeAssignment.balance_amount > 0,
    )
    if installment_ids:
        structure_ids = session.query(FeeInstallment.fee_structure_id) \
            .filter(FeeInstallment.id.in_(installment_ids))
        query = query.filter(StudentFeeAssignment.fee_structure_id.in_(structure_ids))
    return query.order_by(FeeStructure.due_date, StudentFeeAssignment.id).all()


def collect_fee(session, data, trust_id, user_id=None):
    student = _active_student(session, data['student_id'])
    amount = money(data['amount'])
    assignments = _outstanding_assignments(session, student.id, data.get('installment_ids'))
    outstanding = money(sum(a.balance_amount for a in assignments))
    if not assignments:
        raise BusinessRuleError('No outstanding fees for this student')
    if amount > outstanding:
        raise BusinessRuleError(f'Payment amount {amount} exceeds outstanding balance {outstanding}')

    payment_date = data.get('payment_date') or date.today()
    late_fee = money(data.get('late_fee_amount'))
    receipt = FeeReceipt(
        receipt_number=_next_receipt_number(session, payment_date),
        student_id=student.id,
        amount=money(amount + late_fee),
        late_fee_amount=late_fee,
        payment_mode=data['payment_mode'],
        payment_date=payment_date,
        reference_number=data.get('reference_number'),
        remarks=data.get('remarks'),
        status='PAID',
        collected_by=user_id,
    )
    session.add(receipt)
    session.flush()

    remaining = amount
    allocations = []
    for assignment in assignments:
        if remaining <= 0:
            break
        applied = money(min(remaining, assignment.balance_amount))
        assignment.paid_amount = money(assignment.paid_amount + applied)
        _settle(assignment)
        remaining = money(remaining - applied)
        session.add(FeeReceiptAllocation(receipt_id=receipt.id, assignment_id=assignment.id, amount=applied))
        allocations.append({
            'assignment_id': assignment.id,
            'fee_head': assignment.fee_structure.fee_head.head_name,
            'amount_applied': applied,
            'balance_amount': assignment.balance_amount,
            'status': assignment.status,
        })

    record_tenant_event(session, 'FEE_COLLECTED', trust_id=trust_id, user_id=user_id, activity_id='05-006',
                        entity_type='fee_receipt', entity_id=receipt.id,
                        details={'receipt_number': receipt.receipt_number, 'amount': receipt.amount})
    session.commit()
    logger.info('Collected %.2f from student %s (%s)', receipt.amount, student.id, receipt.receipt_number)

    return {
        'receipt_id': receipt.id,
        'receipt_number': receipt.receipt_number,
        'student_id': student.id,
        'amount_paid': receipt.amount,
        'late_fee_amount': late_fee,
        'payment_mode': receipt.payment_mode,
        'payment_date': receipt.payment_date,
        'allocations': allocations,
        'balance_remaining': money(outstanding - amount),
        'created_at': receipt.created_at,
    }


def _transaction_id():
    return f"TXN{datetime.utcnow().strftime('%Y%m%d%H%M%S')}{secrets.token_hex(4).upper()}"


def initiate_gateway_payment(session, data, user_id=None):
    student = get_or_404(session, Student, data['student_id'], 'Student not found')
    outstanding = money(session.query(func.sum(StudentFeeAssignment.balance_amount))
                        .filter(StudentFeeAssignment.student_id == student.id).scalar())
    amount = money(data['amount'])
    if amount > outstanding:
        raise BusinessRuleError(f'Amount {amount} exceeds outstanding balance {outstanding}')

    transaction_id = _transaction_id()
    query = urlencode({'txn_id': transaction_id, 'amount': f'{amount:.2f}', 'return_url': data['return_url']})
    transaction = PaymentTransaction(
        transaction_id=transaction_id,
        student_id=student.id,
        amount=amount,
        gateway=data['gateway_name'],
        status='INITIATED',
        payment_url=f"{GATEWAY_CHECKOUT_URLS[data['gateway_name']]}?{query}",
        return_url=data['return_url'],
        webhook_url=data.get('webhook_url'),
        installment_ids=data.get('installment_ids') or [],
        gateway_metadata=data.get('metadata'),
        initiated_by=user_id,
    )
    session.add(transaction)
    session.commit()

    return {
        'transaction_id': transaction.transaction_id,
        'student_id': student.id,
        'amount': transaction.amount,
        'gateway_name': transaction.gateway,
        'payment_url': transaction.payment_url,
        'status': transaction.status,
        'expires_at': transaction.created_at + timedelta(minutes=30),
        'created_at': transaction.created_at,
    }


def refund(session, data, trust_id, user_id=None):
    receipt = get_or_404(session, FeeReceipt, data['receipt_id'], 'Receipt not found')
    amount = money(data['refund_amount'])
    refunded = money(session.query(func.sum(FeeRefund.amount)).filter(FeeRefund.receipt_id == receipt.id).scalar())
    if money(refunded + amount) > receipt.amount:
        raise BusinessRuleError(
            f'Refund amount exceeds refundable balance of {money(receipt.amount - refunded)}'
        )
    if data['refund_mode'] == 'BANK' and not data.get('bank_details'):
        raise ValidationError('Bank details are required for BANK refunds')

    # Earlier refunds already consumed the latest allocations
    already_reversed = refunded
    remaining = amount
    adjustments = []
    for allocation in reversed(receipt.allocations):
        available = allocation.amount
        consumed = min(already_reversed, available)
        already_reversed = money(already_reversed - consumed)
        available = money(available - consumed)
        if remaining <= 0 or available <= 0:
            continue
        reversed_amount = money(min(remaining, available))
        assignment = session.get(StudentFeeAssignment, allocation.assignment_id)
        assignment.paid_amount = money(assignment.paid_amount - reversed_amount)
        _settle(assignment)
        remaining = money(remaining - reversed_amount)
        adjustments.append({
            'assignment_id': assignment.id,
            'amount_reversed': reversed_amount,
            'balance_amount': assignment.balance_amount,
            'status': assignment.status,
        })

    row = FeeRefund(
        receipt_id=receipt.id,
        amount=amount,
        refund_mode=data['refund_mode'],
        reason=data['refund_reason'],
        bank_details=data.get('bank_details'),
        status='PROCESSED',
        processed_by=user_id,
    )
    session.add(row)
    total_refunded = money(refunded + amount)
    receipt.status = 'REFUNDED' if total_refunded >= receipt.amount - 0.01 else 'PARTIALLY_REFUNDED'
    session.flush()
    record_tenant_event(session, 'FEE_REFUNDED', trust_id=trust_id, user_id=user_id, activity_id='05-008',
                        entity_type='fee_refund', entity_id=row.id,
                        details={'receipt_number': receipt.receipt_number, 'amount': amount})
    session.commit()

    return {
        'refund_id': row.id,
        'receipt_id': receipt.id,
        'receipt_number': receipt.receipt_number,
        'refund_amount': amount,
        'refund_mode': row.refund_mode,
        'status': row.status,
        'receipt_status': receipt.status,
        'total_refunded': total_refunded,
        'adjustments': adjustments,
        'processed_at': row.processed_at,
    }


def receipts_in_range(session, data):
    query = session.query(FeeReceipt).join(Student, FeeReceipt.student_id == Student.id).filter(
        FeeReceipt.payment_date >= data['date_from'],
        FeeReceipt.payment_date <= data['date_to'],
    )
    if data.get('payment_mode'):
        query = query.filter(FeeReceipt.payment_mode == data['payment_mode'])
    if data.get('class_id'):
        query = query.filter(Student.class_id == data['class_id'])
    return query.order_by(FeeReceipt.payment_date, FeeReceipt.id).all()


def _collection_report(session, data):
    receipts = receipts_in_range(session, data)
    by_mode = {}
    for receipt in receipts:
        by_mode[receipt.payment_mode] = money(by_mode.get(receipt.payment_mode, 0) + receipt.amount)
    return {
        'summary': {
            'total_collected': money(sum(r.amount for r in receipts)),
            'receipt_count': len(receipts),
            'by_payment_mode': by_mode,
        },
        'receipts': [
            {
                'receipt_number': r.receipt_number,
                'student_id': r.student_id,
                'amount': r.amount,
                'payment_mode': r.payment_mode,
                'payment_date': r.payment_date,
                'status': r.status,
            }
            for r in receipts
        ],
    }


def defaulters(session, as_of, class_id=None, include_pending=True):
    """Students with a balance on structures that have an installment due by ``as_of``."""
    statuses = ('PENDING', 'PARTIAL') if include_pending else ('PARTIAL',)
    overdue = session.query(
        FeeInstallment.fee_structure_id.label('fee_structure_id'),
        func.min(FeeInstallment.due_date).label('first_due'),
    ).filter(FeeInstallment.due_date <= as_of).group_by(FeeInstallment.fee_structure_id).subquery()
    query = session.query(StudentFeeAssignment, Student, overdue.c.first_due).join(
        Student, StudentFeeAssignment.student_id == Student.id,
    ).join(overdue, StudentFeeAssignment.fee_structure_id == overdue.c.fee_structure_id).filter(
        StudentFeeAssignment.balance_amount > 0,
        StudentFeeAssignment.status.in_(statuses),
    )
    if class_id:
        query = query.filter(Student.class_id == class_id)

    rows = {}
    for assignment, student, first_due in query:
        entry = rows.setdefault(student.id, {
            'student_id': student.id,
            'student_name': student.full_name,
            'admission_number': student.admission_number,
            'class_id': student.class_id,
            'outstanding_amount': 0.0,
            'assignments': 0,
            'overdue_days': 0,
        })
        entry['overdue_days'] = max(entry['overdue_days'], (as_of - first_due).days)
        entry['outstanding_amount'] = money(entry['outstanding_amount'] + assignment.balance_amount)
        entry['assignments'] += 1
    return sorted(rows.values(), key=lambda row: row['outstanding_amount'], reverse=True)


def _defaulters_report(session, data):
    rows = defaulters(session, data['date_to'], data.get('class_id'), data.get('include_pending', True))
    return {
        'summary': {
            'defaulter_count': len(rows),
            'total_outstanding': money(sum(row['outstanding_amount'] for row in rows)),
        },
        'defaulters': rows,
    }


def _reconciliation_report(session, data):
    receipts = receipts_in_range(session, data)
    receipt_ids = [r.id for r in receipts]
    allocated = 0.0
    refunds = 0.0
    if receipt_ids:
        allocated = money(session.query(func.sum(FeeReceiptAllocation.amount))
                          .filter(FeeReceiptAllocation.receipt_id.in_(receipt_ids)).scalar())
        refunds = money(session.query(func.sum(FeeRefund.amount))
                        .filter(FeeRefund.receipt_id.in_(receipt_ids)).scalar())
    collected = money(sum(r.amount for r in receipts))
    late_fees = money(sum(r.late_fee_amount or 0 for r in receipts))
    return {
        'summary': {
            'total_receipts': collected,
            'total_allocated': allocated,
            'total_late_fees': late_fees,
            'total_refunds': refunds,
            'net_collection': money(collected - refunds),
            'unallocated': money(collected - allocated - late_fees),
        },
        'receipt_count': len(receipts),
    }


def _class_wise_report(session, data):
    query = session.query(
        SchoolClass.id, SchoolClass.class_name,
        func.sum(StudentFeeAssignment.final_amount),
        func.sum(StudentFeeAssignment.paid_amount),
        func.sum(StudentFeeAssignment.balance_amount),
        func.count(StudentFeeAssignment.id),
    ).join(FeeStructure, StudentFeeAssignment.fee_structure_id == FeeStructure.id) \
        .join(SchoolClass, FeeStructure.class_id == SchoolClass.id)
    if data.get('class_id'):
        query = query.filter(SchoolClass.id == data['class_id'])

    classes = []
    for class_id, class_name, due, paid, balance, count in query.group_by(SchoolClass.id, SchoolClass.class_name):
        due, paid = money(due), money(paid)
        classes.append({
            'class_id': class_id,
            'class_name': class_name,
            'assignments': count,
            'total_due': due,
            'total_collected': paid,
            'total_balance': money(balance),
            'collection_rate': money(paid * 100 / due) if due else 0.0,
        })
    return {'classes': classes}


FEE_REPORTS = {
    'COLLECTION': _collection_report,
    'DEFAULTERS': _defaulters_report,
    'RECONCILIATION': _reconciliation_report,
    'CLASS_WISE': _class_wise_report,
}


def fee_report(session, data):
    if data['date_from'] > data['date_to']:
        raise ValidationError('date_from cannot be after date_to')
    report = FEE_REPORTS[data['report_type']](session, data)
    report.update(
        report_type=data['report_type'],
        date_from=data['date_from'],
        date_to=data['date_to'],
        generated_at=datetime.utcnow(),
    )
    return report


def _month_start(day, offset):
    month_index = day.year * 12 + day.month - 1 + offset
    return date(month_index // 12, month_index % 12 + 1, 1)


def forecast(session, data, today=None):
    year = get_or_404(session, AcademicYear, data['academic_year_id'], 'Academic year not found')
    factor = SCENARIO_FACTORS[data.get('scenario') or 'REALISTIC']
    today = today or date.today()

    assignments = session.query(StudentFeeAssignment).join(FeeStructure).filter(
        FeeStructure.academic_year_id == year.id,
        StudentFeeAssignment.balance_amount > 0,
    ).all()
    services = []
    if data.get('include_optional_services', True):
        services = session.query(StudentServiceAssignment).filter_by(is_active=True).all()

    months = []
    for offset in range(data['forecast_months']):
        start = _month_start(today, offset)
        end = _month_start(today, offset + 1) - timedelta(days=1)

        expected_fees = 0.0
        for assignment in assignments:
            ratio = assignment.balance_amount / assignment.final_amount if assignment.final_amount else 0
            for installment in assignment.fee_structure.installments:
                if start <= installment.due_date <= end:
                    expected_fees += installment.amount * ratio

        expected_services = sum(s.monthly_amount for s in services if s.start_date <= end and s.end_date >= start)
        expected = money(expected_fees + expected_services)
        months.append({
            'month': start.strftime('%Y-%m'),
            'expected_fees': money(expected_fees),
            'expected_services': money(expected_services),
            'expected_total': expected,
            'projected_collection': money(expected * factor),
        })

    return {
        'academic_year_id': year.id,
        'scenario': data.get('scenario') or 'REALISTIC',
        'collection_factor': factor,
        'forecast': months,
        'total_expected': money(sum(m['expected_total'] for m in months)),
        'total_projected': money(sum(m['projected_collection'] for m in months)),
        'generated_at': datetime.utcnow(),
    }
