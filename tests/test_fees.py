"""Fee structures, collection, refunds, reports and forecasting."""
from datetime import date, timedelta

from school_erp.models.tenant import FeeDiscountLog, LateFeeRule, StudentFeeAssignment
from tests.helpers import error_code, post


def assign(client, headers, student_id, structure_id, **extra):
    return post(client, '/api/v1/fees/assignments', dict(student_id=student_id, fee_structure_id=structure_id,
                                                          **extra), headers)


def collect(client, headers, student_id, amount, **extra):
    payload = dict({'payment_mode': 'CASH'}, student_id=student_id, amount=amount, **extra)
    return post(client, '/api/v1/fees/collections', payload, headers)


class TestStructures:
    def test_installments_sorted_by_due_date(self, fee_structure):
        assert fee_structure['total_amount'] == 12000
        assert fee_structure['installments_created'] == 2

    def test_installments_must_add_up(self, client, admin_headers, year, classes):
        response = client.post('/api/v1/fees/structures', json={
            'fee_head_name': 'Lab', 'class_id': classes['class_ids'][0],
            'academic_year_id': year['academic_year_id'], 'amount': 1000,
            'installments': [{'installment_name': 'Once', 'due_date': '2030-01-01', 'amount': 900}],
        }, headers=admin_headers)
        assert error_code(response) == 'BUSINESS_RULE_VIOLATION'

    def test_duplicate_head_for_class_and_year(self, client, admin_headers, year, classes, fee_structure):
        response = client.post('/api/v1/fees/structures', json={
            'fee_head_name': 'Tuition', 'class_id': classes['class_ids'][0],
            'academic_year_id': year['academic_year_id'], 'amount': 100,
            'installments': [{'installment_name': 'Once', 'due_date': '2030-01-01', 'amount': 100}],
        }, headers=admin_headers)
        assert error_code(response) == 'ALREADY_EXISTS'

    def test_accountant_may_create(self, client, make_headers, trust, year, classes):
        headers = make_headers('ACCOUNTANT', trust_id=trust['trust_id'])
        response = client.post('/api/v1/fees/structures', json={
            'fee_head_name': 'Library', 'class_id': classes['class_ids'][0],
            'academic_year_id': year['academic_year_id'], 'amount': 500,
            'installments': [{'installment_name': 'Once', 'due_date': '2030-01-01', 'amount': 500}],
        }, headers=headers)
        assert response.status_code == 201


class TestAssignmentsAndDiscounts:
    def test_percentage_discount_at_assignment(self, client, admin_headers, admit, fee_structure):
        student_id = admit('ADM-001')['student_id']
        data = assign(client, admin_headers, student_id, fee_structure['fee_structure_id'], discount_percentage=10)
        assert data['discount_applied'] == 1200
        assert data['balance_amount'] == 10800

    def test_both_discount_kinds_rejected(self, client, admin_headers, admit, fee_structure):
        student_id = admit('ADM-001')['student_id']
        response = client.post('/api/v1/fees/assignments', json={
            'student_id': student_id, 'fee_structure_id': fee_structure['fee_structure_id'],
            'discount_percentage': 10, 'discount_amount': 100,
        }, headers=admin_headers)
        assert error_code(response) == 'BUSINESS_RULE_VIOLATION'

    def test_pending_student_cannot_be_assigned(self, client, admin_headers, admit, fee_structure):
        student_id = admit('ADM-001', approve=False)['student_id']
        response = client.post('/api/v1/fees/assignments', json={
            'student_id': student_id, 'fee_structure_id': fee_structure['fee_structure_id'],
        }, headers=admin_headers)
        assert response.status_code == 404

    def test_later_discount_is_logged(self, client, admin_headers, admit, fee_structure, trust, tenant):
        student_id = admit('ADM-001')['student_id']
        assignment = assign(client, admin_headers, student_id, fee_structure['fee_structure_id'])
        data = post(client, '/api/v1/fees/discounts', {
            'student_fee_assignment_id': assignment['assignment_id'], 'discount_type': 'SIBLING',
            'discount_amount': 2000, 'reason': 'Second child enrolled',
        }, admin_headers)
        assert data['final_amount'] == 10000

        log = tenant(trust['trust_id'], lambda s: s.query(FeeDiscountLog).one().previous_final_amount)
        assert log == 12000

    def test_percentage_discount_needs_percentage(self, client, admin_headers, admit, fee_structure):
        student_id = admit('ADM-001')['student_id']
        assignment = assign(client, admin_headers, student_id, fee_structure['fee_structure_id'])
        response = client.post('/api/v1/fees/discounts', json={
            'student_fee_assignment_id': assignment['assignment_id'], 'discount_type': 'PERCENTAGE',
            'reason': 'Staff ward',
        }, headers=admin_headers)
        assert error_code(response) == 'VALIDATION_ERROR'


class TestServices:
    def test_overlapping_service(self, client, admin_headers, admit):
        student_id = admit('ADM-001')['student_id']
        data = post(client, '/api/v1/fees/services', {
            'student_id': student_id, 'service_type': 'TRANSPORT', 'monthly_fee': 800,
            'start_date': '2030-04-01', 'end_date': '2030-07-01', 'route_details': 'Route 4',
        }, admin_headers)
        assert data['total_months'] == 4
        assert data['total_amount'] == 3200

        response = client.post('/api/v1/fees/services', json={
            'student_id': student_id, 'service_type': 'TRANSPORT', 'monthly_fee': 800,
            'start_date': '2030-06-01',
        }, headers=admin_headers)
        assert error_code(response) == 'ALREADY_EXISTS'


class TestLateFeeRules:
    def test_new_rule_supersedes_old(self, client, admin_headers, classes, trust, tenant):
        payload = {'rule_type': 'CLASS_SPECIFIC', 'class_id': classes['class_ids'][0], 'grace_period_days': 7,
                   'late_fee_fixed': 50, 'effective_from': '2030-04-01'}
        post(client, '/api/v1/fees/late-rules', payload, admin_headers)
        data = post(client, '/api/v1/fees/late-rules', dict(payload, late_fee_fixed=75), admin_headers)
        assert data['rules_deactivated'] == 1

        active = tenant(trust['trust_id'], lambda s: s.query(LateFeeRule).filter_by(is_active=True).count())
        assert active == 1

    def test_exactly_one_charge(self, client, admin_headers, trust):
        response = client.post('/api/v1/fees/late-rules', json={
            'rule_type': 'GLOBAL', 'grace_period_days': 7, 'late_fee_fixed': 50, 'late_fee_percentage': 2,
            'effective_from': '2030-04-01',
        }, headers=admin_headers)
        assert error_code(response) == 'VALIDATION_ERROR'


class TestCollection:
    def test_receipt_and_allocation(self, client, admin_headers, admit, fee_structure, trust, tenant):
        student_id = admit('ADM-001')['student_id']
        assignment = assign(client, admin_headers, student_id, fee_structure['fee_structure_id'])

        first = collect(client, admin_headers, student_id, 5000, late_fee_amount=100)
        assert first['receipt_number'] == f"RCP-{date.today():%Y%m%d}-0001"
        assert first['amount_paid'] == 5100
        assert first['allocations'][0]['status'] == 'PARTIAL'
        assert first['balance_remaining'] == 7000

        second = collect(client, admin_headers, student_id, 7000)
        assert second['receipt_number'].endswith('-0002')
        assert second['balance_remaining'] == 0

        status = tenant(trust['trust_id'], lambda s: s.get(StudentFeeAssignment, assignment['assignment_id']).status)
        assert status == 'PAID'

    def test_overpayment_rejected(self, client, admin_headers, admit, fee_structure):
        student_id = admit('ADM-001')['student_id']
        assign(client, admin_headers, student_id, fee_structure['fee_structure_id'])
        response = client.post('/api/v1/fees/collections', json={
            'student_id': student_id, 'amount': 12000.5, 'payment_mode': 'UPI',
        }, headers=admin_headers)
        assert error_code(response) == 'BUSINESS_RULE_VIOLATION'

    def test_nothing_outstanding(self, client, admin_headers, admit):
        student_id = admit('ADM-001')['student_id']
        response = client.post('/api/v1/fees/collections', json={
            'student_id': student_id, 'amount': 10, 'payment_mode': 'CASH',
        }, headers=admin_headers)
        assert error_code(response) == 'BUSINESS_RULE_VIOLATION'


class TestGateway:
    def test_checkout_url(self, client, admin_headers, admit, fee_structure):
        student_id = admit('ADM-001')['student_id']
        assign(client, admin_headers, student_id, fee_structure['fee_structure_id'])
        data = post(client, '/api/v1/fees/gateways', {
            'student_id': student_id, 'amount': 6000, 'gateway_name': 'RAZORPAY',
            'return_url': 'https://dev-trust.school-erp.org/fees/done', 'metadata': {'term': 1},
        }, admin_headers)
        assert data['status'] == 'INITIATED'
        assert data['transaction_id'].startswith('TXN')
        assert data['payment_url'].startswith('https://api.razorpay.com/')


class TestRefunds:
    def test_partial_then_full_refund(self, client, admin_headers, admit, fee_structure):
        student_id = admit('ADM-001')['student_id']
        assign(client, admin_headers, student_id, fee_structure['fee_structure_id'])
        receipt = collect(client, admin_headers, student_id, 6000)

        first = post(client, '/api/v1/fees/refunds', {
            'receipt_id': receipt['receipt_id'], 'refund_amount': 1000, 'refund_reason': 'Excess paid',
            'refund_mode': 'CASH',
        }, admin_headers)
        assert first['receipt_status'] == 'PARTIALLY_REFUNDED'
        assert first['adjustments'][0]['balance_amount'] == 7000

        second = post(client, '/api/v1/fees/refunds', {
            'receipt_id': receipt['receipt_id'], 'refund_amount': 5000, 'refund_reason': 'Withdrawal',
            'refund_mode': 'BANK',
            'bank_details': {'account_number': '001122334455', 'ifsc_code': 'SBIN0000001', 'account_holder': 'Ravi'},
        }, admin_headers)
        assert second['receipt_status'] == 'REFUNDED'
        assert second['total_refunded'] == 6000

        response = client.post('/api/v1/fees/refunds', json={
            'receipt_id': receipt['receipt_id'], 'refund_amount': 1, 'refund_reason': 'Again',
            'refund_mode': 'CASH',
        }, headers=admin_headers)
        assert error_code(response) == 'BUSINESS_RULE_VIOLATION'

    def test_bank_refund_needs_details(self, client, admin_headers, admit, fee_structure):
        student_id = admit('ADM-001')['student_id']
        assign(client, admin_headers, student_id, fee_structure['fee_structure_id'])
        receipt = collect(client, admin_headers, student_id, 6000)
        response = client.post('/api/v1/fees/refunds', json={
            'receipt_id': receipt['receipt_id'], 'refund_amount': 100, 'refund_reason': 'Excess',
            'refund_mode': 'BANK',
        }, headers=admin_headers)
        assert error_code(response) == 'VALIDATION_ERROR'


class TestReports:
    def report(self, client, headers, report_type, **extra):
        today = date.today()
        return post(client, '/api/v1/fees/reports', dict(
            report_type=report_type, date_from=(today - timedelta(days=30)).isoformat(),
            date_to=today.isoformat(), **extra,
        ), headers)

    def test_collection_defaulters_and_reconciliation(self, client, admin_headers, admit, fee_structure):
        paying = admit('ADM-001')['student_id']
        owing = admit('ADM-002', first_name='Kabir')['student_id']
        for student_id in (paying, owing):
            assign(client, admin_headers, student_id, fee_structure['fee_structure_id'])
        collect(client, admin_headers, paying, 12000)
        collect(client, admin_headers, owing, 2000, payment_mode='UPI')

        collection = self.report(client, admin_headers, 'COLLECTION')
        assert collection['summary']['total_collected'] == 14000
        assert collection['summary']['by_payment_mode'] == {'CASH': 12000, 'UPI': 2000}

        defaulters = self.report(client, admin_headers, 'DEFAULTERS')
        assert [row['student_id'] for row in defaulters['defaulters']] == [owing]
        assert defaulters['defaulters'][0]['outstanding_amount'] == 10000
        assert defaulters['defaulters'][0]['overdue_days'] == 60

        reconciliation = self.report(client, admin_headers, 'RECONCILIATION')
        assert reconciliation['summary']['unallocated'] == 0

        class_wise = self.report(client, admin_headers, 'CLASS_WISE')
        assert class_wise['classes'][0]['collection_rate'] == round(14000 * 100 / 24000, 2)

    def test_dates_must_be_ordered(self, client, admin_headers, trust):
        response = client.post('/api/v1/fees/reports', json={
            'report_type': 'COLLECTION', 'date_from': '2030-02-01', 'date_to': '2030-01-01',
        }, headers=admin_headers)
        assert error_code(response) == 'VALIDATION_ERROR'


class TestForecast:
    def test_upcoming_installments_are_projected(self, client, admin_headers, admit, year, fee_structure):
        student_id = admit('ADM-001')['student_id']
        assign(client, admin_headers, student_id, fee_structure['fee_structure_id'])
        data = post(client, '/api/v1/fees/forecasting', {
            'academic_year_id': year['academic_year_id'], 'forecast_months': 4, 'scenario': 'REALISTIC',
        }, admin_headers)
        assert len(data['forecast']) == 4
        assert data['total_expected'] == 6000
        assert data['total_projected'] == 5100
