"""Trust, school and teacher dashboards."""
from datetime import date, timedelta

from school_erp.modules.dashboards.services import resolve_period
from tests.helpers import error_code, post

WEDNESDAY = date(2025, 6, 18)


class TestResolvePeriod:
    def test_named_ranges(self):
        assert resolve_period({'time_range': 'TODAY'}, WEDNESDAY) == (WEDNESDAY, WEDNESDAY)
        assert resolve_period({'time_range': 'THIS_WEEK'}, WEDNESDAY) == (date(2025, 6, 16), WEDNESDAY)
        assert resolve_period({'time_range': 'LAST_WEEK'}, WEDNESDAY) == (date(2025, 6, 9), date(2025, 6, 15))
        assert resolve_period({'time_range': 'LAST_MONTH'}, WEDNESDAY) == (date(2025, 5, 1), date(2025, 5, 31))
        assert resolve_period({'time_range': 'THIS_YEAR'}, WEDNESDAY) == (date(2025, 1, 1), WEDNESDAY)
        assert resolve_period({}, WEDNESDAY) == (date(2025, 6, 1), WEDNESDAY)

    def test_custom_range(self):
        data = {'time_range': 'CUSTOM', 'date_from': date(2025, 1, 1), 'date_to': date(2025, 1, 31)}
        assert resolve_period(data, WEDNESDAY) == (date(2025, 1, 1), date(2025, 1, 31))

    def test_custom_range_needs_dates(self, client, admin_headers, trust):
        response = client.get('/api/v1/dashboards/trust?time_range=CUSTOM&date_from=2025-01-01',
                              headers=admin_headers)
        assert error_code(response) == 'VALIDATION_ERROR'


def fees_for_two(client, headers, admit, fee_structure):
    paying = admit('ADM-001')['student_id']
    owing = admit('ADM-002', first_name='Kabir', gender='MALE')['student_id']
    for student_id in (paying, owing):
        post(client, '/api/v1/fees/assignments', {
            'student_id': student_id, 'fee_structure_id': fee_structure['fee_structure_id'],
        }, headers)
    post(client, '/api/v1/fees/collections', {'student_id': paying, 'amount': 12000, 'payment_mode': 'CASH'},
         headers)
    return paying, owing


class TestTrustDashboard:
    def test_summary_and_financials(self, client, admin_headers, admit, school, fee_structure):
        fees_for_two(client, admin_headers, admit, fee_structure)
        response = client.get('/api/v1/dashboards/trust', headers=admin_headers)
        assert response.status_code == 200
        data = response.get_json()['data']

        summary = data['summary']
        assert (summary['total_schools'], summary['total_students']) == (1, 2)
        assert (summary['total_revenue'], summary['pending_fees']) == (12000, 12000)
        assert data['schools_overview'][0]['fee_collection_rate'] == 50.0

        financial = data['financial_summary']
        assert [row['student_name'] for row in financial['top_defaulters']] == ['Kabir Rao']
        assert financial['revenue_trends'] == [{'period': date.today().isoformat(), 'collected': 12000}]

    def test_sections_can_be_left_out(self, client, admin_headers, school):
        response = client.get('/api/v1/dashboards/trust?include_financial=false&include_analytics=false',
                              headers=admin_headers)
        data = response.get_json()['data']
        assert 'financial_summary' not in data
        assert 'attendance_analytics' not in data
        assert data['summary']['total_students'] == 0

    def test_school_admin_is_refused(self, client, make_headers, trust, school):
        headers = make_headers('SCHOOL_ADMIN', trust_id=trust['trust_id'], school_id=school['school_id'])
        assert client.get('/api/v1/dashboards/trust', headers=headers).status_code == 403


class TestSchoolDashboard:
    def test_class_breakdown(self, client, admin_headers, admit, school, classes, fee_structure):
        fees_for_two(client, admin_headers, admit, fee_structure)
        data = client.get(f"/api/v1/dashboards/school?school_id={school['school_id']}",
                          headers=admin_headers).get_json()['data']
        assert data['school_info']['school_name'] == school['school_name']
        assert data['summary']['total_classes'] == 2
        assert data['summary']['total_fee_collected'] == 12000

        by_class = {row['class_name']: row for row in data['class_analytics']}
        assert by_class['Grade 1']['student_count'] == 2
        assert by_class['Grade 2']['student_count'] == 0
        assert by_class['Grade 1']['teacher_assigned'] is False

        assert data['fee_analytics']['defaulter_summary']['total_defaulters'] == 1
        assert data['staff_summary']['active_teachers'] == 0
        assert data['recent_activities']

    def test_school_admin_sees_own_school_only(self, client, admin_headers, make_headers, trust, school):
        other = post(client, '/api/v1/setup/schools', {
            'school_name': 'North', 'school_code': 'NORTH', 'trust_id': trust['trust_id'],
            'contact_email': 'north@greenvalley.org',
        }, admin_headers)
        headers = make_headers('SCHOOL_ADMIN', trust_id=trust['trust_id'], school_id=school['school_id'])
        own = client.get('/api/v1/dashboards/school', headers=headers)
        assert own.get_json()['data']['school_info']['school_id'] == school['school_id']

        response = client.get(f"/api/v1/dashboards/school?school_id={other['school_id']}", headers=headers)
        assert response.status_code == 403

    def test_school_is_required(self, client, admin_headers, trust):
        response = client.get('/api/v1/dashboards/school', headers=admin_headers)
        assert error_code(response) == 'VALIDATION_ERROR'


class TestTeacherDashboard:
    def test_classes_tasks_and_attention(self, client, admin_headers, make_headers, admit, school, classes, year,
                                         trust, create_user):
        teacher = create_user('TEACHER', 'teacher@greenvalley.org', school_id=school['school_id'],
                              full_name='Lata Menon')
        post(client, '/api/v1/users/teachers/assignments', {
            'teacher_id': teacher['user_id'], 'class_ids': [classes['class_ids'][0]],
            'section_ids': [classes['section_ids'][0]], 'academic_year_id': year['academic_year_id'],
            'is_class_teacher': True,
        }, admin_headers)
        asha = admit('ADM-001')['student_id']
        kabir = admit('ADM-002', first_name='Kabir', gender='MALE')['student_id']
        for days_ago in (12, 11, 10):
            post(client, '/api/v1/attendance/daily', {
                'date': (date.today() - timedelta(days=days_ago)).isoformat(),
                'class_id': classes['class_ids'][0], 'section_id': classes['section_ids'][0],
                'attendance_records': [{'student_id': asha, 'status': 'PRESENT'},
                                       {'student_id': kabir, 'status': 'ABSENT'}],
            }, admin_headers)
        post(client, '/api/v1/attendance/leave', {
            'student_id': kabir, 'leave_type': 'SICK', 'start_date': date.today().isoformat(),
            'end_date': date.today().isoformat(), 'reason': 'Recovering from fever',
        }, admin_headers)

        headers = make_headers('TEACHER', user_id=teacher['user_id'], trust_id=trust['trust_id'],
                               school_id=school['school_id'])
        date_from = (date.today() - timedelta(days=30)).isoformat()
        response = client.get(f'/api/v1/dashboards/teacher?time_range=CUSTOM&date_from={date_from}'
                              f'&date_to={date.today().isoformat()}', headers=headers)
        data = response.get_json()['data']

        assert data['teacher_info']['teacher_name'] == 'Lata Menon'
        assert data['my_classes'][0]['section'] == 'A'
        assert data['my_classes'][0]['student_count'] == 2
        assert data['my_classes'][0]['recent_attendance_rate'] == 50.0
        assert 'LEAVE_APPROVAL' in [task['task_type'] for task in data['upcoming_tasks']]

        performance = data['student_performance']
        assert performance['top_performers'][0]['student_id'] == asha
        attention = performance['attention_needed']
        assert [row['student_id'] for row in attention] == [kabir]
        assert attention[0]['issues'] == ['Critical attendance', '3 absences in period']

    def test_accountant_is_refused(self, client, make_headers, trust):
        headers = make_headers('ACCOUNTANT', trust_id=trust['trust_id'])
        assert client.get('/api/v1/dashboards/teacher', headers=headers).status_code == 403
