"""Stored reports, the custom report builder and file exports."""
from datetime import date, datetime, timedelta

from school_erp.models.tenant import ExamResult, Report, ReportExport, ReportTemplate
from tests.helpers import error_code, post

TODAY = date.today()
MONTH_AGO = TODAY - timedelta(days=30)


def add_results(session, rows):
    session.add_all(ExamResult(**row) for row in rows)
    session.commit()


class TestStudentProfiles:
    def test_all_students_with_admission_details(self, client, admin_headers, admit, trust, tenant):
        admit('ADM-001')
        admit('ADM-002', first_name='Nila', approve=False)
        data = post(client, '/api/v1/reports/students', {'report_scope': 'ALL_STUDENTS'}, admin_headers)
        assert data['total_students'] == 2
        assert data['summary']['active_students'] == 1
        assert [row['admission_status'] for row in data['students']] == ['APPROVED', 'PENDING']
        assert data['students'][0]['class_section'] == 'Grade 1-A'

        stored = tenant(trust['trust_id'], lambda s: s.get(Report, data['report_id']).report_type)
        assert stored == 'STUDENT_PROFILE'

    def test_filtered_by_gender(self, client, admin_headers, admit):
        admit('ADM-001')
        admit('ADM-002', first_name='Kabir', gender='MALE', class_index=1)
        data = post(client, '/api/v1/reports/students', {
            'report_scope': 'FILTERED', 'filters': {'gender': 'MALE'}, 'include_parent_details': False,
        }, admin_headers)
        assert [row['name'] for row in data['students']] == ['Kabir Rao']
        assert 'parent_details' not in data['students'][0]

    def test_class_wise_needs_class(self, client, admin_headers, trust):
        response = client.post('/api/v1/reports/students', json={'report_scope': 'CLASS_WISE'},
                               headers=admin_headers)
        assert error_code(response) == 'VALIDATION_ERROR'


class TestFeeCollection:
    def test_grouped_by_payment_mode(self, client, admin_headers, admit, fee_structure):
        paying = admit('ADM-001')['student_id']
        owing = admit('ADM-002', first_name='Kabir')['student_id']
        for student_id in (paying, owing):
            post(client, '/api/v1/fees/assignments', {
                'student_id': student_id, 'fee_structure_id': fee_structure['fee_structure_id'],
            }, admin_headers)
        post(client, '/api/v1/fees/collections', {'student_id': paying, 'amount': 12000, 'payment_mode': 'CASH'},
             admin_headers)
        post(client, '/api/v1/fees/collections', {'student_id': owing, 'amount': 2000, 'payment_mode': 'UPI'},
             admin_headers)

        data = post(client, '/api/v1/reports/fees', {
            'report_period': 'MONTHLY', 'date_from': MONTH_AGO.isoformat(), 'date_to': TODAY.isoformat(),
            'group_by': 'PAYMENT_MODE',
        }, admin_headers)
        assert [(row['period_label'], row['collected_amount']) for row in data['breakdown']] == [
            ('CASH', 12000), ('UPI', 2000),
        ]
        summary = data['summary']
        assert (summary['total_collected'], summary['total_pending']) == (14000, 10000)
        assert summary['collection_efficiency'] == 58.33
        assert summary['average_collection_per_student'] == 7000
        assert owing in [row['student_id'] for row in data['defaulters']]

    def test_period_over_a_year(self, client, admin_headers, trust):
        response = client.post('/api/v1/reports/fees', json={
            'report_period': 'CUSTOM', 'date_from': '2024-01-01', 'date_to': '2025-06-01',
        }, headers=admin_headers)
        assert error_code(response) == 'VALIDATION_ERROR'


class TestAttendanceSummary:
    def test_class_groups_and_defaulters(self, client, admin_headers, admit, classes):
        asha = admit('ADM-001')['student_id']
        kabir = admit('ADM-002', first_name='Kabir', gender='MALE')['student_id']
        for days_ago, kabir_status in ((10, 'ABSENT'), (9, 'ABSENT'), (8, 'PRESENT')):
            post(client, '/api/v1/attendance/daily', {
                'date': (TODAY - timedelta(days=days_ago)).isoformat(),
                'class_id': classes['class_ids'][0], 'section_id': classes['section_ids'][0],
                'attendance_records': [{'student_id': asha, 'status': 'PRESENT'},
                                       {'student_id': kabir, 'status': kabir_status}],
            }, admin_headers)

        data = post(client, '/api/v1/reports/attendance', {
            'report_period': 'MONTHLY', 'date_from': MONTH_AGO.isoformat(), 'date_to': TODAY.isoformat(),
        }, admin_headers)
        assert data['attendance_data'] == [{
            'group_label': 'Grade 1', 'student_count': 2, 'total_present': 4, 'total_absent': 2,
            'total_late': 0, 'attendance_percentage': 66.67,
        }]
        assert data['summary']['students_below_threshold'] == 1
        assert data['defaulters'][0]['student_id'] == kabir
        assert data['defaulters'][0]['consecutive_absences'] == 2


class TestAcademicPerformance:
    def test_overview_trend_and_top_performers(self, client, admin_headers, admit, classes, year, trust, tenant):
        asha = admit('ADM-001')['student_id']
        kabir = admit('ADM-002', first_name='Kabir', gender='MALE')['student_id']
        common = {'class_id': classes['class_ids'][0], 'subject_id': 1,
                  'academic_year_id': year['academic_year_id']}
        tenant(trust['trust_id'], lambda s: add_results(s, [
            dict(common, student_id=asha, exam_name='Unit 1', exam_date=TODAY - timedelta(days=40),
                 marks_obtained=80, grade='A'),
            dict(common, student_id=kabir, exam_name='Unit 1', exam_date=TODAY - timedelta(days=40),
                 marks_obtained=30, grade='D'),
            dict(common, student_id=asha, exam_name='Unit 2', exam_date=TODAY - timedelta(days=10),
                 marks_obtained=90, grade='A'),
            dict(common, student_id=kabir, exam_name='Unit 2', exam_date=TODAY - timedelta(days=10),
                 marks_obtained=35, grade='D'),
        ]))

        data = post(client, '/api/v1/reports/academic', {
            'academic_year_id': year['academic_year_id'], 'report_scope': 'SCHOOL_OVERVIEW',
            'performance_metrics': ['TOP_PERFORMERS'],
        }, admin_headers)
        summary = data['summary']
        assert summary['overall_pass_rate'] == 50.0
        assert summary['pass_percentage'] == 40
        assert summary['top_performing_class'] == 'Grade 1'
        assert summary['improvement_trend'] == 'IMPROVING'
        assert data['performance_data'][0]['grade_distribution'] == {'A': 2, 'D': 2}
        assert [row['period'] for row in data['trends']] == ['Unit 1', 'Unit 2']
        assert data['top_performers'][0] == {'student_id': asha, 'student_name': 'Asha Rao', 'average_marks': 85.0}

    def test_scope_needs_its_filter(self, client, admin_headers, year):
        response = client.post('/api/v1/reports/academic', json={
            'academic_year_id': year['academic_year_id'], 'report_scope': 'SUBJECT_ANALYSIS',
        }, headers=admin_headers)
        assert error_code(response) == 'VALIDATION_ERROR'


class TestCustomReports:
    def columns(self):
        return [
            {'field_name': 'gender', 'display_name': 'Gender', 'data_type': 'STRING'},
            {'field_name': 'id', 'display_name': 'Students', 'data_type': 'NUMBER', 'aggregation': 'COUNT'},
        ]

    def test_aggregated_columns_and_template(self, client, admin_headers, admit, trust, tenant):
        admit('ADM-001')
        admit('ADM-002', first_name='Mira')
        admit('ADM-003', first_name='Kabir', gender='MALE')
        data = post(client, '/api/v1/reports/custom', {
            'report_name': 'Gender split', 'data_sources': ['STUDENTS'], 'columns': self.columns(),
            'grouping': {'sort_by': 'gender'}, 'save_as_template': True,
        }, admin_headers)
        assert data['data'] == [{'gender': 'FEMALE', 'id': 2}, {'gender': 'MALE', 'id': 1}]
        assert data['total_rows'] == 2

        template = tenant(trust['trust_id'], lambda s: s.get(ReportTemplate, data['template_id']).data_source)
        assert template == 'STUDENTS'

    def test_filters_restrict_rows(self, client, admin_headers, admit):
        admit('ADM-001')
        admit('ADM-002', first_name='Kabir', gender='MALE')
        data = post(client, '/api/v1/reports/custom', {
            'report_name': 'Boys', 'data_sources': ['STUDENTS'], 'filters': {'gender': 'MALE'},
            'columns': [{'field_name': 'first_name', 'display_name': 'Name', 'data_type': 'STRING'}],
        }, admin_headers)
        assert data['data'] == [{'first_name': 'Kabir'}]

    def test_unknown_column(self, client, admin_headers, trust):
        response = client.post('/api/v1/reports/custom', json={
            'report_name': 'Secrets', 'data_sources': ['USERS'],
            'columns': [{'field_name': 'password_hash', 'display_name': 'Hash', 'data_type': 'STRING'}],
        }, headers=admin_headers)
        assert error_code(response) == 'VALIDATION_ERROR'


class TestExports:
    def test_export_and_download(self, client, admin_headers, admit):
        admit('ADM-001')
        report = post(client, '/api/v1/reports/students', {'report_scope': 'ALL_STUDENTS'}, admin_headers)
        export = post(client, '/api/v1/reports/export', {
            'report_id': report['report_id'], 'export_format': 'CSV',
        }, admin_headers)
        assert export['original_report_id'] == report['report_id']
        assert export['file_size'] > 0

        response = client.get(export['download_url'], headers=admin_headers)
        assert response.status_code == 200
        assert response.mimetype == 'text/csv'
        assert b'ADM-001' in response.data

    def test_pdf_with_styling(self, client, admin_headers, admit):
        admit('ADM-001')
        report = post(client, '/api/v1/reports/students', {'report_scope': 'ALL_STUDENTS'}, admin_headers)
        export = post(client, '/api/v1/reports/export', {
            'report_id': report['report_id'], 'export_format': 'PDF', 'page_orientation': 'LANDSCAPE',
            'custom_styling': {'header_color': '#1F4E79', 'font_size': 10},
        }, admin_headers)
        assert export['file_path'].endswith('.pdf')

    def test_expired_export_is_gone(self, client, admin_headers, admit, trust, tenant):
        admit('ADM-001')
        report = post(client, '/api/v1/reports/students', {'report_scope': 'ALL_STUDENTS'}, admin_headers)
        export = post(client, '/api/v1/reports/export', {
            'report_id': report['report_id'], 'export_format': 'EXCEL',
        }, admin_headers)

        def expire(session):
            session.get(ReportExport, export['export_id']).expires_at = datetime.utcnow() - timedelta(minutes=1)
            session.commit()

        tenant(trust['trust_id'], expire)
        assert client.get(export['download_url'], headers=admin_headers).status_code == 404

    def test_bad_colour(self, client, admin_headers, trust):
        response = client.post('/api/v1/reports/export', json={
            'report_id': 1, 'export_format': 'PDF', 'custom_styling': {'header_color': 'blue'},
        }, headers=admin_headers)
        assert response.status_code == 400

    def test_teacher_cannot_export(self, client, make_headers, trust):
        headers = make_headers('TEACHER', trust_id=trust['trust_id'])
        response = client.post('/api/v1/reports/export', json={'report_id': 1, 'export_format': 'CSV'},
                               headers=headers)
        assert response.status_code == 403
