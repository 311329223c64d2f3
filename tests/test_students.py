"""Student lifecycle through the HTTP API."""
from datetime import date

from school_erp.models.tenant import AuditLog, Student, StudentPromotion
from tests.helpers import error_code, post


class TestAdmission:
    def test_pending_until_approved(self, client, admin_headers, admit, trust, tenant):
        admission = admit('ADM-001', approve=False)
        assert admission['status'] == 'PENDING'

        student = client.get(f"/api/v1/students/{admission['student_id']}", headers=admin_headers)
        data = student.get_json()['data']
        assert data['status'] == 'PENDING'
        assert data['full_name'] == 'Asha Rao'

        review = client.put(f"/api/v1/students/admissions/{admission['admission_id']}", json={
            'status': 'APPROVED', 'admission_date': date.today().isoformat(),
        }, headers=admin_headers)
        assert review.get_json()['data']['status'] == 'APPROVED'

        events = tenant(trust['trust_id'], lambda s: [row.event_type for row in s.query(AuditLog)])
        assert 'ADMISSION_CREATED' in events and 'ADMISSION_APPROVED' in events

    def test_duplicate_admission_number(self, client, admin_headers, admit, school, year, classes):
        admit('ADM-001')
        response = client.post('/api/v1/students/admissions', json={
            'school_id': school['school_id'], 'academic_year_id': year['academic_year_id'],
            'admission_number': 'ADM-001', 'first_name': 'Dev', 'last_name': 'Shah',
            'date_of_birth': '2018-01-01', 'gender': 'MALE', 'class_id': classes['class_ids'][0],
            'contact_phone': '9876501234', 'application_date': date.today().isoformat(),
        }, headers=admin_headers)
        assert error_code(response) == 'ALREADY_EXISTS'

    def test_section_must_belong_to_class(self, client, admin_headers, school, year, classes):
        response = client.post('/api/v1/students/admissions', json={
            'school_id': school['school_id'], 'academic_year_id': year['academic_year_id'],
            'admission_number': 'ADM-009', 'first_name': 'Dev', 'last_name': 'Shah',
            'date_of_birth': '2018-01-01', 'gender': 'MALE', 'class_id': classes['class_ids'][0],
            'section_id': classes['section_ids'][1],
            'contact_phone': '9876501234', 'application_date': date.today().isoformat(),
        }, headers=admin_headers)
        assert response.status_code == 404

    def test_approval_needs_admission_date(self, client, admin_headers, admit):
        admission = admit('ADM-002', approve=False)
        response = client.put(f"/api/v1/students/admissions/{admission['admission_id']}",
                              json={'status': 'APPROVED'}, headers=admin_headers)
        assert error_code(response) == 'BUSINESS_RULE_VIOLATION'

    def test_review_happens_once(self, client, admin_headers, admit):
        admission = admit('ADM-003')
        response = client.put(f"/api/v1/students/admissions/{admission['admission_id']}",
                              json={'status': 'REJECTED'}, headers=admin_headers)
        assert error_code(response) == 'INVALID_STATE'


class TestListing:
    def test_filters_and_search(self, client, admin_headers, admit):
        admit('ADM-001')
        admit('ADM-002', first_name='Kabir', last_name='Das', class_index=1, gender='MALE')
        admit('ADM-003', first_name='Nila', approve=False)

        active = client.get('/api/v1/students?status=ACTIVE', headers=admin_headers).get_json()['data']
        assert active['pagination']['total'] == 2

        found = client.get('/api/v1/students?search=kabir', headers=admin_headers).get_json()['data']
        assert [row['admission_number'] for row in found['students']] == ['ADM-002']


class TestPromotion:
    def test_promotion_moves_up_and_clears_roll(self, client, admin_headers, admit, classes, year, trust, tenant):
        student_id = admit('ADM-001')['student_id']
        client.put(f'/api/v1/students/{student_id}/roll', json={
            'roll_number': '7', 'section_id': classes['section_ids'][0],
            'academic_year_id': year['academic_year_id'],
        }, headers=admin_headers)

        post(client, '/api/v1/students/promotions', {
            'student_id': student_id, 'academic_year_id': year['academic_year_id'],
            'new_class_id': classes['class_ids'][1], 'new_section_id': classes['section_ids'][1],
            'promotion_type': 'PROMOTION', 'effective_date': date.today().isoformat(),
        }, admin_headers)

        def stored(session):
            student = session.get(Student, student_id)
            return student.class_id, student.roll_number, session.query(StudentPromotion).count()

        assert tenant(trust['trust_id'], stored) == (classes['class_ids'][1], None, 1)

    def test_promotion_cannot_move_down(self, client, admin_headers, admit, classes, year):
        student_id = admit('ADM-001', class_index=1)['student_id']
        response = client.post('/api/v1/students/promotions', json={
            'student_id': student_id, 'academic_year_id': year['academic_year_id'],
            'new_class_id': classes['class_ids'][0], 'promotion_type': 'PROMOTION',
            'effective_date': date.today().isoformat(),
        }, headers=admin_headers)
        assert error_code(response) == 'BUSINESS_RULE_VIOLATION'

    def test_readmission_requires_inactive_student(self, client, admin_headers, admit, classes, year):
        student_id = admit('ADM-001')['student_id']
        response = client.post('/api/v1/students/promotions', json={
            'student_id': student_id, 'academic_year_id': year['academic_year_id'],
            'new_class_id': classes['class_ids'][0], 'promotion_type': 'READMISSION',
            'effective_date': date.today().isoformat(),
        }, headers=admin_headers)
        assert error_code(response) == 'INVALID_STATE'


class TestTransfer:
    def test_pending_transfer_blocks_another(self, client, admin_headers, admit, school, trust):
        other = post(client, '/api/v1/setup/schools', {
            'school_name': 'Green Valley North', 'school_code': 'GVN', 'trust_id': trust['trust_id'],
            'contact_email': 'north@greenvalley.org',
        }, admin_headers)
        student_id = admit('ADM-001')['student_id']
        payload = {
            'student_id': student_id, 'from_school_id': school['school_id'],
            'to_school_id': other['school_id'], 'transfer_date': date.today().isoformat(),
        }
        assert post(client, '/api/v1/students/transfers', payload, admin_headers)['status'] == 'PENDING'
        response = client.post('/api/v1/students/transfers', json=payload, headers=admin_headers)
        assert error_code(response) == 'ALREADY_EXISTS'

    def test_same_school(self, client, admin_headers, admit, school):
        student_id = admit('ADM-001')['student_id']
        response = client.post('/api/v1/students/transfers', json={
            'student_id': student_id, 'from_school_id': school['school_id'],
            'to_school_id': school['school_id'], 'transfer_date': date.today().isoformat(),
        }, headers=admin_headers)
        assert error_code(response) == 'BUSINESS_RULE_VIOLATION'


class TestRollNumbers:
    def test_unique_within_section(self, client, admin_headers, admit, classes, year):
        first = admit('ADM-001')['student_id']
        second = admit('ADM-002', first_name='Kabir')['student_id']
        payload = {'roll_number': '1', 'section_id': classes['section_ids'][0],
                   'academic_year_id': year['academic_year_id']}
        assert client.put(f'/api/v1/students/{first}/roll', json=payload, headers=admin_headers).status_code == 200
        response = client.put(f'/api/v1/students/{second}/roll', json=payload, headers=admin_headers)
        assert error_code(response) == 'ALREADY_EXISTS'

    def test_section_of_another_class(self, client, admin_headers, admit, classes, year):
        student_id = admit('ADM-001')['student_id']
        response = client.put(f'/api/v1/students/{student_id}/roll', json={
            'roll_number': '1', 'section_id': classes['section_ids'][1],
            'academic_year_id': year['academic_year_id'],
        }, headers=admin_headers)
        assert error_code(response) == 'BUSINESS_RULE_VIOLATION'


class TestDetailsAndDocuments:
    def test_siblings_are_linked_both_ways(self, client, admin_headers, admit):
        first = admit('ADM-001')['student_id']
        second = admit('ADM-002', first_name='Kabir')['student_id']
        response = client.put(f'/api/v1/students/{first}/details', json={
            'sibling_student_ids': [second], 'religion': 'Hindu',
        }, headers=admin_headers)
        assert response.get_json()['data']['siblings_linked'] == 1

        detail = client.get(f'/api/v1/students/{second}', headers=admin_headers).get_json()['data']
        assert detail['sibling_ids'] == [first]

    def test_not_own_sibling(self, client, admin_headers, admit):
        student_id = admit('ADM-001')['student_id']
        response = client.put(f'/api/v1/students/{student_id}/details', json={
            'sibling_student_ids': [student_id],
        }, headers=admin_headers)
        assert error_code(response) == 'BUSINESS_RULE_VIOLATION'

    def test_document_metadata(self, client, admin_headers, admit):
        student_id = admit('ADM-001')['student_id']
        data = post(client, '/api/v1/students/documents', {
            'student_id': student_id, 'document_type': 'BIRTH_CERTIFICATE', 'file_name': 'birth.pdf',
            'file_path': '/uploads/dev-trust/students/birth.pdf', 'file_size': 20480,
        }, admin_headers)
        assert data['file_name'] == 'birth.pdf'


class TestAnalytics:
    def test_enrollment_and_demographics(self, client, admin_headers, admit, school):
        admit('ADM-001')
        admit('ADM-002', first_name='Kabir', gender='MALE', class_index=1)
        admit('ADM-003', first_name='Nila', approve=False)

        enrollment = post(client, '/api/v1/students/analytics', {
            'school_id': school['school_id'], 'analytics_type': 'ENROLLMENT',
        }, admin_headers)
        assert enrollment['data']['total_students'] == 3
        assert enrollment['data']['by_class']['Grade 1'] == {'ACTIVE': 1, 'PENDING': 1}

        demographics = post(client, '/api/v1/students/analytics', {
            'school_id': school['school_id'], 'analytics_type': 'DEMOGRAPHICS',
        }, admin_headers)
        assert demographics['data']['by_gender'] == {'FEMALE': 1, 'MALE': 1}

    def test_date_range_order(self, client, admin_headers, trust):
        response = client.post('/api/v1/students/analytics', json={
            'analytics_type': 'ATTENDANCE', 'date_from': '2025-05-01', 'date_to': '2025-04-01',
        }, headers=admin_headers)
        assert error_code(response) == 'BUSINESS_RULE_VIOLATION'
