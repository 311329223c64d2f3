"""Staff accounts, school assignments, roles and parent links."""
from school_erp.models.tenant import Section, UserRoleHistory
from tests.helpers import error_code, post


class TestCreateUser:
    def test_school_level_user_gets_default_permissions(self, client, admin_headers, school, create_user):
        user = create_user('TEACHER', 'teacher@greenvalley.org', school_id=school['school_id'],
                           full_name='Lata Menon')
        assert user['first_name'] == 'Lata'
        detail = client.get(f"/api/v1/users/{user['user_id']}", headers=admin_headers).get_json()['data']
        assert detail['permissions'] == ['class_management', 'attendance', 'grades']

    def test_trust_admin_cannot_be_tied_to_school(self, client, admin_headers, school):
        response = client.post('/api/v1/users', json={
            'email': 'x@greenvalley.org', 'full_name': 'X', 'role': 'TRUST_ADMIN',
            'school_id': school['school_id'], 'password': 'Secret#123',
        }, headers=admin_headers)
        assert error_code(response) == 'BUSINESS_RULE_VIOLATION'

    def test_duplicate_email(self, client, admin_headers, trust, create_user):
        create_user('ACCOUNTANT', 'money@greenvalley.org')
        response = client.post('/api/v1/users', json={
            'email': 'money@greenvalley.org', 'full_name': 'Again', 'role': 'ACCOUNTANT',
            'password': 'Secret#123',
        }, headers=admin_headers)
        assert error_code(response) == 'ALREADY_EXISTS'

    def test_profile_fields_create_a_profile(self, client, admin_headers, school):
        user = post(client, '/api/v1/users', {
            'email': 'clerk@greenvalley.org', 'full_name': 'Ravi Clerk', 'role': 'ACCOUNTANT',
            'school_id': school['school_id'], 'password': 'Secret#123', 'employee_id': 'EMP-9',
            'designation': 'Clerk',
        }, admin_headers)
        detail = client.get(f"/api/v1/users/{user['user_id']}", headers=admin_headers).get_json()['data']
        assert detail['profile']['employee_id'] == 'EMP-9'


class TestAssignments:
    def test_primary_assignment_is_exclusive(self, client, admin_headers, school, trust, create_user):
        other = post(client, '/api/v1/setup/schools', {
            'school_name': 'North', 'school_code': 'NORTH', 'trust_id': trust['trust_id'],
            'contact_email': 'north@greenvalley.org',
        }, admin_headers)
        user = create_user('TEACHER', 'roving@greenvalley.org')
        for school_id in (school['school_id'], other['school_id']):
            post(client, '/api/v1/users/assignments', {
                'user_id': user['user_id'], 'school_id': school_id, 'role': 'TEACHER', 'is_primary': True,
            }, admin_headers)

        detail = client.get(f"/api/v1/users/{user['user_id']}", headers=admin_headers).get_json()['data']
        primary = [row['school_id'] for row in detail['assignments'] if row['is_primary']]
        assert primary == [other['school_id']]

    def test_duplicate_active_assignment(self, client, admin_headers, school, create_user):
        user = create_user('TEACHER', 'teacher@greenvalley.org')
        payload = {'user_id': user['user_id'], 'school_id': school['school_id'], 'role': 'TEACHER'}
        post(client, '/api/v1/users/assignments', payload, admin_headers)
        response = client.post('/api/v1/users/assignments', json=payload, headers=admin_headers)
        assert error_code(response) == 'ALREADY_EXISTS'

    def test_parent_is_not_a_school_role(self, client, admin_headers, school, create_user):
        user = create_user('PARENT', 'parent@greenvalley.org')
        response = client.post('/api/v1/users/assignments', json={
            'user_id': user['user_id'], 'school_id': school['school_id'], 'role': 'PARENT',
        }, headers=admin_headers)
        assert error_code(response) == 'BUSINESS_RULE_VIOLATION'


class TestRoleChange:
    def test_history_is_recorded(self, client, admin_headers, school, trust, tenant, create_user):
        user = create_user('TEACHER', 'teacher@greenvalley.org', school_id=school['school_id'])
        response = client.post('/api/v1/users/roles', json={
            'user_id': user['user_id'], 'role': 'SCHOOL_ADMIN', 'reason': 'Promoted to head of school',
        }, headers=admin_headers)
        data = response.get_json()['data']
        assert (data['old_role'], data['new_role']) == ('TEACHER', 'SCHOOL_ADMIN')

        history = tenant(trust['trust_id'], lambda s: [(h.previous_role, h.new_role) for h in s.query(UserRoleHistory)])
        assert history == [('TEACHER', 'SCHOOL_ADMIN')]

    def test_school_admin_cannot_grant_trust_admin(self, client, make_headers, school, trust, create_user):
        user = create_user('TEACHER', 'teacher@greenvalley.org', school_id=school['school_id'])
        headers = make_headers('SCHOOL_ADMIN', trust_id=trust['trust_id'], school_id=school['school_id'])
        response = client.post('/api/v1/users/roles', json={'user_id': user['user_id'], 'role': 'TRUST_ADMIN'},
                               headers=headers)
        assert response.status_code == 403

    def test_expiry_after_effective(self, client, admin_headers, trust, create_user):
        user = create_user('TEACHER', 'teacher@greenvalley.org')
        response = client.post('/api/v1/users/roles', json={
            'user_id': user['user_id'], 'role': 'ACCOUNTANT',
            'effective_date': '2030-06-01T00:00:00Z', 'expiry_date': '2030-05-01T00:00:00Z',
        }, headers=admin_headers)
        assert error_code(response) == 'VALIDATION_ERROR'


class TestTeacherAllocation:
    def test_class_teacher_is_set_on_sections(self, client, admin_headers, school, classes, year, trust, tenant,
                                              create_user):
        teacher = create_user('TEACHER', 'teacher@greenvalley.org', school_id=school['school_id'])
        data = post(client, '/api/v1/users/teachers/assignments', {
            'teacher_id': teacher['user_id'], 'class_ids': [classes['class_ids'][0]],
            'section_ids': [classes['section_ids'][0]], 'academic_year_id': year['academic_year_id'],
            'is_class_teacher': True, 'workload_hours': 20,
        }, admin_headers)
        assert data['allocations'][0]['section_name'] == 'A'

        class_teacher = tenant(trust['trust_id'], lambda s: s.get(Section, classes['section_ids'][0]).class_teacher_id)
        assert class_teacher == teacher['user_id']

    def test_one_class_teacher_per_class(self, client, admin_headers, school, classes, year, create_user):
        payload = {'class_ids': [classes['class_ids'][0]], 'academic_year_id': year['academic_year_id'],
                   'is_class_teacher': True}
        first = create_user('TEACHER', 'one@greenvalley.org', school_id=school['school_id'])
        second = create_user('TEACHER', 'two@greenvalley.org', school_id=school['school_id'])
        post(client, '/api/v1/users/teachers/assignments', dict(payload, teacher_id=first['user_id']), admin_headers)
        response = client.post('/api/v1/users/teachers/assignments', json=dict(payload, teacher_id=second['user_id']),
                               headers=admin_headers)
        assert error_code(response) == 'ALREADY_EXISTS'

    def test_workload_cap(self, client, admin_headers, school, classes, year, create_user):
        teacher = create_user('TEACHER', 'teacher@greenvalley.org', school_id=school['school_id'])
        response = client.post('/api/v1/users/teachers/assignments', json={
            'teacher_id': teacher['user_id'], 'class_ids': classes['class_ids'],
            'academic_year_id': year['academic_year_id'], 'workload_hours': 45,
        }, headers=admin_headers)
        assert error_code(response) == 'BUSINESS_RULE_VIOLATION'

    def test_only_teachers(self, client, admin_headers, school, classes, year, create_user):
        clerk = create_user('ACCOUNTANT', 'clerk@greenvalley.org', school_id=school['school_id'])
        response = client.post('/api/v1/users/teachers/assignments', json={
            'teacher_id': clerk['user_id'], 'class_ids': classes['class_ids'],
            'academic_year_id': year['academic_year_id'],
        }, headers=admin_headers)
        assert error_code(response) == 'BUSINESS_RULE_VIOLATION'


class TestProfiles:
    def test_changes_are_reported(self, client, admin_headers, school, create_user):
        user = create_user('TEACHER', 'teacher@greenvalley.org', school_id=school['school_id'])
        response = client.put('/api/v1/users/profiles', json={
            'user_id': user['user_id'],
            'personal_info': {'full_name': 'Lata Menon', 'phone': '9876512345'},
            'professional_info': {'designation': 'Senior Teacher', 'experience_years': 8},
            'emergency_contact': {'name': 'Raj Menon', 'phone': '9876500000', 'relationship': 'Spouse'},
            'documents': [{'document_type': 'PAN', 'document_number': 'ABCDE1234F'}],
        }, headers=admin_headers)
        data = response.get_json()['data']
        assert data['changes_made'] == ['personal_info', 'professional_info', 'emergency_contact', 'documents']
        assert data['professional_info']['designation'] == 'Senior Teacher'

    def test_joining_date_in_future(self, client, admin_headers, school, create_user):
        user = create_user('TEACHER', 'teacher@greenvalley.org', school_id=school['school_id'])
        response = client.put('/api/v1/users/profiles', json={
            'user_id': user['user_id'],
            'personal_info': {'full_name': 'Lata Menon'},
            'professional_info': {'designation': 'Teacher', 'date_of_joining': '2999-01-01'},
        }, headers=admin_headers)
        assert error_code(response) == 'BUSINESS_RULE_VIOLATION'


class TestParentLinks:
    def test_link_and_primary_conflict(self, client, admin_headers, admit, create_user):
        student_id = admit('ADM-001')['student_id']
        father = create_user('PARENT', 'father@greenvalley.org', full_name='Ravi Rao')
        uncle = create_user('PARENT', 'uncle@greenvalley.org', full_name='Mohan Rao')

        link = post(client, '/api/v1/users/parents/links', {
            'parent_user_id': father['user_id'], 'student_id': student_id, 'relationship': 'FATHER',
            'is_primary': True, 'emergency_contact_priority': 1,
        }, admin_headers)
        assert link['student_admission_number'] == 'ADM-001'

        response = client.post('/api/v1/users/parents/links', json={
            'parent_user_id': uncle['user_id'], 'student_id': student_id, 'relationship': 'FATHER',
            'is_primary': True,
        }, headers=admin_headers)
        assert error_code(response) == 'ALREADY_EXISTS'

        response = client.post('/api/v1/users/parents/links', json={
            'parent_user_id': uncle['user_id'], 'student_id': student_id, 'relationship': 'GUARDIAN',
            'emergency_contact_priority': 1,
        }, headers=admin_headers)
        assert error_code(response) == 'ALREADY_EXISTS'

    def test_only_parent_accounts(self, client, admin_headers, admit, school, create_user):
        student_id = admit('ADM-001')['student_id']
        teacher = create_user('TEACHER', 'teacher@greenvalley.org', school_id=school['school_id'])
        response = client.post('/api/v1/users/parents/links', json={
            'parent_user_id': teacher['user_id'], 'student_id': student_id, 'relationship': 'OTHER',
        }, headers=admin_headers)
        assert error_code(response) == 'BUSINESS_RULE_VIOLATION'
