"""Built-in wizard definitions."""
from school_erp.modules.setup.forms import TrustSetupForm
from school_erp.rbac import SCHOOL_ADMIN, SYSTEM_ADMIN, TRUST_ADMIN
from school_erp.wizard.forms import (
    AcademicStepForm, AdminUsersStepForm, ClassStepForm, FeeCategoriesStepForm, GradingStepForm,
    SchoolAdminStepForm, SchoolInfoStepForm, SchoolsStepForm, SystemConfigStepForm,
)


class Step:
    """One wizard step; ``form`` validates the payload submitted for it."""

    def __init__(self, id, title, activity_id, endpoint, form, roles, dependencies=(), optional=False,
                 skip_if=None, description=''):
        self.id = id
        self.title = title
        self.activity_id = activity_id
        self.endpoint = endpoint
        self.form = form
        self.roles = tuple(roles)
        self.dependencies = tuple(dependencies)
        self.optional = optional
        self.skip_if = skip_if
        self.description = description

    def skipped(self, data):
        return self.skip_if is not None and bool(self.skip_if(data))

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'activity_id': self.activity_id,
            'endpoint': self.endpoint,
            'optional': self.optional,
            'dependencies': list(self.dependencies),
        }


class Wizard:
    def __init__(self, id, name, description, category, roles, steps, timeout_minutes=None, restartable=True):
        self.id = id
        self.name = name
        self.description = description
        self.category = category
        self.roles = tuple(roles)
        self.steps = list(steps)
        self.timeout_minutes = timeout_minutes
        self.restartable = restartable

    def step(self, step_id):
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def index(self, step_id):
        return [step.id for step in self.steps].index(step_id)

    def allows(self, role):
        return role in self.roles

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'category': self.category,
            'total_steps': len(self.steps),
            'timeout_minutes': self.timeout_minutes,
            'restartable': self.restartable,
        }


def _chain(steps):
    """Make every step depend on the one before it."""
    for previous, step in zip(steps, steps[1:]):
        step.dependencies = (previous.id,)
    return steps


TRUST_SETUP = Wizard(
    'trust-setup', 'Trust Setup Wizard', 'Complete trust organization setup', 'setup',
    roles=(SYSTEM_ADMIN,),
    timeout_minutes=60,
    steps=_chain([
        Step('trust-creation', 'Create Trust Organization', 'SETUP-01-001', '/api/v1/setup/trusts',
             TrustSetupForm, (SYSTEM_ADMIN,), description='Basic trust information and configuration'),
        Step('school-creation', 'Add Schools', 'SETUP-01-002', '/api/v1/setup/schools',
             SchoolsStepForm, (SYSTEM_ADMIN,), description='Create schools under this trust'),
        Step('academic-setup', 'Academic Structure', 'SETUP-01-003', '/api/v1/setup/academic-years',
             AcademicStepForm, (SYSTEM_ADMIN,), description='Configure academic years'),
        Step('class-structure', 'Class & Section Setup', 'SETUP-01-004', '/api/v1/setup/classes',
             ClassStepForm, (SYSTEM_ADMIN,), description='Define classes, sections and houses'),
        Step('grading-system', 'Grading & Assessment', 'SETUP-01-005', '/api/v1/setup/academics',
             GradingStepForm, (SYSTEM_ADMIN,), description='Configure subjects and the grading system'),
        Step('system-config', 'System Configuration', 'SETUP-01-006', '/api/v1/setup/config',
             SystemConfigStepForm, (SYSTEM_ADMIN,), description='Final system settings and preferences'),
        Step('admin-user', 'Administrator Setup', 'SETUP-01-007', '/api/v1/setup/roles',
             AdminUsersStepForm, (SYSTEM_ADMIN,), description='Create initial administrator users'),
    ]),
)

SCHOOL_ONBOARDING = Wizard(
    'school-onboarding', 'New School Onboarding', 'Quick setup for adding new schools to existing trust',
    'onboarding',
    roles=(TRUST_ADMIN,),
    timeout_minutes=30,
    steps=_chain([
        Step('school-info', 'School Information', 'SETUP-01-002', '/api/v1/setup/schools',
             SchoolInfoStepForm, (TRUST_ADMIN,), description='Basic school details'),
        Step('school-admin', 'School Administrator', 'SETUP-01-007', '/api/v1/setup/roles',
             SchoolAdminStepForm, (TRUST_ADMIN,), description='Create school admin user'),
    ]),
)

FEE_STRUCTURE = Wizard(
    'fee-structure', 'Fee Structure Setup', 'Configure fee structures and payment plans', 'configuration',
    roles=(SCHOOL_ADMIN, TRUST_ADMIN),
    steps=[
        Step('fee-categories', 'Fee Categories', 'FEES-05-001', '/api/v1/fees/structures',
             FeeCategoriesStepForm, (SCHOOL_ADMIN, TRUST_ADMIN), description='Define fee categories and types'),
    ],
)

WIZARDS = {wizard.id: wizard for wizard in (TRUST_SETUP, SCHOOL_ONBOARDING, FEE_STRUCTURE)}


def get_wizard(wizard_id):
    return WIZARDS.get(wizard_id)


def available_wizards(role):
    return [wizard for wizard in WIZARDS.values() if wizard.allows(role)]
