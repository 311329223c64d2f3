from school_erp.forms import validated
from school_erp.modules.common import actor_id
from school_erp.modules.setup import services, setup_bp
from school_erp.modules.setup.forms import (
    AcademicStructureForm, AcademicYearForm, ClassStructureForm, RoleSetupForm,
    SchoolConfigForm, SchoolSetupForm, TrustSetupForm,
)
from school_erp.responses import created, ok
from school_erp.tenancy import current_trust_id, trust_session


@setup_bp.route('/trusts', methods=['POST'])
def create_trust():
    return created(services.create_trust(validated(TrustSetupForm), user_id=actor_id()))


@setup_bp.route('/schools', methods=['POST'])
def create_school():
    data = validated(SchoolSetupForm)
    trust = services.active_trust(data['trust_id'])
    result = services.create_school(trust_session(trust.id), data, trust.id, user_id=actor_id())
    return created(result)


@setup_bp.route('/academic-years', methods=['POST'])
def create_academic_year():
    data = validated(AcademicYearForm)
    return created(services.create_academic_year(trust_session(), data, user_id=actor_id()))


@setup_bp.route('/classes', methods=['POST'])
def create_classes():
    return created(services.create_class_structure(trust_session(), validated(ClassStructureForm)))


@setup_bp.route('/academics', methods=['POST'])
def configure_academics():
    data = validated(AcademicStructureForm)
    return created(services.configure_academics(trust_session(), data, user_id=actor_id()))


@setup_bp.route('/config', methods=['POST'])
def configure_school():
    return ok(services.configure_school(trust_session(), validated(SchoolConfigForm), user_id=actor_id()))


@setup_bp.route('/roles', methods=['POST'])
def create_role_users():
    data = validated(RoleSetupForm)
    result = services.create_admin_users(trust_session(), data, current_trust_id(), user_id=actor_id())
    return created(result)
