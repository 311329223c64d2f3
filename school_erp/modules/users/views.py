from school_erp.forms import validated, validated_args
from school_erp.modules.common import actor, actor_id
from school_erp.modules.users import services, users_bp
from school_erp.modules.users.forms import (
    ParentLinkForm, RoleChangeForm, SchoolAssignmentForm, StaffProfileForm, TeacherAllocationForm,
    UserCreateForm, UserListForm,
)
from school_erp.responses import created, ok
from school_erp.tenancy import current_trust_id, trust_session


@users_bp.route('', methods=['GET'])
def list_users():
    return ok(services.list_users(trust_session(), validated_args(UserListForm)))


@users_bp.route('/<int:user_id>', methods=['GET'])
def get_user(user_id):
    return ok(services.get_user(trust_session(), user_id))


@users_bp.route('', methods=['POST'])
def create_user():
    data = validated(UserCreateForm)
    return created(services.create_user(trust_session(), data, current_trust_id(), user_id=actor_id()))


@users_bp.route('/assignments', methods=['POST'])
def assign_school():
    return created(services.assign_school(trust_session(), validated(SchoolAssignmentForm), user_id=actor_id()))


@users_bp.route('/roles', methods=['POST'])
def change_role():
    data = validated(RoleChangeForm)
    return ok(services.change_role(trust_session(), data, actor(), current_trust_id()))


@users_bp.route('/teachers/assignments', methods=['POST'])
def allocate_teacher():
    return created(services.allocate_teacher(trust_session(), validated(TeacherAllocationForm)))


@users_bp.route('/profiles', methods=['PUT'])
def update_profile():
    return ok(services.update_profile(trust_session(), validated(StaffProfileForm)))


@users_bp.route('/parents/links', methods=['POST'])
def link_parent():
    return created(services.link_parent(trust_session(), validated(ParentLinkForm)))
