from school_erp.forms import validated_args
from school_erp.modules.common import actor
from school_erp.modules.dashboards import dashboards_bp, services
from school_erp.modules.dashboards.forms import SchoolDashboardForm, TeacherDashboardForm, TrustDashboardForm
from school_erp.responses import ok
from school_erp.tenancy import trust_session


@dashboards_bp.route('/trust', methods=['GET'])
def trust_dashboard():
    return ok(services.trust_dashboard(trust_session(), validated_args(TrustDashboardForm)))


@dashboards_bp.route('/school', methods=['GET'])
def school_dashboard():
    return ok(services.school_dashboard(trust_session(), validated_args(SchoolDashboardForm), actor()))


@dashboards_bp.route('/teacher', methods=['GET'])
def teacher_dashboard():
    return ok(services.teacher_dashboard(trust_session(), validated_args(TeacherDashboardForm), actor()))
