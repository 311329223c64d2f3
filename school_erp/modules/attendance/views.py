from school_erp.forms import validated
from school_erp.modules.attendance import attendance_bp, services
from school_erp.modules.attendance.forms import (
    AttendanceProfileForm, AttendanceReportForm, DailyAttendanceForm, LeaveApplicationForm,
)
from school_erp.modules.common import actor_id
from school_erp.responses import created, ok
from school_erp.tenancy import trust_session


@attendance_bp.route('/daily', methods=['POST'])
def mark_daily():
    return created(services.mark_daily(trust_session(), validated(DailyAttendanceForm), user_id=actor_id()))


@attendance_bp.route('/leave', methods=['POST'])
def apply_leave():
    return created(services.apply_leave(trust_session(), validated(LeaveApplicationForm), user_id=actor_id()))


@attendance_bp.route('/reports', methods=['POST'])
def report():
    return ok(services.report(trust_session(), validated(AttendanceReportForm)))


@attendance_bp.route('/profiles', methods=['POST'])
def profile():
    return ok(services.profile(trust_session(), validated(AttendanceProfileForm)))
