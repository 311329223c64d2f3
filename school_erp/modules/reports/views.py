from flask import send_file

from school_erp.forms import validated
from school_erp.modules.common import actor_id
from school_erp.modules.reports import reports_bp, services
from school_erp.modules.reports.forms import (
    AcademicPerformanceReportForm, AttendanceSummaryReportForm, CustomReportForm, ExportForm,
    FeeCollectionReportForm, StudentProfileReportForm,
)
from school_erp.responses import created
from school_erp.tenancy import trust_session


@reports_bp.route('/students', methods=['POST'])
def student_profiles():
    return created(services.student_profiles(trust_session(), validated(StudentProfileReportForm), actor_id()))


@reports_bp.route('/fees', methods=['POST'])
def fee_collection():
    return created(services.fee_collection(trust_session(), validated(FeeCollectionReportForm), actor_id()))


@reports_bp.route('/attendance', methods=['POST'])
def attendance_summary():
    return created(services.attendance_summary(trust_session(), validated(AttendanceSummaryReportForm),
                                               actor_id()))


@reports_bp.route('/academic', methods=['POST'])
def academic_performance():
    return created(services.academic_performance(trust_session(), validated(AcademicPerformanceReportForm),
                                                 actor_id()))


@reports_bp.route('/custom', methods=['POST'])
def custom_report():
    return created(services.custom_report(trust_session(), validated(CustomReportForm), actor_id()))


@reports_bp.route('/export', methods=['POST'])
def export_report():
    return created(services.export_report(trust_session(), validated(ExportForm), actor_id()))


@reports_bp.route('/download/<int:export_id>', methods=['GET'])
def download_export(export_id):
    path, file_name, mimetype = services.export_file(trust_session(), export_id)
    return send_file(path, mimetype=mimetype, as_attachment=True, download_name=file_name)
