from school_erp.forms import validated, validated_args
from school_erp.modules.common import actor_id
from school_erp.modules.students import services, students_bp
from school_erp.modules.students.forms import (
    AdmissionForm, AdmissionReviewForm, AnalyticsForm, PromotionForm, RollAllocationForm,
    StudentDetailsForm, StudentDocumentForm, StudentListForm, TransferForm,
)
from school_erp.responses import created, ok
from school_erp.tenancy import current_trust_id, trust_session


@students_bp.route('', methods=['GET'])
def list_students():
    return ok(services.list_students(trust_session(), validated_args(StudentListForm)))


@students_bp.route('/<int:student_id>', methods=['GET'])
def get_student(student_id):
    return ok(services.get_student(trust_session(), student_id))


@students_bp.route('/admissions', methods=['POST'])
def admit_student():
    data = validated(AdmissionForm)
    return created(services.admit_student(trust_session(), data, current_trust_id(), user_id=actor_id()))


@students_bp.route('/admissions/<int:admission_id>', methods=['PUT'])
def review_admission(admission_id):
    data = validated(AdmissionReviewForm)
    result = services.review_admission(trust_session(), admission_id, data, current_trust_id(),
                                       user_id=actor_id())
    return ok(result)


@students_bp.route('/promotions', methods=['POST'])
def promote_student():
    return created(services.promote_student(trust_session(), validated(PromotionForm), user_id=actor_id()))


@students_bp.route('/transfers', methods=['POST'])
def transfer_student():
    return created(services.transfer_student(trust_session(), validated(TransferForm), user_id=actor_id()))


@students_bp.route('/<int:student_id>/roll', methods=['PUT'])
def allocate_roll(student_id):
    return ok(services.allocate_roll(trust_session(), student_id, validated(RollAllocationForm)))


@students_bp.route('/<int:student_id>/details', methods=['PUT'])
def update_details(student_id):
    return ok(services.update_details(trust_session(), student_id, validated(StudentDetailsForm)))


@students_bp.route('/documents', methods=['POST'])
def add_document():
    return created(services.add_document(trust_session(), validated(StudentDocumentForm), user_id=actor_id()))


@students_bp.route('/analytics', methods=['POST'])
def analytics():
    return ok(services.analytics(trust_session(), validated(AnalyticsForm)))
