from school_erp.forms import validated
from school_erp.modules.common import actor_id
from school_erp.modules.fees import fees_bp, services
from school_erp.modules.fees.forms import (
    CollectionForm, DiscountForm, FeeAssignmentForm, FeeReportForm, FeeStructureForm, ForecastForm,
    GatewayPaymentForm, LateFeeRuleForm, RefundForm, ServiceAssignmentForm,
)
from school_erp.responses import created, ok
from school_erp.tenancy import current_trust_id, trust_session


@fees_bp.route('/structures', methods=['POST'])
def create_structure():
    return created(services.create_structure(trust_session(), validated(FeeStructureForm)))


@fees_bp.route('/assignments', methods=['POST'])
def assign_fee():
    return created(services.assign_fee(trust_session(), validated(FeeAssignmentForm), user_id=actor_id()))


@fees_bp.route('/discounts', methods=['POST'])
def apply_discount():
    return ok(services.apply_discount(trust_session(), validated(DiscountForm), user_id=actor_id()))


@fees_bp.route('/services', methods=['POST'])
def assign_service():
    return created(services.assign_service(trust_session(), validated(ServiceAssignmentForm)))


@fees_bp.route('/late-rules', methods=['POST'])
def create_late_fee_rule():
    return created(services.create_late_fee_rule(trust_session(), validated(LateFeeRuleForm), user_id=actor_id()))


@fees_bp.route('/collections', methods=['POST'])
def collect_fee():
    data = validated(CollectionForm)
    return created(services.collect_fee(trust_session(), data, current_trust_id(), user_id=actor_id()))


@fees_bp.route('/gateways', methods=['POST'])
def initiate_gateway_payment():
    data = validated(GatewayPaymentForm)
    return created(services.initiate_gateway_payment(trust_session(), data, user_id=actor_id()))


@fees_bp.route('/refunds', methods=['POST'])
def refund():
    data = validated(RefundForm)
    return created(services.refund(trust_session(), data, current_trust_id(), user_id=actor_id()))


@fees_bp.route('/reports', methods=['POST'])
def fee_report():
    return ok(services.fee_report(trust_session(), validated(FeeReportForm)))


@fees_bp.route('/forecasting', methods=['POST'])
def forecast():
    return ok(services.forecast(trust_session(), validated(ForecastForm)))
