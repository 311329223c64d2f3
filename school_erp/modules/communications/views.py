from school_erp.forms import validated
from school_erp.modules.common import actor_id
from school_erp.modules.communications import communications_bp, services
from school_erp.modules.communications.forms import AlertForm, AlertResponseForm, AnnouncementForm, MessageForm
from school_erp.responses import created
from school_erp.tenancy import current_trust_id, trust_session


@communications_bp.route('/messages', methods=['POST'])
def send_message():
    return created(services.send_message(trust_session(), validated(MessageForm),
                                         trust_id=current_trust_id(), user_id=actor_id()))


@communications_bp.route('/announcements', methods=['POST'])
def create_announcement():
    return created(services.create_announcement(trust_session(), validated(AnnouncementForm),
                                                trust_id=current_trust_id(), user_id=actor_id()))


@communications_bp.route('/announcements/<int:announcement_id>/acknowledgments', methods=['POST'])
def acknowledge_announcement(announcement_id):
    return created(services.acknowledge_announcement(trust_session(), announcement_id, actor_id()))


@communications_bp.route('/alerts', methods=['POST'])
def create_alert():
    return created(services.create_alert(trust_session(), validated(AlertForm),
                                         trust_id=current_trust_id(), user_id=actor_id()))


@communications_bp.route('/alerts/<int:alert_id>/responses', methods=['POST'])
def respond_to_alert(alert_id):
    return created(services.respond_to_alert(trust_session(), alert_id, validated(AlertResponseForm), actor_id()))
