from flask import Blueprint, current_app, request, session

from school_erp.forms import validated
from school_erp.modules.common import actor
from school_erp.responses import ok
from school_erp.wizard.definitions import available_wizards
from school_erp.wizard.engine import WizardEngine
from school_erp.wizard.forms import NavigateForm

wizards_bp = Blueprint('wizards', __name__)


def _engine():
    return WizardEngine(session, actor().get('role'), clock=current_app.config.get('WIZARD_CLOCK'))


@wizards_bp.route('', methods=['GET'])
def list_wizards():
    return ok([wizard.to_dict() for wizard in available_wizards(actor().get('role'))])


@wizards_bp.route('/<wizard_id>', methods=['GET'])
def get_state(wizard_id):
    return ok(_engine().state(wizard_id))


@wizards_bp.route('/<wizard_id>/steps', methods=['POST'])
def process_step(wizard_id):
    return ok(_engine().process_step(wizard_id, request.get_json(silent=True)))


@wizards_bp.route('/<wizard_id>/navigate', methods=['POST'])
def navigate(wizard_id):
    data = validated(NavigateForm)
    return ok(_engine().navigate(wizard_id, data['step_id']))


@wizards_bp.route('/<wizard_id>/restart', methods=['POST'])
def restart(wizard_id):
    return ok(_engine().reset(wizard_id))


@wizards_bp.route('/<wizard_id>/summary', methods=['GET'])
def summary(wizard_id):
    engine = _engine()
    return ok({'summary': engine.completion_summary(wizard_id), 'state': engine.state(wizard_id)})
