"""Session-backed wizard state machine.

State lives in a dict-like store (the Flask session in requests) under
``wizard_<id>``. Timestamps are kept as ISO strings so the state stays
serializable by the session interface.
"""
import logging
from datetime import datetime, timedelta

from school_erp.errors import ForbiddenError, InvalidStateError, NotFoundError
from school_erp.forms import validated
from school_erp.responses import to_json
from school_erp.wizard.definitions import get_wizard

logger = logging.getLogger(__name__)


def session_key(wizard_id):
    return f'wizard_{wizard_id}'


class WizardEngine:
    def __init__(self, store, role, clock=None):
        self.store = store
        self.role = role
        self.clock = clock or datetime.utcnow

    def wizard(self, wizard_id):
        wizard = get_wizard(wizard_id)
        if wizard is None:
            raise NotFoundError(f'Wizard {wizard_id} not found')
        if not wizard.allows(self.role):
            raise ForbiddenError(f'Role {self.role} cannot run wizard {wizard_id}')
        return wizard

    def _fresh(self, wizard):
        now = self.clock().isoformat()
        return {
            'wizard_id': wizard.id,
            'current_step': wizard.steps[0].id,
            'completed_steps': [],
            'data': {},
            'started_at': now,
            'last_activity': now,
            'is_complete': False,
        }

    def _expired(self, wizard, state):
        if not wizard.timeout_minutes:
            return False
        last = datetime.fromisoformat(state['last_activity'])
        return self.clock() - last > timedelta(minutes=wizard.timeout_minutes)

    def load(self, wizard_id):
        wizard = self.wizard(wizard_id)
        state = self.store.get(session_key(wizard_id))
        if state is None:
            state = self._fresh(wizard)
        elif self._expired(wizard, state):
            logger.info('Wizard %s timed out; restarting', wizard_id)
            state = self._fresh(wizard)
        return wizard, state

    def _save(self, state):
        state['last_activity'] = self.clock().isoformat()
        self.store[session_key(state['wizard_id'])] = state

    @staticmethod
    def can_access(step, state):
        return all(dep in state['completed_steps'] for dep in step.dependencies)

    @staticmethod
    def _settled(step, state):
        if step.id in state['completed_steps']:
            return True
        return step.optional and (step.skip_if is None or step.skipped(state['data']))

    def _next_step(self, wizard, state):
        start = wizard.index(state['current_step']) + 1
        count = len(wizard.steps)
        for offset in range(count):
            step = wizard.steps[(start + offset) % count]
            if step.id in state['completed_steps'] or step.skipped(state['data']):
                continue
            if self.can_access(step, state):
                return step
        return None

    def process_step(self, wizard_id, payload):
        wizard, state = self.load(wizard_id)
        if state['is_complete']:
            raise InvalidStateError(f'Wizard {wizard_id} is already complete')
        step = wizard.step(state['current_step'])
        if not self.can_access(step, state):
            raise InvalidStateError(f'Step {step.id} is not accessible yet')

        state['data'][step.id] = to_json(validated(step.form, payload=payload))
        if step.id not in state['completed_steps']:
            state['completed_steps'].append(step.id)

        next_step = None
        if all(self._settled(item, state) for item in wizard.steps):
            state['is_complete'] = True
        else:
            next_step = self._next_step(wizard, state)
            if next_step is not None:
                state['current_step'] = next_step.id
        self._save(state)
        logger.info('Wizard %s step %s completed', wizard_id, step.id)
        return {
            'state': self.describe(wizard, state),
            'next_step': next_step.to_dict() if next_step else None,
        }

    def navigate(self, wizard_id, step_id):
        wizard, state = self.load(wizard_id)
        step = wizard.step(step_id)
        if step is None:
            raise NotFoundError(f'Step {step_id} not found in wizard {wizard_id}')
        if not self.can_access(step, state):
            raise InvalidStateError(f'Step {step_id} is not accessible yet', details={
                'missing_dependencies': [dep for dep in step.dependencies if dep not in state['completed_steps']],
            })
        state['current_step'] = step.id
        self._save(state)
        return self.describe(wizard, state)

    def reset(self, wizard_id):
        wizard = self.wizard(wizard_id)
        if not wizard.restartable:
            raise InvalidStateError(f'Wizard {wizard_id} cannot be restarted')
        self.store.pop(session_key(wizard_id), None)
        return self.describe(wizard, self._fresh(wizard))

    @staticmethod
    def progress(wizard, state):
        return round(len(state['completed_steps']) / len(wizard.steps) * 100)

    def state(self, wizard_id):
        wizard, state = self.load(wizard_id)
        return self.describe(wizard, state)

    def describe(self, wizard, state):
        steps = []
        for step in wizard.steps:
            entry = step.to_dict()
            entry['completed'] = step.id in state['completed_steps']
            entry['accessible'] = self.can_access(step, state)
            steps.append(entry)
        return {
            'wizard': wizard.to_dict(),
            'current_step': state['current_step'],
            'completed_steps': list(state['completed_steps']),
            'progress': self.progress(wizard, state),
            'is_complete': state['is_complete'],
            'started_at': state['started_at'],
            'last_activity': state['last_activity'],
            'steps': steps,
        }

    def completion_summary(self, wizard_id):
        wizard, state = self.load(wizard_id)
        if not state['is_complete']:
            return None
        return {
            'wizard_id': wizard.id,
            'name': wizard.name,
            'started_at': state['started_at'],
            'completed_at': state['last_activity'],
            'completed_steps': list(state['completed_steps']),
            'data': state['data'],
        }
