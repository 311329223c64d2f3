"""
WTForms helpers for validating JSON request bodies and query strings.

JSON payloads are flattened into the ``name-0-sub`` key layout WTForms
already understands for ``FieldList`` and ``FormField``, so the usual field
classes and validators apply unchanged.
"""
from datetime import date, datetime, timezone

from flask import request
from flask_wtf import FlaskForm
from werkzeug.datastructures import MultiDict
from wtforms import BooleanField, DateField, DateTimeField, Field, FieldList, Form, FormField, StringField
from wtforms.utils import unset_value

from school_erp.errors import ValidationError


def flatten_json(payload, prefix='', out=None):
    """Flatten nested dicts and lists into a WTForms-style MultiDict."""
    if out is None:
        out = MultiDict()
    if isinstance(payload, dict):
        for key, value in payload.items():
            flatten_json(value, f'{prefix}-{key}' if prefix else str(key), out)
    elif isinstance(payload, (list, tuple)):
        for index, value in enumerate(payload):
            flatten_json(value, f'{prefix}-{index}', out)
    elif payload is None:
        pass
    elif isinstance(payload, bool):
        out.add(prefix, 'true' if payload else 'false')
    else:
        out.add(prefix, str(payload))
    return out


class JsonBooleanField(BooleanField):
    """Boolean that keeps its default when the key is missing."""
    false_values = (False, 'false', 'False', '0', '')

    def process_data(self, value):
        self.data = None if value is None else bool(value)

    def process_formdata(self, valuelist):
        if valuelist:
            self.data = valuelist[0] not in self.false_values


class IsoDateTimeField(DateTimeField):
    """ISO-8601 timestamp; aware values are converted to naive UTC."""

    def process_formdata(self, valuelist):
        if not valuelist:
            return
        raw = valuelist[0].strip()
        try:
            value = datetime.fromisoformat(raw.replace('Z', '+00:00'))
        except ValueError:
            self.data = None
            raise ValueError(self.gettext('Not a valid datetime value.'))
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        self.data = value


class IsoDateField(DateField):
    """Calendar date given as YYYY-MM-DD or as the date part of an ISO timestamp."""

    def process_formdata(self, valuelist):
        if not valuelist:
            return
        try:
            self.data = date.fromisoformat(valuelist[0].strip()[:10])
        except ValueError:
            self.data = None
            raise ValueError(self.gettext('Not a valid date value.'))


class RawJsonField(Field):
    """Passes a JSON value (object or list) through untouched."""

    def process_formdata(self, valuelist):
        pass

    def _value(self):
        return ''


class IdListField(StringField):
    """Comma separated integer ids, as used in query strings."""

    def process_formdata(self, valuelist):
        if not valuelist or not valuelist[0]:
            return
        ids = []
        for raw in valuelist:
            for part in raw.split(','):
                part = part.strip()
                if not part:
                    continue
                try:
                    ids.append(int(part))
                except ValueError:
                    raise ValueError('Not a valid list of ids.')
        self.data = ids


class OptionalFormField(FormField):
    """Nested object that is only validated when the payload includes it."""

    def process(self, formdata, data=unset_value, extra_filters=None):
        super().process(formdata, data, extra_filters)
        prefix = self.name + self.separator
        self.present = bool(formdata) and any(key.startswith(prefix) for key in formdata)

    def validate(self, form, extra_validators=()):
        if not self.present:
            return True
        return super().validate(form, extra_validators)

    @property
    def data(self):
        return self.form.data if self.present else None


class SubForm(Form):
    """Base for nested objects inside a JSON payload."""


class JsonForm(FlaskForm):
    # Reject top-level keys the form does not declare
    strict = False

    class Meta:
        csrf = False

    @classmethod
    def from_json(cls, payload):
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise ValidationError('Request body must be a JSON object',
                                  details={'issues': [{'field': None, 'message': 'Expected an object'}]})
        form = cls(formdata=flatten_json(payload))
        declared = {field.name for field in form._fields.values()}
        if cls.strict:
            unknown = sorted(key for key in payload if key not in declared)
            if unknown:
                raise ValidationError('Validation failed', details={
                    'issues': [{'field': key, 'message': 'Unrecognized field'} for key in unknown]
                })
        for field in form._fields.values():
            if isinstance(field, RawJsonField) and field.name in payload:
                field.data = payload[field.name]
        return form


def collect_issues(form, prefix=''):
    issues = []
    for field in form._fields.values():
        path = f'{prefix}{field.short_name}'
        if isinstance(field, FormField):
            issues.extend(collect_issues(field.form, path + '.'))
        elif isinstance(field, FieldList):
            for index, entry in enumerate(field.entries):
                if isinstance(entry, FormField):
                    issues.extend(collect_issues(entry.form, f'{path}[{index}].'))
                else:
                    issues.extend({'field': f'{path}[{index}]', 'message': msg} for msg in entry.errors)
            issues.extend({'field': path, 'message': msg} for msg in field.errors if isinstance(msg, str))
        else:
            issues.extend({'field': path, 'message': msg} for msg in field.errors)
    for msg in getattr(form, 'form_errors', []):
        issues.append({'field': prefix.rstrip('.') or None, 'message': msg})
    return issues


def validated(form_cls, payload=unset_value, formdata=None):
    """Validate a JSON payload (or query args) and return the cleaned data."""
    if formdata is not None:
        form = form_cls(formdata=formdata)
    else:
        if payload is unset_value:
            payload = request.get_json(silent=True)
        form = form_cls.from_json(payload)
    if not form.validate():
        raise ValidationError('Validation failed', details={'issues': collect_issues(form)})
    return form.data


def validated_args(form_cls):
    return validated(form_cls, formdata=request.args)
