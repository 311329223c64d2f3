from wtforms import IntegerField, StringField
from wtforms.validators import AnyOf, DataRequired, Email, InputRequired, Length, NumberRange, Optional

from school_erp.forms import JsonBooleanField, JsonForm, RawJsonField
from school_erp.rbac import GROUP_ADMIN, SYSTEM_ADMIN

CONFIG_TYPES = ('STRING', 'NUMBER', 'BOOLEAN', 'JSON')


class ConnectionStatusForm(JsonForm):
    action = StringField(validators=[Optional(), AnyOf(('STATUS', 'TEST_MASTER', 'TEST_TRUST'))], default='STATUS')
    trust_id = IntegerField(validators=[Optional(), NumberRange(min=1)])

    def validate(self, extra_validators=None):
        if not super().validate(extra_validators):
            return False
        if self.action.data == 'TEST_TRUST' and not self.trust_id.data:
            self.trust_id.errors.append('trust_id required for TEST_TRUST action')
            return False
        return True


class MasterSchemaForm(JsonForm):
    force_recreate = JsonBooleanField(default=False)


class TrustSchemaForm(JsonForm):
    trust_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])
    force_recreate = JsonBooleanField(default=False)


class SystemConfigForm(JsonForm):
    config_key = StringField(validators=[DataRequired(), Length(max=100)])
    config_value = StringField(validators=[InputRequired()])
    config_type = StringField(validators=[Optional(), AnyOf(CONFIG_TYPES)], default='STRING')
    description = StringField(validators=[Optional()])
    is_public = JsonBooleanField(default=False)


class TrustRegistryForm(JsonForm):
    trust_name = StringField(validators=[DataRequired(), Length(max=200)])
    trust_code = StringField(validators=[DataRequired(), Length(max=20)])
    subdomain = StringField(validators=[DataRequired(), Length(max=50)])
    is_active = JsonBooleanField(default=True)


class TrustUpdateForm(JsonForm):
    trust_name = StringField(validators=[Optional(), Length(min=1, max=200)])
    contact_email = StringField(validators=[Optional(), Email()])
    contact_phone = StringField(validators=[Optional(), Length(min=10, max=15)])
    address = StringField(validators=[Optional()])
    is_active = JsonBooleanField(default=None)


class SystemUserForm(JsonForm):
    email = StringField(validators=[DataRequired(), Email()])
    password = StringField(validators=[DataRequired(), Length(min=8)])
    role = StringField(validators=[DataRequired(), AnyOf((SYSTEM_ADMIN, GROUP_ADMIN))])
    full_name = StringField(validators=[Optional(), Length(max=255)])


class MigrationRecordForm(JsonForm):
    trust_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    migration_version = StringField(validators=[DataRequired(), Length(max=100)])
    status = StringField(validators=[Optional(), AnyOf(('PENDING', 'SUCCESS', 'FAILED'))], default='SUCCESS')


class SessionStoreForm(JsonForm):
    strict = True

    action = StringField(validators=[DataRequired(), AnyOf(('CREATE', 'READ', 'UPDATE', 'DELETE'))])
    session_id = StringField(validators=[Optional(), Length(max=128)])
    user_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    trust_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    # Expiry as epoch milliseconds
    expires = IntegerField(validators=[Optional(), NumberRange(min=1)])
    session_data = StringField(validators=[Optional()], name='data')

    def validate(self, extra_validators=None):
        if not super().validate(extra_validators):
            return False
        if self.action.data != 'CREATE' and not self.session_id.data:
            self.session_id.errors.append(f'session_id required for {self.action.data.lower()}')
            return False
        return True


class SystemAuditForm(JsonForm):
    strict = True

    trust_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    user_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    activity_id = StringField(validators=[Optional(), Length(max=50)])
    event_type = StringField(validators=[DataRequired(), Length(max=50)])
    entity_type = StringField(validators=[Optional(), Length(max=50)])
    entity_id = IntegerField(validators=[Optional(), NumberRange(min=1)])
    details = RawJsonField()
    ip_address = StringField(validators=[Optional(), Length(max=45)])
    user_agent = StringField(validators=[Optional(), Length(max=500)])


class TenantAuditForm(SystemAuditForm):
    trust_id = IntegerField(validators=[InputRequired(), NumberRange(min=1)])


class ConfigCacheForm(JsonForm):
    strict = True

    action = StringField(validators=[DataRequired(), AnyOf(('REFRESH', 'GET', 'CLEAR'))])
    subdomain = StringField(validators=[Optional(), Length(max=50)])
    trust_id = IntegerField(validators=[Optional(), NumberRange(min=1)])


class ConnectionCleanupForm(JsonForm):
    strict = True

    action = StringField(validators=[Optional(), AnyOf(('CLEANUP', 'STATUS', 'FORCE_CLEANUP'))], default='CLEANUP')
    max_idle_time = IntegerField(validators=[Optional(), NumberRange(min=1)], default=300000)
