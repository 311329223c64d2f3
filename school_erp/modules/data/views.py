from flask import request

from school_erp.forms import validated, validated_args
from school_erp.modules.common import actor_id
from school_erp.modules.data import data_bp, services
from school_erp.modules.data.forms import (
    ConfigCacheForm, ConnectionCleanupForm, ConnectionStatusForm, MasterSchemaForm,
    MigrationRecordForm, SessionStoreForm, SystemAuditForm, SystemConfigForm,
    SystemUserForm, TenantAuditForm, TrustRegistryForm, TrustSchemaForm, TrustUpdateForm,
)
from school_erp.responses import created, ok


@data_bp.route('/connections/status', methods=['GET'])
def connection_status():
    return ok(services.connection_status(validated_args(ConnectionStatusForm)))


@data_bp.route('/schemas/master', methods=['POST'])
def init_master_schema():
    return created(services.initialize_master_schema(validated(MasterSchemaForm)))


@data_bp.route('/schemas/trusts', methods=['POST'])
def init_trust_schema():
    return created(services.initialize_trust_schema(validated(TrustSchemaForm)))


@data_bp.route('/config', methods=['POST'])
def upsert_config():
    return created(services.upsert_system_config(validated(SystemConfigForm)))


@data_bp.route('/trusts', methods=['POST'])
def register_trust():
    return created(services.register_trust(validated(TrustRegistryForm), user_id=actor_id()))


@data_bp.route('/trusts', methods=['GET'])
def list_trusts():
    return ok(services.list_trusts())


@data_bp.route('/trusts/<int:trust_id>', methods=['PATCH'])
def update_trust(trust_id):
    return ok(services.update_trust(trust_id, validated(TrustUpdateForm), user_id=actor_id()))


@data_bp.route('/users', methods=['POST'])
def create_system_user():
    return created(services.create_system_user(validated(SystemUserForm), user_id=actor_id()))


@data_bp.route('/migrations', methods=['POST'])
def record_migration():
    return created(services.record_migration(validated(MigrationRecordForm)))


@data_bp.route('/sessions', methods=['POST'])
def manage_session():
    data = validated(SessionStoreForm)
    result = services.manage_session(data)
    return created(result) if data['action'] == 'CREATE' else ok(result)


@data_bp.route('/audit-logs/system', methods=['POST'])
def write_system_audit():
    return created(services.write_system_audit(validated(SystemAuditForm)))


@data_bp.route('/audit-logs/tenants', methods=['POST'])
def write_tenant_audit():
    return created(services.write_tenant_audit(validated(TenantAuditForm)))


@data_bp.route('/config/cache', methods=['GET', 'PUT'])
def config_cache():
    if request.method == 'GET':
        data = validated_args(ConfigCacheForm) if request.args else {'action': 'GET'}
    else:
        data = validated(ConfigCacheForm)
    return ok(services.manage_config_cache(data))


@data_bp.route('/connections/cleanup', methods=['POST'])
def connection_cleanup():
    return ok(services.cleanup_connections(validated(ConnectionCleanupForm)))
