"""角色权限表

角色是封闭的枚举，每个角色对应一组固定的操作权限，
路由通过 require_capability 声明所需权限，不再比较角色字符串。
"""
from functools import wraps

from pitlane.audit import record_access_failure
from pitlane.errors import AuthenticationRequired, Forbidden
from pitlane.identity import current_session
from pitlane.models import Role

VIEW_DASHBOARD = 'view_dashboard'
VIEW_TEAM_OVERVIEW = 'view_team_overview'
VIEW_SESSIONS = 'view_sessions'
CREATE_SESSIONS = 'create_sessions'
EDIT_SESSIONS = 'edit_sessions'
MANAGE_PIT_STOPS = 'manage_pit_stops'
MANAGE_USERS = 'manage_users'
VIEW_AUDIT_LOGS = 'view_audit_logs'
MANAGE_OWN_PROFILE = 'manage_own_profile'

_BASE = frozenset({VIEW_DASHBOARD, VIEW_TEAM_OVERVIEW, VIEW_SESSIONS, MANAGE_OWN_PROFILE})

CAPABILITIES = {
    Role.DRIVER: _BASE,
    Role.RACE_ENGINEER: _BASE | {EDIT_SESSIONS, MANAGE_PIT_STOPS},
    Role.TEAM_PRINCIPAL: _BASE | {CREATE_SESSIONS, EDIT_SESSIONS, MANAGE_PIT_STOPS, VIEW_AUDIT_LOGS},
    Role.ADMINISTRATOR: _BASE | {CREATE_SESSIONS, EDIT_SESSIONS, MANAGE_PIT_STOPS,
                                 VIEW_AUDIT_LOGS, MANAGE_USERS},
}


def has_capability(role, capability):
    return capability in CAPABILITIES.get(Role(role), frozenset())


def login_required(f):
    """要求已登录，当前身份作为第一个参数传入"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        identity = current_session()
        if identity is None:
            raise AuthenticationRequired()
        return f(identity, *args, **kwargs)
    return decorated_function


def require_capability(capability):
    """要求当前身份具备指定权限，拒绝时记录访问失败"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            identity = current_session()
            if identity is None:
                record_access_failure(capability, 'access', 'not authenticated')
                raise AuthenticationRequired()
            if not has_capability(identity.role, capability):
                record_access_failure(capability, 'access',
                                      f'role {identity.role.value} lacks capability', identity=identity)
                raise Forbidden()
            return f(identity, *args, **kwargs)
        return decorated_function
    return decorator
