"""身份提供者：校验主密码、更新密码、维护基于会话的当前身份"""
from flask import session
from sqlalchemy.exc import SQLAlchemyError

from pitlane import db
from pitlane.errors import StoreUnavailable
from pitlane.models import Identity, Role
from pitlane.utils import hash_secret, normalize_email, verify_secret

SESSION_KEY = 'identity_id'

_dummy_hash = None


def _timing_dummy_hash():
    # 用户不存在时也执行一次bcrypt校验，避免通过响应时间枚举账号
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = hash_secret('pitlane-dummy-password')
    return _dummy_hash


def get_identity_by_email(email):
    return Identity.query.filter_by(email=normalize_email(email)).first()


def create_identity(email, password, full_name, role=Role.DRIVER, team_id=None, car_number=None):
    """创建身份记录（由调用方提交事务）"""
    identity = Identity(
        email=normalize_email(email),
        full_name=full_name.strip(),
        role=role,
        team_id=team_id,
        car_number=car_number,
        password_hash=hash_secret(password),
    )
    db.session.add(identity)
    db.session.flush()
    return identity


def verify_password(email, password):
    """校验主密码，成功返回身份，失败返回None；存储不可用时拒绝登录"""
    try:
        identity = get_identity_by_email(email)
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StoreUnavailable() from e

    if identity is None:
        verify_secret(password, _timing_dummy_hash())
        return None
    if not verify_secret(password, identity.password_hash):
        return None
    return identity


def update_password(identity, new_hash):
    """替换当前密码哈希（由调用方提交事务）"""
    identity.password_hash = new_hash
    db.session.add(identity)


def start_session(identity):
    session.clear()
    session[SESSION_KEY] = identity.id
    session.permanent = True


def end_session():
    session.pop(SESSION_KEY, None)


def current_session():
    identity_id = session.get(SESSION_KEY)
    if identity_id is None:
        return None
    return db.session.get(Identity, identity_id)
