"""密码轮换策略：复杂度校验、最小修改间隔、历史密码防重用

修改密码的顺序：
    锁定检查 -> can_change -> 当前密码重新认证 -> 安全问题验证
    -> validate_new_password -> check_history -> commit
任何一步失败都在修改密码之前中止；重新认证和安全问题验证失败计入登录锁定计数。
"""
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from pitlane import db
from pitlane import security_questions
from pitlane.audit import PASSWORD_ERROR, record_access_failure, record_input_failure
from pitlane.errors import (InvalidCredentials, PasswordPolicyError, ReusedPassword,
                            StoreUnavailable, TooLong, TooShort, TooSoon, VerificationFailed,
                            WeakComplexity)
from pitlane.identity import get_identity_by_email, update_password, verify_password
from pitlane.lockout import record_step_up_failure, refuse_if_locked
from pitlane.models import PasswordHistoryEntry, utcnow
from pitlane.utils import hash_secret, verify_secret

REAUTHENTICATION_FAILED = 'reauthentication_failed'
STEP_UP_FAILED = 'step_up_failed'


def validate_new_password(candidate):
    """校验新密码：长度和复杂度，按顺序抛出第一个不满足的错误"""
    cfg = current_app.config
    candidate = candidate or ''
    min_length = cfg['PASSWORD_MIN_LENGTH']
    max_length = cfg['PASSWORD_MAX_LENGTH']

    if len(candidate) < min_length:
        raise TooShort(f'Password must be at least {min_length} characters long')
    if len(candidate) > max_length:
        raise TooLong(f'Password must be at most {max_length} characters long')

    has_upper = any(c.isupper() for c in candidate)
    has_lower = any(c.islower() for c in candidate)
    has_digit = any(c.isdigit() for c in candidate)
    has_symbol = any(c in cfg['PASSWORD_SYMBOLS'] for c in candidate)
    if not (has_upper and has_lower and has_digit and has_symbol):
        raise WeakComplexity()


def can_change(identity, now=None):
    """距上次修改不足最小间隔时不允许再次修改"""
    if identity.password_changed_at is None:
        return True
    now = now or utcnow()
    return now - identity.password_changed_at >= current_app.config['PASSWORD_MIN_AGE']


def recent_history(identity, limit=None):
    limit = limit or current_app.config['PASSWORD_HISTORY_SIZE']
    return (PasswordHistoryEntry.query
            .filter_by(user_id=identity.id)
            .order_by(PasswordHistoryEntry.created_at.desc(), PasswordHistoryEntry.id.desc())
            .limit(limit)
            .all())


def check_history(identity, candidate):
    """新密码不能与当前密码或最近使用过的密码相同

    查询历史失败时放行（fail open），不阻塞正常用户修改密码。
    """
    if verify_secret(candidate, identity.password_hash):
        return False
    try:
        entries = recent_history(identity)
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.warning(f'密码历史查询失败，跳过重用检查: user={identity.id} {str(e)}')
        return True
    return not any(verify_secret(candidate, entry.password_hash) for entry in entries)


def commit(identity, new_password):
    """在同一事务中记录旧密码、更新当前密码并刷新修改时间"""
    try:
        db.session.add(PasswordHistoryEntry(user_id=identity.id, password_hash=identity.password_hash))
        update_password(identity, hash_secret(new_password))
        identity.password_changed_at = utcnow()
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f'密码更新失败: user={identity.id} {str(e)}')
        raise StoreUnavailable() from e
    current_app.logger.info(f'密码已更新: user={identity.id}')


def _apply_new_password(identity, new_password):
    validate_new_password(new_password)
    if not check_history(identity, new_password):
        raise ReusedPassword()
    commit(identity, new_password)


def change_password(identity, current_password, new_password, answer_1, answer_2):
    """已登录用户修改密码"""
    refuse_if_locked(identity.email)
    if not can_change(identity):
        raise TooSoon()

    if not reauthenticate(identity, current_password):
        record_access_failure('password', 'change', 'current password incorrect', identity=identity)
        raise InvalidCredentials(REAUTHENTICATION_FAILED)

    step_up(identity, answer_1, answer_2, 'password', 'change')
    _apply_new_password(identity, new_password)


def reset_password(email, answer_1, answer_2, new_password):
    """忘记密码：通过安全问题验证身份后重置密码"""
    # 先检查锁定再查账号，锁定与否不透露账号是否存在
    refuse_if_locked(email)
    identity = get_identity_by_email(email)
    if identity is None or not security_questions.is_configured(identity):
        record_step_up_failure(email, STEP_UP_FAILED)
        record_access_failure('password', 'reset', 'unknown account or questions not set', email=email)
        raise VerificationFailed()

    step_up(identity, answer_1, answer_2, 'password', 'reset')

    try:
        _apply_new_password(identity, new_password)
    except PasswordPolicyError as e:
        record_input_failure(PASSWORD_ERROR, e.message, email=identity.email)
        raise


def step_up(identity, answer_1, answer_2, resource, action):
    """安全问题验证，失败时计入锁定计数并记录访问失败"""
    if security_questions.verify(identity, answer_1, answer_2):
        return
    failed_count = record_step_up_failure(identity.email, STEP_UP_FAILED, identity=identity)
    record_access_failure(resource, action, 'security answers incorrect', identity=identity)
    current_app.logger.warning(f'安全问题验证失败: user={identity.id} failed_count={failed_count}')
    raise VerificationFailed()


def reauthenticate(identity, password):
    """敏感操作前用当前密码重新确认身份，失败计入锁定计数"""
    if verify_password(identity.email, password) is not None:
        return True
    record_step_up_failure(identity.email, REAUTHENTICATION_FAILED, identity=identity)
    return False
