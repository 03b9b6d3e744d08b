"""登录尝试记录与账号锁定策略

每次登录提交都会先追加一条 LoginAttempt，再更新 LockoutState 计数器。
计数器的增减均由数据库以单条 UPDATE 语句完成，不在应用内读改写，
因此同一账号的并发失败登录不会少计。
安全问题验证失败、敏感操作前的重新认证失败同样计入该计数器。
"""
from collections import namedtuple

from flask import current_app
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from pitlane import db
from pitlane.errors import RateLimited, StoreUnavailable
from pitlane.models import AccountLockout, LockoutState, LoginAttempt, utcnow
from pitlane.utils import client_metadata, normalize_email

# 超过阈值后退避的最大步数，防止指数溢出
_MAX_BACKOFF_STEPS = 32

LockStatus = namedtuple('LockStatus', ['locked', 'failed_count', 'locked_until', 'retry_after'])


def _get_state(email):
    return LockoutState.query.filter_by(email=email).first()


def is_locked(email, now=None):
    """检查账号是否被锁定（必须在校验密码之前调用）"""
    now = now or utcnow()
    state = _get_state(normalize_email(email))
    if state is None or state.locked_until is None:
        return False
    return state.locked_until > now


def lock_status(email, now=None):
    now = now or utcnow()
    state = _get_state(normalize_email(email))
    if state is None:
        return LockStatus(False, 0, None, 0)
    if state.locked_until is not None and state.locked_until > now:
        retry_after = max(1, int((state.locked_until - now).total_seconds()))
        return LockStatus(True, state.failed_count, state.locked_until, retry_after)
    return LockStatus(False, state.failed_count, None, 0)


def lockout_duration(failed_count):
    """锁定时长：达到阈值时为基础时长，之后每次失败按倍数递增，有上限"""
    cfg = current_app.config
    steps = min(max(0, failed_count - cfg['MAX_LOGIN_ATTEMPTS']), _MAX_BACKOFF_STEPS)
    duration = cfg['ACCOUNT_LOCKOUT_DURATION'] * (cfg['LOCKOUT_BACKOFF_MULTIPLIER'] ** steps)
    return min(duration, cfg['MAX_LOCKOUT_DURATION'])


def append_attempt(email, success, ip_address=None, user_agent=None, reason=None, user_id=None):
    """追加登录尝试记录并立即提交"""
    attempt = LoginAttempt(
        email=normalize_email(email),
        user_id=user_id,
        success=success,
        failure_reason=None if success else reason,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.session.add(attempt)
    db.session.commit()
    return attempt


def _ensure_state(email, user_id):
    """不存在时创建占位记录；并发插入冲突时视为已存在"""
    if _get_state(email) is None:
        try:
            with db.session.begin_nested():
                db.session.add(LockoutState(email=email, user_id=user_id, failed_count=0))
        except IntegrityError:
            pass
    if user_id is not None:
        db.session.execute(
            update(LockoutState)
            .where(LockoutState.email == email, LockoutState.user_id.is_(None))
            .values(user_id=user_id)
        )


def _register_failure(email, user_id, now):
    cfg = current_app.config
    threshold = cfg['MAX_LOGIN_ATTEMPTS']
    _ensure_state(email, user_id)

    db.session.execute(
        update(LockoutState)
        .where(LockoutState.email == email)
        .values(failed_count=LockoutState.failed_count + 1, last_failed_at=now)
    )
    failed_count = db.session.execute(
        select(LockoutState.failed_count).where(LockoutState.email == email)
    ).scalar_one()

    locked_until = None
    if failed_count >= threshold:
        candidate = now + lockout_duration(failed_count)
        # 只有尚未处于锁定期的记录才会被锁定，并发请求中仅有一个生效
        result = db.session.execute(
            update(LockoutState)
            .where(
                LockoutState.email == email,
                LockoutState.failed_count >= threshold,
                or_(LockoutState.locked_until.is_(None), LockoutState.locked_until <= now),
            )
            .values(locked_until=candidate, lock_reason=cfg['LOCK_REASON'])
        )
        if result.rowcount:
            locked_until = candidate
            db.session.add(AccountLockout(
                email=email,
                user_id=user_id,
                locked_until=candidate,
                reason=cfg['LOCK_REASON'],
            ))
    db.session.commit()

    if locked_until is not None:
        current_app.logger.warning(
            f'账号已锁定: {email} 连续失败 {failed_count} 次，锁定至 {locked_until.isoformat()}'
        )
    return failed_count, locked_until


def _register_success(email, identity, ip_address, now):
    db.session.execute(
        update(LockoutState)
        .where(LockoutState.email == email)
        .values(failed_count=0, locked_until=None, lock_reason=None)
    )
    if identity is not None:
        identity.last_login_at = now
        identity.last_login_ip = ip_address
    db.session.commit()


def record_attempt(email, success, ip_address=None, user_agent=None, reason=None, identity=None):
    """记录一次登录尝试并更新锁定状态

    先写入登录记录，再更新计数器：成功时清零并解除锁定，
    失败时计数加一，达到阈值后锁定账号。
    返回当前失败次数。
    """
    email = normalize_email(email)
    user_id = identity.id if identity is not None else None
    now = utcnow()
    try:
        append_attempt(email, success, ip_address, user_agent, reason, user_id=user_id)
        if success:
            _register_success(email, identity, ip_address, now)
            return 0
        failed_count, _ = _register_failure(email, user_id, now)
        return failed_count
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f'登录记录更新失败: {str(e)}')
        raise StoreUnavailable() from e


def refuse_if_locked(email):
    """锁定期间拒绝重置密码、修改密码等敏感操作"""
    if is_locked(email):
        current_app.logger.warning(f'账号锁定期间尝试敏感操作: {email}')
        raise RateLimited()


def record_step_up_failure(email, reason, identity=None):
    """安全问题或重新认证失败，与登录失败共用同一个锁定计数"""
    ip, user_agent = client_metadata()
    return record_attempt(email, False, ip, user_agent, reason=reason, identity=identity)
