"""访问控制失败与输入校验失败记录

尽力而为的诊断通道：写入失败只记录本地日志，绝不影响主流程。
"""
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from pitlane import db
from pitlane.models import AccessFailure, InputFailure
from pitlane.utils import client_metadata

EMAIL_ERROR = 'email_error'
PASSWORD_ERROR = 'password_error'
VALIDATION_ERROR = 'validation_error'
FAILURE_TYPES = (EMAIL_ERROR, PASSWORD_ERROR, VALIDATION_ERROR)


def _save(record):
    try:
        db.session.add(record)
        db.session.commit()
        return True
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.warning(f'审计记录写入失败: {str(e)}')
        return False


def record_access_failure(resource, action, reason, identity=None, email=None):
    """记录越权访问或二次验证失败"""
    ip, user_agent = client_metadata()
    current_app.logger.warning(
        f'访问被拒绝: {resource}:{action} user={identity.id if identity else None} reason={reason}'
    )
    return _save(AccessFailure(
        user_id=identity.id if identity else None,
        email=identity.email if identity else email,
        resource=resource,
        action=action,
        reason=reason,
        ip_address=ip,
        user_agent=user_agent,
    ))


def record_input_failure(failure_type, message, email=None):
    """记录登录、注册、重置密码流程中的输入校验失败"""
    if failure_type not in FAILURE_TYPES:
        failure_type = VALIDATION_ERROR
    ip, user_agent = client_metadata()
    return _save(InputFailure(
        email=email,
        failure_type=failure_type,
        error_message=message[:255],
        ip_address=ip,
        user_agent=user_agent,
    ))
