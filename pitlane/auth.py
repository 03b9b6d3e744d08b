"""登录与注册流程

登录：锁定预检查 -> 校验密码 -> 写登录记录 -> 更新锁定计数。
对客户端不区分“用户不存在”和“密码错误”，具体原因只写入登录记录。
"""
from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from pitlane import db
from pitlane import security_questions
from pitlane.audit import (EMAIL_ERROR, PASSWORD_ERROR, VALIDATION_ERROR,
                           record_input_failure)
from pitlane.errors import (EmailTaken, InvalidCredentials, InvalidInput, LockedOut,
                            PasswordPolicyError, SecurityQuestionsInvalid, StoreUnavailable)
from pitlane.identity import create_identity, get_identity_by_email, start_session, verify_password
from pitlane.lockout import append_attempt, is_locked, record_attempt
from pitlane.passwords import validate_new_password
from pitlane.utils import normalize_email, validate_email

FULL_NAME_MIN_LENGTH = 2


def _refuse_locked(email, ip_address, user_agent):
    # 锁定期间的请求只记录，不再增加失败计数
    try:
        append_attempt(email, False, ip_address, user_agent, reason=LockedOut.reason)
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.warning(f'登录记录写入失败: {str(e)}')
    current_app.logger.warning(f'账号锁定期间尝试登录: {email}')
    raise LockedOut()


def sign_in(email, password, ip_address=None, user_agent=None):
    """登录，成功返回身份并建立会话"""
    email = normalize_email(email)
    if not validate_email(email):
        record_input_failure(EMAIL_ERROR, 'Invalid email format during sign-in', email=email)
        raise InvalidInput('Please enter a valid email address')
    if not password:
        record_input_failure(PASSWORD_ERROR, 'Missing password during sign-in', email=email)
        raise InvalidInput('Please enter your password')

    # 无法确认锁定状态时拒绝登录
    try:
        locked = is_locked(email)
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f'锁定状态检查失败: {str(e)}')
        raise StoreUnavailable() from e
    if locked:
        _refuse_locked(email, ip_address, user_agent)

    identity = verify_password(email, password)
    if identity is None:
        known = get_identity_by_email(email)
        reason = 'invalid_password' if known is not None else 'unknown_user'
        failed_count = record_attempt(email, False, ip_address, user_agent, reason=reason, identity=known)
        current_app.logger.info(f'登录失败: {email} reason={reason} failed_count={failed_count}')
        raise InvalidCredentials(reason)

    record_attempt(email, True, ip_address, user_agent, identity=identity)
    start_session(identity)
    current_app.logger.info(f'登录成功: {email}')
    return identity


def sign_up(email, password, full_name, question_1, answer_1, question_2, answer_2):
    """注册新用户，同时设置安全问题；新用户默认为车手角色"""
    email = normalize_email(email)
    if not validate_email(email):
        record_input_failure(EMAIL_ERROR, 'Invalid email format', email=email)
        raise InvalidInput('Please enter a valid email address')

    try:
        validate_new_password(password)
    except PasswordPolicyError as e:
        record_input_failure(PASSWORD_ERROR, e.message, email=email)
        raise

    if not full_name or len(full_name.strip()) < FULL_NAME_MIN_LENGTH:
        record_input_failure(VALIDATION_ERROR,
                             'Full name is required and must be at least 2 characters', email=email)
        raise InvalidInput('Please enter your full name (at least 2 characters)')

    try:
        security_questions.validate_setup(question_1, answer_1, question_2, answer_2)
    except SecurityQuestionsInvalid as e:
        record_input_failure(VALIDATION_ERROR, e.message, email=email)
        raise

    if get_identity_by_email(email) is not None:
        record_input_failure(EMAIL_ERROR, 'Email already registered', email=email)
        raise EmailTaken()

    try:
        identity = create_identity(email, password, full_name)
        security_questions.setup(identity, question_1, answer_1, question_2, answer_2, commit=False)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        record_input_failure(EMAIL_ERROR, 'Email already registered', email=email)
        raise EmailTaken()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f'创建用户失败: {str(e)}')
        raise StoreUnavailable() from e

    current_app.logger.info(f'新用户注册成功: {email}')
    return identity
