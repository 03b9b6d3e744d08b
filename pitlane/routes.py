from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from pitlane import db
from pitlane import passwords, rbac, security_questions
from pitlane.auth import sign_in, sign_up
from pitlane.audit import EMAIL_ERROR, VALIDATION_ERROR, record_access_failure, record_input_failure
from pitlane.errors import (AuthenticationError, InvalidCredentials, InvalidInput, PitlaneError,
                            StoreUnavailable)
from pitlane.identity import end_session, get_identity_by_email
from pitlane.lockout import lock_status, refuse_if_locked
from pitlane.models import AccessFailure, AccountLockout, InputFailure, LoginAttempt
from pitlane.utils import client_metadata, normalize_email, validate_email

auth_bp = Blueprint('auth', __name__)

AUDIT_SOURCES = {
    'login-attempts': LoginAttempt,
    'lockouts': AccountLockout,
    'access-failures': AccessFailure,
    'input-failures': InputFailure,
}
AUDIT_DEFAULT_LIMIT = 100
AUDIT_MAX_LIMIT = 500


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidInput('Invalid request data format')
    return data


def _success(message, status=200, **payload):
    return jsonify({'status': 'success', 'message': message, **payload}), status


@auth_bp.app_errorhandler(PitlaneError)
def handle_pitlane_error(error):
    if isinstance(error, AuthenticationError):
        # 具体原因只写日志，不返回给客户端
        current_app.logger.info(f'认证失败: {error.reason}')
    return jsonify(error.to_dict()), error.status_code


@auth_bp.app_errorhandler(SQLAlchemyError)
def handle_store_error(error):
    db.session.rollback()
    current_app.logger.error(f'数据库错误: {str(error)}')
    return jsonify(StoreUnavailable().to_dict()), StoreUnavailable.status_code


@auth_bp.route('/register', methods=['POST'])
def register():
    """注册新用户"""
    data = _json_body()
    identity = sign_up(
        data.get('email'),
        data.get('password'),
        data.get('full_name'),
        data.get('question_1'),
        data.get('answer_1'),
        data.get('question_2'),
        data.get('answer_2'),
    )
    return _success('Registration complete', 201, user=identity.to_dict())


@auth_bp.route('/login', methods=['POST'])
def login():
    """登录"""
    data = _json_body()
    ip, user_agent = client_metadata()
    identity = sign_in(data.get('email'), data.get('password'), ip, user_agent)
    return _success('Successfully signed in', user=identity.to_dict())


@auth_bp.route('/logout', methods=['POST'])
def logout():
    end_session()
    return _success('Signed out')


@auth_bp.route('/me', methods=['GET'])
@rbac.login_required
def me(identity):
    """当前用户信息、最近登录信息和安全设置状态"""
    status = lock_status(identity.email)
    return jsonify({
        'status': 'success',
        'user': identity.to_dict(),
        'failed_login_count': status.failed_count,
        'security_questions_configured': security_questions.is_configured(identity),
        'can_change_password': passwords.can_change(identity),
    }), 200


@auth_bp.route('/security-questions/catalog', methods=['GET'])
def question_catalog():
    return jsonify({'status': 'success', 'questions': list(security_questions.QUESTION_CATALOG)}), 200


@auth_bp.route('/security-questions', methods=['GET'])
@rbac.login_required
def get_security_questions(identity):
    return jsonify({'status': 'success', **security_questions.challenge(identity)}), 200


@auth_bp.route('/security-questions', methods=['PUT'])
@rbac.login_required
def put_security_questions(identity):
    """设置安全问题，需要先用当前密码确认身份"""
    data = _json_body()
    refuse_if_locked(identity.email)
    if not passwords.reauthenticate(identity, data.get('current_password')):
        record_access_failure('security_questions', 'setup', 'current password incorrect', identity=identity)
        raise InvalidCredentials(passwords.REAUTHENTICATION_FAILED)
    security_questions.setup(
        identity,
        data.get('question_1'),
        data.get('answer_1'),
        data.get('question_2'),
        data.get('answer_2'),
    )
    return _success('Security questions saved successfully')


@auth_bp.route('/security-questions/verify', methods=['POST'])
@rbac.login_required
def verify_security_questions(identity):
    data = _json_body()
    refuse_if_locked(identity.email)
    passwords.step_up(identity, data.get('answer_1'), data.get('answer_2'), 'security_questions', 'verify')
    return _success('Identity verified successfully', verified=True)


@auth_bp.route('/password', methods=['POST'])
@rbac.login_required
def change_password(identity):
    """修改密码：安全问题答案与新密码一起提交"""
    data = _json_body()
    if data.get('new_password') != data.get('confirm_password'):
        raise InvalidInput('New passwords do not match')
    passwords.change_password(
        identity,
        data.get('current_password'),
        data.get('new_password'),
        data.get('answer_1'),
        data.get('answer_2'),
    )
    return _success('Password updated successfully')


@auth_bp.route('/password/reset/questions', methods=['POST'])
def reset_questions():
    """重置密码第一步：获取安全问题"""
    data = _json_body()
    email = normalize_email(data.get('email'))
    if not validate_email(email):
        record_input_failure(EMAIL_ERROR, 'Invalid email format during password reset', email=email)
        raise InvalidInput('Please enter a valid email address')
    identity = get_identity_by_email(email)
    if identity is None or not security_questions.is_configured(identity):
        questions = security_questions.decoy_challenge(email)
    else:
        questions = security_questions.challenge(identity)
    return jsonify({'status': 'success', **questions}), 200


@auth_bp.route('/password/reset', methods=['POST'])
def reset_password():
    """重置密码第二步：回答安全问题并设置新密码"""
    data = _json_body()
    email = normalize_email(data.get('email'))
    if not validate_email(email):
        record_input_failure(EMAIL_ERROR, 'Invalid email format during password reset', email=email)
        raise InvalidInput('Please enter a valid email address')
    if data.get('new_password') != data.get('confirm_password'):
        record_input_failure(VALIDATION_ERROR, 'Passwords do not match', email=email)
        raise InvalidInput('Passwords do not match')
    passwords.reset_password(email, data.get('answer_1'), data.get('answer_2'), data.get('new_password'))
    return _success('Password has been reset. You can now sign in')


@auth_bp.route('/audit/<kind>', methods=['GET'])
@rbac.require_capability(rbac.VIEW_AUDIT_LOGS)
def audit_log(identity, kind):
    """审计日志查询：登录记录、锁定记录、访问失败、输入失败"""
    model = AUDIT_SOURCES.get(kind)
    if model is None:
        raise InvalidInput(f'Unknown audit log: {kind}')
    limit = request.args.get('limit', AUDIT_DEFAULT_LIMIT, type=int)
    limit = max(1, min(limit, AUDIT_MAX_LIMIT))
    rows = model.query.order_by(model.created_at.desc(), model.id.desc()).limit(limit).all()
    return jsonify({'status': 'success', 'kind': kind, 'items': [row.to_dict() for row in rows]}), 200
