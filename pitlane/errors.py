"""账号安全相关异常

认证类错误对客户端只返回统一的提示信息，具体原因只写入日志和登录记录；
密码策略类错误不存在账号枚举风险，返回具体可操作的提示。
"""

GENERIC_SIGN_IN_MESSAGE = 'Unable to sign in. Please check your details and try again later.'


class PitlaneError(Exception):
    code = 'ERROR'
    message = 'Request failed'
    status_code = 400

    def __init__(self, message=None):
        super().__init__(message or self.message)
        if message:
            self.message = message

    def to_dict(self):
        return {'status': 'error', 'message': self.message, 'code': self.code}


class InvalidInput(PitlaneError):
    code = 'INVALID_INPUT'
    message = 'Invalid request data'


class EmailTaken(PitlaneError):
    code = 'EMAIL_EXISTS'
    message = 'Unable to register with this email'


class AuthenticationRequired(PitlaneError):
    code = 'AUTHENTICATION_REQUIRED'
    message = 'Authentication required'
    status_code = 401


class Forbidden(PitlaneError):
    code = 'FORBIDDEN'
    message = "You don't have permission to access this area."
    status_code = 403


# ── 登录 ──────────────────────────────────────────────

class AuthenticationError(PitlaneError):
    """对客户端统一表现为“无法登录”"""
    code = 'SIGN_IN_FAILED'
    message = GENERIC_SIGN_IN_MESSAGE
    status_code = 401
    reason = 'authentication_failed'

    def __init__(self, reason=None):
        super().__init__()
        if reason:
            self.reason = reason

    def to_dict(self):
        return {'status': 'error', 'message': GENERIC_SIGN_IN_MESSAGE, 'code': AuthenticationError.code}


class LockedOut(AuthenticationError):
    reason = 'account_locked'


class InvalidCredentials(AuthenticationError):
    reason = 'invalid_credentials'


class StoreUnavailable(PitlaneError):
    code = 'SERVICE_UNAVAILABLE'
    message = "We're unable to complete your request right now. Please try again later."
    status_code = 503


# ── 安全问题 ──────────────────────────────────────────

class NotConfigured(PitlaneError):
    code = 'SECURITY_QUESTIONS_NOT_CONFIGURED'
    message = 'Security questions have not been set up'
    status_code = 409


class SecurityQuestionsInvalid(PitlaneError):
    code = 'INVALID_SECURITY_QUESTIONS'
    message = 'Invalid security questions'


class VerificationFailed(PitlaneError):
    code = 'VERIFICATION_FAILED'
    message = 'Security answers are incorrect'
    status_code = 403


# ── 密码策略 ──────────────────────────────────────────

class PasswordPolicyError(PitlaneError):
    code = 'INVALID_PASSWORD'


class TooShort(PasswordPolicyError):
    code = 'PASSWORD_TOO_SHORT'
    message = 'Password must be at least 8 characters long'


class TooLong(PasswordPolicyError):
    code = 'PASSWORD_TOO_LONG'
    message = 'Password must be at most 64 characters long'


class WeakComplexity(PasswordPolicyError):
    code = 'PASSWORD_TOO_WEAK'
    message = 'Password must contain uppercase, lowercase, number, and special character'


class ReusedPassword(PasswordPolicyError):
    code = 'PASSWORD_REUSED'
    message = 'Password was used recently. Please choose a different password'


# ── 频率限制 ──────────────────────────────────────────

class RateLimited(PitlaneError):
    """锁定期间的重置密码、修改密码等操作，不透露具体原因"""
    code = 'TOO_MANY_ATTEMPTS'
    message = 'Too many attempts. Please try again later.'
    status_code = 429


class TooSoon(RateLimited):
    code = 'PASSWORD_CHANGE_TOO_SOON'
    message = 'Password can only be changed once every 24 hours'
