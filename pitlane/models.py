import enum
from datetime import datetime, timezone
from pitlane import db


def utcnow():
    """当前UTC时间（不带时区，与SQLite存储保持一致）"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Role(str, enum.Enum):
    DRIVER = 'driver'
    RACE_ENGINEER = 'race_engineer'
    TEAM_PRINCIPAL = 'team_principal'
    ADMINISTRATOR = 'administrator'


class Identity(db.Model):
    __tablename__ = 'identities'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(254), unique=True, nullable=False, index=True)
    full_name = db.Column(db.String(120), nullable=False)
    role = db.Column(db.Enum(Role, values_callable=lambda r: [m.value for m in r]),
                     nullable=False, default=Role.DRIVER)
    team_id = db.Column(db.String(64))
    car_number = db.Column(db.Integer)
    password_hash = db.Column(db.String(128), nullable=False)
    password_changed_at = db.Column(db.DateTime)
    last_login_at = db.Column(db.DateTime)
    last_login_ip = db.Column(db.String(45))
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'full_name': self.full_name,
            'role': self.role.value,
            'team_id': self.team_id,
            'car_number': self.car_number,
            'last_login_at': _isoformat(self.last_login_at),
            'last_login_ip': self.last_login_ip,
        }


class LoginAttempt(db.Model):
    __tablename__ = 'login_attempts'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(254), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('identities.id'), index=True)
    success = db.Column(db.Boolean, nullable=False, default=False)
    failure_reason = db.Column(db.String(64))
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(512))
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'user_id': self.user_id,
            'success': self.success,
            'failure_reason': self.failure_reason,
            'ip_address': self.ip_address,
            'user_agent': self.user_agent,
            'created_at': _isoformat(self.created_at),
        }


class LockoutState(db.Model):
    __tablename__ = 'lockout_states'

    id = db.Column(db.Integer, primary_key=True)
    # user_id 为空表示尚未注册账号的占位记录
    email = db.Column(db.String(254), unique=True, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('identities.id'))
    failed_count = db.Column(db.Integer, nullable=False, default=0)
    locked_until = db.Column(db.DateTime)
    lock_reason = db.Column(db.String(128))
    last_failed_at = db.Column(db.DateTime)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)


class AccountLockout(db.Model):
    __tablename__ = 'account_lockouts'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(254), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('identities.id'))
    locked_until = db.Column(db.DateTime, nullable=False)
    reason = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'user_id': self.user_id,
            'locked_until': _isoformat(self.locked_until),
            'reason': self.reason,
            'created_at': _isoformat(self.created_at),
        }


class SecurityQuestionSet(db.Model):
    __tablename__ = 'security_questions'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('identities.id'), unique=True, nullable=False)
    question_1 = db.Column(db.String(255), nullable=False)
    answer_1_hash = db.Column(db.String(128), nullable=False)
    question_2 = db.Column(db.String(255), nullable=False)
    answer_2_hash = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)


class PasswordHistoryEntry(db.Model):
    __tablename__ = 'password_history'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('identities.id'), nullable=False, index=True)
    password_hash = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)


class AccessFailure(db.Model):
    __tablename__ = 'access_failures'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('identities.id'))
    email = db.Column(db.String(254))
    resource = db.Column(db.String(64), nullable=False)
    action = db.Column(db.String(64), nullable=False)
    reason = db.Column(db.String(255), nullable=False)
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(512))
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'email': self.email,
            'resource': self.resource,
            'action': self.action,
            'reason': self.reason,
            'ip_address': self.ip_address,
            'user_agent': self.user_agent,
            'created_at': _isoformat(self.created_at),
        }


class InputFailure(db.Model):
    __tablename__ = 'input_failures'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(254))
    failure_type = db.Column(db.String(32), nullable=False)
    error_message = db.Column(db.String(255), nullable=False)
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(512))
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'failure_type': self.failure_type,
            'error_message': self.error_message,
            'ip_address': self.ip_address,
            'user_agent': self.user_agent,
            'created_at': _isoformat(self.created_at),
        }


def _isoformat(value):
    return value.isoformat() if value else None
