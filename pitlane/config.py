import os
from datetime import timedelta

class Config:
    # Flask配置
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'your-secret-key'
    TESTING = False

    # 数据库配置 - 默认使用SQLite
    basedir = os.path.abspath(os.path.dirname(__file__))
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'pitlane.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # 日志目录
    LOG_DIR = os.environ.get('LOG_DIR') or 'logs'

    # 登录锁定策略
    MAX_LOGIN_ATTEMPTS = 5  # 最大登录尝试次数
    ACCOUNT_LOCKOUT_DURATION = timedelta(minutes=15)  # 首次锁定时间
    LOCKOUT_BACKOFF_MULTIPLIER = 2.0  # 超过阈值后每次失败锁定时间倍增
    MAX_LOCKOUT_DURATION = timedelta(hours=24)
    LOCK_REASON = 'too many failed attempts'

    # 密码策略
    PASSWORD_MIN_LENGTH = 8
    PASSWORD_MAX_LENGTH = 64
    PASSWORD_SYMBOLS = '!@#$%^&*(),.?":{}|<>'
    PASSWORD_HISTORY_SIZE = 3  # 禁止重复使用最近的密码数量
    PASSWORD_MIN_AGE = timedelta(hours=24)  # 两次修改密码的最小间隔
    BCRYPT_ROUNDS = 12

    # 安全问题
    SECURITY_ANSWER_MIN_LENGTH = 3


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret-key'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    BCRYPT_ROUNDS = 4
