import base64
import bcrypt
import hashlib
import re

from flask import current_app, has_request_context, request

EMAIL_PATTERN = re.compile(r'^[\w\.+-]+@[\w\.-]+\.\w+$')
EMAIL_MIN_LENGTH = 5
EMAIL_MAX_LENGTH = 254


def generate_salt():
    return bcrypt.gensalt(rounds=current_app.config['BCRYPT_ROUNDS'])

def _prehash(secret):
    # bcrypt只处理前72字节，先取SHA-256摘要再base64编码（固定44字节）
    return base64.b64encode(hashlib.sha256(secret.encode('utf-8')).digest())

def hash_secret(secret):
    """使用bcrypt生成带盐的单向哈希"""
    return bcrypt.hashpw(_prehash(secret), generate_salt()).decode('utf-8')

def verify_secret(secret, hashed):
    if not secret or not hashed:
        return False
    try:
        return bcrypt.checkpw(_prehash(secret), hashed.encode('utf-8'))
    except ValueError:
        # 哈希格式不正确
        return False

def normalize_email(email):
    return (email or '').strip().lower()

def validate_email(email):
    """验证邮箱格式"""
    if not email or not EMAIL_MIN_LENGTH <= len(email) <= EMAIL_MAX_LENGTH:
        return False
    return bool(EMAIL_PATTERN.match(email))

def normalize_answer(answer):
    """安全问题答案：去除首尾空白并忽略大小写"""
    return (answer or '').strip().casefold()

def client_metadata():
    """获取客户端IP和User-Agent，仅用于审计"""
    if not has_request_context():
        return None, None
    forwarded = request.headers.get('X-Forwarded-For', '')
    ip = forwarded.split(',')[0].strip() or request.remote_addr
    return ip, request.headers.get('User-Agent')
