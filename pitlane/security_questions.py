"""安全问题（二次验证因子）

修改或重置密码之前，必须回答设置时选择的两个安全问题。
答案经过规范化（去除首尾空白、忽略大小写）后以bcrypt哈希保存。
"""
import hashlib

from flask import current_app

from pitlane import db
from pitlane.errors import NotConfigured, SecurityQuestionsInvalid
from pitlane.models import SecurityQuestionSet
from pitlane.utils import hash_secret, normalize_answer, verify_secret

QUESTION_CATALOG = (
    "What was the name of your first pet?",
    "In what city were you born?",
    "What was your childhood nickname?",
    "What is the name of your favorite childhood friend?",
    "What street did you live on in third grade?",
    "What was the make of your first car?",
    "What was the name of the company where you had your first job?",
    "What was your favorite food as a child?",
    "What is your father's middle name?",
    "What high school did you attend?",
    "What was the name of your elementary school?",
    "In what town was your first job?",
    "What is the middle name of your youngest child?",
    "What school did you attend for sixth grade?",
    "What was your childhood phone number including area code?",
)


def _get_set(identity):
    return SecurityQuestionSet.query.filter_by(user_id=identity.id).first()


def validate_setup(question_1, answer_1, question_2, answer_2):
    """校验安全问题设置，不合法时抛出 SecurityQuestionsInvalid"""
    if not question_1 or not question_2:
        raise SecurityQuestionsInvalid('Please select both security questions')
    if question_1 not in QUESTION_CATALOG or question_2 not in QUESTION_CATALOG:
        raise SecurityQuestionsInvalid('Please choose questions from the list')
    if question_1 == question_2:
        raise SecurityQuestionsInvalid('Please select different security questions')
    min_length = current_app.config['SECURITY_ANSWER_MIN_LENGTH']
    if len(normalize_answer(answer_1)) < min_length or len(normalize_answer(answer_2)) < min_length:
        raise SecurityQuestionsInvalid(
            f'Security question answers must be at least {min_length} characters long'
        )


def setup(identity, question_1, answer_1, question_2, answer_2, commit=True):
    """设置安全问题，整体替换之前的设置"""
    validate_setup(question_1, answer_1, question_2, answer_2)

    question_set = _get_set(identity)
    if question_set is None:
        question_set = SecurityQuestionSet(user_id=identity.id)
        db.session.add(question_set)
    question_set.question_1 = question_1
    question_set.answer_1_hash = hash_secret(normalize_answer(answer_1))
    question_set.question_2 = question_2
    question_set.answer_2_hash = hash_secret(normalize_answer(answer_2))

    if commit:
        db.session.commit()
        current_app.logger.info(f'安全问题已设置: user={identity.id}')
    return question_set


def is_configured(identity):
    return _get_set(identity) is not None


def challenge(identity):
    """返回安全问题文本（不包含答案哈希）"""
    question_set = _get_set(identity)
    if question_set is None:
        raise NotConfigured()
    return {'question_1': question_set.question_1, 'question_2': question_set.question_2}


def decoy_challenge(email):
    """未知邮箱返回固定的一组问题，避免通过重置流程枚举账号"""
    digest = hashlib.sha256(email.encode('utf-8')).digest()
    first = digest[0] % len(QUESTION_CATALOG)
    second = (first + 1 + digest[1] % (len(QUESTION_CATALOG) - 1)) % len(QUESTION_CATALOG)
    return {'question_1': QUESTION_CATALOG[first], 'question_2': QUESTION_CATALOG[second]}


def verify(identity, answer_1, answer_2):
    """两个答案都正确才算验证通过"""
    question_set = _get_set(identity)
    if question_set is None:
        raise NotConfigured()
    # 两个答案都要计算，避免通过耗时判断哪个答案错误
    first_ok = verify_secret(normalize_answer(answer_1), question_set.answer_1_hash)
    second_ok = verify_secret(normalize_answer(answer_2), question_set.answer_2_hash)
    return first_ok and second_ok
