# aicounsel/core/registration.py

from datetime import date
from typing import Optional, Union

from aicounsel.config import local_store
from aicounsel.config.local_store import LocalSettings
from aicounsel.core.errors import RegistrationError
from aicounsel.memory.models import DEFAULT_UTC_OFFSET_HOURS, Gender, UserProfile, to_iso
from aicounsel.memory.repository import RecordStore
from aicounsel.utils.logging import get_logger

logger = get_logger(__name__)

NICKNAME_REQUIRED = "ニックネームを入力してください"
GENDER_REQUIRED = "性別を選択してください"
REGISTRATION_SUCCEEDED = "ユーザ登録に成功しました"


def parse_gender(value: Union[str, Gender, None]) -> Optional[Gender]:
    """Accept a Gender, its key ("male") or its display label ("男")."""
    if value is None or isinstance(value, Gender):
        return value
    cleaned = value.strip()
    for gender in Gender:
        if cleaned.lower() == gender.value or cleaned == gender.label:
            return gender
    return None


def validate_profile_input(nickname: str, gender: Optional[Gender]) -> None:
    if not (nickname or "").strip():
        raise RegistrationError(NICKNAME_REQUIRED)
    if gender is None:
        raise RegistrationError(GENDER_REQUIRED)


def register_user(
    store: RecordStore,
    local: LocalSettings,
    email: str,
    nickname: str,
    birthdate: date,
    gender: Union[str, Gender, None],
    offset_hours: float = DEFAULT_UTC_OFFSET_HOURS,
) -> UserProfile:
    """
    Write the profile to the user's row, count the action, then remember the
    profile locally and mark registration complete.

    Raises RegistrationError for invalid input; store failures propagate as
    PersistenceError and leave local settings untouched.
    """
    parsed_gender = parse_gender(gender)
    validate_profile_input(nickname, parsed_gender)
    if not (email or "").strip():
        raise RegistrationError("メールアドレスが設定されていません")

    birthdate_iso = to_iso(birthdate, offset_hours)
    store.update_user(
        email,
        {
            "nickname": nickname.strip(),
            "birthdate": birthdate_iso,
            "gender": parsed_gender.value,
        },
    )
    store.insert_action(email)

    local.update({
        local_store.USER_EMAIL: email,
        local_store.NICKNAME: nickname.strip(),
        local_store.BIRTHDATE: birthdate_iso,
        local_store.GENDER: parsed_gender.value,
        local_store.IS_USER_DATA_COMPLETE: True,
    })
    logger.info("Registered profile for %s", email)
    return UserProfile(email=email, nickname=nickname.strip(), birthdate=birthdate_iso, gender=parsed_gender)
