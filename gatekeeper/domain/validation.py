from __future__ import annotations

import re

# Только ASCII буквы, цифры, '.', '@'; пустая строка недопустима.
IDENTITY_NAME_PATTERN = re.compile(r"[A-Za-z0-9.@]+")


def is_valid_identity_name(name: str | None) -> bool:
    """
    Назначение:
        Проверка имени identity по грамматике: непустое, без пробельных символов,
        символы только из [A-Za-z0-9.@].
    """
    if not isinstance(name, str):
        return False
    return IDENTITY_NAME_PATTERN.fullmatch(name) is not None


# Управляющие символы (включая \r и \n) разбили бы строку authorized_keys на несколько.
_KEY_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def is_valid_key_material(key: str | None) -> bool:
    """
    Назначение:
        Проверка ключа перед записью: непустой после strip(), без управляющих
        символов внутри (перевод строки в конце допускается и отрезается).
    """
    if not isinstance(key, str):
        return False
    body = key.strip()
    if not body:
        return False
    return _KEY_CONTROL_CHARS.search(body) is None
