def truncateText(value: str | None, limit: int = 500) -> str | None:
    """
    Назначение:
        Ограничивает длину текста, чтобы избежать раздувания логов.
    """
    if value is None:
        return None
    if len(value) <= limit:
        return value
    suffix = "..." if limit > 3 else ""
    head = limit - len(suffix)
    return value[:head] + suffix


def shortKey(key: str | None) -> str | None:
    """
    Назначение:
        Краткое представление ключа для логов: тип + хвост тела + комментарий.

    Пример:
        'ssh-ed25519 AAAAC3Nz...xyz user@host' -> 'ssh-ed25519 ...Xyz12345 user@host'
    """
    if key is None:
        return None
    parts = key.strip().split()
    if len(parts) < 2:
        return truncateText(key.strip(), 24)
    kind, body = parts[0], parts[1]
    comment = " ".join(parts[2:])
    text = f"{kind} ...{body[-8:]}"
    if comment:
        text += f" {comment}"
    return text


def shortKeys(keys) -> list[str | None]:
    return [shortKey(key) for key in keys]
