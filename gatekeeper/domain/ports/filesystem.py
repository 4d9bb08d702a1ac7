from __future__ import annotations

from typing import Protocol


class FilesystemProtocol(Protocol):
    """
    Назначение:
        Файловая capability, через которую gateway пишет authorized_keys.
        Подменяется in-memory реализацией в тестах.
    Ошибки/исключения:
        Реализации пробрасывают OSError.
    """

    def exists(self, path: str) -> bool: ...

    def read_text(self, path: str) -> str: ...

    def write_text(self, path: str, data: str) -> None: ...

    def append_text(self, path: str, data: str) -> None: ...
