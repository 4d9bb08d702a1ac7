from __future__ import annotations

from pathlib import Path

from gatekeeper.domain.ports.filesystem import FilesystemProtocol


class OsFilesystem(FilesystemProtocol):
    """
    Назначение:
        Реальная файловая система (pathlib). Каталоги создаются при записи.
    """

    def exists(self, path: str) -> bool:
        return Path(path).expanduser().exists()

    def read_text(self, path: str) -> str:
        return Path(path).expanduser().read_text(encoding="utf-8")

    def write_text(self, path: str, data: str) -> None:
        target = Path(path).expanduser()
        target.parent.mkdir(parents=True, exist_ok=True)
        # Запись через временный файл + rename, чтобы sshd не увидел обрезанный файл.
        tmp = target.with_name(target.name + ".tmp")
        tmp.write_text(data, encoding="utf-8")
        tmp.replace(target)

    def append_text(self, path: str, data: str) -> None:
        target = Path(path).expanduser()
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("a", encoding="utf-8") as f:
            f.write(data)


class MemoryFilesystem(FilesystemProtocol):
    """
    Назначение:
        In-memory реализация для тестов/ручных сценариев.
    """

    def __init__(self, files: dict[str, str] | None = None):
        self.files: dict[str, str] = dict(files or {})

    def exists(self, path: str) -> bool:
        return path in self.files

    def read_text(self, path: str) -> str:
        if path not in self.files:
            raise FileNotFoundError(path)
        return self.files[path]

    def write_text(self, path: str, data: str) -> None:
        self.files[path] = data

    def append_text(self, path: str, data: str) -> None:
        self.files[path] = self.files.get(path, "") + data
