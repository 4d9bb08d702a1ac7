from __future__ import annotations

import threading
from typing import Sequence

from gatekeeper.domain.ports.filesystem import FilesystemProtocol
from gatekeeper.domain.ports.key_authorization import KeyAuthorizationGatewayProtocol, KeyPropagationError
from gatekeeper.domain.validation import is_valid_key_material

KEY_OPTIONS = "no-port-forwarding,no-X11-forwarding,no-agent-forwarding,no-pty"


def format_key_line(key: str, identity_name: str, bin_path: str) -> str:
    """
    Назначение:
        Строка authorized_keys: ключ принудительно запускает bin_path от имени identity.
    """
    return f'{KEY_OPTIONS},command="{bin_path} {identity_name}" {key.strip()}'


class AuthorizedKeysGateway(KeyAuthorizationGatewayProtocol):
    """
    Назначение/ответственность:
        Gateway авторизации ключей поверх файла authorized_keys OpenSSH.
    Взаимодействия:
        Все обращения к файлу идут через FilesystemProtocol, переданный при создании.
    Инварианты/гарантии:
        - add/bulk_add дописывают строки в порядке ключей.
        - remove/bulk_remove удаляют ровно одну совпадающую строку на каждое вхождение ключа.
        - OSError бэкенда превращается в KeyPropagationError.
        - Ключ с управляющими символами отклоняется KeyPropagationError до обращения к файлу.
    """

    def __init__(self, filesystem: FilesystemProtocol, keys_path: str, bin_path: str):
        self.filesystem = filesystem
        self.keys_path = keys_path
        self.bin_path = bin_path
        self._lock = threading.Lock()

    def add(self, key: str, identity_name: str) -> None:
        self.bulk_add([key], identity_name)

    def remove(self, key: str, identity_name: str) -> None:
        self.bulk_remove([key], identity_name)

    def bulk_add(self, keys: Sequence[str], identity_name: str) -> None:
        if not keys:
            return
        self._check_keys(keys, identity_name)
        data = "".join(format_key_line(key, identity_name, self.bin_path) + "\n" for key in keys)
        with self._lock:
            try:
                if self.filesystem.exists(self.keys_path):
                    current = self.filesystem.read_text(self.keys_path)
                    if current and not current.endswith("\n"):
                        data = "\n" + data
                self.filesystem.append_text(self.keys_path, data)
            except OSError as exc:
                raise KeyPropagationError(f"add keys for {identity_name} to {self.keys_path}: {exc}") from exc

    def bulk_remove(self, keys: Sequence[str], identity_name: str) -> None:
        if not keys:
            return
        self._check_keys(keys, identity_name)
        with self._lock:
            try:
                if not self.filesystem.exists(self.keys_path):
                    return
                lines = self.filesystem.read_text(self.keys_path).splitlines()
                changed = False
                for key in keys:
                    line = format_key_line(key, identity_name, self.bin_path)
                    if line in lines:
                        lines.remove(line)
                        changed = True
                if changed:
                    self.filesystem.write_text(self.keys_path, "".join(item + "\n" for item in lines))
            except OSError as exc:
                raise KeyPropagationError(f"remove keys for {identity_name} from {self.keys_path}: {exc}") from exc

    @staticmethod
    def _check_keys(keys: Sequence[str], identity_name: str) -> None:
        for key in keys:
            if not is_valid_key_material(key):
                raise KeyPropagationError(f"key for {identity_name} is not a single authorized_keys line")
