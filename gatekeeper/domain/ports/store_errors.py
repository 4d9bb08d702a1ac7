from __future__ import annotations


class RecordNotFoundError(Exception):
    """
    Назначение:
        Запись с указанным ключом отсутствует в хранилище.
    """

    def __init__(self, collection: str, key: str):
        super().__init__(f"{collection} record not found: {key}")
        self.collection = collection
        self.key = key


class StoreError(Exception):
    """
    Назначение:
        Хранилище недоступно или отклонило операцию (транспорт/движок).
    """


class DuplicateRecordError(StoreError):
    """
    Назначение:
        Вставка отклонена: запись с таким ключом уже существует.
    """

    def __init__(self, collection: str, key: str):
        super().__init__(f"{collection} record already exists: {key}")
        self.collection = collection
        self.key = key


class StaleRecordError(StoreError):
    """
    Назначение:
        Условное обновление проиграло гонку версий (optimistic concurrency).
    """

    def __init__(self, collection: str, key: str, expected_version: int):
        super().__init__(f"{collection} record {key} changed since version {expected_version}")
        self.collection = collection
        self.key = key
        self.expected_version = expected_version


__all__ = ["RecordNotFoundError", "StoreError", "DuplicateRecordError", "StaleRecordError"]
