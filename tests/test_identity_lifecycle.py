from __future__ import annotations

import pytest

from gatekeeper.domain.error_codes import ErrorCode
from gatekeeper.domain.exceptions import (
    ConflictError,
    GatewayError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from gatekeeper.domain.models import Identity, OperationStep
from gatekeeper.domain.ports.key_authorization import KeyPropagationError
from gatekeeper.domain.ports.store_errors import StoreError
from gatekeeper.infra.keys import AuthorizedKeysGateway, MemoryFilesystem
from gatekeeper.infra.store.db import openIdentityDb
from gatekeeper.infra.store.identity_repository import SqliteIdentityStore
from gatekeeper.infra.store.repository_access_repository import SqliteRepositoryAccessStore
from gatekeeper.infra.store.schema import ensure_schema
from gatekeeper.infra.store.sqlite_engine import SqliteEngine
from gatekeeper.usecases.identity_lifecycle_service import IdentityLifecycleService


class DummyGateway:
    def __init__(self, fail: bool = False):
        self.calls: list[tuple] = []
        self.fail = fail

    def _record(self, *call):
        self.calls.append(call)
        if self.fail:
            raise KeyPropagationError("authorized_keys is read-only")

    def add(self, key, identity_name):
        self._record("add", key, identity_name)

    def remove(self, key, identity_name):
        self._record("remove", key, identity_name)

    def bulk_add(self, keys, identity_name):
        self._record("bulk_add", list(keys), identity_name)

    def bulk_remove(self, keys, identity_name):
        self._record("bulk_remove", list(keys), identity_name)


class RecordingIdentityStore:
    """Считает мутации поверх настоящего хранилища."""

    def __init__(self, inner):
        self.inner = inner
        self.mutations: list[str] = []

    def insert(self, identity):
        self.mutations.append("insert")
        self.inner.insert(identity)

    def find_by_name(self, name):
        return self.inner.find_by_name(name)

    def update_by_name(self, name, identity):
        self.mutations.append("update")
        self.inner.update_by_name(name, identity)

    def delete_by_name(self, name):
        self.mutations.append("delete")
        self.inner.delete_by_name(name)

    def list_all(self):
        return self.inner.list_all()


def _make_service(gateway=None):
    engine = SqliteEngine(openIdentityDb(":memory:"))
    ensure_schema(engine)
    identities = RecordingIdentityStore(SqliteIdentityStore(engine))
    repositories = SqliteRepositoryAccessStore(engine)
    gateway = gateway or DummyGateway()
    service = IdentityLifecycleService(identities, repositories, gateway)
    return service, identities, repositories, gateway


def test_create_propagates_keys_in_order_tagged_with_name():
    service, identities, _repos, gateway = _make_service()

    identity = service.create_identity("alice", ["keyA", "keyB"])

    assert identity == Identity("alice", ("keyA", "keyB"))
    assert identities.find_by_name("alice").keys == ("keyA", "keyB")
    assert gateway.calls == [("bulk_add", ["keyA", "keyB"], "alice")]


def test_create_without_keys_still_calls_bulk_add():
    service, _ids, _repos, gateway = _make_service()

    service.create_identity("alice", [])

    assert gateway.calls == [("bulk_add", [], "alice")]


@pytest.mark.parametrize("name", ["", "alice smith", "alice_1", "bob\t"])
def test_create_invalid_name_creates_nothing(name):
    service, identities, _repos, gateway = _make_service()

    with pytest.raises(ValidationError) as exc_info:
        service.create_identity(name, ["keyA"])

    assert exc_info.value.code == ErrorCode.VALIDATION_ERROR
    assert exc_info.value.step == OperationStep.VALIDATE
    assert identities.mutations == []
    assert identities.list_all() == []
    assert gateway.calls == []


def test_create_duplicate_is_storage_error_without_propagation():
    service, _ids, _repos, gateway = _make_service()
    service.create_identity("alice", ["keyA"])

    with pytest.raises(StorageError) as exc_info:
        service.create_identity("alice", ["keyB"])

    assert exc_info.value.step == OperationStep.STORE_INSERT
    assert gateway.calls == [("bulk_add", ["keyA"], "alice")]


def test_create_gateway_failure_keeps_record():
    service, identities, _repos, _gw = _make_service(DummyGateway(fail=True))

    with pytest.raises(GatewayError) as exc_info:
        service.create_identity("alice", ["keyA"])

    assert exc_info.value.code == ErrorCode.GATEWAY_ERROR
    assert isinstance(exc_info.value.cause, KeyPropagationError)
    assert identities.find_by_name("alice").keys == ("keyA",)


def test_remove_without_repositories():
    service, identities, _repos, gateway = _make_service()
    service.create_identity("alice", ["keyA", "keyB"])

    verdict = service.remove_identity("alice")

    assert verdict.affected == ()
    assert identities.list_all() == []
    assert gateway.calls[-1] == ("bulk_remove", ["keyA", "keyB"], "alice")


def test_remove_strips_identity_then_last_user_is_protected():
    service, _ids, repos, gateway = _make_service()
    service.create_identity("x", ["kx"])
    service.create_identity("y", ["ky"])
    repos.put_repository("A", ["x", "y"])

    service.remove_identity("x")

    assert repos.find_by_name("A").users == frozenset({"y"})
    assert repos.find_all_referencing("x") == []

    calls_before = list(gateway.calls)
    with pytest.raises(ConflictError) as exc_info:
        service.remove_identity("y")
    assert exc_info.value.details["repositories"] == ["A"]
    assert repos.find_by_name("A").users == frozenset({"y"})
    assert service.get_identity("y").keys == ("ky",)
    assert gateway.calls == calls_before


def test_remove_guard_is_all_or_nothing():
    service, identities, repos, gateway = _make_service()
    service.create_identity("x", ["kx"])
    service.create_identity("y", [])
    repo_a = repos.put_repository("A", ["x", "y"])
    repos.put_repository("B", ["x"])
    identities.mutations.clear()
    gateway.calls.clear()

    with pytest.raises(ConflictError):
        service.remove_identity("x")

    assert repos.find_by_name("A") == repo_a
    assert repos.find_by_name("B").users == frozenset({"x"})
    assert identities.mutations == []
    assert gateway.calls == []


def test_successful_removals_never_empty_a_repository():
    service, _ids, repos, _gw = _make_service()
    for name in ("a", "b", "c", "d"):
        service.create_identity(name, [])
    repos.put_repository("r1", ["a", "b"])
    repos.put_repository("r2", ["b", "c", "d"])
    repos.put_repository("r3", ["d"])

    for name in ("a", "b", "c", "d"):
        try:
            service.remove_identity(name)
        except ConflictError:
            pass

    for repo_name in ("r1", "r2", "r3"):
        assert len(repos.find_by_name(repo_name).users) >= 1
    assert repos.find_by_name("r1").users == frozenset({"b"})
    assert repos.find_by_name("r2").users == frozenset({"b", "d"})


def test_unknown_identity_causes_no_mutation_or_gateway_call():
    service, identities, _repos, gateway = _make_service()

    with pytest.raises(NotFoundError) as remove_info:
        service.remove_identity("ghost")
    with pytest.raises(NotFoundError) as add_info:
        service.add_key("ghost", "k")

    assert remove_info.value.code == ErrorCode.NOT_FOUND
    assert add_info.value.operation == "add_key"
    assert identities.mutations == []
    assert gateway.calls == []


def test_add_key_appends_duplicates_and_propagates_single_key():
    service, identities, _repos, gateway = _make_service()
    service.create_identity("alice", ["keyA"])

    service.add_key("alice", "keyB")
    identity = service.add_key("alice", "keyA")

    assert identity.keys == ("keyA", "keyB", "keyA")
    assert identities.find_by_name("alice").keys == ("keyA", "keyB", "keyA")
    assert gateway.calls[1:] == [("add", "keyB", "alice"), ("add", "keyA", "alice")]


MULTILINE_KEY = "ssh-rsa AAA alice\nssh-rsa EVIL attacker"


@pytest.mark.parametrize("key", [MULTILINE_KEY, "ssh-rsa AAA\r\nssh-rsa EVIL", "ssh-rsa\x00AAA", "   "])
def test_add_key_rejects_key_that_is_not_a_single_line(key):
    service, identities, _repos, gateway = _make_service()
    service.create_identity("alice", ["keyA"])
    identities.mutations.clear()
    gateway.calls.clear()

    with pytest.raises(ValidationError) as exc_info:
        service.add_key("alice", key)

    assert exc_info.value.step == OperationStep.VALIDATE
    assert exc_info.value.operation == "add_key"
    assert identities.find_by_name("alice").keys == ("keyA",)
    assert identities.mutations == []
    assert gateway.calls == []


def test_create_rejects_multiline_key_before_insert():
    service, identities, _repos, gateway = _make_service()

    with pytest.raises(ValidationError) as exc_info:
        service.create_identity("alice", ["keyA", MULTILINE_KEY])

    assert exc_info.value.step == OperationStep.VALIDATE
    assert exc_info.value.details == {"keys": [1]}
    assert identities.mutations == []
    assert gateway.calls == []
    assert service.list_identities() == []


def test_multiline_key_leaves_no_line_in_authorized_keys_after_removal():
    fs = MemoryFilesystem()
    keys_gateway = AuthorizedKeysGateway(fs, "/home/git/.ssh/authorized_keys", "/bin/gk")
    service, _ids, _repos, _gw = _make_service(keys_gateway)
    service.create_identity("alice", ["ssh-rsa AAA alice"])

    with pytest.raises(ValidationError):
        service.add_key("alice", MULTILINE_KEY)
    service.remove_identity("alice")

    content = fs.files["/home/git/.ssh/authorized_keys"]
    assert "EVIL" not in content
    assert content.strip() == ""


def test_add_key_gateway_failure_is_not_rolled_back():
    gateway = DummyGateway()
    service, identities, _repos, _gw = _make_service(gateway)
    service.create_identity("alice", [])
    gateway.fail = True

    with pytest.raises(GatewayError):
        service.add_key("alice", "keyA")

    assert identities.find_by_name("alice").keys == ("keyA",)


def test_remove_key_removes_first_occurrence():
    service, _ids, _repos, gateway = _make_service()
    service.create_identity("alice", ["keyA", "keyB", "keyA"])

    identity = service.remove_key("alice", "keyA")

    assert identity.keys == ("keyB", "keyA")
    assert gateway.calls[-1] == ("remove", "keyA", "alice")


def test_remove_unknown_key_is_not_found():
    service, identities, _repos, gateway = _make_service()
    service.create_identity("alice", ["keyA"])
    identities.mutations.clear()

    with pytest.raises(NotFoundError):
        service.remove_key("alice", "keyZ")

    assert identities.mutations == []
    assert len(gateway.calls) == 1


def test_store_failure_on_delete_leaves_revoked_repositories():
    class FailingDeleteStore(RecordingIdentityStore):
        def delete_by_name(self, name):
            raise StoreError("disk I/O error")

    engine = SqliteEngine(openIdentityDb(":memory:"))
    ensure_schema(engine)
    identities = FailingDeleteStore(SqliteIdentityStore(engine))
    repos = SqliteRepositoryAccessStore(engine)
    gateway = DummyGateway()
    service = IdentityLifecycleService(identities, repos, gateway)
    service.create_identity("x", ["kx"])
    repos.put_repository("A", ["x", "y"])

    with pytest.raises(StorageError) as exc_info:
        service.remove_identity("x")

    assert exc_info.value.step == OperationStep.STORE_DELETE
    assert exc_info.value.details["revoked"] == ["A"]
    assert repos.find_by_name("A").users == frozenset({"y"})
    assert service.get_identity("x").keys == ("kx",)
    assert gateway.calls == [("bulk_add", ["kx"], "x")]


def test_error_to_dict_carries_context():
    service, _ids, _repos, _gw = _make_service()

    with pytest.raises(NotFoundError) as exc_info:
        service.get_identity("ghost")

    data = exc_info.value.to_dict()
    assert data["code"] == "NOT_FOUND"
    assert data["operation"] == "get_identity"
    assert data["name"] == "ghost"
    assert data["step"] == "store_read"
    assert "ghost" in data["cause"]
