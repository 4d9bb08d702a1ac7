from gatekeeper.infra.keys.filesystem import MemoryFilesystem, OsFilesystem
from gatekeeper.infra.keys.authorized_keys_gateway import AuthorizedKeysGateway, format_key_line

__all__ = [
    "MemoryFilesystem",
    "OsFilesystem",
    "AuthorizedKeysGateway",
    "format_key_line",
]
