"""Backing store contracts shared by the memory and Redis implementations.

A backend owns many namespaces; an Identifier only ever talks to the one
namespace derived from its realm, through the ``IdentityStore`` protocol.
"""

from __future__ import annotations

from typing import Optional, Protocol, Union, runtime_checkable

StoredValue = Union[bytes, str]


@runtime_checkable
class IdentityStore(Protocol):
    """Single realm-scoped namespace of a backing store."""

    name: str

    def has(self, key: str) -> bool: ...

    def get(self, key: str) -> Optional[bytes]: ...

    def set(self, key: str, value: StoredValue) -> None: ...

    def destroy(self) -> None: ...


class NamespaceBackend(Protocol):
    def namespace(self, name: str) -> IdentityStore: ...

    def verify_connection(self) -> None: ...


def namespace_for(storage_identity_key: str, realm: str) -> str:
    """Derive the storage namespace for a realm.

    Deterministic and injective in ``realm`` so two realms never share a
    namespace and the same realm always maps to the same one.
    """
    return f"{storage_identity_key}_{realm}"


def as_bytes(value: StoredValue) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)
