from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, ClassVar, Dict, Optional, Tuple

from realmauth.errors import ValidationError
from realmauth.logging import redact_fields


class Credential:
    """What was presented for verification.

    Holds arbitrary field/value pairs (username, password, realm, ip, token).
    By default every field is retained and verification strategies ignore
    what they do not need. A subclass can enumerate its ``fields`` and set
    ``retain_unknown = False`` to drop anything else at load time.

    Credentials are built per authentication attempt and never persisted.
    """

    fields: ClassVar[Tuple[str, ...]] = ()
    retain_unknown: ClassVar[bool] = True

    def __init__(self, data: Any = None, **fields: Any) -> None:
        self._fields: Dict[str, Any] = {}
        self.load(data)
        if fields:
            self.load(fields)

    def load(self, data: Any) -> "Credential":
        """Populate fields from a mapping, credential, pairs or object."""
        if data is None:
            return self
        if isinstance(data, Credential):
            items: Iterable[Any] = data.fields_dict().items()
        elif isinstance(data, Mapping):
            items = data.items()
        elif hasattr(data, "model_dump"):
            items = data.model_dump().items()
        elif isinstance(data, (str, bytes)):
            raise ValidationError(
                "credential input must be a mapping, not a string",
                detail={"type": type(data).__name__},
            )
        elif isinstance(data, Iterable):
            items = data
        elif hasattr(data, "__dict__"):
            items = vars(data).items()
        else:
            raise ValidationError(
                "unsupported credential input", detail={"type": type(data).__name__}
            )

        for item in items:
            try:
                name, value = item
            except (TypeError, ValueError) as exc:
                raise ValidationError(
                    "credential input must be (name, value) pairs"
                ) from exc
            if not isinstance(name, str) or not name:
                raise ValidationError(
                    "credential field names must be non-empty strings",
                    detail={"name": repr(name)},
                )
            if not self.retain_unknown and name not in self.fields:
                continue
            self._fields[name] = value
        return self

    def get(self, name: str, default: Optional[Any] = None) -> Any:
        return self._fields.get(name, default)

    def __getitem__(self, name: str) -> Any:
        return self._fields[name]

    def __contains__(self, name: object) -> bool:
        return name in self._fields

    def fields_dict(self) -> Dict[str, Any]:
        return dict(self._fields)

    def clear(self) -> "Credential":
        self._fields.clear()
        return self

    def __repr__(self) -> str:
        return f"{type(self).__name__}({redact_fields(self._fields)!r})"


class PasswordCredential(Credential):
    """Username/password pair, optionally scoped to a realm."""

    fields = ("username", "password", "realm")
    retain_unknown = False

    @property
    def username(self) -> Optional[str]:
        return self.get("username")

    @property
    def password(self) -> Optional[str]:
        return self.get("password")

    @property
    def realm(self) -> Optional[str]:
        return self.get("realm")


class IPCredential(Credential):
    fields = ("ip",)
    retain_unknown = False

    @property
    def ip(self) -> Optional[str]:
        return self.get("ip")


class ApiKeyCredential(Credential):
    fields = ("api_key",)
    retain_unknown = False

    @property
    def api_key(self) -> Optional[str]:
        return self.get("api_key")
