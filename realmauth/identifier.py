from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional

from realmauth.codec import IdentityCodec, default_codec
from realmauth.config import Settings, get_settings
from realmauth.errors import DeserializationFailure, InvalidSessionState, ValidationError
from realmauth.identity import Identity
from realmauth.logging import get_logger
from realmauth.storage.common import IdentityStore, NamespaceBackend, namespace_for

logger = get_logger(__name__)

IdentityFactory = Callable[[], Identity]


class BaseIdentifier(ABC):
    """Binds an identity to a realm-scoped recognition channel.

    States, as seen by callers:

    - unrecognized: nothing bound in memory, nothing stored
    - bound: ``set_identity`` attached an identity in memory only
    - signed in: ``sign_in`` wrote the identity to the channel
    - signed out: channel destroyed, in-memory identity cleaned

    Subclasses supply the channel by implementing ``sign_in``, ``sign_out``,
    ``can_recognize_identity`` and ``_do_recognized_identity``.
    """

    def __init__(
        self,
        realm: Optional[str] = None,
        *,
        identity_factory: Optional[IdentityFactory] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.realm = realm or self.settings.default_realm
        self.identity_factory: IdentityFactory = identity_factory or Identity
        self._identity: Optional[Identity] = None

    def new_default_identity(self) -> Identity:
        return self.identity_factory()

    @property
    def bound_identity(self) -> Optional[Identity]:
        """The identity attached in memory, without consulting the channel."""
        return self._identity

    def set_identity(self, identity: Identity) -> "BaseIdentifier":
        """Attach ``identity`` in memory. Nothing is written to the channel.

        Unfulfilled identities are rejected here unless
        ``Settings.allow_unfulfilled_identity`` is on, in which case the
        failure is deferred to ``sign_in``.
        """
        if not isinstance(identity, Identity):
            raise InvalidSessionState(
                "identifier accepts Identity instances only",
                detail={"type": type(identity).__name__},
            )
        if not identity.is_fulfilled() and not self.settings.allow_unfulfilled_identity:
            raise InvalidSessionState(
                "identity is not fulfilled", detail={"realm": self.realm}
            )
        self._identity = identity
        return self

    @property
    def identity(self) -> Identity:
        """The current identity, restoring it from the channel when possible.

        Returns the bound identity if it carries claims. Otherwise a
        recognized identity is loaded and bound; failing that an empty
        identity is bound so callers always get an object to query. An empty
        binding is re-checked on every access, so a session signed in by
        another identifier for this realm is picked up later.
        """
        if self._identity is None or not self._identity.claims:
            recognized = self.recognized_identity()
            if recognized is not None:
                self._identity = recognized
            elif self._identity is None:
                self._identity = self.new_default_identity()
        return self._identity

    def recognized_identity(self) -> Optional[Identity]:
        """Rebuild the signed-in identity from the channel.

        ``None`` means there is no usable session: nothing stored, a payload
        that cannot be decoded, or one that decodes to an unfulfilled
        identity. Store failures propagate.
        """
        if not self.can_recognize_identity():
            return None
        try:
            identity = self._do_recognized_identity()
        except DeserializationFailure as exc:
            logger.warning(
                "identity_deserialization_failed",
                realm=self.realm,
                error=exc.message,
                detail=exc.detail,
            )
            return None
        if identity is None:
            return None
        if not identity.is_fulfilled():
            logger.warning("recognized_identity_unfulfilled", realm=self.realm)
            return None
        return identity

    def is_signed_in(self) -> bool:
        return self.can_recognize_identity()

    @abstractmethod
    def can_recognize_identity(self) -> bool:
        """True when the channel holds a signed-in identity for this realm."""

    @abstractmethod
    def _do_recognized_identity(self) -> Optional[Identity]:
        """Read the channel and build a fresh identity from it."""

    @abstractmethod
    def sign_in(self) -> "BaseIdentifier":
        """Persist the bound identity to the channel."""

    @abstractmethod
    def sign_out(self) -> None:
        """Destroy the channel for this realm, clean and unbind the identity."""

    def _require_signable_identity(self) -> Identity:
        identity = self._identity
        if identity is None:
            raise InvalidSessionState(
                "no identity attached to identifier", detail={"realm": self.realm}
            )
        if not identity.is_fulfilled():
            raise InvalidSessionState(
                "identity is not fulfilled", detail={"realm": self.realm}
            )
        return identity

    def __repr__(self) -> str:
        return f"{type(self).__name__}(realm={self.realm!r})"


class StorageIdentifier(BaseIdentifier):
    """Identifier persisting the identity in a backing store namespace.

    The namespace is ``"{storage_identity_key}_{realm}"`` and the identity
    payload lives at ``storage_identity_key`` inside it, so identifiers for
    different realms can share one backend without colliding.

    Recognition only tests presence of the payload. How the namespace came
    to exist (a plain sign-in, a long-lived "remember me" session) does not
    matter.

    Two concurrent sign-ins for one realm are last-writer-wins; the store
    only guarantees atomicity of single operations and of ``replace`` where
    it provides one.
    """

    def __init__(
        self,
        backend: NamespaceBackend,
        realm: Optional[str] = None,
        *,
        identity_factory: Optional[IdentityFactory] = None,
        codec: Optional[IdentityCodec] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        super().__init__(realm, identity_factory=identity_factory, settings=settings)
        self.backend = backend
        self.codec = codec or default_codec
        self.storage_key = self.settings.storage_identity_key
        self._store: Optional[IdentityStore] = None

    @property
    def namespace(self) -> str:
        return namespace_for(self.storage_key, self.realm)

    @property
    def store(self) -> IdentityStore:
        if self._store is None:
            self._store = self.backend.namespace(self.namespace)
        return self._store

    def can_recognize_identity(self) -> bool:
        return self.store.has(self.storage_key)

    def _do_recognized_identity(self) -> Optional[Identity]:
        raw = self.store.get(self.storage_key)
        if raw is None:
            return None
        claims = self.codec.decode(raw)
        identity = self.new_default_identity()
        try:
            identity.import_claims(claims)
        except ValidationError as exc:
            raise DeserializationFailure(
                "stored claims do not form an identity", detail=exc.detail
            ) from exc
        return identity

    def sign_in(self) -> "StorageIdentifier":
        identity = self._require_signable_identity()
        payload = self.codec.encode(identity.claims)
        # Any previous session in this realm goes before the new one is written
        if hasattr(self.store, "replace"):
            self.store.replace(self.storage_key, payload)  # type: ignore[attr-defined]
        else:
            self.store.destroy()
            self.store.set(self.storage_key, payload)
        logger.info("identity_signed_in", realm=self.realm, namespace=self.namespace)
        return self

    def sign_out(self) -> None:
        self.store.destroy()
        if self._identity is not None:
            self._identity.clean()
        self._identity = None
        logger.info("identity_signed_out", realm=self.realm, namespace=self.namespace)
