from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Protocol, runtime_checkable

from realmauth.credential import Credential
from realmauth.errors import AuthenticationFailure
from realmauth.identifier import BaseIdentifier
from realmauth.identity import Identity
from realmauth.logging import get_logger
from realmauth.runtime import get_runtime

logger = get_logger(__name__)

IdentifierFactory = Callable[[], BaseIdentifier]


def _runtime_identifier() -> BaseIdentifier:
    """Identifier for the configured default realm."""
    return get_runtime().identifier_for()


class AbstractAuthenticator(ABC):
    """Turns a credential into an identity attached to an identifier.

    ``authenticate`` verifies and binds but never signs in: persisting the
    session is a separate call on the returned identifier::

        identifier = auth.set_credential_fields(username="payam", password="...").authenticate()
        identifier.sign_in()

    Concrete domains implement ``do_authenticate`` and, where they need a
    typed credential, ``new_credential``.
    """

    credential_class: type[Credential] = Credential

    def __init__(
        self,
        identifier: Optional[BaseIdentifier] = None,
        *,
        default_identifier_factory: Optional[IdentifierFactory] = None,
    ) -> None:
        self._identifier = identifier
        self.default_identifier_factory: IdentifierFactory = (
            default_identifier_factory or _runtime_identifier
        )
        self._credential: Optional[Credential] = None

    # credential

    def new_credential(self, data: Any = None) -> Credential:
        return self.credential_class(data)

    @property
    def credential(self) -> Credential:
        """The credential for the current attempt, built on first access."""
        if self._credential is None:
            self._credential = self.new_credential()
        return self._credential

    def set_credential_fields(self, data: Any = None, **fields: Any) -> "AbstractAuthenticator":
        """Feed fields into the current credential and return self for chaining."""
        self.credential.load(data)
        if fields:
            self.credential.load(fields)
        return self

    def reset_credential(self) -> None:
        self._credential = None

    # identifier

    @property
    def identifier(self) -> BaseIdentifier:
        """The identifier, built from the default factory on first access."""
        if self._identifier is None:
            self._identifier = self.default_identifier_factory()
        return self._identifier

    # flow

    def authenticate(self, credential: Any = None) -> BaseIdentifier:
        """Verify the credential and attach the resulting identity.

        A ``credential`` payload replaces whatever the previous attempt
        loaded. The credential is discarded once verification has run, so
        each attempt starts from an empty one.

        Raises:
            AuthenticationFailure: verification rejected the credential or
                did not produce a fulfilled identity. The identifier is left
                untouched and nothing is written to its store.
        """
        if credential is not None:
            self._credential = self.new_credential(credential)

        try:
            identity = self.do_authenticate()
        except AuthenticationFailure as exc:
            logger.info(
                "authentication_failed",
                authenticator=type(self).__name__,
                reason=exc.message,
            )
            raise
        finally:
            self._credential = None

        if not isinstance(identity, Identity) or not identity.is_fulfilled():
            logger.warning(
                "authentication_failed",
                authenticator=type(self).__name__,
                reason="unfulfilled_identity",
            )
            raise AuthenticationFailure("user authentication failure")

        identifier = self.identifier
        identifier.set_identity(identity)
        logger.info(
            "authentication_succeeded",
            authenticator=type(self).__name__,
            realm=identifier.realm,
        )
        return identifier

    def sign_in(self, credential: Any = None) -> BaseIdentifier:
        """Authenticate and persist the session in one step."""
        return self.authenticate(credential).sign_in()

    def has_authenticated(self) -> bool:
        """True when the identifier holds a fulfilled identity."""
        identity = self.identifier.bound_identity
        return identity is not None and identity.is_fulfilled()

    @abstractmethod
    def do_authenticate(self) -> Identity:
        """Verify ``self.credential`` and return a fulfilled identity.

        Must raise ``AuthenticationFailure`` on invalid credentials rather
        than returning an empty identity.
        """


@runtime_checkable
class VerificationStrategy(Protocol):
    def verify(self, credential: Credential) -> Identity: ...


class Authenticator(AbstractAuthenticator):
    """Authenticator delegating verification to a pluggable strategy."""

    def __init__(
        self,
        strategy: VerificationStrategy,
        identifier: Optional[BaseIdentifier] = None,
        *,
        default_identifier_factory: Optional[IdentifierFactory] = None,
        credential_class: Optional[type[Credential]] = None,
    ) -> None:
        super().__init__(identifier, default_identifier_factory=default_identifier_factory)
        self.strategy = strategy
        if credential_class is not None:
            self.credential_class = credential_class
        else:
            self.credential_class = getattr(strategy, "credential_class", Credential)

    def do_authenticate(self) -> Identity:
        return self.strategy.verify(self.credential)
