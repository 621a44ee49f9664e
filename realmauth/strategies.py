"""Verification strategies for common authentication domains.

Each strategy implements ``verify(credential) -> Identity``, returning a
fulfilled identity or raising ``AuthenticationFailure``. Plug one into
``realmauth.authenticator.Authenticator``.
"""

from __future__ import annotations

import hashlib
import hmac
import threading
from dataclasses import dataclass, field
from ipaddress import ip_address, ip_network
from typing import Any, Dict, Iterable, Mapping, Optional, Protocol

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError

from realmauth.credential import ApiKeyCredential, Credential, IPCredential, PasswordCredential
from realmauth.errors import AuthenticationFailure
from realmauth.identity import Identity
from realmauth.logging import get_logger

logger = get_logger(__name__)

PASSWORD_ALGO = "argon2id"


@dataclass
class PasswordRecord:
    uid: str
    password_hash: str
    password_algo: str = PASSWORD_ALGO
    realm: Optional[str] = None
    claims: Dict[str, Any] = field(default_factory=dict)


class PasswordRecordStore(Protocol):
    def get_password_record(self, username: str) -> Optional[PasswordRecord]: ...


class InMemoryPasswordRecords:
    """Username -> password record map for tests and small deployments."""

    def __init__(self, hasher: Optional[PasswordHasher] = None) -> None:
        self._records: Dict[str, PasswordRecord] = {}
        self._lock = threading.Lock()
        self._hasher = hasher or PasswordHasher(type=Type.ID)

    def add_user(
        self,
        username: str,
        password: str,
        *,
        uid: Optional[str] = None,
        realm: Optional[str] = None,
        claims: Optional[Mapping[str, Any]] = None,
    ) -> PasswordRecord:
        record = PasswordRecord(
            uid=uid or username,
            password_hash=self._hasher.hash(password),
            realm=realm,
            claims=dict(claims or {}),
        )
        with self._lock:
            self._records[username] = record
        return record

    def get_password_record(self, username: str) -> Optional[PasswordRecord]:
        with self._lock:
            return self._records.get(username)


class PasswordVerifier:
    """Check a username/password pair against argon2id hashes."""

    credential_class = PasswordCredential

    def __init__(
        self,
        records: PasswordRecordStore,
        *,
        realm: Optional[str] = None,
        identity_factory=Identity,
        hasher: Optional[PasswordHasher] = None,
    ) -> None:
        self.records = records
        self.realm = realm
        self.identity_factory = identity_factory
        self._pwd_hasher = hasher or PasswordHasher(type=Type.ID)

    def verify(self, credential: Credential) -> Identity:
        username = credential.get("username")
        password = credential.get("password")
        if not username or not password:
            raise AuthenticationFailure("username and password are required")

        realm = credential.get("realm") or self.realm
        if self.realm and realm != self.realm:
            logger.warning("password_realm_mismatch", username=username, realm=realm)
            raise AuthenticationFailure("invalid credentials")

        record = self.records.get_password_record(username)
        if record is None:
            logger.warning("password_record_missing", username=username)
            raise AuthenticationFailure("invalid credentials")
        if record.realm and realm and record.realm != realm:
            logger.warning("password_realm_mismatch", username=username, realm=realm)
            raise AuthenticationFailure("invalid credentials")
        if record.password_algo != PASSWORD_ALGO:
            logger.warning(
                "password_algo_mismatch", username=username, algo=record.password_algo
            )
            raise AuthenticationFailure("invalid credentials")
        try:
            self._pwd_hasher.verify(record.password_hash, password)
        except (InvalidHash, VerifyMismatchError, VerificationError):
            logger.warning("password_verification_failed", username=username)
            raise AuthenticationFailure("invalid credentials") from None

        claims = {**record.claims, "uid": record.uid, "username": username}
        if realm:
            claims["realm"] = realm
        return self.identity_factory(claims)


class IPAllowListVerifier:
    """Accept requests whose source address lies in an allowed network."""

    credential_class = IPCredential

    def __init__(self, networks: Iterable[str], *, identity_factory=Identity) -> None:
        self.networks = [ip_network(net, strict=False) for net in networks]
        self.identity_factory = identity_factory

    def verify(self, credential: Credential) -> Identity:
        raw_ip = credential.get("ip")
        if not raw_ip:
            raise AuthenticationFailure("source address is required")
        try:
            addr = ip_address(str(raw_ip).strip())
        except ValueError:
            raise AuthenticationFailure(
                "invalid source address", detail={"ip": str(raw_ip)}
            ) from None
        for net in self.networks:
            if addr.version == net.version and addr in net:
                return self.identity_factory({"uid": str(addr), "ip": str(addr), "network": str(net)})
        logger.warning("ip_not_allowed", ip=str(addr))
        raise AuthenticationFailure("address not allowed", detail={"ip": str(addr)})


class ApiKeyVerifier:
    """Match API keys against stored SHA-256 digests.

    ``keys`` maps a key digest (hex) to the uid it authenticates. Use
    ``digest`` to compute the digest of a new key.
    """

    credential_class = ApiKeyCredential

    def __init__(self, keys: Mapping[str, str], *, identity_factory=Identity) -> None:
        self.keys = dict(keys)
        self.identity_factory = identity_factory

    @staticmethod
    def digest(api_key: str) -> str:
        return hashlib.sha256(api_key.encode("utf-8")).hexdigest()

    def verify(self, credential: Credential) -> Identity:
        api_key = credential.get("api_key")
        if not api_key:
            raise AuthenticationFailure("api key is required")
        candidate = self.digest(str(api_key))
        uid = None
        # no early exit: every stored digest is compared
        for stored_digest, stored_uid in self.keys.items():
            if hmac.compare_digest(candidate, stored_digest):
                uid = stored_uid
        if uid is None:
            logger.warning("api_key_rejected", key_prefix=candidate[:8])
            raise AuthenticationFailure("invalid api key")
        return self.identity_factory({"uid": uid, "auth_method": "api_key"})
