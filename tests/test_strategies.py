import pytest
from argon2 import PasswordHasher

from realmauth.authenticator import Authenticator
from realmauth.credential import ApiKeyCredential, IPCredential, PasswordCredential
from realmauth.errors import AuthenticationFailure
from realmauth.identifier import StorageIdentifier
from realmauth.strategies import (
    ApiKeyVerifier,
    InMemoryPasswordRecords,
    IPAllowListVerifier,
    PasswordRecord,
    PasswordVerifier,
)

# Cheap parameters keep the suite fast
FAST_HASHER = PasswordHasher(time_cost=1, memory_cost=8, parallelism=1)


@pytest.fixture
def records():
    records = InMemoryPasswordRecords(hasher=FAST_HASHER)
    records.add_user("payam", "TestPassword123!", uid="u1", claims={"role": "admin"})
    records.add_user("shopper", "Shopper123!", uid="u2", realm="customer")
    return records


class TestPasswordVerifier:
    def test_valid_password_returns_fulfilled_identity(self, records):
        verifier = PasswordVerifier(records, hasher=FAST_HASHER)

        identity = verifier.verify(PasswordCredential(username="payam", password="TestPassword123!"))

        assert identity.is_fulfilled() is True
        assert identity.claims == {"uid": "u1", "username": "payam", "role": "admin"}

    def test_hash_is_not_plaintext(self, records):
        record = records.get_password_record("payam")

        assert record.password_hash != "TestPassword123!"
        assert record.password_algo == "argon2id"

    @pytest.mark.parametrize(
        "fields",
        [
            {"username": "payam", "password": "wrong"},
            {"username": "ghost", "password": "TestPassword123!"},
            {"username": "payam"},
            {"password": "TestPassword123!"},
            {},
        ],
    )
    def test_rejections(self, records, fields):
        verifier = PasswordVerifier(records, hasher=FAST_HASHER)

        with pytest.raises(AuthenticationFailure):
            verifier.verify(PasswordCredential(fields))

    def test_realm_restricted_verifier(self, records):
        verifier = PasswordVerifier(records, realm="customer", hasher=FAST_HASHER)

        identity = verifier.verify(PasswordCredential(username="shopper", password="Shopper123!"))

        assert identity["realm"] == "customer"
        with pytest.raises(AuthenticationFailure):
            verifier.verify(
                PasswordCredential(username="shopper", password="Shopper123!", realm="admin")
            )

    def test_record_realm_mismatch(self, records):
        verifier = PasswordVerifier(records, hasher=FAST_HASHER)

        with pytest.raises(AuthenticationFailure):
            verifier.verify(
                PasswordCredential(username="shopper", password="Shopper123!", realm="admin")
            )

    def test_unknown_algorithm_rejected(self):
        class Records:
            def get_password_record(self, username):
                return PasswordRecord(uid="u1", password_hash="plain", password_algo="md5")

        with pytest.raises(AuthenticationFailure):
            PasswordVerifier(Records()).verify(PasswordCredential(username="a", password="b"))

    def test_invalid_hash_rejected(self):
        class Records:
            def get_password_record(self, username):
                return PasswordRecord(uid="u1", password_hash="not-a-hash")

        with pytest.raises(AuthenticationFailure):
            PasswordVerifier(Records()).verify(PasswordCredential(username="a", password="b"))

    def test_end_to_end_with_authenticator(self, records, backend, settings):
        identifier = StorageIdentifier(backend, "admin", settings=settings)
        auth = Authenticator(PasswordVerifier(records, hasher=FAST_HASHER), identifier)

        auth.set_credential_fields(username="payam", password="TestPassword123!", remember=True)
        assert "remember" not in auth.credential

        auth.authenticate().sign_in()

        recognized = identifier.recognized_identity()
        assert recognized["uid"] == "u1"

    def test_back_to_back_attempts_do_not_share_fields(self, records, backend, settings):
        records.add_user("bob", "BobPassword1!", realm="admin")
        records.add_user("alice", "AlicePassword1!")
        identifier = StorageIdentifier(backend, "admin", settings=settings)
        auth = Authenticator(PasswordVerifier(records, hasher=FAST_HASHER), identifier)

        auth.authenticate({"username": "bob", "password": "BobPassword1!", "realm": "admin"})
        assert identifier.bound_identity["realm"] == "admin"

        auth.authenticate({"username": "alice", "password": "AlicePassword1!"})

        alice = identifier.bound_identity
        assert alice["uid"] == "alice"
        assert "realm" not in alice
        assert auth.credential.fields_dict() == {}


class TestIPAllowListVerifier:
    def test_allowed_address(self):
        verifier = IPAllowListVerifier(["10.0.0.0/8", "2001:db8::/32"])

        identity = verifier.verify(IPCredential(ip="10.1.2.3"))

        assert identity.claims == {"uid": "10.1.2.3", "ip": "10.1.2.3", "network": "10.0.0.0/8"}

    def test_allowed_ipv6(self):
        verifier = IPAllowListVerifier(["2001:db8::/32"])

        assert verifier.verify(IPCredential(ip="2001:db8::1")).is_fulfilled()

    @pytest.mark.parametrize("ip", ["192.168.1.1", "not-an-ip", "", None])
    def test_rejected_addresses(self, ip):
        verifier = IPAllowListVerifier(["10.0.0.0/8"])

        with pytest.raises(AuthenticationFailure):
            verifier.verify(IPCredential(ip=ip))


class TestApiKeyVerifier:
    def test_known_key(self):
        verifier = ApiKeyVerifier({ApiKeyVerifier.digest("key-123"): "svc-1"})

        identity = verifier.verify(ApiKeyCredential(api_key="key-123"))

        assert identity["uid"] == "svc-1"
        assert identity["auth_method"] == "api_key"

    @pytest.mark.parametrize("key", ["wrong", "", None])
    def test_unknown_key(self, key):
        verifier = ApiKeyVerifier({ApiKeyVerifier.digest("key-123"): "svc-1"})

        with pytest.raises(AuthenticationFailure):
            verifier.verify(ApiKeyCredential(api_key=key))

    def test_digest_is_sha256_hex(self):
        assert len(ApiKeyVerifier.digest("x")) == 64
