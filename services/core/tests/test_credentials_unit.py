"""Unit tests for operator accounts and credential bundle storage."""

import stat

import pytest

from outreach_core.domain.services.credentials import Account, CredentialBundleStore
from outreach_core.infrastructure.crypto import CryptoService

COOKIES = [
    {"name": "li_at", "value": "AQEDAR", "expires": -1},
    {"name": "li_rm", "value": "AQFz", "expires": -1},
    {"name": "JSESSIONID", "value": "ajax:123"},
]


@pytest.fixture
def crypto():
    return CryptoService(CryptoService.generate_key())


class TestAccount:
    def test_bot_id_combines_email_and_secret(self):
        account = Account(email="bot@example.com", secret="s3cret")
        assert account.bot_id == "bot@example.com_s3cret"

    def test_repr_hides_secret(self):
        account = Account(email="bot@example.com", secret="s3cret")
        assert "s3cret" not in repr(account)

    def test_from_settings(self, test_settings):
        account = Account.from_settings(test_settings)
        assert account.email == "bot@example.com"
        assert account.secret == "test-secret"


class TestCredentialBundleStore:
    def test_missing_bundle_loads_none(self, tmp_path):
        store = CredentialBundleStore(str(tmp_path))
        assert store.load("bot@example.com") is None

    def test_save_then_load_plaintext(self, tmp_path):
        store = CredentialBundleStore(str(tmp_path))

        path = store.save("bot@example.com", COOKIES)

        assert path.suffix == ".json"
        assert store.load("bot@example.com") == COOKIES
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_encrypted_bundle_not_readable_on_disk(self, tmp_path, crypto):
        store = CredentialBundleStore(str(tmp_path), crypto)

        path = store.save("bot@example.com", COOKIES)

        assert path.suffix == ".enc"
        assert "AQEDAR" not in path.read_text()
        assert store.load("bot@example.com") == COOKIES

    def test_bundle_under_other_key_is_unreadable(self, tmp_path, crypto):
        CredentialBundleStore(str(tmp_path), crypto).save("bot@example.com", COOKIES)
        other = CredentialBundleStore(str(tmp_path), CryptoService(CryptoService.generate_key()))

        assert other.load("bot@example.com") is None

    def test_malformed_bundle_loads_none(self, tmp_path):
        store = CredentialBundleStore(str(tmp_path))
        store.path_for("bot@example.com").write_text('{"li_at": "AQEDAR"}')

        assert store.load("bot@example.com") is None

    def test_invalid_json_loads_none(self, tmp_path):
        store = CredentialBundleStore(str(tmp_path))
        store.path_for("bot@example.com").write_text("not json")

        assert store.load("bot@example.com") is None

    def test_save_replaces_bundle_wholesale(self, tmp_path):
        store = CredentialBundleStore(str(tmp_path))
        store.save("bot@example.com", COOKIES)

        store.save("bot@example.com", COOKIES[:1])

        assert store.load("bot@example.com") == COOKIES[:1]

    def test_path_is_case_insensitive_per_email(self, tmp_path):
        store = CredentialBundleStore(str(tmp_path))
        assert store.path_for("Bot@Example.com") == store.path_for("bot@example.com")
        assert store.path_for("bot@example.com") != store.path_for("other@example.com")
