import pytest

from app.core.errors import ConflictError, WalletAlreadyBound
from app.services.credential_store import CredentialStore

NOW = 1_763_461_800
ADDR_A = "0x" + "a" * 40
ADDR_B = "0x" + "b" * 40


class TestAccounts:
    def test_email_is_stored_lowercase_and_found_case_insensitively(self, store):
        account = store.create_account(now=NOW, email="Ada@Gmail.com")
        assert account.email == "ada@gmail.com"
        assert store.get_by_email("ADA@gmail.COM").id == account.id

    def test_duplicate_email_conflicts(self, store):
        store.create_account(now=NOW, email="ada@gmail.com")
        with pytest.raises(ConflictError):
            store.create_account(now=NOW, email="ADA@gmail.com")

    def test_wallet_account_conflicts_with_bound_address(self, store):
        first = store.create_account(now=NOW, email="ada@gmail.com")
        store.bind_wallet(first.id, ADDR_A)

        with pytest.raises(ConflictError):
            store.create_account(now=NOW, wallet_address=ADDR_A)
        assert store.create_account(now=NOW, wallet_address=ADDR_B).wallet_address == ADDR_B


class TestNonce:
    def test_new_nonce_overwrites_previous(self, store):
        account = store.create_account(now=NOW)
        store.set_pending_nonce(account.id, "n1", NOW + 300, ADDR_A)
        store.set_pending_nonce(account.id, "n2", NOW + 300, ADDR_A)

        assert store.get_account(account.id).pending_nonce == "n2"
        assert not store.consume_nonce(account.id, "n1")
        assert store.consume_nonce(account.id, "n2")

    def test_nonce_consumed_once(self, store):
        account = store.create_account(now=NOW)
        store.set_pending_nonce(account.id, "n1", NOW + 300, ADDR_A)

        assert store.consume_nonce(account.id, "n1")
        assert not store.consume_nonce(account.id, "n1")
        account = store.get_account(account.id)
        assert account.pending_nonce is None
        assert account.pending_nonce_expires_at is None

    def test_consume_from_two_sessions(self, session_factory):
        first = CredentialStore(session_factory())
        second = CredentialStore(session_factory())
        account = first.create_account(now=NOW)
        first.set_pending_nonce(account.id, "n1", NOW + 300)

        assert [first.consume_nonce(account.id, "n1"), second.consume_nonce(account.id, "n1")] == [True, False]

    def test_set_nonce_on_missing_account(self, store):
        assert not store.set_pending_nonce("missing", "n1", NOW + 300)


class TestAddressChallenges:
    def test_new_challenge_overwrites_previous(self, store):
        store.set_address_challenge(ADDR_A, "n1", NOW + 300, NOW)
        store.set_address_challenge(ADDR_A, "n2", NOW + 300, NOW)

        assert store.get_address_challenge(ADDR_A).nonce == "n2"
        assert not store.consume_address_challenge(ADDR_A, "n1")
        assert store.consume_address_challenge(ADDR_A, "n2")
        assert store.get_address_challenge(ADDR_A) is None

    def test_challenge_consumed_once(self, session_factory):
        first = CredentialStore(session_factory())
        second = CredentialStore(session_factory())
        first.set_address_challenge(ADDR_A, "n1", NOW + 300, NOW)

        assert [
            first.consume_address_challenge(ADDR_A, "n1"),
            second.consume_address_challenge(ADDR_A, "n1"),
        ] == [True, False]

    def test_challenges_are_per_address(self, store):
        store.set_address_challenge(ADDR_A, "n1", NOW + 300, NOW)
        assert store.get_address_challenge(ADDR_B) is None
        assert not store.consume_address_challenge(ADDR_B, "n1")

    def test_expired_pruned_on_insert(self, store):
        store.set_address_challenge(ADDR_A, "n1", NOW + 300, NOW)
        store.set_address_challenge(ADDR_B, "n2", NOW + 700, NOW + 400)

        assert store.get_address_challenge(ADDR_A) is None
        assert store.get_address_challenge(ADDR_B).nonce == "n2"

    def test_purge_expired(self, store):
        store.set_address_challenge(ADDR_A, "n1", NOW + 10, NOW)
        store.set_address_challenge(ADDR_B, "n2", NOW + 1000, NOW)

        assert store.purge_expired_challenges(NOW + 100) == 1
        assert store.get_address_challenge(ADDR_B) is not None


class TestWalletBinding:
    def test_bind_once(self, store):
        account = store.create_account(now=NOW, email="ada@gmail.com")
        assert store.bind_wallet(account.id, ADDR_A)
        assert not store.bind_wallet(account.id, ADDR_B)
        assert store.get_account(account.id).wallet_address == ADDR_A
        assert store.get_by_wallet(ADDR_A).id == account.id

    def test_address_bound_elsewhere(self, store):
        first = store.create_account(now=NOW, email="a@gmail.com")
        second = store.create_account(now=NOW, email="b@gmail.com")
        store.bind_wallet(first.id, ADDR_A)
        with pytest.raises(WalletAlreadyBound):
            store.bind_wallet(second.id, ADDR_A)
        assert store.get_account(second.id).wallet_address is None

    def test_unbind_requires_password(self, store):
        wallet_only = store.create_account(now=NOW)
        store.bind_wallet(wallet_only.id, ADDR_A)
        assert not store.unbind_wallet(wallet_only.id)

        with_password = store.create_account(now=NOW, email="b@gmail.com", password_hash="x")
        store.bind_wallet(with_password.id, ADDR_B)
        assert store.unbind_wallet(with_password.id)
        assert store.get_account(with_password.id).wallet_address is None


class TestRefreshTokens:
    def test_add_find_remove(self, store):
        account = store.create_account(now=NOW)
        store.add_refresh_token(account.id, "t1", NOW, NOW + 100, max_active=5)

        assert store.find_refresh_token("t1").account_id == account.id
        assert store.remove_refresh_token("t1")
        assert not store.remove_refresh_token("t1")
        assert store.find_refresh_token("t1") is None

    def test_oldest_evicted_beyond_cap(self, store):
        account = store.create_account(now=NOW)
        for i in range(5):
            store.add_refresh_token(account.id, f"t{i}", NOW + i, NOW + 1000, max_active=3)

        assert [t.token for t in store.list_refresh_tokens(account.id)] == ["t2", "t3", "t4"]

    def test_expired_pruned_on_insert(self, store):
        account = store.create_account(now=NOW)
        store.add_refresh_token(account.id, "old", NOW, NOW + 10, max_active=5)
        store.add_refresh_token(account.id, "new", NOW + 20, NOW + 1000, max_active=5)

        assert [t.token for t in store.list_refresh_tokens(account.id)] == ["new"]

    def test_cap_is_per_account(self, store):
        first = store.create_account(now=NOW)
        second = store.create_account(now=NOW)
        store.add_refresh_token(first.id, "f1", NOW, NOW + 1000, max_active=1)
        store.add_refresh_token(second.id, "s1", NOW, NOW + 1000, max_active=1)
        store.add_refresh_token(first.id, "f2", NOW + 1, NOW + 1000, max_active=1)

        assert [t.token for t in store.list_refresh_tokens(first.id)] == ["f2"]
        assert [t.token for t in store.list_refresh_tokens(second.id)] == ["s1"]

    def test_rotate_replaces_once(self, store):
        account = store.create_account(now=NOW)
        store.add_refresh_token(account.id, "t1", NOW, NOW + 1000, max_active=5)

        assert store.rotate_refresh_token("t1", account.id, "t2", NOW + 1, NOW + 1001)
        assert not store.rotate_refresh_token("t1", account.id, "t3", NOW + 2, NOW + 1002)
        assert [t.token for t in store.list_refresh_tokens(account.id)] == ["t2"]

    def test_purge_expired(self, store):
        account = store.create_account(now=NOW)
        store.add_refresh_token(account.id, "t1", NOW, NOW + 10, max_active=5)
        store.add_refresh_token(account.id, "t2", NOW, NOW + 1000, max_active=5)

        assert store.purge_expired_refresh_tokens(NOW + 100) == 1
        assert [t.token for t in store.list_refresh_tokens(account.id)] == ["t2"]
