"""Unit tests for auth/magic.py -- minting and redeeming magic links.

Covers:
- public key format and uniqueness
- URL composition
- mint() writes exactly one bound record with the issue time
- end-to-end: account 42 on example.com under endpoint abc123
- binding: changing the key, endpoint, domain, or account id breaks verification
- revocation by rotation, TTL expiry, single use
- every rejection is the same exception with the same message
"""

import logging
import re

import pytest

from auth.endpoint import ENDPOINT_OPTION
from auth.magic import compose_url, mint, new_public_key, redeem, store_key
from auth.models import Account
from auth.tokens import binding_material, hash_binding, verify_binding
from core.errors import RedemptionRejected

HOME_URL = "https://example.com"
DOMAIN = "example.com"

_KEY_RE = re.compile(r"^[0-9a-f]{6,14}-[0-9a-f]{8,14}-[0-9a-f]{10,14}$")


@pytest.fixture
def account() -> Account:
    return Account(id=42, login="alice", email="alice@example.com")


# ---------------------------------------------------------------------------
# Public keys and URLs
# ---------------------------------------------------------------------------


def test_public_key_shape():
    for _ in range(200):
        assert _KEY_RE.match(new_public_key())


def test_public_key_group_sizes_vary():
    sizes = [set(), set(), set()]
    for _ in range(2000):
        for i, group in enumerate(new_public_key().split("-")):
            sizes[i].add(len(group) // 2)
    assert sizes == [set(range(3, 8)), set(range(4, 8)), set(range(5, 8))]


def test_public_keys_do_not_collide():
    keys = [new_public_key() for _ in range(20000)]
    assert len(set(keys)) == len(keys)


def test_compose_url():
    assert compose_url("https://example.com", "abc123", "aa-bb-cc") == "https://example.com/abc123/aa-bb-cc"
    assert compose_url("https://example.com/", "abc123", "aa-bb-cc") == "https://example.com/abc123/aa-bb-cc"


# ---------------------------------------------------------------------------
# Minting
# ---------------------------------------------------------------------------


def test_mint_stores_bound_record(account, registry, cache, clock):
    link = mint(account, registry, cache, HOME_URL)
    record = cache.take(store_key(link.public_key))
    assert record["account_id"] == 42
    assert record["issued_at"] == clock.now
    material = binding_material(link.public_key, registry.current(), DOMAIN, 42)
    assert verify_binding(material, record["private_hash"])


def test_mint_creates_endpoint_lazily(account, registry, cache, options):
    assert options.get(ENDPOINT_OPTION) is None
    link = mint(account, registry, cache, HOME_URL)
    endpoint = options.get(ENDPOINT_OPTION)
    assert link.url == f"{HOME_URL}/{endpoint}/{link.public_key}"


def test_two_mints_same_account_differ(account, registry, cache):
    first = mint(account, registry, cache, HOME_URL)
    second = mint(account, registry, cache, HOME_URL)
    assert first.public_key != second.public_key
    assert cache.take(store_key(first.public_key)) is not None
    assert cache.take(store_key(second.public_key)) is not None


# ---------------------------------------------------------------------------
# End-to-end
# ---------------------------------------------------------------------------


def test_end_to_end_scenario(account, registry, cache, options):
    options.update(ENDPOINT_OPTION, "abc123")
    link = mint(account, registry, cache, HOME_URL)
    assert link.url == f"https://example.com/abc123/{link.public_key}"

    assert redeem("abc123", link.public_key, registry, cache, DOMAIN) == 42

    with pytest.raises(RedemptionRejected):
        redeem("abc123", link.public_key, registry, cache, DOMAIN)


def test_wrong_endpoint_leaves_record_in_place(account, registry, cache, options):
    options.update(ENDPOINT_OPTION, "abc123")
    link = mint(account, registry, cache, HOME_URL)

    with pytest.raises(RedemptionRejected):
        redeem("def456", link.public_key, registry, cache, DOMAIN)

    assert redeem("abc123", link.public_key, registry, cache, DOMAIN) == 42


# ---------------------------------------------------------------------------
# Binding
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "changed",
    [
        ("ff-ff-ff", "abc123", DOMAIN, 42),
        ("aa-bb-cc", "abc124", DOMAIN, 42),
        ("aa-bb-cc", "abc123", "evil.example", 42),
        ("aa-bb-cc", "abc123", DOMAIN, 43),
    ],
    ids=["public_key", "endpoint", "domain", "account_id"],
)
def test_binding_rejects_any_changed_input(changed):
    stored = hash_binding(binding_material("aa-bb-cc", "abc123", DOMAIN, 42))
    assert verify_binding(binding_material("aa-bb-cc", "abc123", DOMAIN, 42), stored)
    assert not verify_binding(binding_material(*changed), stored)


def test_binding_covers_account_id_past_72_bytes():
    """A long domain must not push the account id past bcrypt's input limit."""
    domain = "a-very-long-subdomain-name.with-several-labels.example.com"
    stored = hash_binding(binding_material("0011223344556677-0011223344556677-00112233445566", "e" * 24, domain, 1))
    other = binding_material("0011223344556677-0011223344556677-00112233445566", "e" * 24, domain, 2)
    assert not verify_binding(other, stored)


def test_malformed_stored_hash_is_a_mismatch():
    assert not verify_binding("anything", "not-a-bcrypt-hash")


def test_redeem_on_other_domain_rejected_and_consumed(account, registry, cache):
    link = mint(account, registry, cache, HOME_URL)
    endpoint = registry.current()
    with pytest.raises(RedemptionRejected):
        redeem(endpoint, link.public_key, registry, cache, "other.example")
    # The failed attempt burned the link.
    with pytest.raises(RedemptionRejected):
        redeem(endpoint, link.public_key, registry, cache, DOMAIN)


def test_tampered_account_id_rejected(account, registry, cache):
    link = mint(account, registry, cache, HOME_URL)
    record = cache.take(store_key(link.public_key))
    record["account_id"] = 1
    cache.put(store_key(link.public_key), record, ttl=300)
    with pytest.raises(RedemptionRejected):
        redeem(registry.current(), link.public_key, registry, cache, DOMAIN)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


def test_rotation_revokes_unexpired_link(account, registry, cache):
    link = mint(account, registry, cache, HOME_URL)
    old_endpoint = registry.current()
    registry.rotate()

    with pytest.raises(RedemptionRejected):
        redeem(old_endpoint, link.public_key, registry, cache, DOMAIN)
    with pytest.raises(RedemptionRejected):
        redeem(registry.current(), link.public_key, registry, cache, DOMAIN)


def test_rotation_does_not_purge_records(account, registry, cache):
    link = mint(account, registry, cache, HOME_URL)
    registry.rotate()
    assert cache.take(store_key(link.public_key)) is not None


def test_expired_link_rejected(account, registry, cache, clock):
    link = mint(account, registry, cache, HOME_URL)
    clock.advance(301)
    with pytest.raises(RedemptionRejected):
        redeem(registry.current(), link.public_key, registry, cache, DOMAIN)


def test_link_valid_until_ttl(account, registry, cache, clock):
    link = mint(account, registry, cache, HOME_URL)
    clock.advance(299)
    assert redeem(registry.current(), link.public_key, registry, cache, DOMAIN) == 42


def test_endpoint_read_once_per_redemption(account, registry, cache):
    link = mint(account, registry, cache, HOME_URL)
    calls = []

    class CountingRegistry:
        def current(self):
            calls.append(1)
            return registry.current()

    assert redeem(registry.current(), link.public_key, CountingRegistry(), cache, DOMAIN) == 42
    assert len(calls) == 1


def test_rejections_are_indistinguishable(account, registry, cache):
    endpoint = registry.current()
    stale = mint(account, registry, cache, HOME_URL)
    mismatched = mint(account, registry, cache, HOME_URL)

    errors = []
    for attempt in (
        lambda: redeem("wrong-endpoint", stale.public_key, registry, cache, DOMAIN),
        lambda: redeem(endpoint, "00-00-00", registry, cache, DOMAIN),
        lambda: redeem(endpoint, mismatched.public_key, registry, cache, "other.example"),
    ):
        with pytest.raises(RedemptionRejected) as exc_info:
            attempt()
        errors.append((type(exc_info.value), str(exc_info.value)))

    assert len(set(errors)) == 1


def test_mint_log_messages_carry_no_cli_prefix(account, registry, cache, caplog):
    with caplog.at_level(logging.DEBUG, logger="magiclogin.auth"):
        mint(account, registry, cache, HOME_URL)
    assert caplog.messages
    assert not any(m.startswith("[login]") for m in caplog.messages)
