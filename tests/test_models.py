"""Tests for pushtart.models and pushtart.auth."""

import pytest

from pushtart.auth import check_owner, is_owner
from pushtart.errors import Unauthorized
from pushtart.models import Account, TRUSTED, Tart, Trusted, principal_from_username


class TestTart:
    def test_defaults_are_placeholder(self):
        tart = Tart(push_url="/app", owners=["alice"])
        assert tart.is_running is False
        assert tart.pid == 0
        assert tart.env == []
        assert tart.last_hash == ""

    def test_copy_does_not_share_lists(self):
        tart = Tart(push_url="/app", owners=["alice"], env=["A=1"])
        clone = tart.copy()
        clone.owners.append("bob")
        clone.env.append("B=2")
        assert tart.owners == ["alice"]
        assert tart.env == ["A=1"]

    def test_from_dict_ignores_unknown_keys(self):
        tart = Tart.from_dict({"push_url": "/app", "name": "app", "colour": "blue"})
        assert tart.name == "app"


class TestPrincipal:
    def test_empty_username_is_trusted(self):
        assert principal_from_username("") is TRUSTED
        assert isinstance(principal_from_username(None), Trusted)

    def test_username_becomes_account(self):
        assert principal_from_username("alice") == Account("alice")


class TestAuthorization:
    def test_is_owner_exact_match(self):
        assert is_owner("alice", ["alice", "bob"])
        assert not is_owner("Alice", ["alice"])
        assert not is_owner("ali", ["alice"])

    def test_trusted_bypasses(self):
        check_owner(TRUSTED, Tart(push_url="/app", owners=["alice"]))

    def test_owner_allowed(self):
        check_owner(Account("alice"), Tart(push_url="/app", owners=["alice"]))

    def test_non_owner_rejected(self):
        with pytest.raises(Unauthorized, match=r"You \(bob\) are not an owner"):
            check_owner(Account("bob"), Tart(push_url="/app", owners=["alice"]))
