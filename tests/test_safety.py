"""Tests for admin capabilities."""

from __future__ import annotations

import dataclasses

import pytest

from stakepool.errors import Unauthorized
from stakepool.safety import AdminCap, Authority


class TestAuthority:
    """Issuing, verifying and revoking capabilities."""

    def test_issued_cap_is_valid(self) -> None:
        authority = Authority()
        cap = authority.issue("ops")

        assert cap.label == "ops"
        assert authority.is_valid(cap) is True
        authority.verify(cap, "anything")

    def test_foreign_cap_rejected(self) -> None:
        authority = Authority()
        foreign = Authority().issue()

        assert authority.is_valid(foreign) is False
        with pytest.raises(Unauthorized) as exc_info:
            authority.verify(foreign, "set_paused")
        assert exc_info.value.context["operation"] == "set_paused"

    def test_forged_secret_rejected(self) -> None:
        authority = Authority()
        cap = authority.issue()
        forged = dataclasses.replace(cap, _secret="0" * 32)

        assert authority.is_valid(forged) is False

    def test_revoked_cap_rejected(self) -> None:
        authority = Authority()
        cap = authority.issue()
        other = authority.issue()

        authority.revoke(cap)

        assert authority.is_valid(cap) is False
        assert authority.is_valid(other) is True

    def test_non_cap_rejected(self) -> None:
        authority = Authority()
        with pytest.raises(Unauthorized):
            authority.verify("admin", "record_rewards")
        with pytest.raises(Unauthorized):
            authority.verify(None, "record_rewards")

    def test_secret_hidden_from_repr(self) -> None:
        cap = Authority().issue()
        assert cap._secret not in repr(cap)

    def test_caps_are_frozen(self) -> None:
        cap = Authority().issue()
        with pytest.raises(dataclasses.FrozenInstanceError):
            cap.label = "root"  # type: ignore[misc]

    def test_unauthorized_message_includes_context(self) -> None:
        authority = Authority("pool")
        with pytest.raises(Unauthorized, match="operation=fold_rewards"):
            authority.verify(AdminCap("x", "y"), "fold_rewards")
