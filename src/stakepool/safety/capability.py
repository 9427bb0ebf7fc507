"""Admin capabilities - explicit permission objects for gated ledger calls."""

from __future__ import annotations

import hmac
import secrets
import threading
from dataclasses import dataclass, field

from loguru import logger

from stakepool.errors import Unauthorized


@dataclass(frozen=True)
class AdminCap:
    """Capability proving the holder may perform admin operations.

    Only an ``Authority`` can mint one; the secret is never shown in repr.
    """

    authority_id: str
    cap_id: str
    label: str = "admin"
    _secret: str = field(default="", repr=False, compare=False)


class Authority:
    """Issues, verifies and revokes ``AdminCap`` objects.

    A capability is accepted only if it was issued by this authority,
    its secret matches, and it has not been revoked.
    """

    def __init__(self, name: str = "stakepool") -> None:
        self.authority_id = f"{name}-{secrets.token_hex(4)}"
        self._issued: dict[str, str] = {}
        self._lock = threading.Lock()

    def issue(self, label: str = "admin") -> AdminCap:
        """Mint a new capability."""
        cap_id = f"cap-{secrets.token_hex(6)}"
        secret = secrets.token_hex(16)
        with self._lock:
            self._issued[cap_id] = secret
        logger.info("Issued admin capability", cap_id=cap_id, label=label)
        return AdminCap(
            authority_id=self.authority_id, cap_id=cap_id, label=label, _secret=secret
        )

    def revoke(self, cap: AdminCap) -> None:
        """Revoke a capability; later checks with it raise ``Unauthorized``."""
        with self._lock:
            self._issued.pop(cap.cap_id, None)
        logger.info("Revoked admin capability", cap_id=cap.cap_id)

    def is_valid(self, cap: object) -> bool:
        if not isinstance(cap, AdminCap) or cap.authority_id != self.authority_id:
            return False
        with self._lock:
            expected = self._issued.get(cap.cap_id)
        if expected is None:
            return False
        return hmac.compare_digest(expected, cap._secret)

    def verify(self, cap: object, operation: str) -> None:
        """Raise ``Unauthorized`` unless ``cap`` is a live capability of this authority.

        Args:
            cap: Capability passed by the caller
            operation: Name of the gated operation (for errors and logs)
        """
        if not self.is_valid(cap):
            logger.warning("Rejected admin call", operation=operation)
            raise Unauthorized(
                "admin capability required",
                context={"operation": operation, "authority": self.authority_id},
            )
