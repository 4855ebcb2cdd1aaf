"""Session snapshot of the Vault token held by the agent.

Pattern: Replace, Don't Mutate
-------------------------------
A ``Session`` is created from the ``auth`` block of a successful AppRole login
and replaced by a fresh ``Session`` after every successful renewal.  The client
token normally survives renewals unchanged; only the lease moves.  Keeping the
snapshot immutable means the renewal loop always works from the lease Vault
most recently granted, never from a half-updated record.
"""

from __future__ import annotations

import dataclasses
from typing import Any


@dataclasses.dataclass(frozen=True)
class Session:
    """Immutable snapshot of a live Vault token.

    Attributes:
        client_token:   The Vault client token written to the token file.
        lease_duration: Lease granted by Vault, in seconds.
    """

    client_token: str
    lease_duration: int

    @classmethod
    def from_auth(cls, auth: dict[str, Any], client_token: str | None = None) -> Session:
        """Build a session from a Vault ``auth`` response block.

        *client_token* is used when the block omits the token, which some
        renewal responses do.
        """
        return cls(
            client_token=auth.get("client_token") or client_token or "",
            lease_duration=int(auth["lease_duration"]),
        )

    def renewal_delay(self, margin: int) -> int:
        """Seconds to wait before the next renewal, *margin* seconds ahead of expiry.

        Never negative: a lease shorter than the margin means "renew now".
        """
        return max(self.lease_duration - margin, 0)
