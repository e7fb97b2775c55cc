"""Core configuration constants.

Fixed policy values live here as named constants so the record shape does not
have to change when they become user-configurable.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_PORT = 5222


@dataclass(frozen=True)
class OTRPolicy:
    """OTR session behavior written into every enrolled account."""

    auto_append_tag: bool
    auto_start_session: bool
    auto_tear_down: bool


OTR_POLICY_DEFAULTS = OTRPolicy(
    auto_append_tag=True,
    auto_start_session=True,
    auto_tear_down=False,
)
