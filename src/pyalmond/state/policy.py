"""Per-property update policy.

Pure decisions over decoded values; the registry does the parsing and acts
on the answer.
"""

from __future__ import annotations

from typing import Any

from pyalmond.models.device import UpdatePolicy


def values_differ(current: Any, incoming: Any) -> bool:
    """Whether two decoded values are different.

    Types are compared too: ``True == 1`` in Python, but ``"true"`` and
    ``"1"`` are different values on the wire.
    """
    return type(current) is not type(incoming) or current != incoming


def should_notify(
    policy: UpdatePolicy,
    *,
    current: Any,
    incoming: Any,
    forced: bool,
) -> bool:
    """Decide whether storing *incoming* is reported as a value update.

    Policy:
    - ``ALWAYS``: always reported.
    - ``ON_CHANGE``: reported when the value differs from the stored one.
    - ``ON_TRIGGER``: reported only for explicit index-update pushes
      (*forced*), whether or not the value changed.

    The value is stored in every case; only the notification is gated.
    """
    if policy == UpdatePolicy.ALWAYS:
        return True
    if policy == UpdatePolicy.ON_TRIGGER:
        return forced
    return values_differ(current, incoming)
