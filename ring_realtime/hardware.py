"""Device identity helpers."""

from __future__ import annotations

import random
import string

HARDWARE_ID_LENGTH = 32
_ALPHANUMERIC = string.ascii_letters + string.digits


def generate_hardware_id(system_id: str) -> str:
    """Derive a stable hardware ID from a system ID.

    The system ID can be any identifier that is predictable and consistent
    per device. It seeds the generator, so the same system ID always maps to
    the same hardware ID and any change to it yields a different one.
    """
    if not system_id:
        raise ValueError("system_id must not be empty")
    rng = random.Random(system_id)
    return "".join(rng.choice(_ALPHANUMERIC) for _ in range(HARDWARE_ID_LENGTH))
