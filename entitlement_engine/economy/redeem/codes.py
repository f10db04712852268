from __future__ import annotations

import re
import secrets
from functools import lru_cache

from entitlement_engine.core.config import get_settings

CODE_ALPHABET = "23456789ABCDEFGHJKLMNPQRSTUVWXYZ"
CODE_GROUP_LENGTH = 4
CODE_GROUP_COUNT = 2
CODE_DELIMITER = "-"
MAX_BATCH_SIZE = 100


def _default_prefix() -> str:
    return get_settings().redeem_code_prefix.strip().upper()


@lru_cache(maxsize=8)
def _code_pattern(prefix: str) -> re.Pattern[str]:
    group = f"[{re.escape(CODE_ALPHABET)}]{{{CODE_GROUP_LENGTH}}}"
    groups = re.escape(CODE_DELIMITER).join([group] * CODE_GROUP_COUNT)
    return re.compile(f"^{re.escape(prefix)}{re.escape(CODE_DELIMITER)}{groups}$")


def canonicalize_code(raw_code: str) -> str:
    return raw_code.strip().upper()


def is_valid_code_format(raw_code: str, *, prefix: str | None = None) -> bool:
    pattern = _code_pattern(prefix if prefix is not None else _default_prefix())
    return pattern.match(canonicalize_code(raw_code)) is not None


def _random_group() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_GROUP_LENGTH))


def generate_code(*, prefix: str | None = None) -> str:
    resolved_prefix = prefix if prefix is not None else _default_prefix()
    groups = CODE_DELIMITER.join(_random_group() for _ in range(CODE_GROUP_COUNT))
    return f"{resolved_prefix}{CODE_DELIMITER}{groups}"


def generate_codes(
    *,
    count: int,
    prefix: str | None = None,
    existing_codes: set[str] | None = None,
) -> list[str]:
    if count <= 0:
        raise ValueError("count must be positive")

    taken = set(existing_codes) if existing_codes is not None else set()
    generated: list[str] = []
    attempts = 0
    max_attempts = max(100, count * 50)

    while len(generated) < count:
        attempts += 1
        if attempts > max_attempts:
            raise RuntimeError("unable to generate unique redeem codes")

        code = generate_code(prefix=prefix)
        if code in taken:
            continue

        taken.add(code)
        generated.append(code)

    return generated
