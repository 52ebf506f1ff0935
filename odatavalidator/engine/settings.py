"""
Validator settings.

Settings are constructed explicitly and passed to the HTTP helper and the
runner. ``from_env`` reads overrides from ``ODATA_VALIDATOR_*`` variables.
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

from odatavalidator import __version__

from .types import ConformanceLevel

ENV_PREFIX = "ODATA_VALIDATOR_"

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


@dataclass(frozen=True)
class ValidatorSettings:
    """Tunable parameters of a validation job."""

    # Seconds to wait for each HTTP response
    timeout: float = 8.0

    # Response payloads are truncated to this many characters
    max_payload_size: int = 1024 * 1024

    user_agent: str = f"odata-validator/{__version__}"
    verify_tls: bool = True

    levels: Tuple[ConformanceLevel, ...] = field(
        default_factory=lambda: (ConformanceLevel.MINIMAL,)
    )

    def __post_init__(self):
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        if self.max_payload_size <= 0:
            raise ValueError(f"max_payload_size must be positive, got {self.max_payload_size}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ValidatorSettings":
        """
        Build settings from environment variables.

        Recognised variables:
            ODATA_VALIDATOR_TIMEOUT       seconds (float)
            ODATA_VALIDATOR_MAX_PAYLOAD   characters (int)
            ODATA_VALIDATOR_VERIFY_TLS    true/false
            ODATA_VALIDATOR_USER_AGENT    string
            ODATA_VALIDATOR_LEVELS        comma separated level names

        Raises:
            ValueError: If a variable holds an invalid value.
        """
        env = os.environ if environ is None else environ
        kwargs = {}

        timeout = env.get(ENV_PREFIX + "TIMEOUT")
        if timeout:
            try:
                kwargs["timeout"] = float(timeout)
            except ValueError:
                raise ValueError(f"{ENV_PREFIX}TIMEOUT is not a number: {timeout!r}")

        max_payload = env.get(ENV_PREFIX + "MAX_PAYLOAD")
        if max_payload:
            try:
                kwargs["max_payload_size"] = int(max_payload)
            except ValueError:
                raise ValueError(f"{ENV_PREFIX}MAX_PAYLOAD is not an integer: {max_payload!r}")

        verify_tls = env.get(ENV_PREFIX + "VERIFY_TLS")
        if verify_tls:
            kwargs["verify_tls"] = _parse_bool(ENV_PREFIX + "VERIFY_TLS", verify_tls)

        user_agent = env.get(ENV_PREFIX + "USER_AGENT")
        if user_agent:
            kwargs["user_agent"] = user_agent

        levels = env.get(ENV_PREFIX + "LEVELS")
        if levels:
            kwargs["levels"] = parse_levels(levels.split(","))

        return cls(**kwargs)


def parse_levels(names) -> Tuple[ConformanceLevel, ...]:
    """Convert level names such as ``"minimal"`` to ConformanceLevel values."""
    levels = []
    for name in names:
        name = name.strip().lower()
        if not name:
            continue
        try:
            levels.append(ConformanceLevel(name))
        except ValueError:
            valid = ", ".join(l.value for l in ConformanceLevel)
            raise ValueError(f"Unknown conformance level {name!r} (expected one of: {valid})")
    return tuple(levels)


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} is not a boolean: {value!r}")
