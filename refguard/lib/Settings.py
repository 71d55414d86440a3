from dataclasses import dataclass, field
from typing import FrozenSet, Mapping, Optional

from refguard.lib.constants import DEFAULT_TIMEOUT_SECONDS
from refguard.lib.exceptions import ConfigurationError


def parse_bool(value, key: str) -> bool:
    r"""
    Interprets a configuration value as a boolean. Accepts booleans and the usual string spellings.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "1", "yes", "on"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "0", "no", "off"):
        return False
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise ConfigurationError(f"Invalid boolean value for `{key}`: {value!r}")


@dataclass(frozen=True)
class ValidationSettings:
    """
    The knobs that control the validation engine.

    Note: These are passed to the validator when it is constructed, so that differently-configured
          validators can coexist (e.g. in parallel test runs).
    """
    enabled: bool = field(default=True)  # master switch
    timeout_seconds: float = field(default=DEFAULT_TIMEOUT_SECONDS)  # overall, per validation call
    concurrent: bool = field(default=True)  # whether to issue the counter queries concurrently
    disabled_dependent_types: FrozenSet[str] = field(default=frozenset())

    def __post_init__(self):
        if self.timeout_seconds <= 0:
            raise ConfigurationError(f"The timeout must be positive, not {self.timeout_seconds}")

    def is_dependent_enabled(self, dependent_type: str) -> bool:
        return dependent_type not in self.disabled_dependent_types

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping] = None) -> "ValidationSettings":
        r"""
        Builds settings from a section of the process configuration.

        Example:
        ```
        {
            "enabled": "true",
            "timeout_ms": 5000,
            "concurrent": True,
            "dependents": {"DestinationEntity": False},
        }
        ```
        """
        mapping = {} if mapping is None else mapping

        timeout_ms = mapping.get("timeout_ms", DEFAULT_TIMEOUT_SECONDS * 1000)
        try:
            timeout_seconds = float(timeout_ms) / 1000
        except (TypeError, ValueError) as error:
            raise ConfigurationError(f"Invalid value for `timeout_ms`: {timeout_ms!r}") from error

        dependents = mapping.get("dependents", {})
        if not isinstance(dependents, Mapping):
            raise ConfigurationError(f"Invalid value for `dependents`: {dependents!r}")
        disabled_dependent_types = frozenset(
            dependent_type for dependent_type, is_enabled in dependents.items()
            if not parse_bool(is_enabled, f"dependents.{dependent_type}")
        )

        return cls(
            enabled=parse_bool(mapping.get("enabled", True), "enabled"),
            timeout_seconds=timeout_seconds,
            concurrent=parse_bool(mapping.get("concurrent", True), "concurrent"),
            disabled_dependent_types=disabled_dependent_types,
        )
