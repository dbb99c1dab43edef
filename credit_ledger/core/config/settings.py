"""
LedgerSettings: YAML-backed balance tunables for the credit ledger.

Purpose
-------
- Hold the values that shape credit economics: the daily bonus formula,
  the purchase bonus rate, referral payouts, and the product catalog.
- Keep those values out of code so they can change without a redeploy.

Responsibilities
----------------
- Start from built-in defaults and deep-merge every YAML file found in the
  configured directory on top of them.
- Serve reads through dot-notation keys (e.g. ``"daily_bonus.base"``).
- Validate the merged result once, failing fast with `ConfigurationError`.

Key Design Decisions
--------------------
- Built-in defaults are authoritative when no YAML exists; a missing config
  directory is logged, not fatal.
- Instances are immutable after load and passed to components through their
  constructors; there is no module-level settings singleton.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping, Optional, Tuple

import yaml

from credit_ledger.core.config.config import Config
from credit_ledger.core.exceptions import ConfigurationError
from credit_ledger.core.logging.logger import get_logger

logger = get_logger(__name__)


DEFAULT_SETTINGS: Dict[str, Any] = {
    "daily_bonus": {
        "base": 10,
        "streak_step": 2,
        "streak_cap": 14,
    },
    "purchase": {
        "bonus_percent": 10,
    },
    "referral": {
        "amounts": {
            "signup": {"referee": 50, "referrer": 25},
            "purchase": {"referee": 20, "referrer": 30},
            "achievement": {"referee": 15, "referrer": 15},
        },
    },
    "products": [
        {"product_id": "credits_starter", "name": "Starter Pack", "credits": 12, "bonus_credits": 0},
        {"product_id": "credits_popular", "name": "Popular Pack", "credits": 35, "bonus_credits": 5},
        {"product_id": "credits_pro", "name": "Pro Pack", "credits": 75, "bonus_credits": 15},
        {"product_id": "credits_ultimate", "name": "Ultimate Pack", "credits": 150, "bonus_credits": 30},
    ],
}


def _deep_merge_dict(
    target: MutableMapping[str, Any],
    source: Mapping[str, Any],
) -> None:
    """Recursively merge `source` into `target` (in-place)."""
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_merge_dict(target[key], value)
        else:
            target[key] = value


class LedgerSettings:
    """
    Immutable view over merged ledger tunables.

    Usage
    -----
    >>> settings = LedgerSettings.load(Path("config"))
    >>> settings.get("daily_bonus.base")
    10
    >>> settings.referral_amounts("signup")
    (50, 25)
    """

    def __init__(self, values: Mapping[str, Any]) -> None:
        self._values: Dict[str, Any] = copy.deepcopy(dict(values))
        self._validate()

    # =========================================================================
    # Construction
    # =========================================================================

    @classmethod
    def defaults(cls) -> "LedgerSettings":
        return cls(DEFAULT_SETTINGS)

    @classmethod
    def from_overrides(cls, overrides: Mapping[str, Any]) -> "LedgerSettings":
        merged = copy.deepcopy(DEFAULT_SETTINGS)
        _deep_merge_dict(merged, overrides)
        return cls(merged)

    @classmethod
    def load(cls, config_dir: Optional[Path] = None) -> "LedgerSettings":
        """
        Load built-in defaults merged with every ``*.yaml``/``*.yml`` file
        under `config_dir` (sorted by path for deterministic precedence).
        """
        if config_dir is None:
            config_dir = Path(Config.LEDGER_CONFIG_DIR)

        merged = copy.deepcopy(DEFAULT_SETTINGS)

        if not config_dir.exists():
            logger.warning(
                "Ledger config directory not found; using built-in defaults only",
                extra={"config_dir": str(config_dir)},
            )
            return cls(merged)

        yaml_files = sorted(
            list(config_dir.rglob("*.yaml")) + list(config_dir.rglob("*.yml"))
        )
        loaded_count = 0

        for yaml_file in yaml_files:
            try:
                with yaml_file.open("r", encoding="utf-8") as handle:
                    data = yaml.safe_load(handle)
            except (OSError, yaml.YAMLError) as exc:
                raise ConfigurationError(
                    str(yaml_file), f"unreadable YAML: {exc}"
                ) from exc

            if isinstance(data, dict):
                _deep_merge_dict(merged, data)
                loaded_count += 1
                logger.debug(
                    "Loaded YAML config",
                    extra={"file": str(yaml_file.relative_to(config_dir))},
                )
            elif data is not None:
                logger.warning(
                    "Ignoring non-dict YAML root object",
                    extra={
                        "file": str(yaml_file.relative_to(config_dir)),
                        "root_type": type(data).__name__,
                    },
                )

        logger.info(
            "Ledger settings loaded",
            extra={"config_dir": str(config_dir), "yaml_file_count": loaded_count},
        )
        return cls(merged)

    # =========================================================================
    # Access
    # =========================================================================

    def get(self, key: str, default: Any = None) -> Any:
        """Dot-notation lookup; returns `default` when any segment is missing."""
        node: Any = self._values
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return copy.deepcopy(node)

    @property
    def daily_bonus_base(self) -> int:
        return int(self._values["daily_bonus"]["base"])

    @property
    def daily_bonus_streak_step(self) -> int:
        return int(self._values["daily_bonus"]["streak_step"])

    @property
    def daily_bonus_streak_cap(self) -> int:
        return int(self._values["daily_bonus"]["streak_cap"])

    @property
    def purchase_bonus_percent(self) -> int:
        return int(self._values["purchase"]["bonus_percent"])

    @property
    def referral_types(self) -> Tuple[str, ...]:
        return tuple(self._values["referral"]["amounts"].keys())

    def referral_amounts(self, referral_type: str) -> Tuple[int, int]:
        """Return ``(referee_credits, referrer_credits)`` for a referral type."""
        amounts = self._values["referral"]["amounts"][referral_type]
        return int(amounts["referee"]), int(amounts["referrer"])

    @property
    def products(self) -> list[Dict[str, Any]]:
        return copy.deepcopy(self._values.get("products") or [])

    # =========================================================================
    # Validation
    # =========================================================================

    def _validate(self) -> None:
        for key in ("daily_bonus.base", "daily_bonus.streak_step", "daily_bonus.streak_cap"):
            value = self.get(key)
            if not isinstance(value, int) or value < 0:
                raise ConfigurationError(key, "must be a non-negative integer")

        percent = self.get("purchase.bonus_percent")
        if not isinstance(percent, int) or not 0 <= percent <= 100:
            raise ConfigurationError(
                "purchase.bonus_percent", "must be an integer in [0, 100]"
            )

        amounts = self.get("referral.amounts")
        if not isinstance(amounts, dict) or not amounts:
            raise ConfigurationError("referral.amounts", "must be a non-empty mapping")
        for referral_type, pair in amounts.items():
            if not isinstance(pair, dict):
                raise ConfigurationError(
                    f"referral.amounts.{referral_type}", "must be a mapping"
                )
            for side in ("referee", "referrer"):
                value = pair.get(side)
                if not isinstance(value, int) or value < 0:
                    raise ConfigurationError(
                        f"referral.amounts.{referral_type}.{side}",
                        "must be a non-negative integer",
                    )

        if not isinstance(self._values.get("products", []), list):
            raise ConfigurationError("products", "must be a list")
