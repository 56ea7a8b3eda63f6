"""
billing_config -- single public entrypoint for billing configuration.

Responsibility:
    Provides the ONLY way to obtain billing policy at runtime through
    ``get_active_config()``.  Services receive the returned
    ``BillingConfig`` by constructor injection and never read YAML or
    environment variables themselves.

Architecture position:
    Configuration -- sits above ``billing_kernel`` and below
    ``billing_modules`` / ``billing_services``.  The kernel MUST NEVER
    import from ``billing_config``.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - The $450 floor, $500 auto-approval threshold and every role gate live
      here and nowhere else.
    - Deterministic checksum: the same YAML always yields the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- configuration file does not exist.
    - ``ConfigurationError`` -- missing keys or failed validation.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from billing_config.loader import load_config_file
from billing_config.schema import (
    BillingConfig,
    ChangeOrderPolicy,
    InvoicePolicy,
    LedgerPolicy,
    PaymentPolicy,
    PricingPolicy,
)
from billing_config.validator import validate_configuration
from billing_kernel.exceptions import ConfigurationError

_logger = logging.getLogger("billing_kernel.config")

CONFIG_PATH_ENV = "BILLING_CONFIG_PATH"

# Default configuration file
DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

__all__ = [
    "BillingConfig",
    "ChangeOrderPolicy",
    "InvoicePolicy",
    "LedgerPolicy",
    "PaymentPolicy",
    "PricingPolicy",
    "get_active_config",
]


def get_active_config(path: Path | str | None = None) -> BillingConfig:
    """The ONLY public configuration entrypoint.

    Resolution order for the file: ``path`` argument, then the
    ``BILLING_CONFIG_PATH`` environment variable, then the packaged
    ``sets/default.yaml``.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ConfigurationError: If the configuration fails validation.
    """
    resolved = Path(path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)

    config = load_config_file(resolved)

    validation = validate_configuration(config)
    if not validation.is_valid:
        raise ConfigurationError(
            "Billing configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in validation.errors)
        )

    _logger.info(
        "BILLING_CONFIG_TRACE",
        extra={
            "trace_type": "BILLING_CONFIG_TRACE",
            "config_path": str(resolved),
            **config.summary(),
        },
    )
    return config
