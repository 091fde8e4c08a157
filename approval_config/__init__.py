"""
approval_config -- single public entrypoint for approval configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``ApprovalConfig``: engine
    switches plus the default global policy chain.

Architecture position:
    Configuration -- YAML-driven.  Sits above ``approval_kernel``; the
    kernel never imports from ``approval_config``.  ``bridges`` translates
    the config into kernel inputs.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ConfigurationError`` -- malformed YAML or invalid values.

Every successful ``get_active_config()`` call emits an
``approval_config_loaded`` log entry with the config id, version and
checksum.
"""

from __future__ import annotations

import logging
from pathlib import Path

from approval_config.loader import load_yaml_file, parse_approval_config
from approval_config.schema import ApprovalConfig, EngineSettingsDef, PolicyDefinition

_logger = logging.getLogger("approval_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "approval.yaml"


def get_active_config(config_path: Path | str | None = None) -> ApprovalConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override path to a YAML file.  Defaults to
            approval_config/defaults/approval.yaml.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If the file fails validation.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    config = parse_approval_config(load_yaml_file(path), str(path))

    _logger.info(
        "approval_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "approver_resolution": config.engine.approver_resolution,
            "policy_count": len(config.global_policies),
        },
    )
    return config


__all__ = [
    "ApprovalConfig",
    "EngineSettingsDef",
    "PolicyDefinition",
    "get_active_config",
]
