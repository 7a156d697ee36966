"""
Configuration loading

Defaults live in ``configs/defaults.yaml`` next to the package. A handful
of environment variables override individual keys so deployments can
swap the remote model or Space without editing the YAML.
"""

import os
import copy
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path(__file__).parent / "configs"

# env var -> (section, key)
ENV_OVERRIDES = {
    'REPLICATE_API_TOKEN': ('queued_remote', 'api_token'),
    'REPLICATE_MODEL_OWNER': ('queued_remote', 'model_owner'),
    'REPLICATE_MODEL_NAME': ('queued_remote', 'model_name'),
    'HF_SPACE_ID': ('introspected_remote', 'default_space'),
    'SNAP2MOTION_OUTPUT_DIR': ('ui', 'output_dir'),
}


def load_defaults(
    config_dir: Optional[Union[str, Path]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """
    Load ``defaults.yaml`` and apply environment overrides.

    Args:
        config_dir: Directory holding defaults.yaml (package configs if None)
        environ: Environment mapping (``os.environ`` if None)

    Returns:
        Nested settings dict, one sub-dict per section
    """
    config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
    defaults_path = config_dir / "defaults.yaml"

    data: Dict[str, Any] = {}
    if defaults_path.exists():
        with open(defaults_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    else:
        logger.warning(f"No defaults.yaml in {config_dir}, using built-in defaults")

    data = copy.deepcopy(data)
    environ = os.environ if environ is None else environ

    for var, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(var)
        if value:
            data.setdefault(section, {})[key] = value

    return data


def section(config: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Return one config section, empty if missing"""
    value = config.get(name) or {}
    return value if isinstance(value, dict) else {}
