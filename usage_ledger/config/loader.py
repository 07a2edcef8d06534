"""
Configuration management and loading.

Reads the storage location and optional pricing overrides from YAML.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, Optional

import yaml

from ..core.pricing import PRICING_TABLE, ModelPricing, PricingTable

DEFAULT_STORAGE_DIRECTORY = "~/.usage-ledger"


@dataclass(frozen=True)
class StorageConfig:
    """Where the usage database lives."""
    directory: str = DEFAULT_STORAGE_DIRECTORY

    def __post_init__(self):
        """Validate the directory is set."""
        if not self.directory or not self.directory.strip():
            raise ValueError("storage directory must not be empty")

    @property
    def path(self) -> Path:
        return Path(self.directory).expanduser()


@dataclass(frozen=True)
class LedgerConfig:
    """Complete ledger configuration."""
    storage: StorageConfig = field(default_factory=StorageConfig)
    pricing: Optional[Dict[str, ModelPricing]] = None

    def pricing_table(self) -> PricingTable:
        """Pricing table from the config, or the built-in table if none is set."""
        if self.pricing is None:
            return PRICING_TABLE
        return PricingTable(dict(self.pricing))


def load_ledger_config(path: str) -> LedgerConfig:
    """Load and validate ledger configuration from a YAML file.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated LedgerConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Ledger config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        return LedgerConfig()
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    allowed_top_keys = {'storage', 'pricing'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    storage = _parse_storage_config(raw_config.get('storage', {}))

    pricing = None
    if 'pricing' in raw_config:
        pricing_data = raw_config['pricing']
        if not isinstance(pricing_data, dict):
            raise ValueError("'pricing' must be a dictionary")
        pricing = {
            str(model): _parse_model_pricing(model_data, f"pricing.{model}")
            for model, model_data in pricing_data.items()
        }

    return LedgerConfig(storage=storage, pricing=pricing)


def _parse_storage_config(data) -> StorageConfig:
    if data is None:
        return StorageConfig()
    if not isinstance(data, dict):
        raise ValueError("'storage' must be a dictionary")

    unknown_keys = set(data.keys()) - {'directory'}
    if unknown_keys:
        raise ValueError(f"Unknown storage keys: {unknown_keys}")

    directory = data.get('directory', DEFAULT_STORAGE_DIRECTORY)
    if not isinstance(directory, str):
        raise ValueError("'storage.directory' must be a string")
    return StorageConfig(directory=directory)


def _parse_model_pricing(data, path: str) -> ModelPricing:
    """Parse and validate pricing for one model.

    Args:
        data: Model pricing data
        path: Path for error messages

    Returns:
        Validated ModelPricing

    Raises:
        ValueError: If pricing is invalid
    """
    if not isinstance(data, dict):
        raise ValueError(f"'{path}' must be a dictionary")

    allowed_keys = {'input_per_1m', 'output_per_1m'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    prices = {}
    for key in sorted(allowed_keys):
        if key not in data:
            raise ValueError(f"Missing required '{key}' in {path}")
        value = data[key]
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            raise ValueError(f"'{key}' in {path} must be a number")
        try:
            price = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"'{key}' in {path} must be a number")
        if not price.is_finite() or price < 0:
            raise ValueError(f"'{key}' in {path} must be >= 0")
        prices[key] = price

    return ModelPricing(
        input_cost_per_1m=prices['input_per_1m'],
        output_cost_per_1m=prices['output_per_1m']
    )
