"""
Static network and asset configuration.

The core never reads module-level settings; a :class:`BatchConfig` value is
passed into the workflow explicitly. The presets below are ordinary values
built from the same types, and ``load_config`` builds one from a JSON file:

    {
        "network": {
            "network_id": 11142220,
            "name": "Celo Sepolia",
            "settlement_contract": "0xCf4E...b462",
            "native_token_reference": "0x0000000000000000000000000000000000000000",
            "explorer_tx_url": "https://celo-sepolia.blockscout.com/tx/{hash}",
            "address_format": "evm"
        },
        "assets": [
            {"symbol": "CELO", "ledger_reference": null, "decimals": 18},
            {"symbol": "USDC", "ledger_reference": "0x2F25...602B", "decimals": 6}
        ],
        "max_recipients": null
    }
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

from spraay_batch.errors import ConfigurationError, UnknownAssetError

NetworkId = Union[int, str]

EVM_NATIVE_SENTINEL = "0x0000000000000000000000000000000000000000"

ADDRESS_FORMATS = ("any", "evm", "ss58")


@dataclass(frozen=True)
class TokenAsset:
    """An asset the batch can be paid in. ``ledger_reference=None`` is the native asset."""

    symbol: str
    ledger_reference: Optional[str]
    decimals: int
    name: str = ""

    @property
    def is_native(self) -> bool:
        return self.ledger_reference is None


@dataclass(frozen=True)
class NetworkConfig:
    """The ledger network the settlement contract lives on."""

    network_id: NetworkId
    name: str
    settlement_contract: str
    native_token_reference: str = EVM_NATIVE_SENTINEL
    explorer_tx_url: Optional[str] = None  # format string with {hash}
    address_format: str = "any"

    def explorer_url(self, tx_hash: Optional[str]) -> Optional[str]:
        if not tx_hash or not self.explorer_tx_url:
            return None
        return self.explorer_tx_url.format(hash=tx_hash)


@dataclass(frozen=True)
class BatchConfig:
    network: NetworkConfig
    assets: tuple[TokenAsset, ...] = field(default_factory=tuple)
    max_recipients: Optional[int] = None
    min_address_length: int = 6

    def __post_init__(self):
        if not self.assets:
            raise ConfigurationError("At least one asset must be configured")
        symbols = [a.symbol for a in self.assets]
        duplicates = sorted({s for s in symbols if symbols.count(s) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate asset symbols: {', '.join(duplicates)}")
        for asset in self.assets:
            if isinstance(asset.decimals, bool) or not isinstance(asset.decimals, int) \
                    or asset.decimals < 0:
                raise ConfigurationError(
                    f"{asset.symbol}: decimals must be a non-negative integer"
                )
        if self.max_recipients is not None and self.max_recipients < 1:
            raise ConfigurationError("max_recipients must be at least 1")
        if self.network.address_format not in ADDRESS_FORMATS:
            raise ConfigurationError(
                f"address_format must be one of {', '.join(ADDRESS_FORMATS)}"
            )

    def asset(self, symbol: str) -> TokenAsset:
        for asset in self.assets:
            if asset.symbol == symbol:
                return asset
        raise UnknownAssetError(symbol)

    @property
    def default_asset(self) -> TokenAsset:
        return self.assets[0]


def config_from_dict(data: dict[str, Any]) -> BatchConfig:
    """Build a :class:`BatchConfig` from plain JSON-like data."""
    try:
        net = data["network"]
        network = NetworkConfig(
            network_id=net["network_id"],
            name=net.get("name", str(net["network_id"])),
            settlement_contract=net["settlement_contract"],
            native_token_reference=net.get("native_token_reference", EVM_NATIVE_SENTINEL),
            explorer_tx_url=net.get("explorer_tx_url"),
            address_format=net.get("address_format", "any"),
        )
        assets = tuple(
            TokenAsset(
                symbol=str(entry["symbol"]),
                ledger_reference=entry.get("ledger_reference"),
                decimals=entry["decimals"],
                name=str(entry.get("name", "")),
            )
            for entry in data["assets"]
        )
    except (KeyError, TypeError) as e:
        raise ConfigurationError(f"Invalid configuration: missing or malformed {e}") from e

    return BatchConfig(
        network=network,
        assets=assets,
        max_recipients=data.get("max_recipients"),
        min_address_length=data.get("min_address_length", 6),
    )


def load_config(filepath: str | Path) -> BatchConfig:
    filepath = Path(filepath)
    try:
        with open(filepath, "r") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"{filepath}: invalid JSON ({e})") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"{filepath}: configuration must be a JSON object")
    return config_from_dict(data)


# ── Presets ──────────────────────────────────────────────────────

CELO_SEPOLIA = BatchConfig(
    network=NetworkConfig(
        network_id=11142220,
        name="Celo Sepolia",
        settlement_contract="0xCf4E003Cbd64a22F96CB2d08ab07F7C8Ccb8b462",
        explorer_tx_url="https://celo-sepolia.blockscout.com/tx/{hash}",
        address_format="evm",
    ),
    assets=(
        TokenAsset("CELO", None, 18, "Celo"),
        TokenAsset("cUSD", "0x4822e58de6f5e485eF90df51C41CE01721331dC0", 18, "Celo Dollar"),
        TokenAsset("USDC", "0x2F25deB3848C207fc8E0c34035B3Ba7fC157602B", 6, "USD Coin"),
        TokenAsset("cEUR", "0x8E8f9d7A0C0B4B0e8B4B0e8B4B0e8B4B0e8B4B0e", 18, "Celo Euro"),
    ),
)

# Substrate has no settlement contract; the Utility pallet's batch_all plays that role.
BITTENSOR_FINNEY = BatchConfig(
    network=NetworkConfig(
        network_id="finney",
        name="Bittensor",
        settlement_contract="Utility",
        native_token_reference="TAO",
        explorer_tx_url="https://taostats.io/extrinsic/{hash}",
        address_format="ss58",
    ),
    assets=(TokenAsset("TAO", None, 9, "Bittensor"),),
    # 199 leaves headroom under the batch weight limit.
    max_recipients=199,
)

BITTENSOR_TESTNET = BatchConfig(
    network=NetworkConfig(
        network_id="test",
        name="Bittensor Testnet",
        settlement_contract="Utility",
        native_token_reference="TAO",
        address_format="ss58",
    ),
    assets=(TokenAsset("TAO", None, 9, "Bittensor"),),
    max_recipients=199,
)

PRESETS: dict[str, BatchConfig] = {
    "celo-sepolia": CELO_SEPOLIA,
    "finney": BITTENSOR_FINNEY,
    "test": BITTENSOR_TESTNET,
}
