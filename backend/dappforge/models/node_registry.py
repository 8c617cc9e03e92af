"""
Node type registry: config schemas and connection rules per node type.

Each built-in node type has a pydantic config model here; the plugin bound to
that type exposes it as ``config_schema``. Keys in raw node configs are the
camelCase names the canvas sends.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field, model_validator

from dappforge.models.base import ForgeModel


ADDRESS_PATTERN = r"^0x[a-fA-F0-9]{40}$"


class StylusContractConfig(ForgeModel):
    contract_name: str = Field(min_length=1, max_length=64, pattern=r"^[A-Z][A-Za-z0-9]*$")
    contract_type: Literal["erc20", "erc721", "erc1155", "custom"] = "custom"
    features: list[Literal["ownable", "pausable", "mintable", "burnable", "upgradeable"]] = Field(
        default_factory=lambda: ["ownable"]
    )
    initial_supply: str | None = Field(default=None, pattern=r"^\d+$")
    test_coverage: bool = True


class Erc8004AgentConfig(ForgeModel):
    agent_name: str = Field(min_length=1, max_length=64)
    description: str = ""
    capabilities: list[str] = Field(default_factory=lambda: ["chat"], min_length=1)
    model_provider: Literal["openai", "anthropic", "local"] = "openai"
    registry_address: str | None = Field(default=None, pattern=ADDRESS_PATTERN)
    enable_reputation: bool = True


class X402PaywallConfig(ForgeModel):
    resource_path: str = Field(default="/api/premium/resource", pattern=r"^/")
    price_in_wei: str = Field(default="1000000000000000", pattern=r"^\d+$")
    currency: Literal["ETH", "USDC", "CUSTOM"] = "ETH"
    custom_token_address: str | None = Field(default=None, pattern=ADDRESS_PATTERN)
    payment_timeout: int = Field(default=300, ge=30, le=3600)
    receipt_validation: bool = True
    open_api_spec: bool = True
    webhook_url: str | None = Field(default=None, pattern=r"^https?://")

    @model_validator(mode="after")
    def _custom_currency_needs_token(self) -> "X402PaywallConfig":
        if self.currency == "CUSTOM" and not self.custom_token_address:
            raise ValueError("customTokenAddress is required when currency is CUSTOM")
        return self


class SdkGeneratorConfig(ForgeModel):
    package_name: str = Field(default="@dapp/sdk", pattern=r"^(@[a-z0-9-]+/)?[a-z0-9-]+$")
    include_react_hooks: bool = False


class FrontendScaffoldConfig(ForgeModel):
    framework: Literal["nextjs"] = "nextjs"
    app_name: str = Field(default="My DApp", min_length=1, max_length=64)
    app_description: str = ""
    styling: Literal["tailwind", "css-modules"] = "tailwind"
    web3_provider: Literal["wagmi-viem"] = "wagmi-viem"
    generate_contract_hooks: bool = True
    dark_mode_support: bool = True


class WalletAuthConfig(ForgeModel):
    provider: Literal["rainbowkit", "connectkit", "web3modal"] = "rainbowkit"
    app_name: str = "My DApp"
    wallet_connect_enabled: bool = True
    siwe_enabled: bool = True
    social_logins: list[Literal["google", "twitter", "discord", "github", "email"]] = Field(
        default_factory=list
    )
    session_persistence: bool = True


class IpfsStorageConfig(ForgeModel):
    provider: Literal["pinata", "web3-storage"] = "pinata"
    generate_metadata_schemas: bool = True
    generate_ui: bool = Field(default=True, alias="generateUI")


# ---------------------------------------------------------------------------
# Connection rules
# ---------------------------------------------------------------------------
# source type -> target types that make sense. An empty list, or a type
# missing from the table, means "no opinion".

VALID_EDGE_CONNECTIONS: dict[str, list[str]] = {
    "stylus-contract": ["x402-paywall-api", "erc8004-agent-runtime", "sdk-generator", "frontend-scaffold"],
    "x402-paywall-api": ["erc8004-agent-runtime", "frontend-scaffold"],
    "erc8004-agent-runtime": ["frontend-scaffold", "sdk-generator"],
    "sdk-generator": ["frontend-scaffold"],
    "frontend-scaffold": [],
}

# Node types that produce a user interface, and the backend/contract/agent
# types one of them is expected to be connected to.
UI_NODE_TYPES: frozenset[str] = frozenset({"frontend-scaffold"})
BACKEND_NODE_TYPES: frozenset[str] = frozenset(
    {"stylus-contract", "erc8004-agent-runtime", "x402-paywall-api", "sdk-generator"}
)


def allowed_targets(source_type: str) -> list[str]:
    return VALID_EDGE_CONNECTIONS.get(source_type, [])
