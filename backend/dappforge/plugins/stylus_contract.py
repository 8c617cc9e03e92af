"""
Stylus contract plugin: Rust/WASM smart contracts for Arbitrum Stylus.

Emits a cargo crate per contract (routed under ``contracts/``), the contract
ABI as an interface for downstream SDK / frontend nodes, deploy env vars,
build scripts and a short contract doc.
"""

from __future__ import annotations

import json
from typing import Any

from dappforge.models.blueprint import BlueprintNode
from dappforge.models.codegen import CodegenOutput
from dappforge.models.node_registry import StylusContractConfig
from dappforge.plugins.base import BasePlugin, ExecutionContext, PluginMetadata, PluginPort
from dappforge.services.template_engine import dedent, render_template


CARGO_TOML_TEMPLATE = dedent("""
    [package]
    name = "{{ crateName }}"
    version = "0.1.0"
    edition = "2021"
    license = "{{ license }}"

    [dependencies]
    alloy-primitives = "0.7"
    alloy-sol-types = "0.7"
    stylus-sdk = "0.6"

    [dev-dependencies]
    tokio = { version = "1", features = ["full"] }

    [features]
    export-abi = ["stylus-sdk/export-abi"]

    [lib]
    crate-type = ["lib", "cdylib"]

    [profile.release]
    codegen-units = 1
    strip = true
    lto = true
    panic = "abort"
    opt-level = "s"
""")

LIB_RS_TEMPLATE = dedent("""
    //! {{ contractName }}: {{ contractTypeLabel }} contract for Arbitrum Stylus.
    #![cfg_attr(not(feature = "export-abi"), no_main)]
    extern crate alloc;

    use alloy_primitives::{Address, U256};
    use stylus_sdk::{msg, prelude::*};

    sol_storage! {
        #[entrypoint]
        pub struct {{ contractName }} {
    {{# if ownable }}
            address owner;
    {{/ if }}
    {{# if pausable }}
            bool paused;
    {{/ if }}
    {{# if isErc20 }}
            uint256 total_supply;
            mapping(address => uint256) balances;
            mapping(address => mapping(address => uint256)) allowances;
    {{/ if }}
    {{# if isErc721 }}
            mapping(uint256 => address) owners;
            mapping(address => uint256) balances;
            uint256 next_token_id;
    {{/ if }}
    {{# if isErc1155 }}
            mapping(uint256 => mapping(address => uint256)) balances;
    {{/ if }}
    {{# if isCustom }}
            uint256 value;
    {{/ if }}
        }
    }

    #[public]
    impl {{ contractName }} {
    {{# if ownable }}
        pub fn owner(&self) -> Address {
            self.owner.get()
        }

        pub fn transfer_ownership(&mut self, new_owner: Address) -> Result<(), Vec<u8>> {
            self.only_owner()?;
            self.owner.set(new_owner);
            Ok(())
        }
    {{/ if }}
    {{# if pausable }}
        pub fn paused(&self) -> bool {
            self.paused.get()
        }

        pub fn pause(&mut self) -> Result<(), Vec<u8>> {
            self.only_owner()?;
            self.paused.set(true);
            Ok(())
        }

        pub fn unpause(&mut self) -> Result<(), Vec<u8>> {
            self.only_owner()?;
            self.paused.set(false);
            Ok(())
        }
    {{/ if }}
    {{# if isErc20 }}
        pub fn total_supply(&self) -> U256 {
            self.total_supply.get()
        }

        pub fn balance_of(&self, account: Address) -> U256 {
            self.balances.get(account)
        }

        pub fn transfer(&mut self, to: Address, amount: U256) -> Result<bool, Vec<u8>> {
            let from = msg::sender();
            let balance = self.balances.get(from);
            if balance < amount {
                return Err(b"insufficient balance".to_vec());
            }
            self.balances.setter(from).set(balance - amount);
            let to_balance = self.balances.get(to);
            self.balances.setter(to).set(to_balance + amount);
            Ok(true)
        }
    {{/ if }}
    {{# if isErc721 }}
        pub fn balance_of(&self, owner: Address) -> U256 {
            self.balances.get(owner)
        }

        pub fn owner_of(&self, token_id: U256) -> Address {
            self.owners.get(token_id)
        }
    {{/ if }}
    {{# if isErc1155 }}
        pub fn balance_of(&self, account: Address, id: U256) -> U256 {
            self.balances.getter(id).get(account)
        }
    {{/ if }}
    {{# if isCustom }}
        pub fn get_value(&self) -> U256 {
            self.value.get()
        }

        pub fn set_value(&mut self, value: U256) -> Result<(), Vec<u8>> {
    {{# if pausable }}
            if self.paused.get() {
                return Err(b"paused".to_vec());
            }
    {{/ if }}
            self.value.set(value);
            Ok(())
        }
    {{/ if }}
    }
    {{# if ownable }}

    impl {{ contractName }} {
        fn only_owner(&self) -> Result<(), Vec<u8>> {
            if msg::sender() != self.owner.get() {
                return Err(b"not owner".to_vec());
            }
            Ok(())
        }
    }
    {{/ if }}
""")

TEST_TEMPLATE = dedent("""
    //! Integration tests for {{ contractName }}.

    #[cfg(test)]
    mod tests {
        #[test]
        fn crate_builds() {
            assert_eq!("{{ contractName }}".len(), {{ nameLength }});
        }
    }
""")

DOC_TEMPLATE = dedent("""
    # {{ contractName }}

    A {{ contractTypeLabel }} smart contract built with Arbitrum Stylus (Rust/WASM).

    ## Features

    {{# each features as feature }}
    - **{{ feature }}**: enabled
    {{/ each }}

    ## Building

    ```bash
    pnpm build:contract
    ```

    ## Deployment

    1. Set `STYLUS_RPC_URL` and `DEPLOYER_PRIVATE_KEY`.
    2. Run `pnpm deploy:contract`.
""")


def _fn(name: str, inputs: list[tuple[str, str]], outputs: list[str], mutability: str) -> dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"type": t} for t in outputs],
        "stateMutability": mutability,
    }


def build_abi(config: StylusContractConfig) -> list[dict[str, Any]]:
    """ABI entries matching the generated contract surface."""
    entries: list[dict[str, Any]] = []
    if config.contract_type == "erc20":
        entries += [
            _fn("totalSupply", [], ["uint256"], "view"),
            _fn("balanceOf", [("account", "address")], ["uint256"], "view"),
            _fn("transfer", [("to", "address"), ("amount", "uint256")], ["bool"], "nonpayable"),
        ]
    elif config.contract_type == "erc721":
        entries += [
            _fn("balanceOf", [("owner", "address")], ["uint256"], "view"),
            _fn("ownerOf", [("tokenId", "uint256")], ["address"], "view"),
        ]
    elif config.contract_type == "erc1155":
        entries.append(_fn("balanceOf", [("account", "address"), ("id", "uint256")], ["uint256"], "view"))
    else:
        entries += [
            _fn("getValue", [], ["uint256"], "view"),
            _fn("setValue", [("value", "uint256")], [], "nonpayable"),
        ]

    if "ownable" in config.features:
        entries += [
            _fn("owner", [], ["address"], "view"),
            _fn("transferOwnership", [("newOwner", "address")], [], "nonpayable"),
        ]
    if "pausable" in config.features:
        entries += [
            _fn("paused", [], ["bool"], "view"),
            _fn("pause", [], [], "nonpayable"),
            _fn("unpause", [], [], "nonpayable"),
        ]
    return entries


class StylusContractPlugin(BasePlugin[StylusContractConfig]):
    metadata = PluginMetadata(
        id="stylus-contract",
        name="Stylus Contract",
        version="0.1.0",
        description="Generate Rust smart contracts for Arbitrum Stylus (WASM)",
        category="contracts",
        tags=["rust", "wasm", "arbitrum", "stylus", "smart-contract"],
    )
    config_schema = StylusContractConfig
    ports = [
        PluginPort(id="contract-out", name="Contract ABI", type="output", data_type="contract"),
        PluginPort(id="types-out", name="Generated Types", type="output", data_type="types"),
    ]

    def get_default_config(self) -> dict[str, Any]:
        return {"contractType": "custom", "features": ["ownable"], "testCoverage": True}

    async def generate(self, node: BlueprintNode, context: ExecutionContext) -> CodegenOutput:
        config = self.parse_config(node)
        output = self.create_empty_output()

        crate = config.contract_name.lower()
        template_ctx = {
            "contractName": config.contract_name,
            "crateName": crate,
            "contractTypeLabel": config.contract_type.upper(),
            "license": context.config.project.license,
            "features": config.features,
            "ownable": "ownable" in config.features,
            "pausable": "pausable" in config.features,
            "isErc20": config.contract_type == "erc20",
            "isErc721": config.contract_type == "erc721",
            "isErc1155": config.contract_type == "erc1155",
            "isCustom": config.contract_type == "custom",
            "nameLength": len(config.contract_name),
        }

        self.add_file(output, f"{crate}/Cargo.toml", render_template(CARGO_TOML_TEMPLATE, template_ctx) + "\n", "contract-source")
        self.add_file(output, f"{crate}/src/lib.rs", render_template(LIB_RS_TEMPLATE, template_ctx) + "\n", "contract-source")
        if config.test_coverage:
            self.add_file(
                output,
                f"{crate}/tests/integration.rs",
                render_template(TEST_TEMPLATE, template_ctx) + "\n",
                "contract-source",
            )

        self.add_env_var(
            output,
            "STYLUS_RPC_URL",
            "Arbitrum RPC URL for deployment",
            default_value=context.config.network.rpc_url,
        )
        self.add_env_var(
            output, "DEPLOYER_PRIVATE_KEY", "Private key for contract deployment", secret=True
        )

        contract_dir = f"contracts/{crate}"
        self.add_script(
            output,
            "build:contract",
            f"cd {contract_dir} && cargo build --release --target wasm32-unknown-unknown",
        )
        self.add_script(output, "test:contract", f"cd {contract_dir} && cargo test")
        self.add_script(
            output,
            "deploy:contract",
            f"cd {contract_dir} && cargo stylus deploy --private-key $DEPLOYER_PRIVATE_KEY",
        )

        self.add_interface(
            output, f"{config.contract_name}ABI", "abi", json.dumps(build_abi(config), indent=2)
        )
        self.add_doc(
            output,
            f"docs/contracts/{config.contract_name}.md",
            f"{config.contract_name} Contract",
            render_template(DOC_TEMPLATE, template_ctx) + "\n",
        )

        context.logger.info(
            f"Generated Stylus contract: {config.contract_name}",
            {"contractType": config.contract_type},
        )
        return output
