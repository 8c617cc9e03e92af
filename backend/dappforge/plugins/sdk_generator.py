"""
SDK generator plugin: a typed TypeScript client built from the ABIs of the
contract nodes upstream of it.
"""

from __future__ import annotations

import json
from typing import Any

from dappforge.models.blueprint import BlueprintNode
from dappforge.models.codegen import CodegenOutput
from dappforge.models.node_registry import SdkGeneratorConfig
from dappforge.plugins.base import BasePlugin, ExecutionContext, PluginMetadata, PluginPort
from dappforge.services.template_engine import dedent, render_template


CONTRACT_TEMPLATE = dedent("""
    import type { Address, PublicClient, WalletClient } from 'viem';

    export const {{ name }}Abi = {{ abi }} as const;

    export class {{ name }}Client {
      constructor(
        private readonly address: Address,
        private readonly publicClient: PublicClient,
        private readonly walletClient?: WalletClient,
      ) {}
    {{# each reads as fn }}

      {{ fn.name }}(...args: unknown[]) {
        return this.publicClient.readContract({
          address: this.address,
          abi: {{ name }}Abi,
          functionName: '{{ fn.name }}',
          args: args as never,
        });
      }
    {{/ each }}
    {{# each writes as fn }}

      {{ fn.name }}(...args: unknown[]) {
        if (!this.walletClient) throw new Error('{{ fn.name }} requires a wallet client');
        return this.walletClient.writeContract({
          address: this.address,
          abi: {{ name }}Abi,
          functionName: '{{ fn.name }}',
          args: args as never,
          chain: null,
          account: this.walletClient.account!,
        });
      }
    {{/ each }}
    }
""")

INDEX_TEMPLATE = dedent("""
    {{# each contracts as contract }}
    export * from './contracts/{{ contract.name }}';
    {{/ each }}
    {{# if includeReactHooks }}
    export * from './hooks';
    {{/ if }}
    export const CHAIN_ID = {{ chainId }};
""")

HOOKS_TEMPLATE = dedent("""
    import { useReadContract } from 'wagmi';
    import type { Address } from 'viem';
    {{# each contracts as contract }}
    import { {{ contract.name }}Abi } from './contracts/{{ contract.name }}';
    {{/ each }}
    {{# each contracts as contract }}

    export function use{{ contract.name }}Read(address: Address, functionName: string, args: unknown[] = []) {
      return useReadContract({ address, abi: {{ contract.name }}Abi, functionName: functionName as never, args: args as never });
    }
    {{/ each }}
""")


def _contract_name(interface_name: str) -> str:
    return interface_name[:-3] if interface_name.endswith("ABI") else interface_name


class SdkGeneratorPlugin(BasePlugin[SdkGeneratorConfig]):
    metadata = PluginMetadata(
        id="sdk-generator",
        name="SDK Generator",
        version="0.1.0",
        description="Generate a typed TypeScript SDK from connected contracts",
        category="tooling",
        tags=["sdk", "typescript", "viem", "codegen"],
    )
    config_schema = SdkGeneratorConfig
    ports = [
        PluginPort(id="contract-in", name="Contracts", type="input", data_type="contract", required=True),
        PluginPort(id="sdk-out", name="SDK", type="output", data_type="types"),
    ]

    def get_default_config(self) -> dict[str, Any]:
        return {"packageName": "@dapp/sdk", "includeReactHooks": False}

    async def generate(self, node: BlueprintNode, context: ExecutionContext) -> CodegenOutput:
        config = self.parse_config(node)
        output = self.create_empty_output()

        contracts = []
        for iface in context.upstream_interfaces("abi"):
            abi = json.loads(iface.content)
            functions = [entry for entry in abi if entry.get("type") == "function"]
            contracts.append({
                "name": _contract_name(iface.name),
                "abi": json.dumps(abi, indent=2),
                "reads": [f for f in functions if f.get("stateMutability") in ("view", "pure")],
                "writes": [f for f in functions if f.get("stateMutability") not in ("view", "pure")],
            })

        if not contracts:
            context.logger.warn("No upstream contract ABIs found; generating an empty SDK")

        ctx = {
            "contracts": contracts,
            "includeReactHooks": config.include_react_hooks,
            "chainId": context.config.network.chain_id,
        }
        for contract in contracts:
            self.add_file(
                output,
                f"contracts/{contract['name']}.ts",
                render_template(CONTRACT_TEMPLATE, {**ctx, **contract}) + "\n",
                "sdk",
            )
        self.add_file(output, "index.ts", render_template(INDEX_TEMPLATE, ctx) + "\n", "sdk")
        if config.include_react_hooks:
            self.add_file(output, "hooks.ts", render_template(HOOKS_TEMPLATE, ctx) + "\n", "sdk")

        package = {
            "name": config.package_name,
            "version": context.config.project.version,
            "main": "src/index.ts",
            "dependencies": {"viem": "^2.0.0"},
        }
        if config.include_react_hooks:
            package["peerDependencies"] = {"wagmi": "^2.0.0", "react": "^18.0.0"}
        self.add_json_file(output, "packages/sdk/package.json", package, "root")

        self.add_script(output, "build:sdk", "tsc -p packages/sdk", "Build the generated SDK")

        context.logger.info(
            f"Generated SDK {config.package_name} for {len(contracts)} contract(s)"
        )
        return output
