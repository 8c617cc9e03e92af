"""
ERC-8004 agent runtime plugin: an AI agent service registered on-chain.
"""

from __future__ import annotations

import json
from typing import Any

from dappforge.models.blueprint import BlueprintNode
from dappforge.models.codegen import CodegenOutput
from dappforge.models.node_registry import Erc8004AgentConfig
from dappforge.plugins.base import BasePlugin, ExecutionContext, PluginMetadata, PluginPort
from dappforge.services.template_engine import dedent, render_template


TYPES_TEMPLATE = dedent("""
    export type AgentCapability = {{# each capabilities as capability }}'{{ capability }}'{{# unless capabilityLast }} | {{/ unless }}{{/ each }};

    export interface AgentRequest {
      capability: AgentCapability;
      input: string;
      sender?: `0x${string}`;
    }

    export interface AgentResponse {
      output: string;
      model: string;
      timestamp: number;
    }
""")

CONFIG_TEMPLATE = dedent("""
    export const agentConfig = {
      name: process.env.AGENT_NAME ?? '{{ agentName }}',
      description: '{{ description }}',
      capabilities: {{ capabilitiesJson }} as const,
      modelProvider: '{{ modelProvider }}',
      chainId: {{ chainId }},
    {{# if hasRegistry }}
      registryAddress: process.env.AGENT_REGISTRY_ADDRESS as `0x${string}`,
    {{/ if }}
    };
""")

RUNTIME_TEMPLATE = dedent("""
    import { agentConfig } from './config';
    import type { AgentRequest, AgentResponse } from './types';

    export async function handleRequest(request: AgentRequest): Promise<AgentResponse> {
      if (!agentConfig.capabilities.includes(request.capability)) {
        throw new Error(`Unsupported capability: ${request.capability}`);
      }
    {{# if modelProvider == 'openai' }}
      const apiKey = process.env.OPENAI_API_KEY;
    {{ else }}
    {{# if modelProvider == 'anthropic' }}
      const apiKey = process.env.ANTHROPIC_API_KEY;
    {{ else }}
      const apiKey = undefined;
    {{/ if }}
    {{/ if }}
      const output = await callModel(request.input, apiKey);
      return { output, model: agentConfig.modelProvider, timestamp: Date.now() };
    }

    async function callModel(input: string, apiKey?: string): Promise<string> {
      // Provider call goes here; echo keeps the runtime usable offline.
      return apiKey ? input : `[${agentConfig.name}] ${input}`;
    }
""")

REGISTRY_TEMPLATE = dedent("""
    import { createWalletClient, http } from 'viem';
    import { privateKeyToAccount } from 'viem/accounts';
    import { agentConfig } from './config';

    const REGISTRY_ABI = [
      { type: 'function', name: 'register', inputs: [{ name: 'metadataURI', type: 'string' }], outputs: [{ type: 'uint256' }], stateMutability: 'nonpayable' },
    {{# if enableReputation }}
      { type: 'function', name: 'reputationOf', inputs: [{ name: 'agentId', type: 'uint256' }], outputs: [{ type: 'int256' }], stateMutability: 'view' },
    {{/ if }}
    ] as const;

    export async function registerAgent(metadataURI: string) {
      const account = privateKeyToAccount(process.env.AGENT_PRIVATE_KEY as `0x${string}`);
      const client = createWalletClient({ account, transport: http(process.env.STYLUS_RPC_URL) });
      return client.writeContract({
        address: agentConfig.registryAddress,
        abi: REGISTRY_ABI,
        functionName: 'register',
        args: [metadataURI],
        chain: null,
      });
    }
""")


class Erc8004AgentRuntimePlugin(BasePlugin[Erc8004AgentConfig]):
    metadata = PluginMetadata(
        id="erc8004-agent-runtime",
        name="ERC-8004 Agent Runtime",
        version="0.1.0",
        description="Generate AI agent runtime with ERC-8004 on-chain registry integration",
        category="agents",
        tags=["ai", "agent", "erc-8004", "registry", "llm"],
    )
    config_schema = Erc8004AgentConfig
    ports = [
        PluginPort(id="contract-in", name="Stake Contract", type="input", data_type="contract"),
        PluginPort(id="payment-in", name="Payment API", type="input", data_type="api"),
        PluginPort(id="agent-out", name="Agent Runtime", type="output", data_type="api"),
    ]

    def get_default_config(self) -> dict[str, Any]:
        return {"capabilities": ["chat"], "modelProvider": "openai", "enableReputation": True}

    async def generate(self, node: BlueprintNode, context: ExecutionContext) -> CodegenOutput:
        config = self.parse_config(node)
        output = self.create_empty_output()

        ctx = {
            "agentName": config.agent_name,
            "description": config.description,
            "capabilities": config.capabilities,
            "capabilitiesJson": json.dumps(config.capabilities),
            "modelProvider": config.model_provider,
            "chainId": context.config.network.chain_id,
            "hasRegistry": config.registry_address is not None,
            "enableReputation": config.enable_reputation,
        }

        self.add_file(output, "agent/types.ts", render_template(TYPES_TEMPLATE, ctx) + "\n", "backend-lib")
        self.add_file(output, "agent/config.ts", render_template(CONFIG_TEMPLATE, ctx) + "\n", "backend-lib")
        self.add_file(output, "agent/runtime.ts", render_template(RUNTIME_TEMPLATE, ctx) + "\n", "backend-lib")
        if config.registry_address:
            self.add_file(
                output, "agent/registry.ts", render_template(REGISTRY_TEMPLATE, ctx) + "\n", "backend-lib"
            )

        self.add_env_var(output, "AGENT_NAME", "Name of the AI agent", default_value=config.agent_name)
        if config.model_provider == "openai":
            self.add_env_var(output, "OPENAI_API_KEY", "OpenAI API key", secret=True)
        elif config.model_provider == "anthropic":
            self.add_env_var(output, "ANTHROPIC_API_KEY", "Anthropic API key", secret=True)
        if config.registry_address:
            self.add_env_var(
                output,
                "AGENT_REGISTRY_ADDRESS",
                "ERC-8004 registry contract address",
                default_value=config.registry_address,
            )
            self.add_env_var(
                output, "AGENT_PRIVATE_KEY", "Agent wallet private key for registry operations", secret=True
            )

        self.add_script(output, "agent:start", "tsx apps/api/src/lib/agent/runtime.ts", "Start the agent runtime")
        if config.registry_address:
            self.add_script(
                output, "agent:register", "tsx apps/api/src/lib/agent/registry.ts", "Register agent on-chain"
            )

        contracts = context.upstream_interfaces("abi")
        if contracts:
            context.logger.debug(
                "Agent linked to upstream contracts", {"contracts": [c.name for c in contracts]}
            )

        self.add_doc(
            output,
            f"docs/agents/{config.agent_name.lower().replace(' ', '-')}.md",
            f"{config.agent_name} Agent",
            f"# {config.agent_name}\n\n{config.description}\n\nCapabilities: "
            f"{', '.join(config.capabilities)}\n",
        )
        context.logger.info(f"Generated ERC-8004 agent runtime: {config.agent_name}")
        return output
