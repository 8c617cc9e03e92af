"""
Frontend scaffold plugin: the Next.js web app at the root of the generated
repository.

The providers file carries comment anchors that other frontend plugins patch
into (see PROVIDERS_IMPORTS_ANCHOR and friends), so several nodes can extend
one file without colliding.
"""

from __future__ import annotations

import json
import re
from typing import Any

from dappforge.models.blueprint import BlueprintNode
from dappforge.models.codegen import CodegenOutput
from dappforge.models.node_registry import FrontendScaffoldConfig
from dappforge.plugins.base import BasePlugin, ExecutionContext, PluginMetadata, PluginPort
from dappforge.services.template_engine import dedent, render_template


PROVIDERS_PATH = "apps/web/src/app/providers.tsx"
PROVIDERS_IMPORTS_ANCHOR = "// forge:imports"
PROVIDERS_OPEN_ANCHOR = "{/* forge:providers-open */}"
PROVIDERS_CLOSE_ANCHOR = "{/* forge:providers-close */}"
PROVIDERS_CONFIG_IMPORT = "import { wagmiConfig } from '@/lib/wagmi';"

PROVIDERS_TEMPLATE = dedent("""
    'use client';

    import type { ReactNode } from 'react';
    import { QueryClient, QueryClientProvider } from '@tanstack/react-query';
    import { WagmiProvider } from 'wagmi';
    import { wagmiConfig } from '@/lib/wagmi';
    // forge:imports

    const queryClient = new QueryClient();

    export function Providers({ children }: { children: ReactNode }) {
      return (
        <WagmiProvider config={wagmiConfig}>
          <QueryClientProvider client={queryClient}>
            {/* forge:providers-open */}
            {children}
            {/* forge:providers-close */}
          </QueryClientProvider>
        </WagmiProvider>
      );
    }
""")

WAGMI_TEMPLATE = dedent("""
    import { createConfig, http } from 'wagmi';
    import { {{ chainExport }} } from 'wagmi/chains';

    export const wagmiConfig = createConfig({
      chains: [{{ chainExport }}],
      transports: {
        [{{ chainExport }}.id]: http(process.env.NEXT_PUBLIC_RPC_URL),
      },
      ssr: true,
    });
""")

LAYOUT_TEMPLATE = dedent("""
    import type { Metadata } from 'next';
    import { Providers } from './providers';
    {{# if isTailwind }}
    import './globals.css';
    {{/ if }}

    export const metadata: Metadata = {
      title: '{{ appName }}',
      description: '{{ appDescription }}',
    };

    export default function RootLayout({ children }: { children: React.ReactNode }) {
      return (
        <html lang="en"{{# if darkMode }} className="dark"{{/ if }}>
          <body>
            <Providers>{children}</Providers>
          </body>
        </html>
      );
    }
""")

PAGE_TEMPLATE = dedent("""
    export default function Home() {
      return (
        <main>
          <h1>{{ appName }}</h1>
          <p>{{ appDescription }}</p>
        </main>
      );
    }
""")

CONTRACT_HOOKS_TEMPLATE = dedent("""
    'use client';

    import { useReadContract, useWriteContract } from 'wagmi';
    import type { Address } from 'viem';
    {{# each contracts as contract }}

    export const {{ contract.name }}ABI = {{ contract.abi }} as const;

    export function use{{ contract.name }}Read(address: Address, functionName: string, args: unknown[] = []) {
      return useReadContract({ address, abi: {{ contract.name }}ABI, functionName: functionName as never, args: args as never });
    }

    export function use{{ contract.name }}Write() {
      return useWriteContract();
    }
    {{/ each }}
    {{# unless contracts }}

    // Connect contract nodes to the frontend scaffold to generate typed hooks here.
    export {};
    {{/ unless }}
""")

GLOBALS_CSS = dedent("""
    @tailwind base;
    @tailwind components;
    @tailwind utilities;
""")

# chain id -> wagmi/chains export name
CHAIN_EXPORTS: dict[int, str] = {
    42161: "arbitrum",
    421614: "arbitrumSepolia",
    42170: "arbitrumNova",
}


def package_slug(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "dapp"


class FrontendScaffoldPlugin(BasePlugin[FrontendScaffoldConfig]):
    metadata = PluginMetadata(
        id="frontend-scaffold",
        name="Frontend Scaffold",
        version="0.1.0",
        description="Next.js app with wagmi/viem wired to the generated contracts",
        category="app",
        tags=["nextjs", "react", "wagmi", "viem", "frontend"],
    )
    config_schema = FrontendScaffoldConfig
    ports = [
        PluginPort(id="contract-in", name="Contracts", type="input", data_type="contract"),
        PluginPort(id="api-in", name="APIs", type="input", data_type="api"),
        PluginPort(id="types-in", name="Types", type="input", data_type="types"),
        PluginPort(id="config-in", name="Config", type="input", data_type="config"),
    ]

    def get_default_config(self) -> dict[str, Any]:
        return {
            "framework": "nextjs",
            "appName": "My DApp",
            "styling": "tailwind",
            "web3Provider": "wagmi-viem",
            "generateContractHooks": True,
            "darkModeSupport": True,
        }

    async def generate(self, node: BlueprintNode, context: ExecutionContext) -> CodegenOutput:
        config = self.parse_config(node)
        output = self.create_empty_output()
        project = context.config.project
        network = context.config.network

        contracts = [
            {
                "name": iface.name[:-3] if iface.name.endswith("ABI") else iface.name,
                "abi": json.dumps(json.loads(iface.content)),
            }
            for iface in context.upstream_interfaces("abi")
        ]
        ctx = {
            "appName": config.app_name,
            "appDescription": config.app_description or project.description,
            "isTailwind": config.styling == "tailwind",
            "darkMode": config.dark_mode_support,
            "chainExport": CHAIN_EXPORTS.get(network.chain_id, "arbitrumSepolia"),
            "contracts": contracts,
        }

        self.add_json_file(
            output,
            "package.json",
            {
                "name": package_slug(project.name),
                "version": project.version,
                "private": True,
                "license": project.license,
                "workspaces": ["apps/*", "packages/*"],
                "scripts": {"dev": "pnpm --filter web dev", "build": "pnpm -r build"},
            },
            "root",
        )

        web_dependencies = {
            "next": "^14.2.0",
            "react": "^18.3.0",
            "react-dom": "^18.3.0",
            "wagmi": "^2.12.0",
            "viem": "^2.21.0",
            "@tanstack/react-query": "^5.59.0",
        }
        if config.styling == "tailwind":
            web_dependencies["tailwindcss"] = "^3.4.0"
        self.add_json_file(
            output,
            "apps/web/package.json",
            {
                "name": "web",
                "private": True,
                "scripts": {"dev": "next dev", "build": "next build", "start": "next start"},
                "dependencies": web_dependencies,
            },
            "root",
        )

        self.add_file(output, "providers.tsx", PROVIDERS_TEMPLATE + "\n", "frontend-app")
        self.add_file(output, "layout.tsx", render_template(LAYOUT_TEMPLATE, ctx) + "\n", "frontend-app")
        self.add_file(output, "page.tsx", render_template(PAGE_TEMPLATE, ctx) + "\n", "frontend-app")
        if config.styling == "tailwind":
            self.add_file(output, "globals.css", GLOBALS_CSS + "\n", "frontend-app")
        self.add_file(output, "wagmi.ts", render_template(WAGMI_TEMPLATE, ctx) + "\n", "frontend-lib")

        if config.generate_contract_hooks:
            self.add_file(
                output, "useContracts.ts", render_template(CONTRACT_HOOKS_TEMPLATE, ctx) + "\n", "frontend-hooks"
            )

        self.add_env_var(
            output, "NEXT_PUBLIC_CHAIN_ID", "Target chain id", default_value=str(network.chain_id)
        )
        self.add_env_var(
            output, "NEXT_PUBLIC_RPC_URL", "Public RPC endpoint for the web app", default_value=network.rpc_url
        )

        self.add_script(output, "dev:web", "pnpm --filter web dev", "Start the web app")
        self.add_script(output, "build:web", "pnpm --filter web build", "Build the web app")

        context.logger.info(
            f"Generated Next.js scaffold '{config.app_name}' with {len(contracts)} contract hook set(s)"
        )
        return output
