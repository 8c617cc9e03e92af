"""
Wallet auth plugin: wallet connection, optional SIWE sessions and a connect
button.

With a frontend-scaffold upstream it patches the scaffold's providers file
instead of emitting its own provider component.
"""

from __future__ import annotations

from typing import Any

from dappforge.models.blueprint import BlueprintNode
from dappforge.models.codegen import CodegenOutput
from dappforge.models.node_registry import WalletAuthConfig
from dappforge.plugins.base import BasePlugin, ExecutionContext, PluginMetadata, PluginPort
from dappforge.plugins.frontend_scaffold import (
    PROVIDERS_CLOSE_ANCHOR,
    PROVIDERS_CONFIG_IMPORT,
    PROVIDERS_IMPORTS_ANCHOR,
    PROVIDERS_OPEN_ANCHOR,
    PROVIDERS_PATH,
)
from dappforge.services.template_engine import dedent, render_template


# provider -> (package, provider component, import statement)
PROVIDER_KITS: dict[str, tuple[str, str, str]] = {
    "rainbowkit": (
        "@rainbow-me/rainbowkit",
        "RainbowKitProvider",
        "import { RainbowKitProvider } from '@rainbow-me/rainbowkit';\nimport '@rainbow-me/rainbowkit/styles.css';",
    ),
    "connectkit": ("connectkit", "ConnectKitProvider", "import { ConnectKitProvider } from 'connectkit';"),
    "web3modal": ("@web3modal/wagmi", "Web3ModalProvider", "import { Web3ModalProvider } from '@web3modal/wagmi/react';"),
}

AUTH_HOOK_TEMPLATE = dedent("""
    'use client';

    import { useAccount, useDisconnect{{# if siweEnabled }}, useSignMessage{{/ if }} } from 'wagmi';
    {{# if siweEnabled }}
    import { createSiweMessage } from 'viem/siwe';
    {{/ if }}

    export function useAuth() {
      const { address, isConnected, chainId } = useAccount();
      const { disconnect } = useDisconnect();
    {{# if siweEnabled }}
      const { signMessageAsync } = useSignMessage();

      async function signIn(nonce: string) {
        if (!address || !chainId) throw new Error('Wallet not connected');
        const message = createSiweMessage({
          address,
          chainId,
          domain: window.location.host,
          nonce,
          uri: window.location.origin,
          version: '1',
          statement: 'Sign in to {{ appName }}',
        });
        const signature = await signMessageAsync({ message });
    {{# if sessionPersistence }}
        window.localStorage.setItem('siwe-session', JSON.stringify({ address, signature }));
    {{/ if }}
        return { message, signature };
      }

      return { address, isConnected, disconnect, signIn };
    {{ else }}
      return { address, isConnected, disconnect };
    {{/ if }}
    }
""")

CONNECT_BUTTON_TEMPLATE = dedent("""
    'use client';

    {{# if provider == 'rainbowkit' }}
    export { ConnectButton } from '@rainbow-me/rainbowkit';
    {{ else }}
    {{# if provider == 'connectkit' }}
    export { ConnectKitButton as ConnectButton } from 'connectkit';
    {{ else }}
    export function ConnectButton() {
      return <w3m-button />;
    }
    {{/ if }}
    {{/ if }}
""")

STANDALONE_PROVIDER_TEMPLATE = dedent("""
    'use client';

    import type { ReactNode } from 'react';
    import { QueryClient, QueryClientProvider } from '@tanstack/react-query';
    import { WagmiProvider } from 'wagmi';
    import { walletConfig } from '@/lib/wallet-config';
    {{ kitImport }}

    const queryClient = new QueryClient();

    export function AuthProvider({ children }: { children: ReactNode }) {
      return (
        <WagmiProvider config={walletConfig}>
          <QueryClientProvider client={queryClient}>
            <{{ kitComponent }}>{children}</{{ kitComponent }}>
          </QueryClientProvider>
        </WagmiProvider>
      );
    }
""")

WALLET_CONFIG_TEMPLATE = dedent("""
    import { http } from 'wagmi';
    import { arbitrum, arbitrumSepolia } from 'wagmi/chains';
    {{# if isRainbowKit }}
    import { getDefaultConfig } from '@rainbow-me/rainbowkit';

    export const walletConfig = getDefaultConfig({
      appName: '{{ appName }}',
      projectId: process.env.NEXT_PUBLIC_WALLETCONNECT_PROJECT_ID ?? '',
      chains: [arbitrumSepolia, arbitrum],
      ssr: true,
    });
    {{ else }}
    import { createConfig } from 'wagmi';
    {{# if walletConnectEnabled }}
    import { walletConnect } from 'wagmi/connectors';
    {{/ if }}

    export const walletConfig = createConfig({
      chains: [arbitrumSepolia, arbitrum],
    {{# if walletConnectEnabled }}
      connectors: [walletConnect({ projectId: process.env.NEXT_PUBLIC_WALLETCONNECT_PROJECT_ID ?? '' })],
    {{/ if }}
      transports: {
        [arbitrumSepolia.id]: http(),
        [arbitrum.id]: http(),
      },
      ssr: true,
    });
    {{/ if }}
""")


class WalletAuthPlugin(BasePlugin[WalletAuthConfig]):
    metadata = PluginMetadata(
        id="wallet-auth",
        name="Wallet Authentication",
        version="0.1.0",
        description="Wallet connection with WalletConnect, social login, and SIWE",
        category="app",
        tags=["wallet", "authentication", "walletconnect", "siwe"],
    )
    config_schema = WalletAuthConfig
    ports = [
        PluginPort(id="auth-out", name="Auth Context", type="output", data_type="config"),
    ]

    def get_default_config(self) -> dict[str, Any]:
        return {
            "provider": "rainbowkit",
            "walletConnectEnabled": True,
            "siweEnabled": True,
            "socialLogins": [],
            "sessionPersistence": True,
        }

    async def generate(self, node: BlueprintNode, context: ExecutionContext) -> CodegenOutput:
        config = self.parse_config(node)
        output = self.create_empty_output()
        _, kit_component, kit_import = PROVIDER_KITS[config.provider]

        ctx = {
            "appName": config.app_name,
            "provider": config.provider,
            "isRainbowKit": config.provider == "rainbowkit",
            "siweEnabled": config.siwe_enabled,
            "sessionPersistence": config.session_persistence,
            "walletConnectEnabled": config.wallet_connect_enabled,
            "kitComponent": kit_component,
            "kitImport": kit_import,
        }

        self.add_file(output, "wallet-config.ts", render_template(WALLET_CONFIG_TEMPLATE, ctx) + "\n", "frontend-lib")
        self.add_file(output, "useAuth.ts", render_template(AUTH_HOOK_TEMPLATE, ctx) + "\n", "frontend-hooks")
        self.add_file(
            output, "auth/ConnectButton.tsx", render_template(CONNECT_BUTTON_TEMPLATE, ctx) + "\n", "frontend-components"
        )

        if context.upstream_of_type("frontend-scaffold"):
            # Wrap the scaffold's providers in the wallet kit provider.
            self.replace_in_file(
                output,
                PROVIDERS_PATH,
                PROVIDERS_CONFIG_IMPORT,
                "import { walletConfig as wagmiConfig } from '@/lib/wallet-config';",
            )
            self.insert_in_file(output, PROVIDERS_PATH, {"after": PROVIDERS_IMPORTS_ANCHOR}, "\n" + kit_import)
            self.insert_in_file(output, PROVIDERS_PATH, {"after": PROVIDERS_OPEN_ANCHOR}, f"\n<{kit_component}>")
            self.insert_in_file(output, PROVIDERS_PATH, {"before": PROVIDERS_CLOSE_ANCHOR}, f"</{kit_component}>\n")
            context.logger.debug("Patched frontend scaffold providers", {"provider": config.provider})
        else:
            self.add_file(
                output,
                "auth/AuthProvider.tsx",
                render_template(STANDALONE_PROVIDER_TEMPLATE, ctx) + "\n",
                "frontend-components",
            )

        self.add_env_var(
            output,
            "NEXT_PUBLIC_WALLETCONNECT_PROJECT_ID",
            "WalletConnect Cloud project ID",
            required=config.wallet_connect_enabled,
        )
        if config.social_logins:
            self.add_env_var(output, "NEXT_PUBLIC_WEB3AUTH_CLIENT_ID", "Web3Auth client ID for social logins")
        if config.siwe_enabled:
            self.add_env_var(output, "NEXTAUTH_SECRET", "Secret for SIWE session encryption", secret=True)
            self.add_env_var(
                output, "NEXTAUTH_URL", "Base URL for NextAuth", default_value="http://localhost:3000"
            )

        self.add_doc(
            output,
            "docs/auth/wallet-auth.md",
            "Wallet Authentication",
            f"# Wallet Authentication\n\nProvider: {config.provider}. "
            f"SIWE {'enabled' if config.siwe_enabled else 'disabled'}.\n",
        )

        context.logger.info("Generated wallet authentication", {"provider": config.provider})
        return output
