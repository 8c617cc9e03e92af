"""
x402 paywall plugin. HTTP 402 payment-gated API endpoints.
"""

from __future__ import annotations

from typing import Any

from dappforge.models.blueprint import BlueprintNode
from dappforge.models.codegen import CodegenOutput
from dappforge.models.node_registry import X402PaywallConfig
from dappforge.plugins.base import BasePlugin, ExecutionContext, PluginMetadata, PluginPort
from dappforge.services.template_engine import dedent, render_template


TYPES_TEMPLATE = dedent("""
    export type PaymentCurrency = '{{ currency }}';

    export interface PaymentRequirement {
      resource: string;
      amount: string;
      currency: PaymentCurrency;
      receiver: `0x${string}`;
    {{# if isCustom }}
      tokenAddress: `0x${string}`;
    {{/ if }}
      expiresIn: number;
    }

    export interface PaymentReceipt {
      txHash: `0x${string}`;
      payer: `0x${string}`;
      amount: string;
      timestamp: number;
    }
""")

MIDDLEWARE_TEMPLATE = dedent("""
    import type { Request, Response, NextFunction } from 'express';
    import type { PaymentReceipt, PaymentRequirement } from '../types/payment-types';

    const PRICE_IN_WEI = '{{ priceInWei }}';
    const PAYMENT_TIMEOUT_SECONDS = {{ paymentTimeout }};

    export function requirement(resource: string): PaymentRequirement {
      return {
        resource,
        amount: PRICE_IN_WEI,
        currency: '{{ currency }}',
        receiver: process.env.PAYMENT_RECEIVER_ADDRESS as `0x${string}`,
    {{# if isCustom }}
        tokenAddress: process.env.PAYMENT_TOKEN_ADDRESS as `0x${string}`,
    {{/ if }}
        expiresIn: PAYMENT_TIMEOUT_SECONDS,
      };
    }

    export function x402Paywall(req: Request, res: Response, next: NextFunction) {
      const header = req.header('X-PAYMENT');
      if (!header) {
        return res.status(402).json(requirement(req.path));
      }
      const receipt = JSON.parse(Buffer.from(header, 'base64').toString()) as PaymentReceipt;
    {{# if receiptValidation }}
      if (BigInt(receipt.amount) < BigInt(PRICE_IN_WEI)) {
        return res.status(402).json({ error: 'Insufficient payment', ...requirement(req.path) });
      }
    {{/ if }}
      res.locals.receipt = receipt;
      next();
    }
""")

ROUTES_TEMPLATE = dedent("""
    import { Router } from 'express';
    import { x402Paywall } from '../middleware/payment-middleware';

    export const paymentRouter = Router();

    paymentRouter.get('{{ resourcePath }}', x402Paywall, (_req, res) => {
    {{# if hasWebhook }}
      void fetch(process.env.PAYMENT_WEBHOOK_URL!, {
        method: 'POST',
        body: JSON.stringify(res.locals.receipt),
      });
    {{/ if }}
      res.json({ ok: true, resource: '{{ resourcePath }}' });
    });
""")

OPENAPI_TEMPLATE = dedent("""
    openapi: 3.0.3
    info:
      title: {{ projectName }} payment API
      version: {{ projectVersion }}
    paths:
      {{ resourcePath }}:
        get:
          summary: Payment-gated resource
          parameters:
            - in: header
              name: X-PAYMENT
              schema:
                type: string
          responses:
            '200':
              description: Resource content
            '402':
              description: Payment required ({{ priceInWei }} wei, {{ currency }})
""")


class X402PaywallPlugin(BasePlugin[X402PaywallConfig]):
    metadata = PluginMetadata(
        id="x402-paywall-api",
        name="x402 Paywall API",
        version="0.1.0",
        description="HTTP 402 payment-gated API endpoints",
        category="payments",
        tags=["x402", "payments", "api", "paywall"],
    )
    config_schema = X402PaywallConfig
    ports = [
        PluginPort(id="contract-in", name="Payment Contract", type="input", data_type="contract"),
        PluginPort(id="api-out", name="Payment API", type="output", data_type="api"),
    ]

    def get_default_config(self) -> dict[str, Any]:
        return {
            "resourcePath": "/api/premium/resource",
            "priceInWei": "1000000000000000",
            "currency": "ETH",
            "paymentTimeout": 300,
            "receiptValidation": True,
            "openApiSpec": True,
        }

    async def generate(self, node: BlueprintNode, context: ExecutionContext) -> CodegenOutput:
        config = self.parse_config(node)
        output = self.create_empty_output()

        ctx = {
            "resourcePath": config.resource_path,
            "priceInWei": config.price_in_wei,
            "currency": config.currency,
            "isCustom": config.currency == "CUSTOM",
            "paymentTimeout": config.payment_timeout,
            "receiptValidation": config.receipt_validation,
            "hasWebhook": config.webhook_url is not None,
            "projectName": context.config.project.name,
            "projectVersion": context.config.project.version,
        }

        self.add_file(output, "payment-types.ts", render_template(TYPES_TEMPLATE, ctx) + "\n", "backend-types")
        self.add_file(
            output, "payment-middleware.ts", render_template(MIDDLEWARE_TEMPLATE, ctx) + "\n", "backend-middleware"
        )
        self.add_file(output, "payment-server.ts", render_template(ROUTES_TEMPLATE, ctx) + "\n", "backend-routes")

        if config.open_api_spec:
            spec = render_template(OPENAPI_TEMPLATE, ctx) + "\n"
            self.add_file(output, "x402-payment.yaml", spec, "docs")
            self.add_interface(output, "X402PaymentAPI", "openapi", spec)

        self.add_env_var(output, "PAYMENT_RECEIVER_ADDRESS", "Ethereum address to receive payments")
        self.add_env_var(output, "PAYMENT_PRIVATE_KEY", "Private key for signing receipts", secret=True)
        if config.currency == "CUSTOM":
            self.add_env_var(
                output,
                "PAYMENT_TOKEN_ADDRESS",
                "Custom ERC-20 token address",
                default_value=config.custom_token_address,
            )
        if config.webhook_url:
            self.add_env_var(
                output,
                "PAYMENT_WEBHOOK_URL",
                "Webhook URL for payment notifications",
                required=False,
                default_value=config.webhook_url,
            )

        self.add_script(output, "dev:api", "tsx watch apps/api/src/routes/payment-server.ts", "Start payment API in dev mode")
        self.add_doc(
            output,
            "docs/api/payments.md",
            "x402 Payments",
            f"# x402 Payments\n\n`GET {config.resource_path}` costs {config.price_in_wei} wei "
            f"({config.currency}). Unpaid requests receive HTTP 402 with the payment requirement.\n",
        )

        context.logger.info(f"Generated x402 paywall for {config.resource_path}")
        return output
