"""
IPFS storage plugin: pinning client, React hook and upload component.
"""

from __future__ import annotations

from typing import Any

from dappforge.models.blueprint import BlueprintNode
from dappforge.models.codegen import CodegenOutput
from dappforge.models.node_registry import IpfsStorageConfig
from dappforge.plugins.base import BasePlugin, ExecutionContext, PluginMetadata, PluginPort
from dappforge.services.template_engine import dedent, render_template


CLIENT_TEMPLATE = dedent("""
    {{# if isPinata }}
    const PINATA_API = 'https://api.pinata.cloud/pinning/pinFileToIPFS';
    const GATEWAY = process.env.NEXT_PUBLIC_PINATA_GATEWAY ?? 'https://gateway.pinata.cloud';
    {{ else }}
    const WEB3_STORAGE_API = 'https://api.web3.storage/upload';
    const GATEWAY = 'https://w3s.link';
    {{/ if }}

    export interface UploadResult {
      cid: string;
      url: string;
    }

    export async function uploadFile(file: Blob, token: string): Promise<UploadResult> {
      const body = new FormData();
      body.append('file', file);
    {{# if isPinata }}
      const response = await fetch(PINATA_API, {
        method: 'POST',
        headers: { Authorization: `Bearer ${token}` },
        body,
      });
      const { IpfsHash: cid } = await response.json();
    {{ else }}
      const response = await fetch(WEB3_STORAGE_API, {
        method: 'POST',
        headers: { Authorization: `Bearer ${token}` },
        body: file,
      });
      const { cid } = await response.json();
    {{/ if }}
      if (!response.ok) throw new Error(`IPFS upload failed: ${response.status}`);
      return { cid, url: `${GATEWAY}/ipfs/${cid}` };
    }

    export function gatewayUrl(cid: string): string {
      return `${GATEWAY}/ipfs/${cid}`;
    }
""")

METADATA_TEMPLATE = dedent("""
    export interface NftAttribute {
      trait_type: string;
      value: string | number;
    }

    export interface NftMetadata {
      name: string;
      description: string;
      image: string;
      attributes: NftAttribute[];
    }

    export function isNftMetadata(value: unknown): value is NftMetadata {
      const v = value as NftMetadata;
      return typeof v?.name === 'string' && typeof v?.image === 'string' && Array.isArray(v?.attributes);
    }
""")

HOOK_TEMPLATE = dedent("""
    'use client';

    import { useState } from 'react';
    import { uploadFile, type UploadResult } from '@/lib/storage-client';

    export function useIPFS(token: string) {
      const [uploading, setUploading] = useState(false);
      const [result, setResult] = useState<UploadResult | null>(null);

      async function upload(file: Blob) {
        setUploading(true);
        try {
          const uploaded = await uploadFile(file, token);
          setResult(uploaded);
          return uploaded;
        } finally {
          setUploading(false);
        }
      }

      return { upload, uploading, result };
    }
""")

UPLOAD_COMPONENT_TEMPLATE = dedent("""
    'use client';

    import { useIPFS } from '@/hooks/useIPFS';

    export function FileUpload({ token }: { token: string }) {
      const { upload, uploading, result } = useIPFS(token);
      return (
        <div>
          <input
            type="file"
            disabled={uploading}
            onChange={(e) => e.target.files?.[0] && upload(e.target.files[0])}
          />
          {result && <a href={result.url}>{result.cid}</a>}
        </div>
      );
    }
""")


class IpfsStoragePlugin(BasePlugin[IpfsStorageConfig]):
    metadata = PluginMetadata(
        id="ipfs-storage",
        name="IPFS Storage",
        version="0.1.0",
        description="Decentralized storage with Pinata or Web3.Storage",
        category="app",
        tags=["ipfs", "storage", "pinata", "web3storage", "metadata", "nft"],
    )
    config_schema = IpfsStorageConfig
    ports = [
        PluginPort(id="storage-out", name="Storage Utils", type="output", data_type="types"),
    ]

    def get_default_config(self) -> dict[str, Any]:
        return {"provider": "pinata", "generateMetadataSchemas": True, "generateUI": True}

    async def generate(self, node: BlueprintNode, context: ExecutionContext) -> CodegenOutput:
        config = self.parse_config(node)
        output = self.create_empty_output()
        ctx = {"isPinata": config.provider == "pinata"}

        self.add_file(output, "storage-client.ts", render_template(CLIENT_TEMPLATE, ctx) + "\n", "frontend-lib")
        self.add_file(output, "useIPFS.ts", HOOK_TEMPLATE + "\n", "frontend-hooks")
        if config.generate_metadata_schemas:
            self.add_file(output, "nft-metadata.ts", METADATA_TEMPLATE + "\n", "frontend-lib")
        if config.generate_ui:
            self.add_file(output, "storage/FileUpload.tsx", UPLOAD_COMPONENT_TEMPLATE + "\n", "frontend-components")

        if config.provider == "pinata":
            self.add_env_var(output, "PINATA_JWT", "Pinata JWT token", secret=True)
            self.add_env_var(
                output,
                "NEXT_PUBLIC_PINATA_GATEWAY",
                "Pinata gateway URL",
                required=False,
                default_value="https://gateway.pinata.cloud",
            )
        else:
            self.add_env_var(output, "WEB3_STORAGE_TOKEN", "Web3.Storage API token", secret=True)

        self.add_doc(
            output,
            "docs/storage/ipfs.md",
            "IPFS Storage",
            f"# IPFS Storage\n\nFiles are pinned through {config.provider}. "
            "Use `useIPFS` to upload from React components.\n",
        )
        context.logger.info("Generated IPFS storage integration", {"provider": config.provider})
        return output
