"""
Tests for the output merger: category routing, collisions, patch semantics,
atomicity of a single merge, and the finalized manifest.
"""

import json
import pytest

import sys
from pathlib import Path

backend_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(backend_root))

from dappforge.models.codegen import CodegenOutput, ReplaceOperation
from dappforge.plugins.base import BasePlugin
from dappforge.services.output_merger import (
    ENV_EXAMPLE_PATH,
    FileCollisionError,
    InvalidOutputPathError,
    MergeError,
    OutputMerger,
    PatchAnchorNotFoundError,
    PatchTargetNotFoundError,
    UnknownCategoryError,
    apply_operations,
    normalize_path,
    route_path,
)


NODE_A = "node-a"
NODE_B = "node-b"


def _output_with_file(path, content, category=None):
    output = CodegenOutput()
    BasePlugin.add_file(output, path, content, category)
    return output


def _merge_all(outputs, generate_docs=True):
    """Merge (node_id, plugin_id, output) triples in order and finalize."""
    merger = OutputMerger(generate_docs=generate_docs)
    for node_id, plugin_id, output in outputs:
        merger.merge(node_id, plugin_id, output)
    return merger.finalize()


def _tree(manifest):
    return {f.path: f.content for f in manifest.files}


# ============================================================================
# Routing
# ============================================================================


class TestRouting:
    @pytest.mark.parametrize(
        "category,path,expected",
        [
            ("frontend-hooks", "useToken.ts", "apps/web/src/hooks/useToken.ts"),
            ("frontend-components", "auth/Button.tsx", "apps/web/src/components/auth/Button.tsx"),
            ("frontend-lib", "wagmi.ts", "apps/web/src/lib/wagmi.ts"),
            ("frontend-app", "page.tsx", "apps/web/src/app/page.tsx"),
            ("backend-routes", "pay.ts", "apps/api/src/routes/pay.ts"),
            ("backend-middleware", "pay.ts", "apps/api/src/middleware/pay.ts"),
            ("backend-types", "pay.ts", "apps/api/src/types/pay.ts"),
            ("backend-lib", "agent/runtime.ts", "apps/api/src/lib/agent/runtime.ts"),
            ("sdk", "index.ts", "packages/sdk/src/index.ts"),
            ("docs", "guide.md", "docs/guide.md"),
            ("root", "package.json", "package.json"),
            ("contract-source", "token/src/lib.rs", "contracts/token/src/lib.rs"),
        ],
    )
    def test_category_table(self, category, path, expected):
        assert route_path(path, category, plugin_id="p", owner=NODE_A) == expected

    def test_bare_contract_file_goes_under_owner(self):
        assert route_path("lib.rs", "contract-source", plugin_id="p", owner=NODE_A) == (
            f"contracts/{NODE_A}/lib.rs"
        )

    def test_uncategorized_goes_under_plugin_package(self):
        assert route_path("src/x.ts", None, plugin_id="ipfs-storage", owner=NODE_A) == (
            "packages/ipfs-storage/src/x.ts"
        )

    def test_unknown_category(self):
        with pytest.raises(UnknownCategoryError):
            route_path("x.ts", "mystery", plugin_id="p", owner=NODE_A)

    @pytest.mark.parametrize("bad", ["", "   ", "..", "../etc/passwd", "a/../../b", "."])
    def test_paths_escaping_root_are_rejected(self, bad):
        with pytest.raises(InvalidOutputPathError):
            normalize_path(bad)

    def test_normalize_path(self):
        assert normalize_path("./src//lib/../index.ts") == "src/index.ts"
        assert normalize_path("/abs/path.ts") == "abs/path.ts"
        assert normalize_path("win\\style.ts") == "win/style.ts"


# ============================================================================
# Merging files
# ============================================================================


class TestMergeFiles:
    def test_collision_fails_and_names_both_nodes(self):
        merger = OutputMerger()
        merger.merge(NODE_A, "p", _output_with_file("token/src/lib.rs", "first", "contract-source"))

        with pytest.raises(FileCollisionError) as exc_info:
            merger.merge(NODE_B, "q", _output_with_file("contracts/token/src/lib.rs", "second", "root"))

        err = exc_info.value
        assert err.path == "contracts/token/src/lib.rs"
        assert NODE_A in str(err) and NODE_B in str(err)
        assert merger.files["contracts/token/src/lib.rs"] == "first"

    def test_collision_within_one_output(self):
        output = CodegenOutput()
        BasePlugin.add_file(output, "a.ts", "1", "root")
        BasePlugin.add_file(output, "./a.ts", "2", "root")
        with pytest.raises(FileCollisionError):
            OutputMerger().merge(NODE_A, "p", output)

    def test_contributors_are_recorded(self):
        manifest = _merge_all(
            [
                (NODE_A, "p", _output_with_file("a.ts", "a", "root")),
                (NODE_B, "q", _output_with_file("b.ts", "b", "root")),
            ]
        )
        assert manifest.contributors == {"a.ts": NODE_A, "b.ts": NODE_B}

    def test_manifest_files_are_sorted(self):
        manifest = _merge_all(
            [
                (NODE_A, "p", _output_with_file("z.ts", "z", "root")),
                (NODE_B, "q", _output_with_file("a.ts", "a", "root")),
            ]
        )
        assert [f.path for f in manifest.files] == ["a.ts", "z.ts"]

    def test_docs_become_files_when_enabled(self):
        output = CodegenOutput()
        BasePlugin.add_doc(output, "docs/guide.md", "Guide", "# Guide\n")

        manifest = _merge_all([(NODE_A, "p", output)])
        assert _tree(manifest)["docs/guide.md"] == "# Guide\n"
        assert [d.title for d in manifest.docs] == ["Guide"]

        manifest = _merge_all([(NODE_A, "p", output)], generate_docs=False)
        assert "docs/guide.md" not in _tree(manifest)
        assert [d.title for d in manifest.docs] == ["Guide"]


# ============================================================================
# Patches
# ============================================================================


class TestPatches:
    def _merger_with(self, path, content):
        merger = OutputMerger()
        merger.merge(NODE_A, "p", _output_with_file(path, content, "root"))
        return merger

    def test_replace_all(self):
        merger = self._merger_with("config.ts", "PLACEHOLDER-x-PLACEHOLDER-y-PLACEHOLDER")
        patch = CodegenOutput()
        BasePlugin.replace_in_file(patch, "config.ts", "PLACEHOLDER", "value", all=True)
        merger.merge(NODE_B, "q", patch)

        merged = merger.files["config.ts"]
        assert "PLACEHOLDER" not in merged
        assert merged == "value-x-value-y-value"

    def test_replace_first_only(self):
        merged = apply_operations(
            "a a a", [ReplaceOperation(search="a", replace="b")], path="f"
        )
        assert merged == "b a a"

    def test_replace_without_match_is_a_no_op(self):
        merged = apply_operations(
            "unchanged", [ReplaceOperation(search="missing", replace="x", all=True)], path="f"
        )
        assert merged == "unchanged"

    def test_insert_positions(self):
        merger = self._merger_with("app.tsx", "<A>\n<B>\n")
        patch = CodegenOutput()
        BasePlugin.insert_in_file(patch, "app.tsx", "start", "// head\n")
        BasePlugin.insert_in_file(patch, "app.tsx", "end", "// tail\n")
        BasePlugin.insert_in_file(patch, "app.tsx", {"after": "<A>\n"}, "<after-a>\n")
        BasePlugin.insert_in_file(patch, "app.tsx", {"before": "<B>"}, "<before-b>\n")
        merger.merge(NODE_B, "q", patch)

        assert merger.files["app.tsx"] == (
            "// head\n<A>\n<after-a>\n<before-b>\n<B>\n// tail\n"
        )

    def test_operations_apply_in_order(self):
        merger = self._merger_with("f.ts", "one")
        patch = CodegenOutput()
        BasePlugin.replace_in_file(patch, "f.ts", "one", "two")
        BasePlugin.replace_in_file(patch, "f.ts", "two", "three")
        merger.merge(NODE_B, "q", patch)
        assert merger.files["f.ts"] == "three"

    def test_missing_anchor_leaves_tree_untouched(self):
        merger = self._merger_with("app.tsx", "<App />")
        before = merger.files

        output = _output_with_file("extra.ts", "extra", "root")
        BasePlugin.insert_in_file(output, "app.tsx", {"after": "<Nope>"}, "x")
        with pytest.raises(PatchAnchorNotFoundError) as exc_info:
            merger.merge(NODE_B, "q", output)

        assert exc_info.value.anchor == "<Nope>"
        assert exc_info.value.node_id == NODE_B
        assert merger.files == before
        assert "extra.ts" not in merger.files

    def test_patch_on_missing_file(self):
        merger = OutputMerger()
        patch = CodegenOutput()
        BasePlugin.replace_in_file(patch, "nowhere.ts", "a", "b")
        with pytest.raises(PatchTargetNotFoundError):
            merger.merge(NODE_A, "p", patch)

    def test_patch_cannot_target_files_from_the_same_output(self):
        output = _output_with_file("f.ts", "hello", "root")
        BasePlugin.replace_in_file(output, "f.ts", "hello", "bye")
        merger = OutputMerger()
        with pytest.raises(PatchTargetNotFoundError):
            merger.merge(NODE_A, "p", output)
        assert merger.files == {}

    def test_unknown_operation_is_rejected(self):
        with pytest.raises(MergeError, match="Unsupported patch operation"):
            apply_operations("content", [object()], path="f.ts")

    def test_binary_files_cannot_be_patched(self):
        output = CodegenOutput()
        BasePlugin.add_file(output, "logo.png", "aGVsbG8=", "root", encoding="base64")
        merger = OutputMerger()
        merger.merge(NODE_A, "p", output)

        patch = CodegenOutput()
        BasePlugin.replace_in_file(patch, "logo.png", "a", "b")
        with pytest.raises(MergeError):
            merger.merge(NODE_B, "q", patch)


# ============================================================================
# Side channels and finalize
# ============================================================================


class TestFinalize:
    def test_env_vars_first_declaration_wins(self):
        first = CodegenOutput()
        BasePlugin.add_env_var(first, "RPC_URL", "RPC endpoint", default_value="http://localhost:8547")
        BasePlugin.add_env_var(first, "DEPLOYER_KEY", "Deployer key", secret=True, default_value="0xabc")
        second = CodegenOutput()
        BasePlugin.add_env_var(second, "RPC_URL", "Other description", required=False)

        manifest = _merge_all([(NODE_A, "p", first), (NODE_B, "q", second)])

        assert [v.name for v in manifest.env_vars] == ["RPC_URL", "DEPLOYER_KEY"]
        assert manifest.env_vars[0].description == "RPC endpoint"
        env_example = _tree(manifest)[ENV_EXAMPLE_PATH]
        assert "RPC_URL=http://localhost:8547" in env_example
        assert "DEPLOYER_KEY=\n" in env_example
        assert "0xabc" not in env_example
        assert "# Deployer key (required, secret)" in env_example

    def test_no_env_file_without_env_vars(self):
        manifest = _merge_all([(NODE_A, "p", _output_with_file("a.ts", "a", "root"))])
        assert ENV_EXAMPLE_PATH not in _tree(manifest)

    def test_script_conflict_keeps_first_and_warns(self):
        first = CodegenOutput()
        BasePlugin.add_script(first, "build", "turbo build")
        second = CodegenOutput()
        BasePlugin.add_script(second, "build", "next build")
        BasePlugin.add_script(second, "lint", "eslint .")

        merger = OutputMerger()
        merger.merge(NODE_A, "p", first)
        merger.merge(NODE_B, "q", second)
        manifest = merger.finalize()

        assert {s.name: s.command for s in manifest.scripts} == {"build": "turbo build", "lint": "eslint ."}
        assert len(manifest.warnings) == 1
        assert "Script 'build' from node node-b conflicts with node node-a" in manifest.warnings[0]

    def test_identical_script_is_not_a_conflict(self):
        first = CodegenOutput()
        BasePlugin.add_script(first, "build", "turbo build")
        manifest = _merge_all([(NODE_A, "p", first), (NODE_B, "q", first)])
        assert manifest.warnings == []

    def test_scripts_merge_into_root_package_json(self):
        root = CodegenOutput()
        BasePlugin.add_json_file(root, "package.json", {"name": "app", "scripts": {"dev": "turbo dev"}}, "root")
        contract = CodegenOutput()
        BasePlugin.add_script(contract, "build:contract", "cargo stylus check")

        manifest = _merge_all([(NODE_A, "p", root), (NODE_B, "q", contract)])

        package = json.loads(_tree(manifest)["package.json"])
        assert package["scripts"] == {"dev": "turbo dev", "build:contract": "cargo stylus check"}

    def test_finalize_does_not_mutate_merger(self):
        output = CodegenOutput()
        BasePlugin.add_env_var(output, "A_VAR", "a")
        merger = OutputMerger()
        merger.merge(NODE_A, "p", output)

        merger.finalize()
        assert ENV_EXAMPLE_PATH not in merger.files
        assert _tree(merger.finalize()) == _tree(merger.finalize())
