import tempfile
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, patch


def _result(argv=(), returncode=0, stdout="", stderr="", error=None):
    from premiere_bridge.host.shell import CommandResult

    return CommandResult(argv=list(argv), returncode=returncode, stdout=stdout, stderr=stderr, error=error)


class TestBuildOps(unittest.IsolatedAsyncioTestCase):
    async def test_build_success(self) -> None:
        from premiere_bridge.daemon.ops import build_ops
        from premiere_bridge.kernel.settings import BridgeConfig

        with patch.object(build_ops, "run_command", new=AsyncMock(return_value=_result(stdout="...\n** BUILD SUCCEEDED **\n"))):
            res = await build_ops.build_plugin(BridgeConfig())
        self.assertTrue(res["success"])
        self.assertEqual(res["errors"], [])

    async def test_build_failure_skips_install(self) -> None:
        from premiere_bridge.daemon.ops import build_ops
        from premiere_bridge.kernel.settings import BridgeConfig

        out = "x" * 5000 + "\nMoshBrosh.cpp:12:3: error: expected ';'\n** BUILD FAILED **\n"
        install = AsyncMock()
        with patch.object(build_ops, "run_command", new=AsyncMock(return_value=_result(returncode=65, stdout=out))), patch.object(
            build_ops, "install_plugin", new=install
        ):
            res = await build_ops.build_and_install_plugin(BridgeConfig())
        self.assertFalse(res["success"])
        self.assertEqual(res["stage"], "build")
        self.assertEqual(res["errors"], ["error: expected ';'"])
        self.assertEqual(len(res["output"]), 3000)
        install.assert_not_called()

    async def test_install_replaces_previous_bundle(self) -> None:
        from premiere_bridge.daemon.ops import build_ops
        from premiere_bridge.kernel.settings import BridgeConfig

        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            product = root / "DerivedData" / "MoshBrosh-abc" / "Debug" / "MoshBrosh.plugin"
            (product / "Contents").mkdir(parents=True)
            (product / "Contents" / "Info.plist").write_text("new", encoding="utf-8")
            install_dir = root / "Plug-ins"
            old = install_dir / "MoshBrosh.plugin"
            old.mkdir(parents=True)
            (old / "stale.txt").write_text("old", encoding="utf-8")

            cfg = BridgeConfig(
                plugin_products_glob=str(root / "DerivedData" / "MoshBrosh-*" / "Debug" / "MoshBrosh.plugin"),
                plugin_install_dir=str(install_dir),
            )
            res = await build_ops.install_plugin(cfg)

            self.assertTrue(res["success"], res)
            self.assertFalse((old / "stale.txt").exists())
            self.assertEqual((old / "Contents" / "Info.plist").read_text(encoding="utf-8"), "new")

    async def test_install_without_product(self) -> None:
        from premiere_bridge.daemon.ops import build_ops
        from premiere_bridge.kernel.settings import BridgeConfig

        with tempfile.TemporaryDirectory() as td:
            cfg = BridgeConfig(plugin_products_glob=str(Path(td) / "none-*"), plugin_install_dir=td)
            res = await build_ops.install_plugin(cfg)
        self.assertFalse(res["success"])


class TestMediaOps(unittest.IsolatedAsyncioTestCase):
    def test_cli_params_defaults(self) -> None:
        from premiere_bridge.daemon.ops.media_ops import cli_params

        self.assertEqual(
            cli_params({"blend": 40, "block_size": "bad"}),
            {"mosh_frame": 10, "duration": 30, "block_size": 16, "search_range": 16, "blend": 40},
        )

    async def test_run_cli_datamosh(self) -> None:
        from premiere_bridge.daemon.ops import media_ops
        from premiere_bridge.kernel.settings import BridgeConfig

        with tempfile.TemporaryDirectory() as td:
            cfg = BridgeConfig(cli_tool_dir=td)
            runner = AsyncMock(return_value=_result(stdout="Processing...\nDone!\n"))
            with patch.object(media_ops, "run_command", new=runner):
                res = await media_ops.run_cli_datamosh(cfg, media_ops.cli_params({"duration": 12}))
        self.assertTrue(res["success"])
        argv = runner.call_args.args[0]
        self.assertEqual(argv[argv.index("-d") + 1], "12")
        self.assertEqual(argv[argv.index("-f") + 1], "10")

    async def _analyze(self, td: str, compare_stderr: str, compare_rc: int = 1):
        from premiere_bridge.daemon.ops import media_ops
        from premiere_bridge.kernel.settings import BridgeConfig

        cfg = BridgeConfig(cli_tool_dir=td)
        cfg.export_output_path.write_bytes(b"video")

        async def fake_run(argv, *, cwd=None, timeout_s=30.0):
            if argv[0] == "ffmpeg":
                out_dir = Path(argv[-1]).parent
                for n in range(1, 32):
                    (out_dir / f"frame_{n:03d}.png").write_bytes(b"png")
                return _result(argv)
            return _result(argv, returncode=compare_rc, stderr=compare_stderr)

        with patch.object(media_ops, "run_command", new=fake_run):
            return await media_ops.analyze_export(cfg)

    async def test_analysis_detects_visible_effect(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            res = await self._analyze(td, "2345.6 (0.0358)")
        self.assertTrue(res["success"], res)
        self.assertEqual(res["rmse"], 2345.6)
        self.assertTrue(res["frame_a"].endswith("frame_006.png"))
        self.assertTrue(res["frame_b"].endswith("frame_021.png"))

    async def test_analysis_below_threshold(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            res = await self._analyze(td, "12 (0.0002)")
        self.assertFalse(res["success"])
        self.assertEqual(res["rmse"], 12.0)
        self.assertIn("below threshold", res["error"])

    async def test_analysis_compare_failure(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            res = await self._analyze(td, "compare: unable to open image", compare_rc=2)
        self.assertFalse(res["success"])

    async def test_analysis_fails_when_extraction_fails_despite_old_frames(self) -> None:
        from premiere_bridge.daemon.ops import media_ops
        from premiere_bridge.kernel.settings import BridgeConfig

        with tempfile.TemporaryDirectory() as td:
            cfg = BridgeConfig(cli_tool_dir=td)
            cfg.export_output_path.write_bytes(b"video")
            frames_dir = Path(td) / "premiere_frames"
            frames_dir.mkdir()
            for n in range(1, 32):
                (frames_dir / f"frame_{n:03d}.png").write_bytes(b"old")

            calls = []

            async def fake_run(argv, *, cwd=None, timeout_s=30.0):
                calls.append(argv[0])
                if argv[0] == "ffmpeg":
                    return _result(argv, returncode=1, stderr="Invalid data found when processing input")
                return _result(argv, returncode=1, stderr="5000 (0.07)")

            with patch.object(media_ops, "run_command", new=fake_run):
                res = await media_ops.analyze_export(cfg)

            self.assertFalse(res["success"], res)
            self.assertIn("Invalid data found", res["error"])
            self.assertEqual(calls, ["ffmpeg"])
            self.assertEqual(list(frames_dir.glob("frame_*.png")), [])

    async def test_analysis_without_export(self) -> None:
        from premiere_bridge.daemon.ops import media_ops
        from premiere_bridge.kernel.settings import BridgeConfig

        with tempfile.TemporaryDirectory() as td:
            res = await media_ops.analyze_export(BridgeConfig(cli_tool_dir=td))
        self.assertFalse(res["success"])
        self.assertIn("export not found", res["error"])


if __name__ == "__main__":
    unittest.main()
