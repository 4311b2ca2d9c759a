import io
import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, patch


class _McpCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        from fakes import FakeClock, FakeHost
        from premiere_bridge.daemon.server import Coordinator
        from premiere_bridge.kernel.settings import BridgeConfig

        self._td = tempfile.TemporaryDirectory()
        self.root = Path(self._td.name)
        self.host = FakeHost(running=True)
        cfg = BridgeConfig(project_root=str(self.root), crash_log_dir=str(self.root / "crash"))
        self.coord = Coordinator(cfg, host=self.host, clock=FakeClock())

    def tearDown(self) -> None:
        self._td.cleanup()

    async def call(self, name, arguments=None):
        from premiere_bridge.ports.mcp.main import handle_request

        resp = await handle_request(
            self.coord,
            {"jsonrpc": "2.0", "id": 7, "method": "tools/call", "params": {"name": name, "arguments": arguments or {}}},
        )
        self.assertEqual(resp["id"], 7)
        return resp["result"]

    def attach_peer(self, answer):
        from fakes import FakeConn, response_frame

        channel = self.coord.channel

        def responder(conn, msg):
            channel.receive(conn, response_frame(msg["requestId"], answer(msg)))

        conn = FakeConn(responder)
        channel.attach(conn)
        return conn


class TestProtocol(_McpCase):
    async def test_initialize_and_tools_list(self) -> None:
        from premiere_bridge.ports.mcp.main import handle_request

        init = await handle_request(self.coord, {"id": 1, "method": "initialize"})
        self.assertEqual(init["result"]["serverInfo"]["name"], "premiere-bridge")

        listed = await handle_request(self.coord, {"id": 2, "method": "tools/list"})
        names = {t["name"] for t in listed["result"]["tools"]}
        for expected in (
            "premiere_status",
            "restart_premiere",
            "run_autonomous_test",
            "render_frame",
            "edit_source_file",
            "analyze_premiere_export",
        ):
            self.assertIn(expected, names)
        for tool in listed["result"]["tools"]:
            self.assertIn("required", tool["inputSchema"])

    async def test_notifications_and_unknown_methods(self) -> None:
        from premiere_bridge.ports.mcp.main import handle_request

        self.assertEqual(await handle_request(self.coord, {"method": "notifications/initialized"}), {})
        resp = await handle_request(self.coord, {"id": 3, "method": "does/not/exist"})
        self.assertEqual(resp["error"]["code"], -32601)

    async def test_tools_call_with_non_object_params_still_answers(self) -> None:
        from premiere_bridge.ports.mcp.main import run_stdio

        stdin = io.StringIO(
            json.dumps({"jsonrpc": "2.0", "id": 7, "method": "tools/call", "params": ["premiere_status"]})
            + "\n"
            + json.dumps({"jsonrpc": "2.0", "id": 8, "method": "tools/call", "params": "premiere_status"})
            + "\n"
        )
        stdout = io.StringIO()
        await run_stdio(self.coord, stdin=stdin, stdout=stdout)

        by_id = {f["id"]: f for f in (json.loads(line) for line in stdout.getvalue().splitlines())}
        self.assertEqual(sorted(by_id), [7, 8])
        for frame in by_id.values():
            self.assertTrue(frame["result"]["isError"])

    async def test_unexpected_handler_failure_becomes_internal_error(self) -> None:
        from premiere_bridge.ports.mcp import main

        stdin = io.StringIO(json.dumps({"jsonrpc": "2.0", "id": 9, "method": "ping"}) + "\n")
        stdout = io.StringIO()
        with patch.object(main, "handle_request", new=AsyncMock(side_effect=RuntimeError("boom"))):
            await main.run_stdio(self.coord, stdin=stdin, stdout=stdout)

        frame = json.loads(stdout.getvalue())
        self.assertEqual(frame["id"], 9)
        self.assertEqual(frame["error"]["code"], -32603)
        self.assertIn("boom", frame["error"]["message"])

    async def test_stdio_loop_answers_each_line(self) -> None:
        from premiere_bridge.ports.mcp.main import run_stdio

        stdin = io.StringIO(
            json.dumps({"jsonrpc": "2.0", "id": 1, "method": "ping"})
            + "\n\n"
            + "garbage\n"
            + json.dumps({"jsonrpc": "2.0", "method": "notifications/initialized"})
            + "\n"
            + json.dumps({"jsonrpc": "2.0", "id": 2, "method": "tools/call", "params": {"name": "premiere_status"}})
            + "\n"
        )
        stdout = io.StringIO()
        rc = await run_stdio(self.coord, stdin=stdin, stdout=stdout)
        self.assertEqual(rc, 0)

        frames = [json.loads(line) for line in stdout.getvalue().splitlines()]
        by_id = {f.get("id"): f for f in frames}
        self.assertEqual(len(frames), 3)
        self.assertEqual(by_id[1]["result"], {})
        self.assertEqual(by_id[None]["error"]["code"], -32700)
        self.assertIn("premiere_running", by_id[2]["result"]["content"][0]["text"])


class TestToolCalls(_McpCase):
    async def test_unknown_tool(self) -> None:
        res = await self.call("make_coffee")
        self.assertTrue(res["isError"])
        self.assertIn("unknown operation", res["content"][0]["text"])

    async def test_missing_required_argument(self) -> None:
        res = await self.call("render_frame", {})
        self.assertTrue(res["isError"])
        err = json.loads(res["content"][0]["text"])["error"]
        self.assertEqual(err["code"], "invalid_params")
        self.assertEqual(err["details"]["missing"], ["frame"])

    async def test_status_while_disconnected(self) -> None:
        res = await self.call("premiere_status")
        self.assertNotIn("isError", res)
        status = json.loads(res["content"][0]["text"])
        self.assertTrue(status["premiere_running"])
        self.assertEqual(status["premiere_pid"], 4242)
        self.assertFalse(status["cep_panel_connected"])
        self.assertIsNone(status["last_heartbeat_ago_ms"])
        self.assertIsNone(status["last_crash_time"])

    async def test_status_across_connect_and_crash(self) -> None:
        conn = self.attach_peer(lambda msg: {"success": True})
        self.coord.channel.receive(conn, json.dumps({"type": "heartbeat"}))
        status = json.loads((await self.call("premiere_status"))["content"][0]["text"])
        self.assertTrue(status["cep_panel_connected"])
        self.assertEqual(status["last_heartbeat_ago_ms"], 0)

        self.host.running = False
        self.coord.channel.detach(conn)
        await self.coord.monitor.wait_idle()

        status = json.loads((await self.call("premiere_status"))["content"][0]["text"])
        self.assertFalse(status["cep_panel_connected"])
        self.assertFalse(status["premiere_running"])
        self.assertTrue(status["last_crash_time"])

        res = await self.call("get_project_info")
        self.assertEqual(json.loads(res["content"][0]["text"])["error"]["code"], "not_connected")

    async def test_remote_tool_without_peer(self) -> None:
        res = await self.call("get_project_info")
        self.assertTrue(res["isError"])
        err = json.loads(res["content"][0]["text"])["error"]
        self.assertEqual(err["code"], "not_connected")

    async def test_remote_tool_forwards_params(self) -> None:
        conn = self.attach_peer(lambda msg: {"success": True, "param": msg["params"]["param"]})
        res = await self.call("set_effect_param", {"param": "blend", "value": 50})
        self.assertEqual(json.loads(res["content"][0]["text"]), {"success": True, "param": "blend"})
        self.assertEqual(conn.sent[0]["command"], "set_effect_param")
        self.assertEqual(conn.sent[0]["params"], {"param": "blend", "value": 50})

    async def test_remote_error_is_reported(self) -> None:
        from fakes import FakeConn, response_frame

        channel = self.coord.channel
        channel.attach(
            FakeConn(lambda conn, msg: channel.receive(conn, response_frame(msg["requestId"], None, "No clip selected")))
        )
        res = await self.call("apply_effect")
        self.assertTrue(res["isError"])
        self.assertIn("No clip selected", res["content"][0]["text"])

    async def test_single_image_result(self) -> None:
        self.attach_peer(lambda msg: {"success": True, "frame": 3, "image": "iVBORw0KGgo="})
        res = await self.call("render_frame", {"frame": 3})
        self.assertEqual(len(res["content"]), 2)
        summary = json.loads(res["content"][0]["text"])
        self.assertEqual(summary["image"], "(see image below)")
        self.assertEqual(res["content"][1], {"type": "image", "data": "iVBORw0KGgo=", "mimeType": "image/png"})

    async def test_multiple_image_result(self) -> None:
        self.attach_peer(lambda msg: {"success": True, "images": [{"frame": 0, "data": "AA=="}, {"frame": 2, "data": "BB=="}]})
        res = await self.call("render_frame_range", {"start": 0, "end": 2, "step": 2})
        self.assertEqual(json.loads(res["content"][0]["text"])["images"], "(2 images below)")
        self.assertEqual([b["data"] for b in res["content"][1:]], ["AA==", "BB=="])

    async def test_unexpected_exception_becomes_error_text(self) -> None:
        with patch(
            "premiere_bridge.daemon.ops.build_ops.build_plugin",
            new=AsyncMock(side_effect=RuntimeError("xcodebuild missing")),
        ):
            res = await self.call("build_plugin")
        self.assertTrue(res["isError"])
        self.assertEqual(res["content"][0]["text"], "Error: xcodebuild missing")

    async def test_debug_log_tail_and_clear(self) -> None:
        import dataclasses

        log = self.root / "debug.log"
        self.coord.state.config = dataclasses.replace(self.coord.config, plugin_debug_log=str(log))
        res = await self.call("get_plugin_debug_log")
        self.assertEqual(res["content"][0]["text"], "(no debug log file found)")

        log.write_text("one\ntwo\nthree", encoding="utf-8")
        res = await self.call("get_plugin_debug_log", {"lines": 2})
        self.assertEqual(res["content"][0]["text"], "two\nthree")

        await self.call("clear_plugin_debug_log")
        self.assertEqual(log.read_text(encoding="utf-8"), "")

    async def test_crash_log_sentinel(self) -> None:
        res = await self.call("get_last_crash_log")
        self.assertEqual(res["content"][0]["text"], "(no recent crash logs found)")


class TestSourceTools(_McpCase):
    async def test_read_and_edit(self) -> None:
        src = self.root / "MoshBrosh" / "Mac" / "MoshBrosh.cpp"
        src.parent.mkdir(parents=True)
        src.write_text("int blend = 100;\nint blend2 = 100;\n", encoding="utf-8")

        res = await self.call("read_source_file", {"file": "MoshBrosh/Mac/MoshBrosh.cpp"})
        self.assertIn("int blend = 100;", res["content"][0]["text"])

        res = await self.call(
            "edit_source_file", {"file": "MoshBrosh/Mac/MoshBrosh.cpp", "old_text": "100", "new_text": "50"}
        )
        self.assertTrue(json.loads(res["content"][0]["text"])["success"])
        self.assertEqual(src.read_text(encoding="utf-8"), "int blend = 50;\nint blend2 = 100;\n")

    async def test_edit_missing_text(self) -> None:
        (self.root / "a.txt").write_text("hello", encoding="utf-8")
        res = await self.call("edit_source_file", {"file": "a.txt", "old_text": "bye", "new_text": "x"})
        self.assertTrue(res["isError"])
        err = json.loads(res["content"][0]["text"])["error"]
        self.assertEqual(err["code"], "old_text_not_found")
        self.assertEqual(err["message"], "old_text not found in file")
        self.assertEqual((self.root / "a.txt").read_text(encoding="utf-8"), "hello")

    async def test_path_outside_project_is_rejected(self) -> None:
        res = await self.call("read_source_file", {"file": "../../etc/passwd"})
        self.assertTrue(res["isError"])
        self.assertEqual(json.loads(res["content"][0]["text"])["error"]["code"], "invalid_path")


if __name__ == "__main__":
    unittest.main()
