"""
Tests for the replay package: connections, per-session packet data, terrain,
the replay executor and dump playback.
"""

import asyncio
import os
import shutil
import tempfile
import unittest

from packetreplay.codec import JsonFrameCodec
from packetreplay.dump import PacketDumpReader, PacketDumpWriter
from packetreplay.exceptions import ConnectionClosedError, ReplayTimeoutError
from packetreplay.generator.artifact import ArtifactWriter, ReplayArtifact
from packetreplay.models import (
    CLIENTBOUND,
    SERVERBOUND,
    CatalogEntry,
    GenerationResult,
    LevelChunks,
    PacketFrame,
    Queue,
    Sleep,
    WaitFor,
    Write,
)
from packetreplay.replay import (
    DumpPlayer,
    InventoryLayout,
    MockConnection,
    PacketData,
    ReplayExecutor,
    ReplaySession,
    SubchunkResponder,
    TerrainProfile,
    spiral_coordinates,
)
from packetreplay.replay.terrain import LEVEL_CHUNK_PAYLOAD, SUBCHUNK_PAYLOADS

CODEC = JsonFrameCodec("json")


def make_catalog():
    return {
        "resource_packs_info": CatalogEntry("resource_packs_info", "resource_packs_info", params={"must_accept": False}),
        "start_game": CatalogEntry("start_game", "start_game", params={"runtime_entity_id": 1, "spawn": [0, 64, 0]}),
        "set_time": CatalogEntry("set_time", "set-time", params={"time": 6000}),
        "inventory_content": CatalogEntry(
            "inventory_content", "inventory_content",
            params={"window_id": "inventory", "input": [{"network_id": 0} for _ in range(3)]},
        ),
        "inventory_content_2": CatalogEntry(
            "inventory_content_2", "inventory_content",
            params={"window_id": "armor", "input": [{"network_id": 0} for _ in range(4)]},
        ),
        "inventory_content_4": CatalogEntry(
            "inventory_content_4", "inventory_content",
            params={"window_id": "offhand", "input": [{"network_id": 0}]},
        ),
        "crafting_data": CatalogEntry(
            "crafting_data", "crafting_data", is_binary=True,
            raw=CODEC.encode("crafting_data", {"recipes": [1, 2]}),
        ),
    }


def respond_with(name):
    return lambda params: (name, {})


class TestMockConnection(unittest.TestCase):
    """Test the network-free connection."""

    def test_records_sends(self):
        connection = MockConnection()
        connection.write("a", {"x": 1})
        connection.queue("b", {})

        self.assertEqual(connection.sent_names(), ["a", "b"])
        self.assertEqual([p.immediate for p in connection.sent_packets], [True, False])
        self.assertEqual([p.name for p in connection.queued_packets], ["b"])
        self.assertEqual(connection.get_packets("a")[0].params, {"x": 1})

        connection.clear()
        self.assertEqual(connection.sent_packets, [])
        self.assertEqual(connection.queued_packets, [])

    def test_events(self):
        connection = MockConnection()
        seen = []
        connection.on("text", lambda params: seen.append(("text", params)))
        connection.once("packet", lambda name, params: seen.append(("once", name)))

        connection.inject("text", {"m": 1})
        connection.inject("text")

        self.assertEqual(seen, [("text", {"m": 1}), ("once", "text"), ("text", {})])
        self.assertEqual(connection.listener_count("packet"), 0)

    def test_once_can_be_removed(self):
        connection = MockConnection()

        def callback(params):
            pass

        connection.once("text", callback)
        connection.remove_listener("text", callback)
        self.assertEqual(connection.listener_count("text"), 0)

    def test_auto_responder(self):
        connection = MockConnection()
        received = []
        connection.on("packet", lambda name, params: received.append(name))
        connection.set_auto_responder("ping", lambda params: ("pong", {"echo": params["n"]}))
        connection.set_auto_responder("quiet", lambda params: None)

        connection.write("ping", {"n": 3})
        connection.write("quiet", {})
        self.assertEqual(received, ["pong"])

        connection.remove_auto_responder("ping")
        connection.write("ping", {"n": 4})
        self.assertEqual(received, ["pong"])

    def test_closed_connection(self):
        connection = MockConnection()
        reasons = []
        connection.on("close", reasons.append)
        connection.close("kicked")
        connection.close("again")

        self.assertTrue(connection.closed)
        self.assertEqual(reasons, ["kicked"])
        with self.assertRaises(ConnectionClosedError):
            connection.write("a", {})

        # Packets after close are dropped
        seen = []
        connection.on("packet", lambda name, params: seen.append(name))
        connection.inject("late")
        self.assertEqual(seen, [])

    def test_validation(self):
        with self.assertRaises(ValueError):
            MockConnection(validate=True)

        connection = MockConnection(codec=CODEC, validate=True)
        connection.write("a", {"pair": (1, 2)})
        self.assertEqual(connection.sent_packets[0].params, {"pair": [1, 2]})


class TestPacketData(unittest.TestCase):
    """Test the per-session mutation surface."""

    def setUp(self):
        """Set up test fixtures."""
        self.catalog = make_catalog()
        self.data = PacketData(self.catalog, codec=CODEC)

    def test_params_are_copies(self):
        params = self.data.params("start_game")
        params["runtime_entity_id"] = 42
        params["spawn"][1] = 100

        self.assertIs(self.data.params("start_game"), params)
        self.assertEqual(self.catalog["start_game"].params, {"runtime_entity_id": 1, "spawn": [0, 64, 0]})

    def test_source_name(self):
        self.assertEqual(self.data.source_name("set_time"), "set-time")
        self.assertIn("set_time", self.data)
        with self.assertRaises(KeyError):
            self.data.params("ghost")

    def test_update_patch_replace_reset(self):
        self.data.update("set_time", time=1000)
        self.assertEqual(self.data.params("set_time"), {"time": 1000})

        self.data.patch("set_time", lambda params: params.update(day=2))
        self.assertEqual(self.data.params("set_time"), {"time": 1000, "day": 2})

        self.data.patch("set_time", lambda params: {"time": 0})
        self.assertEqual(self.data.params("set_time"), {"time": 0})

        self.data.replace("set_time", {"time": 5})
        self.assertEqual(self.data.params("set_time"), {"time": 5})

        self.data.reset("set_time")
        self.assertEqual(self.data.params("set_time"), {"time": 6000})

        with self.assertRaises(KeyError):
            self.data.replace("ghost", {})

    def test_binary_entries(self):
        self.assertEqual(self.data.params("crafting_data"), {"recipes": [1, 2]})

        without_codec = PacketData(self.catalog)
        with self.assertRaises(ValueError):
            without_codec.params("crafting_data")

        self.data.update("crafting_data", recipes=[])
        self.assertEqual(self.data.params("crafting_data"), {"recipes": []})
        self.data.replace("crafting_data", ["not", "a", "mapping"])
        with self.assertRaises(TypeError):
            self.data.update("crafting_data", recipes=[])

    def test_inventory_helpers(self):
        sword = {"network_id": 300, "count": 1}
        self.data.set_inventory_item(5, sword)
        items = self.data.params("inventory_content")["input"]
        self.assertEqual(len(items), 6)
        self.assertEqual(items[5], sword)
        self.assertEqual(items[4], {"network_id": 0})

        self.data.set_inventory_item(5)
        self.assertEqual(items[5], {"network_id": 0})

        with self.assertRaises(IndexError):
            self.data.set_inventory_item(36, sword)

        self.data.clear_inventory()
        self.assertEqual(len(self.data.params("inventory_content")["input"]), 36)

        helmet = {"network_id": 400}
        self.data.set_armor_slot(0, helmet)
        self.assertEqual(self.data.params("inventory_content_2")["input"][0], helmet)

        shield = {"network_id": 355}
        self.data.set_offhand_slot(shield)
        self.assertEqual(self.data.params("inventory_content_4")["input"], [shield])

        # Shared catalog untouched
        self.assertEqual(len(self.catalog["inventory_content"].params["input"]), 3)

    def test_custom_layout(self):
        layout = InventoryLayout(inventory_export="start_game", items_field="spawn", inventory_size=3)
        data = PacketData(self.catalog, layout=layout)
        data.set_inventory_item(2, {"network_id": 1})
        self.assertEqual(data.params("start_game")["spawn"], [0, 64, {"network_id": 1}])

        # set_time has no item list
        data = PacketData(self.catalog, layout=InventoryLayout(offhand_export="set_time"))
        with self.assertRaises(TypeError):
            data.set_offhand_slot({"network_id": 1})


class TestTerrain(unittest.TestCase):
    """Test synthetic terrain."""

    def test_spiral_coordinates(self):
        self.assertEqual(list(spiral_coordinates(0)), [(0, 0)])
        self.assertEqual(list(spiral_coordinates(1)), [
            (0, 0),
            (-1, 0), (1, 0), (0, -1), (0, 1),
            (-1, -1), (-1, 1), (1, -1), (1, 1),
        ])

        coords = list(spiral_coordinates(6))
        self.assertEqual(len(coords), 13 * 13)
        self.assertEqual(len(set(coords)), 13 * 13)
        rings = [max(abs(x), abs(z)) for x, z in coords]
        self.assertEqual(rings, sorted(rings))

    def test_level_chunks(self):
        chunks = list(TerrainProfile().level_chunks(1))
        self.assertEqual(len(chunks), 9)
        self.assertEqual(chunks[0], {
            "dimension": 0,
            "sub_chunk_count": -2,
            "highest_subchunk_count": 3,
            "cache_enabled": False,
            "x": 0,
            "z": 0,
            "payload": LEVEL_CHUNK_PAYLOAD,
        })
        self.assertEqual((chunks[1]["x"], chunks[1]["z"]), (-1, 0))

    def test_subchunk_payloads(self):
        self.assertEqual(len(SUBCHUNK_PAYLOADS[-4]), 4 + 512 + 11)
        self.assertEqual(SUBCHUNK_PAYLOADS[-3], bytes.fromhex("0901fd01bdc7f7fc0f"))
        self.assertEqual(len(SUBCHUNK_PAYLOADS[-1]), 4 + 1024 + 16)

    def test_subchunk_responder(self):
        connection = MockConnection()
        responder = SubchunkResponder(connection, TerrainProfile())
        responder.install()
        responder.install()

        connection.inject("subchunk_request", {
            "dimension": 0,
            "origin": {"x": 1, "y": 2, "z": 3},
            "requests": [{"dx": 0, "dy": -2, "dz": 0}, {"dx": 0, "dy": 4, "dz": 0}],
        })
        connection.inject("subchunk_request", "malformed")

        self.assertEqual(responder.responses, 1)
        response = connection.get_packets("subchunk")[0]
        self.assertTrue(response.immediate)
        self.assertEqual(response.params["origin"], {"x": 1, "y": 2, "z": 3})
        first, second = response.params["entries"]
        self.assertEqual(first["payload"], SUBCHUNK_PAYLOADS[-2])
        self.assertEqual(first["result"], "success")
        self.assertEqual(first["heightmap_type"], "too_high")
        self.assertEqual(second["result"], "y_index_out_of_bounds")

        responder.uninstall()
        self.assertEqual(connection.listener_count("subchunk_request"), 0)


class TestReplaySession(unittest.IsolatedAsyncioTestCase):
    """Test executing action scripts."""

    def setUp(self):
        """Set up test fixtures."""
        self.catalog = make_catalog()
        self.connection = MockConnection()

    def session(self, script, **kwargs):
        data = kwargs.pop("data", None) or PacketData(self.catalog, codec=CODEC)
        return ReplaySession(self.connection, data, script, **kwargs)

    async def test_write_and_queue(self):
        session = self.session([Write("resource_packs_info"), Queue("set_time"), Queue("crafting_data")])
        sent = await session.run()

        self.assertEqual(sent, 3)
        self.assertTrue(session.done)
        self.assertEqual(session.position, 3)
        self.assertEqual(self.connection.sent_names(), ["resource_packs_info", "set-time", "crafting_data"])
        self.assertEqual([p.immediate for p in self.connection.sent_packets], [True, False, False])
        self.assertEqual(self.connection.sent_packets[2].params, {"recipes": [1, 2]})

    async def test_wait_for_already_arrived(self):
        """A response delivered while sending satisfies the following WaitFor."""
        self.connection.set_auto_responder("resource_packs_info", respond_with("resource_pack_client_response"))
        session = self.session([
            Write("resource_packs_info"),
            WaitFor("resource_pack_client_response"),
            Queue("start_game"),
        ], wait_timeout=1.0)

        await session.run()
        self.assertEqual(self.connection.sent_names(), ["resource_packs_info", "start_game"])

    async def test_wait_for_later_arrival(self):
        loop = asyncio.get_running_loop()
        loop.call_later(0.02, self.connection.inject, "resource_pack_client_response", {})
        session = self.session([WaitFor("resource_pack_client_response"), Queue("start_game")], wait_timeout=2.0)

        await session.run()
        self.assertTrue(session.done)
        self.assertEqual(self.connection.listener_count("packet"), 0)

    async def test_each_arrival_is_consumed_once(self):
        self.connection.set_auto_responder("resource_packs_info", respond_with("ack"))
        session = self.session(
            [Write("resource_packs_info"), WaitFor("ack"), WaitFor("ack")],
            wait_timeout=0.05,
        )

        with self.assertRaises(ReplayTimeoutError) as ctx:
            await session.run()
        self.assertEqual(ctx.exception.packet_name, "ack")
        self.assertEqual(ctx.exception.position, 2)
        self.assertEqual(session.position, 2)
        self.assertFalse(session.done)

    async def test_timeout_cleans_up(self):
        session = self.session([WaitFor("never")], wait_timeout=0.05)

        with self.assertRaises(ReplayTimeoutError):
            await session.run()
        self.assertEqual(self.connection.listener_count("packet"), 0)
        self.assertEqual(self.connection.listener_count("close"), 0)
        self.assertEqual(self.connection.listener_count("subchunk_request"), 0)
        self.assertEqual(session._waiters, {})

    async def test_sleep(self):
        loop = asyncio.get_running_loop()
        session = self.session([Sleep(50), Queue("start_game")])

        started = loop.time()
        await session.run()
        self.assertGreaterEqual(loop.time() - started, 0.04)
        self.assertEqual(self.connection.sent_names(), ["start_game"])

    async def test_close_interrupts_sleep(self):
        loop = asyncio.get_running_loop()
        loop.call_later(0.02, self.connection.close, "bye")
        session = self.session([Sleep(10000), Queue("start_game")])

        started = loop.time()
        with self.assertRaises(ConnectionClosedError):
            await session.run()
        self.assertLess(loop.time() - started, 5)
        self.assertEqual(self.connection.sent_names(), [])

    async def test_close_interrupts_wait(self):
        loop = asyncio.get_running_loop()
        loop.call_later(0.02, self.connection.close, "bye")
        session = self.session([WaitFor("never")], wait_timeout=10.0)

        with self.assertRaises(ConnectionClosedError):
            await session.run()

    async def test_abort(self):
        loop = asyncio.get_running_loop()
        session = self.session([WaitFor("never"), Queue("start_game")], wait_timeout=10.0)
        loop.call_later(0.02, session.abort, "test over")

        with self.assertRaises(ConnectionClosedError) as ctx:
            await session.run()
        self.assertIn("test over", str(ctx.exception))
        self.assertEqual(self.connection.sent_names(), [])

    async def test_closed_before_start(self):
        self.connection.close("gone")
        with self.assertRaises(ConnectionClosedError):
            await self.session([Queue("start_game")]).run()

    async def test_level_chunks(self):
        session = self.session([LevelChunks(2)])
        sent = await session.run()

        chunks = self.connection.get_packets("level_chunk")
        self.assertEqual(sent, 25)
        self.assertEqual(len(chunks), 25)
        self.assertFalse(chunks[0].immediate)
        self.assertEqual((chunks[0].params["x"], chunks[0].params["z"]), (0, 0))

    async def test_subchunk_requests_answered_while_running(self):
        loop = asyncio.get_running_loop()
        loop.call_later(0.01, self.connection.inject, "subchunk_request", {"requests": [{"dx": 0, "dy": -1, "dz": 0}]})
        loop.call_later(0.02, self.connection.inject, "ack", {})
        session = self.session([WaitFor("ack")], wait_timeout=2.0)

        await session.run()
        response = self.connection.get_packets("subchunk")[0]
        self.assertEqual(response.params["entries"][0]["payload"], SUBCHUNK_PAYLOADS[-1])

        # Responder removed after the run
        self.connection.inject("subchunk_request", {"requests": []})
        self.assertEqual(len(self.connection.get_packets("subchunk")), 1)

    async def test_mutation_applies_to_every_reference(self):
        data = PacketData(self.catalog)
        data.update("start_game", runtime_entity_id=99)
        await self.session([Queue("start_game"), Queue("start_game")], data=data).run()

        ids = [p.params["runtime_entity_id"] for p in self.connection.sent_packets]
        self.assertEqual(ids, [99, 99])
        self.assertEqual(self.catalog["start_game"].params["runtime_entity_id"], 1)

    async def test_cannot_run_twice_concurrently(self):
        session = self.session([WaitFor("never")], wait_timeout=0.2)
        task = asyncio.ensure_future(session.run())
        await asyncio.sleep(0)

        with self.assertRaises(RuntimeError):
            await session.run()
        session.abort()
        with self.assertRaises(ConnectionClosedError):
            await task

    async def test_invalid_timeout(self):
        with self.assertRaises(ValueError):
            self.session([], wait_timeout=0)


class TestReplayExecutor(unittest.IsolatedAsyncioTestCase):
    """Test running sessions from a shared artifact."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        script = [
            Write("resource_packs_info"),
            WaitFor("resource_pack_client_response"),
            Queue("start_game"),
            Queue("crafting_data"),
        ]
        result = GenerationResult("json", make_catalog(), script)
        ArtifactWriter(self.temp_dir).write(result)

    def tearDown(self):
        """Tear down test fixtures."""
        shutil.rmtree(self.temp_dir)

    def client(self):
        connection = MockConnection()
        connection.set_auto_responder("resource_packs_info", respond_with("resource_pack_client_response"))
        return connection

    async def test_from_directory(self):
        executor = ReplayExecutor.from_directory(self.temp_dir, wait_timeout=1.0)
        self.assertIsInstance(executor.codec, JsonFrameCodec)

        connection = self.client()
        sent = await executor.replay(connection)

        self.assertEqual(sent, 3)
        self.assertEqual(connection.sent_names(), ["resource_packs_info", "start_game", "crafting_data"])
        self.assertEqual(connection.sent_packets[2].params, {"recipes": [1, 2]})

    async def test_sessions_are_isolated(self):
        """Concurrent sessions share the catalog but not their mutations."""
        executor = ReplayExecutor.from_directory(self.temp_dir, wait_timeout=1.0)
        first, second = self.client(), self.client()

        data = executor.packet_data()
        data.update("start_game", runtime_entity_id=42)

        await asyncio.gather(executor.replay(first, data), executor.replay(second))

        self.assertEqual(first.get_packets("start_game")[0].params["runtime_entity_id"], 42)
        self.assertEqual(second.get_packets("start_game")[0].params["runtime_entity_id"], 1)
        self.assertEqual(executor.artifact.catalog["start_game"].params["runtime_entity_id"], 1)

    async def test_one_failing_session_does_not_affect_another(self):
        executor = ReplayExecutor.from_directory(self.temp_dir, wait_timeout=0.05)
        silent = MockConnection()

        results = await asyncio.gather(
            executor.replay(silent),
            executor.replay(self.client()),
            return_exceptions=True,
        )
        self.assertIsInstance(results[0], ReplayTimeoutError)
        self.assertEqual(results[1], 3)

    def test_unknown_version_without_binary_entries(self):
        artifact = ReplayArtifact("1.21.130", {"a": CatalogEntry("a", "a", params={})}, [Queue("a")])
        self.assertIsNone(ReplayExecutor(artifact).codec)


class TestDumpPlayer(unittest.IsolatedAsyncioTestCase):
    """Test feeding recorded frames into a connection."""

    def setUp(self):
        """Set up test fixtures."""
        self.frames = [
            PacketFrame(CLIENTBOUND, 1000, "start_game", {"runtime_entity_id": 1}, b""),
            PacketFrame(SERVERBOUND, 1010, "request_chunk_radius", {"radius": 4}, b""),
            PacketFrame(CLIENTBOUND, 1020, None, None, b"\x00"),
            PacketFrame(CLIENTBOUND, 1040, "set_time", {"time": 1}, b""),
        ]
        self.connection = MockConnection()
        self.received = []
        self.connection.on("packet", lambda name, params: self.received.append(name))

    async def test_play_clientbound(self):
        player = DumpPlayer(self.frames, self.connection)
        loop = asyncio.get_running_loop()

        started = loop.time()
        count = await player.play()

        self.assertEqual(count, 2)
        self.assertEqual(self.received, ["start_game", "set_time"])
        self.assertEqual(player.skipped, 1)
        self.assertGreaterEqual(loop.time() - started, 0.03)

    async def test_play_serverbound_without_delay(self):
        player = DumpPlayer(self.frames, self.connection, direction=SERVERBOUND, skip_delay=True)
        self.assertEqual(await player.play(), 1)
        self.assertEqual(self.received, ["request_chunk_radius"])

    async def test_stops_when_closed(self):
        self.connection.close("bye")
        self.assertEqual(await DumpPlayer(self.frames, self.connection, skip_delay=True).play(), 0)

    def test_invalid_direction(self):
        with self.assertRaises(ValueError):
            DumpPlayer(self.frames, self.connection, direction="X")

    async def test_play_from_dump_file(self):
        temp_dir = tempfile.mkdtemp()
        try:
            path = os.path.join(temp_dir, "capture.bin")
            with PacketDumpWriter(path, "json") as writer:
                writer.write_clientbound(CODEC.encode("a", {}), timestamp_ms=0)
                writer.write_clientbound(CODEC.encode("b", {}), timestamp_ms=5)
            with PacketDumpReader(path) as reader:
                count = await DumpPlayer(reader, self.connection).play()
        finally:
            shutil.rmtree(temp_dir)

        self.assertEqual(count, 2)
        self.assertEqual(self.received, ["a", "b"])


if __name__ == "__main__":
    unittest.main()
