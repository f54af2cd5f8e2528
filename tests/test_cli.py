"""Tests for the command line interface."""

import json
import os
import shutil
import tempfile
import unittest

from click.testing import CliRunner

from packetreplay import __version__
from packetreplay.cli import cli
from packetreplay.codec import JsonFrameCodec
from packetreplay.dump import PacketDumpWriter
from packetreplay.generator.artifact import MANIFEST_FILE, SCRIPT_FILE


class TestCli(unittest.TestCase):
    """Test the generate and inspect commands."""

    def setUp(self):
        """Set up test fixtures."""
        self.runner = CliRunner()
        self.temp_dir = tempfile.mkdtemp()
        self.dump_file = os.path.join(self.temp_dir, "capture.bin")
        self.output_dir = os.path.join(self.temp_dir, "replay")

        codec = JsonFrameCodec("json")
        with PacketDumpWriter(self.dump_file, "json") as writer:
            writer.write_clientbound(codec.encode("resource_packs_info", {}), timestamp_ms=0)
            writer.write_serverbound(codec.encode("resource_pack_client_response", {}), timestamp_ms=4)
            writer.write_clientbound(codec.encode("start_game", {"runtime_entity_id": 1}), timestamp_ms=5)
            writer.write_clientbound(codec.encode("level_chunk", {"x": 0}), timestamp_ms=6)
            writer.write_clientbound(codec.encode("level_chunk", {"x": 1}), timestamp_ms=60)

    def tearDown(self):
        """Tear down test fixtures."""
        shutil.rmtree(self.temp_dir)

    def test_version(self):
        result = self.runner.invoke(cli, ["--version"])
        self.assertEqual(result.exit_code, 0)
        self.assertIn(__version__, result.output)

    def test_generate(self):
        result = self.runner.invoke(cli, ["generate", self.dump_file, "-o", self.output_dir])

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Generated 4 catalog entries", result.output)
        self.assertTrue(os.path.exists(os.path.join(self.output_dir, MANIFEST_FILE)))
        self.assertTrue(os.path.exists(os.path.join(self.output_dir, SCRIPT_FILE)))

    def test_generate_bedrock_profile(self):
        result = self.runner.invoke(
            cli, ["generate", self.dump_file, "-o", self.output_dir, "--profile", "bedrock"]
        )

        self.assertEqual(result.exit_code, 0, result.output)
        with open(os.path.join(self.output_dir, SCRIPT_FILE)) as f:
            lines = [line for line in f.read().splitlines() if not line.startswith("#")]
        self.assertEqual(lines, [
            "sleep 200",
            "write resource_packs_info",
            "wait_for resource_pack_client_response",
            "queue start_game",
        ])

    def test_generate_overrides(self):
        result = self.runner.invoke(cli, [
            "generate", self.dump_file, "-o", self.output_dir,
            "--initial-sleep", "50", "--sleep-threshold", "100",
        ])

        self.assertEqual(result.exit_code, 0, result.output)
        with open(os.path.join(self.output_dir, SCRIPT_FILE)) as f:
            lines = [line for line in f.read().splitlines() if not line.startswith("#")]
        self.assertEqual(lines[0], "sleep 50")
        self.assertNotIn("sleep 50", lines[1:])

    def test_generate_config_file(self):
        config_file = os.path.join(self.temp_dir, "tables.json")
        with open(config_file, "w") as f:
            json.dump({"skip_packets": ["level_chunk", "start_game"]}, f)

        result = self.runner.invoke(
            cli, ["generate", self.dump_file, "-o", self.output_dir, "--config", config_file]
        )
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Generated 1 catalog entries", result.output)

    def test_generate_bad_config(self):
        config_file = os.path.join(self.temp_dir, "tables.json")
        with open(config_file, "w") as f:
            json.dump({"no_such_setting": 1}, f)

        result = self.runner.invoke(
            cli, ["generate", self.dump_file, "-o", self.output_dir, "--config", config_file]
        )
        self.assertEqual(result.exit_code, 2)
        self.assertIn("no_such_setting", result.output)

    def test_generate_invalid_override(self):
        result = self.runner.invoke(cli, ["generate", self.dump_file, "--sleep-granularity", "0"])
        self.assertEqual(result.exit_code, 2)

    def test_generate_dry_run(self):
        result = self.runner.invoke(cli, ["generate", self.dump_file, "-o", self.output_dir, "--dry-run"])

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Dry run", result.output)
        self.assertIn("packets/start_game.json", result.output)
        self.assertFalse(os.path.exists(self.output_dir))

    def test_generate_corrupt_dump(self):
        corrupt = os.path.join(self.temp_dir, "corrupt.bin")
        with open(corrupt, "wb") as f:
            f.write(b"")

        result = self.runner.invoke(cli, ["generate", corrupt, "-o", self.output_dir])
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Invalid dump file", result.output)

    def test_generate_nothing_to_send(self):
        config_file = os.path.join(self.temp_dir, "tables.json")
        with open(config_file, "w") as f:
            json.dump({"skip_packets": ["resource_packs_info", "start_game", "level_chunk"]}, f)

        result = self.runner.invoke(
            cli, ["generate", self.dump_file, "-o", self.output_dir, "--config", config_file]
        )
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("sends no packets", result.output)

    def test_generate_missing_file(self):
        result = self.runner.invoke(cli, ["generate", os.path.join(self.temp_dir, "missing.bin")])
        self.assertEqual(result.exit_code, 2)

    def test_inspect(self):
        result = self.runner.invoke(cli, ["inspect", self.dump_file])

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Protocol version: json", result.output)
        self.assertIn("resource_pack_client_response", result.output)
        self.assertIn("5 frames", result.output)

    def test_inspect_filters(self):
        result = self.runner.invoke(cli, ["inspect", self.dump_file, "--direction", "S"])
        self.assertIn("1 frames", result.output)
        self.assertNotIn("start_game", result.output)

        result = self.runner.invoke(cli, ["inspect", self.dump_file, "--limit", "2"])
        self.assertIn("2 frames", result.output)
        self.assertNotIn("level_chunk", result.output)

    def test_inspect_summary(self):
        result = self.runner.invoke(cli, ["inspect", self.dump_file, "--summary"])

        self.assertEqual(result.exit_code, 0, result.output)
        lines = result.output.splitlines()
        self.assertEqual(lines[1].split(), ["2", "C", "level_chunk"])


if __name__ == "__main__":
    unittest.main()
