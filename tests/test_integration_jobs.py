import contextlib
import io
import json
import tempfile
import unittest
from pathlib import Path

from calibration.errors import InvalidInput
from probpilot.jobs.cli import main
from probpilot.jobs.forecast import run_assistant, run_forecast
from probpilot.jobs.history import run_history

PAYLOAD = {
    "marketId": "cpi-march",
    "marketTitle": "Will March CPI print above 3%?",
    "marketProb": 0.4,
    "spread": 0.01,
    "tags": ["macro"],
    "evidence": [
        {
            "id": "e1",
            "url": "https://www.reuters.com/markets/cpi",
            "title": "Economists see hotter CPI",
            "stance": "supports",
            "reliability": 90,
            "stanceConfidence": 80,
        },
        {
            "id": "e2",
            "url": "https://blog.example.com/cpi",
            "title": "Disinflation continues",
            "stance": "contradicts",
            "reliability": 40,
            "stanceConfidence": 50,
        },
    ],
}


class _ScriptedTransport:
    def __init__(self, content: str) -> None:
        self.content = content
        self.calls = 0

    async def invoke(self, system_prompt: str, user_payload: str) -> str:
        self.calls += 1
        return self.content


class JobsIntegrationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        root = Path(self.tmp.name)
        self.db_path = root / "runs.sqlite3"
        self.config_path = root / "probpilot.toml"
        self.config_path.write_text(
            f'history_db_path = "{self.db_path.as_posix()}"\n'
            'log_level = "WARNING"\n\n'
            "[assistant]\n"
            'provider = "dry_run"\n',
            encoding="utf-8",
        )
        self.payload_path = root / "request.json"
        self.payload_path.write_text(json.dumps(PAYLOAD), encoding="utf-8")

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def test_deterministic_forecast_and_history(self) -> None:
        record = run_forecast(PAYLOAD, config_path=str(self.config_path), save=True)
        self.assertEqual(record["marketId"], "cpi-march")
        self.assertGreater(record["modelProb"], 0.4)
        self.assertIn("Spread 1.0pp", record["summary"])

        history = run_history(config_path=str(self.config_path), market_id="cpi-march")
        self.assertIn("| cpi-march | deterministic |", history)

    def test_assistant_forecast_dry_run(self) -> None:
        record = run_assistant(PAYLOAD, config_path=str(self.config_path), save=True)
        self.assertLessEqual(abs(record["modelProb"] - record["marketProb"]), record["maxShift"] + 1e-12)
        self.assertIsNone(record["fallbackReason"])
        self.assertEqual(record["notes"], "dry-run assistant")

        history = run_history(config_path=str(self.config_path))
        self.assertIn("| cpi-march | assistant |", history)

    def test_assistant_forecast_with_injected_transport(self) -> None:
        transport = _ScriptedTransport("the model could not answer")
        record = run_assistant(PAYLOAD, config_path=str(self.config_path), transport=transport)
        self.assertEqual(transport.calls, 1)
        self.assertEqual(record["modelProb"], 0.4)
        self.assertTrue(record["fallbackReason"].startswith("AssistantUnavailable"))
        self.assertEqual([d["id"] for d in record["topDrivers"]], ["e1", "e2"])

    def test_invalid_request(self) -> None:
        with self.assertRaises(InvalidInput):
            run_forecast({"marketId": "x"}, config_path=str(self.config_path))

    def test_history_empty(self) -> None:
        self.assertEqual(run_history(config_path=str(self.config_path)), "No forecast runs recorded yet.")


class CliTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        root = Path(self.tmp.name)
        self.config_path = root / "probpilot.toml"
        self.config_path.write_text(
            f'history_db_path = "{(root / "runs.sqlite3").as_posix()}"\nlog_level = "WARNING"\n',
            encoding="utf-8",
        )
        self.payload_path = root / "request.json"
        self.payload_path.write_text(json.dumps(PAYLOAD), encoding="utf-8")
        self.bad_path = root / "bad.json"
        self.bad_path.write_text("{not json", encoding="utf-8")

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def _main(self, *argv: str) -> tuple[int, str, str]:
        out, err = io.StringIO(), io.StringIO()
        with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
            code = main(list(argv))
        return code, out.getvalue(), err.getvalue()

    def test_forecast_command(self) -> None:
        code, out, _ = self._main("forecast", "--config", str(self.config_path), "--input", str(self.payload_path))
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out)["marketId"], "cpi-march")

    def test_assistant_command_dry_run_and_history(self) -> None:
        code, out, _ = self._main(
            "assistant_forecast",
            "--config",
            str(self.config_path),
            "--input",
            str(self.payload_path),
            "--dry-run",
            "--save",
        )
        self.assertEqual(code, 0)
        self.assertIn("maxShift", json.loads(out))

        code, out, _ = self._main("history", "--config", str(self.config_path), "--market-id", "cpi-march")
        self.assertEqual(code, 0)
        self.assertIn("assistant", out)

    def test_invalid_json_exits_with_error(self) -> None:
        code, out, err = self._main("forecast", "--config", str(self.config_path), "--input", str(self.bad_path))
        self.assertEqual(code, 2)
        self.assertEqual(out, "")
        self.assertIn("error", json.loads(err.strip().splitlines()[-1]))
