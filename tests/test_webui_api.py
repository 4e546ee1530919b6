from __future__ import annotations

import unittest

from fastapi.testclient import TestClient

from bfasm import AsmCompiler, preprocess
from bfasm.webui import create_app


class ProgramApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = TestClient(create_app())

    def test_preprocess_returns_operations(self) -> None:
        response = self.client.post("/api/preprocess", json={"code": "[]"})
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(
            response.json()["operations"],
            [
                {"index": 0, "kind": "JUMP_IF_ZERO", "value": 1},
                {"index": 1, "kind": "JUMP_IF_NOT_ZERO", "value": 0},
            ],
        )

    def test_preprocess_rejects_unbalanced_program(self) -> None:
        response = self.client.post("/api/preprocess", json={"code": "+]"})
        self.assertEqual(response.status_code, 422, response.text)
        self.assertEqual(response.json()["detail"]["position"], 1)

    def test_run_returns_output(self) -> None:
        response = self.client.post(
            "/api/run",
            json={"code": "++++++++[>++++++++<-]>.", "tape_size": 2},
        )
        self.assertEqual(response.status_code, 200, response.text)
        payload = response.json()
        self.assertEqual(payload["output_bytes"], [64])
        self.assertEqual(payload["output"], "@")
        self.assertGreater(payload["steps"], 0)

    def test_run_reads_input(self) -> None:
        response = self.client.post(
            "/api/run",
            json={"code": ",.,.", "input": " x y", "skip_whitespace": True},
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["output"], "xy")

    def test_run_step_limit_conflict(self) -> None:
        response = self.client.post("/api/run", json={"code": "+[]", "max_steps": 100})
        self.assertEqual(response.status_code, 409, response.text)

    def test_run_rejects_unbalanced_program(self) -> None:
        response = self.client.post("/api/run", json={"code": "["})
        self.assertEqual(response.status_code, 422, response.text)

    def test_run_validates_tape_size(self) -> None:
        response = self.client.post("/api/run", json={"code": "+", "tape_size": 0})
        self.assertEqual(response.status_code, 422, response.text)

    def test_run_rejects_oversized_tape(self) -> None:
        response = self.client.post("/api/run", json={"code": "+", "tape_size": 10**12})
        self.assertEqual(response.status_code, 422, response.text)

    def test_session_rejects_oversized_tape(self) -> None:
        response = self.client.post("/api/session", json={"code": "+", "tape_size": 10**12})
        self.assertEqual(response.status_code, 422, response.text)

    def test_run_reports_step_count(self) -> None:
        response = self.client.post("/api/run", json={"code": "++[-]"})
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["steps"], 6)

    def test_run_encodes_input_as_latin1(self) -> None:
        response = self.client.post("/api/run", json={"code": ",.", "input": "é"})
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["output_bytes"], [0xE9])

    def test_compile_returns_assembly(self) -> None:
        response = self.client.post(
            "/api/compile",
            json={"code": "[]", "buffer_size": 100, "comments": False},
        )
        self.assertEqual(response.status_code, 200, response.text)
        assembly = response.json()["assembly"]
        self.assertEqual(assembly, AsmCompiler(buffer_size=100, comments=False).emit(preprocess("[]")))
        self.assertIn("je op1\nop0:\n", assembly)


class SessionApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = TestClient(create_app())

    def _create_session(self, *, code: str = ".", **payload):
        body = {"code": code}
        body.update(payload)
        response = self.client.post("/api/session", json=body)
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()

    def test_create_session_returns_initial_state(self) -> None:
        data = self._create_session(code="+>.", input="A")
        self.assertIn("session_id", data)
        self.assertEqual(len(data["operations"]), 3)
        self.assertEqual(len(data["history"]), data["history_size"])
        self.assertEqual(data["state"]["step"], 0)
        self.assertIsNone(data["state"]["kind"])
        self.assertFalse(data["finished"])

    def test_create_session_rejects_unbalanced_program(self) -> None:
        response = self.client.post("/api/session", json={"code": "[["})
        self.assertEqual(response.status_code, 422, response.text)

    def test_step_advances_state(self) -> None:
        data = self._create_session(code="+>+.")
        session_id = data["session_id"]

        response = self.client.post(f"/api/session/{session_id}/step", json={"count": 2})
        self.assertEqual(response.status_code, 200, response.text)
        payload = response.json()
        self.assertEqual(len(payload["states"]), 2)
        self.assertEqual(payload["states"][0]["kind"], "INCREMENT_VALUE")
        self.assertEqual(payload["states"][1]["pointer"], 1)
        self.assertEqual(payload["history"][-1]["step"], 2)
        self.assertFalse(payload["finished"])

    def test_reset_restores_initial_state_and_clears_breakpoints(self) -> None:
        data = self._create_session(code="+>+")
        session_id = data["session_id"]
        self.client.post(f"/api/session/{session_id}/breakpoints", json={"pc": 1})
        self.client.post(f"/api/session/{session_id}/step", json={"count": 1})

        response = self.client.post(f"/api/session/{session_id}/reset")
        self.assertEqual(response.status_code, 200, response.text)
        payload = response.json()
        self.assertEqual(payload["state"]["step"], 0)
        self.assertEqual(len(payload["history"]), 1)
        self.assertEqual(payload["breakpoints"], [])

    def test_step_limit_conflict(self) -> None:
        data = self._create_session(code="+>+", max_steps=1)
        session_id = data["session_id"]

        ok = self.client.post(f"/api/session/{session_id}/step", json={"count": 1})
        self.assertEqual(ok.status_code, 200, ok.text)

        conflict = self.client.post(f"/api/session/{session_id}/step", json={"count": 1})
        self.assertEqual(conflict.status_code, 409, conflict.text)
        self.assertIn("detail", conflict.json())

    def test_add_and_remove_breakpoint(self) -> None:
        data = self._create_session(code="+>+")
        session_id = data["session_id"]

        added = self.client.post(f"/api/session/{session_id}/breakpoints", json={"pc": 1})
        self.assertEqual(added.status_code, 200, added.text)
        self.assertIn(1, added.json()["breakpoints"])

        removed = self.client.delete(f"/api/session/{session_id}/breakpoints/1")
        self.assertEqual(removed.status_code, 200, removed.text)
        self.assertNotIn(1, removed.json()["breakpoints"])

        missing = self.client.delete(f"/api/session/{session_id}/breakpoints/1")
        self.assertEqual(missing.status_code, 404, missing.text)

    def test_run_until_break_hits_breakpoint(self) -> None:
        data = self._create_session(code="+.>+")
        session_id = data["session_id"]
        self.client.post(f"/api/session/{session_id}/breakpoints", json={"pc": 1})

        response = self.client.post(f"/api/session/{session_id}/run", json={"limit": 10})
        self.assertEqual(response.status_code, 200, response.text)
        payload = response.json()
        self.assertEqual(payload["hit_breakpoint"], 1)
        self.assertFalse(payload["finished"])

    def test_run_to_completion_ignore_breakpoints(self) -> None:
        data = self._create_session(code="+.>+")
        session_id = data["session_id"]
        self.client.post(f"/api/session/{session_id}/breakpoints", json={"pc": 1})

        response = self.client.post(
            f"/api/session/{session_id}/run",
            json={"limit": 10000, "ignore_breakpoints": True},
        )
        self.assertEqual(response.status_code, 200, response.text)
        payload = response.json()
        self.assertTrue(payload["finished"])
        self.assertEqual(payload["breakpoints"], [1])
        self.assertEqual(payload["states"][-1]["output"], [1])

    def test_unknown_session_is_404(self) -> None:
        response = self.client.get("/api/session/does-not-exist")
        self.assertEqual(response.status_code, 404, response.text)

    def test_delete_session(self) -> None:
        data = self._create_session(code="+")
        session_id = data["session_id"]
        deleted = self.client.delete(f"/api/session/{session_id}")
        self.assertEqual(deleted.status_code, 204)
        again = self.client.delete(f"/api/session/{session_id}")
        self.assertEqual(again.status_code, 404)


if __name__ == "__main__":
    unittest.main()
