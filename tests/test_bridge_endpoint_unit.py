# User value: This test validates the bridge endpoints the UI calls, including the errors it shows inline.
import inspect
import time
import unittest

from fastapi.testclient import TestClient

import app as bridge
from services.errors import (
    AlreadyInProgress,
    InvalidState,
    MalformedResponse,
    NotFound,
    RejectedFile,
    ServerRejected,
    TransportError,
)
from services.job_registry import JobRegistry
from services.orchestrator import ModOrchestrator
from services.status_poller import StatusPoller
from support import ScriptedApi, json_response

JAR = ("files", ("mod.jar", b"jar-bytes", "application/java-archive"))
TXT = ("files", ("notes.txt", b"hello", "text/plain"))


class StatusForErrorUnitTests(unittest.TestCase):
    def test_error_types_map_to_http_status(self):
        self.assertEqual(bridge.status_for_error(NotFound("x")), 404)
        self.assertEqual(bridge.status_for_error(InvalidState("x")), 409)
        self.assertEqual(bridge.status_for_error(AlreadyInProgress("x")), 409)
        self.assertEqual(bridge.status_for_error(RejectedFile("x")), 400)
        self.assertEqual(bridge.status_for_error(ServerRejected("x", status_code=402)), 502)
        self.assertEqual(bridge.status_for_error(TransportError("x")), 503)
        self.assertEqual(bridge.status_for_error(MalformedResponse("x")), 503)


class BridgeRouteShapeUnitTests(unittest.TestCase):
    # User value: routes that read orchestrator state run on the event loop, never in a worker thread.
    def test_orchestrator_routes_are_coroutines(self):
        checked = 0
        for route in bridge.app.routes:
            endpoint = getattr(route, "endpoint", None)
            path = getattr(route, "path", "")
            if endpoint is None or not path.startswith(("/jobs", "/health", "/session", "/upload", "/presets", "/history")):
                continue
            checked += 1
            self.assertTrue(inspect.iscoroutinefunction(endpoint), path)
        self.assertGreaterEqual(checked, 12)


class BridgeEndpointUnitTests(unittest.TestCase):
    def _client(self, api: ScriptedApi) -> TestClient:
        client = api.client()
        registry = JobRegistry()
        poller = StatusPoller(registry, client, interval_sec=0.01)
        bridge.app.state.orchestrator = ModOrchestrator(
            client,
            registry=registry,
            poller=poller,
            prefetch_presets=False,
        )
        return TestClient(bridge.app)

    def _wait_for_status(self, http: TestClient, local_id: str, statuses, timeout: float = 5.0) -> dict:
        deadline = time.monotonic() + timeout
        while True:
            job = http.get(f"/jobs/{local_id}").json()
            if job["status"] in statuses or time.monotonic() > deadline:
                return job
            time.sleep(0.01)

    # User value: a mixed drop accepts good files and explains each rejected one.
    def test_upload_batch_reports_accepted_and_rejected_files(self):
        api = ScriptedApi().add(
            "POST",
            "/mods/upload",
            json_response(200, {"job_id": "J1", "status": "uploaded", "mod_type": "minecraft"}),
        )
        with self._client(api) as http:
            res = http.post("/upload", files=[JAR, TXT])
            self.assertEqual(res.status_code, 200)
            body = res.json()
            self.assertEqual(body["accepted"], [{"local_id": "L1", "file_name": "mod.jar"}])
            self.assertEqual(body["rejected"][0]["file_name"], "notes.txt")
            self.assertEqual(body["rejected"][0]["error_code"], "UNSUPPORTED_FILE_TYPE")

            job = self._wait_for_status(http, "L1", ("uploaded", "failed"))
            self.assertEqual(job["status"], "uploaded")
            self.assertEqual(job["server_job_id"], "J1")

            listing = http.get("/jobs", params={"status": "uploaded"}).json()
            self.assertEqual(listing["count"], 1)

    # User value: the full enhance-and-download flow works end to end through the bridge.
    def test_process_then_download(self):
        api = (
            ScriptedApi()
            .add("POST", "/mods/upload", json_response(200, {"job_id": "J1", "status": "pending"}))
            .add("POST", "/mods/jobs/J1/process", json_response(202, {"status": "processing"}))
            .add(
                "GET",
                "/mods/jobs/J1",
                json_response(200, {"status": "processing"}),
                json_response(200, {"status": "completed", "processed_url": "https://cdn/U", "tokens_used": 120, "credits_used": 2}),
            )
            .add("GET", "/mods/jobs/J1/download", json_response(200, {"download_url": "https://signed/U", "expires_in": 300}))
        )
        with self._client(api) as http:
            http.post("/upload", files=[JAR])
            self._wait_for_status(http, "L1", ("uploaded", "failed"))

            res = http.post("/jobs/L1/process", json={"preset_id": "minecraft_balance", "custom_prompt": ""})
            self.assertEqual(res.status_code, 200)
            self.assertEqual(res.json()["status"], "processing")

            again = http.post("/jobs/L1/process")
            self.assertEqual(again.status_code, 409)

            job = self._wait_for_status(http, "L1", ("completed", "failed"))
            self.assertEqual(job["status"], "completed")
            self.assertEqual(job["credits_used"], 2)

            download = http.get("/jobs/L1/download").json()
            self.assertEqual(download["download_url"], "https://signed/U")
            self.assertEqual(download["expires_in"], 300)

    def test_unknown_job_returns_404_with_error_body(self):
        with self._client(ScriptedApi()) as http:
            res = http.get("/jobs/L9")
            self.assertEqual(res.status_code, 404)
            body = res.json()
            self.assertEqual(body["error_code"], "NOT_FOUND")
            self.assertEqual(body["path"], "/jobs/L9")
            self.assertTrue(body["request_id"])

    # User value: processing a failed upload is refused with a clear conflict, and retry creates a new job.
    def test_failed_upload_cannot_be_processed_but_can_be_retried(self):
        api = ScriptedApi().add(
            "POST",
            "/mods/upload",
            json_response(413, {"error": "file too large"}),
            json_response(200, {"job_id": "J2", "status": "uploaded"}),
        )
        with self._client(api) as http:
            http.post("/upload", files=[JAR])
            job = self._wait_for_status(http, "L1", ("uploaded", "failed"))
            self.assertEqual(job["error_message"], "file too large")

            res = http.post("/jobs/L1/process")
            self.assertEqual(res.status_code, 409)
            self.assertEqual(res.json()["error_code"], "INVALID_STATE")

            download = http.get("/jobs/L1/download")
            self.assertEqual(download.status_code, 409)

            retry = http.post("/jobs/L1/retry").json()
            self.assertEqual(retry, {"local_id": "L2", "retried_from": "L1"})
            self.assertEqual(self._wait_for_status(http, "L2", ("uploaded", "failed"))["status"], "uploaded")

            cleared = http.post("/jobs/clear").json()
            self.assertEqual(cleared["removed"], ["L1"])
            self.assertEqual(http.delete("/jobs/L2").json()["removed"], "L2")
            self.assertEqual(http.get("/jobs").json()["count"], 0)

    def test_presets_warning_when_server_unavailable(self):
        api = ScriptedApi().add("GET", "/presets/", json_response(503, {"error": "maintenance"}))
        with self._client(api) as http:
            body = http.get("/presets").json()
            self.assertEqual(body["presets"], [])
            self.assertEqual(body["warning"], "Presets unavailable: maintenance")

    def test_session_and_health(self):
        with self._client(ScriptedApi()) as http:
            self.assertFalse(http.get("/session").json()["authenticated"])
            self.assertTrue(http.put("/session", json={"token": "tok"}).json()["authenticated"])
            self.assertTrue(http.get("/session").json()["authenticated"])
            http.delete("/session")
            self.assertFalse(http.get("/session").json()["authenticated"])

            health = http.get("/health").json()
            self.assertEqual(health["status"], "OK")
            self.assertEqual(health["jobs"], 0)
            self.assertFalse(health["presets_loaded"])

            contract = http.get("/contract/job-status").json()
            self.assertIn("processing", contract["job_statuses"])
            self.assertIn(".jar", contract["mod_file_extensions"])


if __name__ == "__main__":
    unittest.main()
