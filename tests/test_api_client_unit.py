# User value: This test makes sure server answers reach users as readable outcomes, never raw HTTP noise.
import asyncio
import json
import unittest

import httpx

from schemas.requests import ProcessRequest
from services.api_client import extract_error_message
from services.errors import MalformedResponse, ServerRejected, TransportError
from services.session import SessionCredentials
from support import ScriptedApi, json_response


class ExtractErrorMessageUnitTests(unittest.TestCase):
    def test_reads_known_keys_in_order(self):
        self.assertEqual(extract_error_message({"error": "file too large"}), "file too large")
        self.assertEqual(extract_error_message({"message": " quota "}), "quota")
        self.assertEqual(extract_error_message({"detail": {"error_message": "nested"}}), "nested")

    def test_returns_none_for_unusable_bodies(self):
        self.assertIsNone(extract_error_message(None))
        self.assertIsNone(extract_error_message(["error"]))
        self.assertIsNone(extract_error_message({"error": "  "}))


class ApiClientUnitTests(unittest.TestCase):
    def _run(self, api: ScriptedApi, body, **client_kwargs):
        async def scenario():
            client = api.client(**client_kwargs)
            try:
                return await body(client)
            finally:
                await client.aclose()

        return asyncio.run(scenario())

    def test_status_query_parses_payload(self):
        api = ScriptedApi().add(
            "GET",
            "/mods/jobs/J1",
            json_response(200, {"status": "completed", "processed_url": "https://cdn/x", "tokens_used": 120, "credits_used": 2}),
        )
        payload = self._run(api, lambda client: client.get_job_status("J1"))
        self.assertEqual(payload.status, "completed")
        self.assertEqual(payload.tokens_used, 120)

    # User value: the chosen preset and instructions reach the server exactly as picked.
    def test_process_request_body_uses_wire_names(self):
        api = ScriptedApi().add("POST", "/mods/jobs/J1/process", json_response(202, {"status": "processing"}))
        request = ProcessRequest(preset_id="minecraft_balance", prompt="make it fair")
        self._run(api, lambda client: client.process_job("J1", request))
        sent = json.loads(api.requests[0].content)
        self.assertEqual(sent, {"preset_id": "minecraft_balance", "prompt": "make it fair", "model_config": "default"})

    # User value: a server that accepts processing with an empty body does not fail the job.
    def test_empty_process_acceptance_body_is_accepted(self):
        api = ScriptedApi().add(
            "POST",
            "/mods/jobs/J1/process",
            httpx.Response(204),
            httpx.Response(202, text=""),
        )
        request = ProcessRequest(preset_id="minecraft_balance", prompt="make it fair")
        first = self._run(api, lambda client: client.process_job("J1", request))
        second = self._run(api, lambda client: client.process_job("J1", request))
        self.assertIsNone(first.status)
        self.assertIsNone(second.message)

    def test_session_token_header(self):
        api = ScriptedApi().add("GET", "/presets/", json_response(200, {"presets": []}))
        credentials = SessionCredentials()
        credentials.set_token("tok-123")
        self._run(api, lambda client: client.list_presets(), credentials=credentials)
        headers = api.requests[0].headers
        self.assertEqual(headers["authorization"], "Bearer tok-123")
        self.assertEqual(headers["accept"], "application/json")

    def test_history_query_params(self):
        api = ScriptedApi().add(
            "GET",
            "/mods/jobs",
            json_response(200, {"jobs": [{"id": "J1", "status": "completed"}]}),
        )
        page = self._run(api, lambda client: client.list_jobs(page=2, limit=5, status="completed"))
        self.assertEqual(len(page.jobs), 1)
        params = api.requests[0].url.params
        self.assertEqual((params["page"], params["limit"], params["status"]), ("2", "5", "completed"))

    # User value: server refusals carry the server's message and status code.
    def test_error_status_raises_server_rejected(self):
        api = ScriptedApi().add("GET", "/mods/jobs/J1/download", json_response(403, {"error": "not yours"}))
        with self.assertRaises(ServerRejected) as ctx:
            self._run(api, lambda client: client.get_download("J1"))
        self.assertEqual(ctx.exception.error_message, "not yours")
        self.assertEqual(ctx.exception.status_code, 403)
        self.assertEqual(ctx.exception.to_detail()["upstream_status"], 403)

    def test_error_without_body_uses_fallback_message(self):
        api = ScriptedApi().add("GET", "/mods/jobs/J1/download", httpx.Response(500, text="boom"))
        with self.assertRaises(ServerRejected) as ctx:
            self._run(api, lambda client: client.get_download("J1"))
        self.assertEqual(ctx.exception.error_message, "Download failed")

    def test_network_failure_raises_transport_error(self):
        api = ScriptedApi().add("GET", "/mods/jobs/J1", httpx.ReadTimeout("slow"))
        with self.assertRaises(TransportError) as ctx:
            self._run(api, lambda client: client.get_job_status("J1"))
        self.assertIn("ReadTimeout", ctx.exception.error_message)

    def test_unparseable_body_raises_malformed_response(self):
        api = ScriptedApi().add(
            "GET",
            "/mods/jobs/J1",
            httpx.Response(200, text="<html>"),
            json_response(200, {"processed_url": "https://cdn/x"}),
        )
        with self.assertRaises(MalformedResponse):
            self._run(api, lambda client: client.get_job_status("J1"))
        with self.assertRaises(MalformedResponse):
            self._run(api, lambda client: client.get_job_status("J1"))


if __name__ == "__main__":
    unittest.main()
