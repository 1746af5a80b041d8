# User value: This test keeps progress updates accurate while the server enhances a mod.
import asyncio
import unittest

import httpx

from services.errors import AlreadyInProgress, InvalidState, NotFound
from services.job_registry import JobRegistry
from services.status_poller import StatusPoller, fields_from_payload
from schemas.responses import JobStatusPayload
from support import ScriptedApi, json_response, settle

STATUS_PATH = "/mods/jobs/J1"


def _status(status, **extra):
    return json_response(200, {"status": status, **extra})


def _processing_job(registry: JobRegistry, server_job_id: str = "J1") -> str:
    local_id = registry.create_job(file_name="mod.jar", file_size_bytes=10)
    registry.update_job(local_id, status="uploading")
    registry.update_job(local_id, status="uploaded", server_job_id=server_job_id, mod_type="minecraft")
    registry.update_job(local_id, status="processing", preset_id="minecraft_balance")
    return local_id


class FakeTime:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay
        await asyncio.sleep(0)


class FieldsFromPayloadUnitTests(unittest.TestCase):
    def test_completed_carries_result_fields(self):
        fields = fields_from_payload(
            JobStatusPayload(status="Completed", processed_url="https://cdn/x", tokens_used=120, credits_used=2)
        )
        self.assertEqual(
            fields,
            {"status": "completed", "download_ref": "https://cdn/x", "tokens_used": 120, "credits_used": 2},
        )

    def test_server_pending_maps_to_processing(self):
        self.assertEqual(fields_from_payload(JobStatusPayload(status="queued"))["status"], "processing")

    def test_failed_without_message_uses_generic_message(self):
        fields = fields_from_payload(JobStatusPayload(status="failed", error_message=" "))
        self.assertEqual(fields["error_message"], "Processing failed. Please try again.")


class StatusPollerUnitTests(unittest.TestCase):
    def _run(self, api: ScriptedApi, body, **poller_kwargs):
        fake = FakeTime()

        async def scenario():
            client = api.client()
            registry = JobRegistry()
            poller = StatusPoller(
                registry,
                client,
                interval_sec=3,
                max_backoff_sec=30,
                sleep=fake.sleep,
                clock=fake.clock,
                **poller_kwargs,
            )
            registry.add_removal_hook(poller.cancel)
            try:
                return await body(registry, poller)
            finally:
                await poller.cancel_all()
                await client.aclose()

        return asyncio.run(scenario()), fake

    # User value: the user sees the enhanced mod as soon as the server finishes.
    def test_polls_until_completed(self):
        api = ScriptedApi().add(
            "GET",
            STATUS_PATH,
            _status("processing"),
            _status("processing"),
            _status("completed", processed_url="https://cdn/out.jar", tokens_used=120, credits_used=2),
        )

        async def body(registry, poller):
            local_id = _processing_job(registry)
            handle = poller.start(local_id)
            await handle.task
            return registry.get_job(local_id), handle, poller.is_active(local_id)

        (job, handle, active), fake = self._run(api, body)
        self.assertEqual(job.status, "completed")
        self.assertEqual(job.download_ref, "https://cdn/out.jar")
        self.assertEqual((job.tokens_used, job.credits_used), (120, 2))
        self.assertEqual(job.mod_type, "minecraft")
        self.assertEqual(api.count("GET", STATUS_PATH), 3)
        self.assertEqual(fake.sleeps, [3, 3])
        self.assertEqual(handle.stop_reason, "completed")
        self.assertFalse(active)

    def test_server_failure_is_recorded(self):
        api = ScriptedApi().add("GET", STATUS_PATH, _status("failed", error_message="AI quota exceeded"))

        async def body(registry, poller):
            local_id = _processing_job(registry)
            await poller.start(local_id).task
            return registry.get_job(local_id)

        (job, _fake) = self._run(api, body)
        self.assertEqual(job.status, "failed")
        self.assertEqual(job.error_message, "AI quota exceeded")

    # User value: brief network hiccups do not fail a job that is still processing.
    def test_transient_errors_back_off_and_recover(self):
        api = ScriptedApi().add(
            "GET",
            STATUS_PATH,
            httpx.ConnectError("offline"),
            json_response(503, {"error": "busy"}),
            _status("mystery"),
            _status("completed", processed_url="https://cdn/out.jar"),
        )

        async def body(registry, poller):
            local_id = _processing_job(registry)
            await poller.start(local_id).task
            return registry.get_job(local_id)

        job, fake = self._run(api, body)
        self.assertEqual(job.status, "completed")
        self.assertEqual(fake.sleeps, [6, 12, 24])

    def test_attempt_ceiling_fails_job_with_timeout(self):
        api = ScriptedApi().add("GET", STATUS_PATH, httpx.ConnectError("offline"))

        async def body(registry, poller):
            local_id = _processing_job(registry)
            handle = poller.start(local_id)
            await handle.task
            return registry.get_job(local_id), handle

        (job, handle), fake = self._run(api, body, max_attempts=6, max_elapsed_sec=0)
        self.assertEqual(fake.sleeps, [6, 12, 24, 30, 30, 30])
        self.assertEqual(job.status, "failed")
        self.assertEqual(job.error_message, "Processing timed out after 6 status checks")
        self.assertEqual(handle.stop_reason, "timeout")

    def test_elapsed_ceiling_fails_job_with_timeout(self):
        api = ScriptedApi().add("GET", STATUS_PATH, _status("processing"))

        async def body(registry, poller):
            local_id = _processing_job(registry)
            await poller.start(local_id).task
            return registry.get_job(local_id)

        job, fake = self._run(api, body, max_attempts=0, max_elapsed_sec=10)
        self.assertEqual(api.count("GET", STATUS_PATH), 4)
        self.assertEqual(job.error_message, "Processing timed out after 4 status checks")

    # User value: a cancelled job never flips back because of a late server answer.
    def test_cancel_discards_in_flight_result(self):
        api = ScriptedApi().add("GET", STATUS_PATH, _status("completed", processed_url="https://cdn/out.jar"))

        async def body(registry, poller):
            local_id = _processing_job(registry)
            gate = api.gate("GET", STATUS_PATH)
            handle = poller.start(local_id)
            await settle()
            revision = registry.get_job(local_id).revision
            cancelled = poller.cancel(local_id)
            gate.set()
            await settle()
            return registry.get_job(local_id), revision, cancelled, handle

        (job, revision, cancelled, handle), _fake = self._run(api, body)
        self.assertTrue(cancelled)
        self.assertEqual(job.status, "processing")
        self.assertEqual(job.revision, revision)
        self.assertEqual(handle.stop_reason, "cancelled")

    def test_removing_job_stops_polling(self):
        api = ScriptedApi().add("GET", STATUS_PATH, _status("processing"))

        async def body(registry, poller):
            local_id = _processing_job(registry)
            gate = api.gate("GET", STATUS_PATH)
            poller.start(local_id)
            await settle()
            registry.remove_job(local_id)
            gate.set()
            await settle()
            return poller.is_active(local_id), poller.active_count, len(registry)

        (active, count, remaining), _fake = self._run(api, body)
        self.assertFalse(active)
        self.assertEqual(count, 0)
        self.assertEqual(remaining, 0)

    def test_job_failed_elsewhere_stops_poller(self):
        api = ScriptedApi().add("GET", STATUS_PATH, _status("processing"))

        async def body(registry, poller):
            local_id = _processing_job(registry)
            gate = api.gate("GET", STATUS_PATH)
            handle = poller.start(local_id)
            await settle()
            registry.update_job(local_id, status="failed", error_message="cancelled by user")
            gate.set()
            await handle.task
            return registry.get_job(local_id), handle

        (job, handle), _fake = self._run(api, body)
        self.assertEqual(job.status, "failed")
        self.assertEqual(job.error_message, "cancelled by user")
        self.assertEqual(handle.stop_reason, "job_terminal")

    # User value: an unexpected failure inside the poll loop still ends with a clear failed job.
    def test_unexpected_error_finishes_handle_and_fails_job(self):
        api = ScriptedApi().add("GET", STATUS_PATH, RuntimeError("client closed"))

        async def body(registry, poller):
            local_id = _processing_job(registry)
            handle = poller.start(local_id)
            with self.assertLogs("client.poller", level="ERROR"):
                await handle.task
            return registry.get_job(local_id), handle, poller.is_active(local_id)

        (job, handle, active), _fake = self._run(api, body)
        self.assertFalse(active)
        self.assertEqual(handle.stop_reason, "error")
        self.assertEqual(job.status, "failed")
        self.assertEqual(job.error_message, "Processing failed. Please try again.")

    def test_no_new_polls_after_cancel_all(self):
        api = ScriptedApi().add("GET", STATUS_PATH, _status("processing"))

        async def body(registry, poller):
            local_id = _processing_job(registry)
            await poller.cancel_all()
            with self.assertRaises(InvalidState):
                poller.start(local_id)
            return poller.closed, poller.active_count

        (closed, count), _fake = self._run(api, body)
        self.assertTrue(closed)
        self.assertEqual(count, 0)
        self.assertEqual(api.calls, [])

    def test_start_preconditions(self):
        api = ScriptedApi().add("GET", STATUS_PATH, _status("processing"))

        async def body(registry, poller):
            local_id = _processing_job(registry)
            poller.start(local_id)
            with self.assertRaises(AlreadyInProgress):
                poller.start(local_id)
            fresh = registry.create_job(file_name="other.jar", file_size_bytes=1)
            with self.assertRaises(InvalidState):
                poller.start(fresh)
            with self.assertRaises(NotFound):
                poller.start("L404")
            return poller.active_count

        count, _fake = self._run(api, body)
        self.assertEqual(count, 1)


if __name__ == "__main__":
    unittest.main()
