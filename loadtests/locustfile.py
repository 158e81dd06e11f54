"""
Load tests for the coach service.

Exercises the speech upload path and the generation proxy.

Run with:
    cd loadtests
    locust --host=http://localhost:8787

Or headless:
    locust --host=http://localhost:8787 --headless -u 50 -r 5 -t 60s

Environment variables:
    LOAD_TEST_CLIP_SECONDS: length of the synthetic WAV upload (default 3)
    LOAD_TEST_MODEL: model requested from /api/ai/generate-content
        (default gemini-1.5-flash)
"""

import io
import os
import random
import wave

from locust import HttpUser, between, events, task

SAMPLE_RATE = 16000
BYTES_PER_SAMPLE = 2  # 16-bit

CLIP_SECONDS = float(os.environ.get("LOAD_TEST_CLIP_SECONDS", "3"))
MODEL = os.environ.get("LOAD_TEST_MODEL", "gemini-1.5-flash")

PROMPTS = [
    "Explain how photosynthesis works in two sentences.",
    "Explain what a hash table is to a beginner.",
    "Explain why the sky is blue.",
]


def synthetic_wav(seconds: float) -> bytes:
    """Random 16kHz mono PCM16 wrapped in a WAV container."""
    frames = int(SAMPLE_RATE * seconds)
    pcm = bytes(random.getrandbits(8) for _ in range(frames * BYTES_PER_SAMPLE))
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(BYTES_PER_SAMPLE)
        wav.setframerate(SAMPLE_RATE)
        wav.writeframes(pcm)
    return buffer.getvalue()


CLIP = synthetic_wav(CLIP_SECONDS)


def check_transcribe(response) -> None:
    """Provider failures are expected under load; only server faults count."""
    if response.status_code == 200:
        response.success()
    elif response.status_code in (429, 503, 504):
        body = response.json()
        response.failure(f"{body.get('error')}: {body.get('message')}")
    else:
        response.failure(f"Status {response.status_code}: {response.text}")


class CoachUser(HttpUser):
    """
    Load test user mixing the service's endpoints.

    Behavior:
    - 60% recording uploads
    - 30% feedback generation through the proxy
    - 10% config and health checks
    """

    wait_time = between(0.5, 2.0)

    @task(6)
    def transcribe(self):
        """Upload one recording."""
        with self.client.post(
            "/api/speech/transcribe",
            files={"audio": ("recording.wav", CLIP, "audio/wav")},
            data={"language": "en-US"},
            catch_response=True,
        ) as response:
            check_transcribe(response)

    @task(3)
    def generate_feedback(self):
        """Ask the proxy for schema-constrained feedback."""
        with self.client.post(
            "/api/ai/generate-content",
            json={
                "model": MODEL,
                "contents": random.choice(PROMPTS),
                "config": {"temperature": 0.2, "responseMimeType": "application/json"},
            },
            catch_response=True,
        ) as response:
            if response.status_code == 200:
                response.success()
            elif response.status_code == 503:
                response.failure("AI unavailable")
            else:
                response.failure(f"Status {response.status_code}: {response.text}")

    @task(1)
    def config_and_health(self):
        self.client.get("/api/speech/config")
        self.client.get("/api/health")


class TranscribeOnlyUser(HttpUser):
    """
    User that only uploads recordings.

    Use this for focused upload load testing:
        locust -f locustfile.py TranscribeOnlyUser --host=http://localhost:8787
    """

    wait_time = between(0.1, 0.5)

    @task
    def transcribe(self):
        with self.client.post(
            "/api/speech/transcribe",
            files={"audio": ("recording.wav", CLIP, "audio/wav")},
            catch_response=True,
        ) as response:
            check_transcribe(response)


# Event hooks for statistics
@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("Load test starting...")
    print(f"Target host: {environment.host}")
    print(f"Synthetic clip: {CLIP_SECONDS:.1f}s ({len(CLIP)} bytes)")
    print(f"Generation model: {MODEL}")


@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    print("\nLoad test completed!")
