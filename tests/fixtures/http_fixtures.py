"""httpx MockTransport fixtures standing in for the Voiceflow and Graph APIs."""

import json

import httpx
import pytest

from app.adapters.meta import MetaAdapter
from app.adapters.voiceflow import VoiceflowClient

VOICEFLOW_URL = "https://runtime.voiceflow.test"
GRAPH_URL = "https://graph.facebook.test/v18.0"


class RecordingHandler:
    """
    Answers requests from a queue of (status, json) tuples or exceptions,
    then from `default`, and records every request it saw.
    """

    def __init__(self, default=(200, {})):
        self.default = default
        self.queue = []
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        answer = self.queue.pop(0) if self.queue else self.default
        if isinstance(answer, Exception):
            raise answer
        status_code, body = answer
        return httpx.Response(status_code, json=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    @property
    def last_json(self):
        return json.loads(self.requests[-1].content)


def text_trace(*messages):
    """Voiceflow interact response with one text trace per message."""
    return [{"type": "text", "payload": {"message": m}} for m in messages]


@pytest.fixture(scope="function")
def voiceflow_api():
    return RecordingHandler(default=(200, text_trace("Hi there! How can I help?")))


@pytest.fixture(scope="function")
def graph_api():
    return RecordingHandler(default=(200, {"recipient_id": "1", "message_id": "m_1"}))


@pytest.fixture(scope="function")
def voiceflow_client(voiceflow_api, error_reporter):
    return VoiceflowClient(
        base_url=VOICEFLOW_URL,
        transport=voiceflow_api.transport,
        error_reporter=error_reporter,
    )


@pytest.fixture(scope="function")
def meta_adapter(graph_api):
    return MetaAdapter(graph_api_url=GRAPH_URL, transport=graph_api.transport)
