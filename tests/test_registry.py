"""Tests for recognition client registry."""

import pytest

from transcription_orchestrator.recognition import get_recognition_client
from transcription_orchestrator.recognition.google_speech import GoogleSpeechClient
from transcription_orchestrator.recognition.registry import RECOGNITION_CLIENTS
from transcription_orchestrator.utils.auth import AccessTokenProvider
from transcription_orchestrator.utils.errors import RecognitionError


class TestRegistry:
    """Provider lookup by name."""

    def test_google_registered(self):
        assert RECOGNITION_CLIENTS["google"] is GoogleSpeechClient

    def test_creates_google_client_with_kwargs(self):
        client = get_recognition_client(
            "google",
            project="proj-1",
            token_provider=AccessTokenProvider(static_token="t"),
        )
        assert isinstance(client, GoogleSpeechClient)
        assert client.project == "proj-1"

    def test_unknown_provider_raises(self):
        with pytest.raises(RecognitionError, match="Unknown recognition provider: 'aws'"):
            get_recognition_client("aws")

    def test_error_lists_available_providers(self):
        with pytest.raises(RecognitionError, match="Available: google"):
            get_recognition_client("nope")
