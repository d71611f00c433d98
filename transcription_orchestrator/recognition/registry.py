"""Recognition client registry with configuration-driven provider selection.

Maps provider name strings to client classes. Use get_recognition_client()
to instantiate a client by name with client-specific configuration.
"""

from transcription_orchestrator.recognition.google_speech import GoogleSpeechClient
from transcription_orchestrator.recognition.interface import RecognitionClient
from transcription_orchestrator.utils.errors import RecognitionError

RECOGNITION_CLIENTS: dict[str, type[RecognitionClient]] = {
    "google": GoogleSpeechClient,
}


def get_recognition_client(provider: str, **kwargs: object) -> RecognitionClient:
    """Create a recognition client instance by provider name.

    Args:
        provider: Provider name (e.g., "google").
        **kwargs: Client-specific configuration passed to the constructor.

    Returns:
        An initialized RecognitionClient.

    Raises:
        RecognitionError: If the provider name is not registered.
    """
    client_cls = RECOGNITION_CLIENTS.get(provider)
    if not client_cls:
        available = ", ".join(sorted(RECOGNITION_CLIENTS.keys()))
        raise RecognitionError(
            f"Unknown recognition provider: '{provider}'. Available: {available}",
            provider=provider,
        )
    return client_cls(**kwargs)
