"""Batch speech-recognition clients."""

from transcription_orchestrator.recognition.registry import get_recognition_client

__all__ = ["get_recognition_client"]
