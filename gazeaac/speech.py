"""
Speech output for finished sentences.
"""
import asyncio
import logging
import os
from typing import List, Tuple

from dotenv import load_dotenv
from elevenlabs import ElevenLabs
from elevenlabs.play import play

from .config import SpeechConfig
from .types import SpeakerProto


logger = logging.getLogger(__name__)

load_dotenv()


class ElevenLabsSpeaker:
    """Text to speech through ElevenLabs, played on the default audio device."""

    def __init__(self, cfg: SpeechConfig):
        self.cfg = cfg
        self.api_key = os.getenv("ELEVEN_LABS_API_KEY")
        if not self.api_key:
            raise ValueError("ELEVEN_LABS_API_KEY not found in environment variables")

        self.client = ElevenLabs(api_key=self.api_key)

    async def speak(self, text: str, language: str) -> None:
        """Synthesize and play text; blocking work runs in a worker thread."""
        if not text:
            return
        await asyncio.to_thread(self._speak_blocking, text, language)

    def _speak_blocking(self, text: str, language: str) -> None:
        logger.info("🔊 Speaking (%s): %s", language, text)
        audio_generator = self.client.text_to_speech.convert(
            text=text,
            voice_id=self.cfg.voice_id,
            model_id=self.cfg.model_id,
            output_format="mp3_22050_32",
        )
        audio_bytes = b"".join(audio_generator)
        play(audio_bytes)


class MockSpeaker:
    """Records spoken sentences instead of playing them."""

    def __init__(self):
        self.spoken: List[Tuple[str, str]] = []

    async def speak(self, text: str, language: str) -> None:
        logger.info("[MOCK] speak (%s): %s", language, text)
        self.spoken.append((text, language))


def create_speaker(cfg: SpeechConfig) -> SpeakerProto:
    """Speaker for the configured provider ("elevenlabs" or "mock")."""
    if cfg.provider == "elevenlabs":
        return ElevenLabsSpeaker(cfg)
    if cfg.provider == "mock":
        return MockSpeaker()
    raise ValueError(f"Unknown speech provider: {cfg.provider!r}")
