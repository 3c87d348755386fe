import logging
from io import BytesIO
from typing import Optional

from openai import AsyncAzureOpenAI

from ..core.config import settings
from ..core.exceptions import ProviderError

logger = logging.getLogger(__name__)


class AudioService:
    """Speech-to-text for recorded answers (Azure OpenAI transcriptions)."""

    def __init__(self):
        if not settings.azure_openai_endpoint_audio or not settings.azure_openai_api_key_audio:
            logger.warning("Azure OpenAI audio not configured. Transcription disabled.")
            self.transcribe_client: Optional[AsyncAzureOpenAI] = None
            return
        self.transcribe_client = AsyncAzureOpenAI(
            api_version=settings.azure_openai_audio_api_version,
            azure_endpoint=settings.azure_openai_endpoint_audio,
            api_key=settings.azure_openai_api_key_audio,
        )
        logger.info(
            f"Audio service initialized: endpoint={settings.azure_openai_endpoint_audio}, "
            f"deployment={settings.azure_openai_transcribe_deployment}"
        )

    async def transcribe(self, audio_data: bytes, filename: str = "audio.webm") -> str:
        if not self.transcribe_client:
            raise ProviderError("Transcription is not configured")
        if not audio_data:
            raise ProviderError(f"{filename} is empty")

        audio_format = self._detect_audio_format(audio_data)
        audio_io = BytesIO(audio_data)
        audio_io.name = f"{filename.rsplit('.', 1)[0]}.{audio_format}"

        try:
            transcript = await self.transcribe_client.audio.transcriptions.create(
                model=settings.azure_openai_transcribe_deployment,
                file=audio_io,
                language=settings.transcription_language,
                response_format="text",
            )
        except Exception as e:
            raise ProviderError(f"Transcription of {filename} failed: {e}") from e

        result = str(transcript).strip()
        logger.info(f"Transcribed {filename} ({audio_format}, {len(audio_data)} bytes): {result[:60]}")
        return result

    def _detect_audio_format(self, audio_data: bytes) -> str:
        """Container format from the file header, webm when unknown."""
        if len(audio_data) < 12:
            return "webm"
        if audio_data[:4] == b'RIFF' and audio_data[8:12] == b'WAVE':
            return "wav"
        elif audio_data[:4] == b'\x1a\x45\xdf\xa3':
            return "webm"
        elif audio_data[:3] == b'ID3' or audio_data[:2] == b'\xff\xfb':
            return "mp3"
        elif audio_data[:4] == b'OggS':
            return "ogg"
        elif b'ftyp' in audio_data[:20]:
            return "mp4"
        return "webm"


audio_service = AudioService()
