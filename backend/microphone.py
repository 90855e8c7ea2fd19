import asyncio
import logging
from typing import Optional

import sounddevice as sd
from livekit import rtc

logger = logging.getLogger(__name__)

SAMPLE_RATE = 48000
CHANNELS = 1
FRAME_MS = 10


class Microphone:
    """Default input device captured with sounddevice and fed into a LiveKit audio track."""

    def __init__(self, muted: bool = False, sample_rate: int = SAMPLE_RATE, channels: int = CHANNELS):
        self.muted = muted
        self.sample_rate = sample_rate
        self.channels = channels
        self.samples_per_frame = sample_rate * FRAME_MS // 1000
        self.source: Optional[rtc.AudioSource] = None
        self.track: Optional[rtc.LocalAudioTrack] = None
        self.stream: Optional[sd.RawInputStream] = None

    async def start(self) -> tuple[rtc.LocalAudioTrack, rtc.TrackPublishOptions]:
        loop = asyncio.get_running_loop()
        self.source = rtc.AudioSource(self.sample_rate, self.channels)
        self.track = rtc.LocalAudioTrack.create_audio_track("microphone", self.source)

        def callback(indata, frames, time_, status):
            if status:
                logger.debug("Microphone status: %s", status)
            frame = rtc.AudioFrame(
                data=bytes(indata),
                sample_rate=self.sample_rate,
                num_channels=self.channels,
                samples_per_channel=frames,
            )
            asyncio.run_coroutine_threadsafe(self.source.capture_frame(frame), loop)

        self.stream = sd.RawInputStream(
            samplerate=self.sample_rate,
            channels=self.channels,
            dtype="int16",
            blocksize=self.samples_per_frame,
            callback=callback,
        )
        self.stream.start()
        self.set_muted(self.muted)
        logger.info("Microphone capture started (%d Hz)", self.sample_rate)
        return self.track, rtc.TrackPublishOptions(source=rtc.TrackSource.SOURCE_MICROPHONE)

    def set_muted(self, muted: bool) -> None:
        self.muted = muted
        if self.track is None:
            return
        if muted:
            self.track.mute()
        else:
            self.track.unmute()
        logger.info("Microphone %s", "muted" if muted else "unmuted")

    async def aclose(self) -> None:
        if self.stream is not None:
            self.stream.stop()
            self.stream.close()
            self.stream = None
        if self.source is not None:
            await self.source.aclose()
            self.source = None
