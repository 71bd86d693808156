"""
Preview de video del home.

El video arranca en modo preview (mudo, en loop, solo los primeros
`preview_duration` segundos). Con watch_full_video() pasa a reproducción
completa con sonido y al terminar vuelve solo al preview.

El host se encarga de entregar el elemento de video; los eventos de media
llegan a los métodos handle_* y ninguna operación levanta excepciones.
"""
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol

from .background import spawn_detached

logger = logging.getLogger(__name__)


class PlaybackMode(str, Enum):
    PREVIEW = "preview"
    FULL = "full"


class PlaybackRejected(Exception):
    """El host rechazó iniciar la reproducción (política de autoplay)."""


class MediaElement(Protocol):
    muted: bool
    loop: bool
    plays_inline: bool
    current_time: float
    duration: float
    paused: bool

    def play(self):
        ...

    def pause(self) -> None:
        ...

    def add_event_listener(self, event: str, handler: Callable) -> None:
        ...

    def remove_event_listener(self, event: str, handler: Callable) -> None:
        ...


@dataclass
class PreviewOptions:
    preview_duration: float = 5.0  # segundos
    autoplay: bool = True
    muted: bool = True


@dataclass(frozen=True)
class PreviewPlaybackState:
    mode: PlaybackMode
    is_playing: bool
    is_muted: bool
    current_time: float
    duration: float
    is_loaded: bool
    show_control_affordance: bool


class MediaPreviewPlayer:
    def __init__(self, options: PreviewOptions | None = None):
        self.options = options or PreviewOptions()
        self.video: MediaElement | None = None

        self.mode = PlaybackMode.PREVIEW
        self.is_playing = False
        self.is_muted = self.options.muted
        self.current_time = 0.0
        self.duration = 0.0
        self.is_loaded = False
        self.show_control_affordance = True

        self._listeners: dict[str, Callable] = {}
        self._pending_play = None

    @property
    def is_preview_mode(self) -> bool:
        return self.mode is PlaybackMode.PREVIEW

    @property
    def state(self) -> PreviewPlaybackState:
        return PreviewPlaybackState(
            mode=self.mode,
            is_playing=self.is_playing,
            is_muted=self.is_muted,
            current_time=self.current_time,
            duration=self.duration,
            is_loaded=self.is_loaded,
            show_control_affordance=self.show_control_affordance,
        )

    def init_video(self, element: MediaElement | None) -> None:
        if element is None:
            return

        # Re-inicializar no debe duplicar listeners
        self._detach_listeners()
        self.video = element

        element.muted = True
        element.loop = True
        element.plays_inline = True

        self._listeners = {
            "loadedmetadata": self.handle_loaded_metadata,
            "timeupdate": self.handle_time_update,
            "ended": self.handle_ended,
            "play": self.handle_play,
            "pause": self.handle_pause,
        }
        for event, handler in self._listeners.items():
            element.add_event_listener(event, handler)

        if self.options.autoplay:
            self.play_preview()

    # --- Eventos de media ---

    def handle_loaded_metadata(self, event=None) -> None:
        video = self.video
        if video is None:
            return

        self.duration = video.duration
        self.is_loaded = True

        if self.options.autoplay:
            self.play_preview()

    def handle_time_update(self, event=None) -> None:
        video = self.video
        if video is None:
            return

        self.current_time = video.current_time

        # Loop del preview al llegar a la ventana configurada
        if self.is_preview_mode and video.current_time >= self.options.preview_duration:
            video.current_time = 0
            self.current_time = 0.0

    def handle_ended(self, event=None) -> None:
        if not self.is_preview_mode:
            self.return_to_preview()

    def handle_play(self, event=None) -> None:
        self.is_playing = True

    def handle_pause(self, event=None) -> None:
        self.is_playing = False

    # --- Transiciones ---

    def play_preview(self) -> None:
        video = self.video
        if video is None:
            return

        self.mode = PlaybackMode.PREVIEW
        video.muted = True
        video.loop = True
        video.current_time = 0
        self.is_muted = True
        self.show_control_affordance = True

        self._attempt_play("Preview autoplay")

    def watch_full_video(self) -> None:
        video = self.video
        if video is None:
            return

        self.mode = PlaybackMode.FULL
        video.loop = False
        video.muted = False
        video.current_time = 0
        self.is_muted = False
        self.show_control_affordance = False

        self._attempt_play("Full video play")

    def return_to_preview(self) -> None:
        self.play_preview()

    # --- Controles ---

    def toggle_play(self) -> None:
        video = self.video
        if video is None:
            return

        if video.paused:
            self._attempt_play("Play")
        else:
            video.pause()

    def toggle_mute(self) -> None:
        video = self.video
        if video is None:
            return

        video.muted = not video.muted
        self.is_muted = video.muted

    def seek_to(self, time: float) -> None:
        video = self.video
        if video is None:
            return

        video.current_time = time

    def get_progress(self) -> float:
        """Progreso en porcentaje (0-100)."""
        if not self.duration:
            return 0.0
        return (self.current_time / self.duration) * 100

    def cleanup(self) -> None:
        """Quita listeners, pausa y cancela el intento de play pendiente. Idempotente."""
        video = self.video
        if video is not None:
            self._detach_listeners()
            try:
                video.pause()
            except Exception as e:
                logger.warning(f"[MediaPreview] Error al pausar en cleanup: {e}")
            self.video = None
        self.is_playing = False

        self._cancel_pending_play()

    # --- Internos ---

    def _detach_listeners(self) -> None:
        video = self.video
        if video is not None:
            for event, handler in self._listeners.items():
                video.remove_event_listener(event, handler)
        self._listeners = {}

    def _attempt_play(self, context: str) -> None:
        try:
            result = self.video.play()
        except Exception as err:
            logger.info(f"[MediaPreview] {context} prevented: {err}")
            return

        if inspect.isawaitable(result):
            self._cancel_pending_play()
            self._pending_play = spawn_detached(
                self._await_play(result, context), name=f"media-play:{context}"
            )

    async def _await_play(self, pending, context: str) -> None:
        try:
            await pending
        except Exception as err:
            logger.info(f"[MediaPreview] {context} prevented: {err}")

    def _cancel_pending_play(self) -> None:
        pending = self._pending_play
        self._pending_play = None
        if pending is not None and not pending.done():
            pending.cancel()
