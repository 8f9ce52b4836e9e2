"""
Player controller - title input, stream resolution and the playback state machine
The video widget itself is external; it is driven through the VideoWidget interface
"""
import enum
import logging
import threading
from collections import deque
from dataclasses import dataclass, replace
from typing import Optional

from stream_api import (
    InvalidStreamError,
    StreamAPIClient,
    StreamDescriptor,
)

logger = logging.getLogger(__name__)

EXAMPLE_TITLES = ['wednesday.s01e03', 'avengers.endgame', 'oppenheimer.2023', 'series.s01e01']

VALIDATION_MESSAGE = "Please enter movie/series title"
UPSTREAM_FALLBACK_MESSAGE = "Failed to get stream"
NETWORK_ALERT_MESSAGE = "Cannot connect to API server"
PLAYBACK_ALERT_MESSAGE = "Failed to play video stream. Check if headers are working."


class PlayerState(enum.Enum):
    PLAYING = 'playing'
    PAUSED = 'paused'
    ENDED = 'ended'


@dataclass(frozen=True)
class PlaybackState:
    """Everything the player screen renders from"""
    title: str = ''
    stream: Optional[StreamDescriptor] = None
    player_state: PlayerState = PlayerState.PAUSED
    current_time: float = 0.0
    duration: float = 0.0
    is_fullscreen: bool = False
    error: Optional[str] = None
    loading: bool = False
    video_loading: bool = False
    buffering: bool = False


# =============================================================================
# EVENTS
# =============================================================================

@dataclass(frozen=True)
class TitleChanged:
    title: str


@dataclass(frozen=True)
class FetchStarted:
    pass


@dataclass(frozen=True)
class FetchSucceeded:
    stream: StreamDescriptor


@dataclass(frozen=True)
class FetchFailed:
    error: str


@dataclass(frozen=True)
class FetchFinished:
    pass


@dataclass(frozen=True)
class PlayerStateChanged:
    """User pause/resume toggle"""
    player_state: PlayerState


@dataclass(frozen=True)
class Replayed:
    pass


@dataclass(frozen=True)
class Cleared:
    pass


@dataclass(frozen=True)
class FullscreenChanged:
    is_fullscreen: bool


@dataclass(frozen=True)
class LoadStarted:
    pass


@dataclass(frozen=True)
class Loaded:
    duration: float


@dataclass(frozen=True)
class Progressed:
    current_time: float


@dataclass(frozen=True)
class Seeking:
    current_time: float


@dataclass(frozen=True)
class Ended:
    pass


@dataclass(frozen=True)
class BufferChanged:
    is_buffering: bool


@dataclass(frozen=True)
class PlaybackFailed:
    error: object = None


# =============================================================================
# REDUCER
# =============================================================================

def _clamp_time(state, value):
    value = max(0.0, float(value or 0.0))
    if state.duration > 0:
        value = min(value, state.duration)
    return value


def update(state, event):
    """Return the state that follows ``state`` after ``event``.

    Pure: widget commands and alerts are the controller's business.
    """
    if isinstance(event, TitleChanged):
        return replace(state, title=event.title)

    if isinstance(event, FetchStarted):
        return replace(state, loading=True, error=None, stream=None)

    if isinstance(event, FetchSucceeded):
        return replace(state, stream=event.stream, error=None,
                       player_state=PlayerState.PLAYING,
                       current_time=0.0, duration=0.0)

    if isinstance(event, FetchFailed):
        return replace(state, error=event.error)

    if isinstance(event, FetchFinished):
        return replace(state, loading=False)

    if isinstance(event, PlayerStateChanged):
        return replace(state, player_state=event.player_state)

    if isinstance(event, Replayed):
        return replace(state, player_state=PlayerState.PLAYING, current_time=0.0)

    if isinstance(event, Cleared):
        return PlaybackState()

    if isinstance(event, FullscreenChanged):
        return replace(state, is_fullscreen=event.is_fullscreen)

    if isinstance(event, LoadStarted):
        return replace(state, video_loading=True)

    if isinstance(event, Loaded):
        duration = max(0.0, float(event.duration or 0.0))
        return replace(state, duration=duration, video_loading=False,
                       current_time=min(state.current_time, duration))

    if isinstance(event, Progressed):
        if state.video_loading or state.player_state is PlayerState.ENDED:
            return state
        return replace(state, current_time=_clamp_time(state, event.current_time))

    if isinstance(event, Seeking):
        return replace(state, current_time=_clamp_time(state, event.current_time))

    if isinstance(event, Ended):
        return replace(state, player_state=PlayerState.ENDED)

    if isinstance(event, BufferChanged):
        return replace(state, buffering=bool(event.is_buffering))

    if isinstance(event, PlaybackFailed):
        # Player keeps its last known state and stream
        return replace(state, video_loading=False)

    raise TypeError(f"Unknown player event: {event!r}")


# =============================================================================
# WIDGET BOUNDARY
# =============================================================================

class VideoWidget:
    """Commands the controller sends to whatever renders the video.

    The base class is a no-op sink; subclasses override what they support.
    """

    def set_source(self, source):
        """``source`` is ``{uri, headers}`` or None to unload"""

    def set_paused(self, paused):
        pass

    def seek(self, time):
        pass

    def set_fullscreen(self, fullscreen):
        """Enter or leave fullscreen, locking landscape or portrait"""


def log_alert(title, message):
    logger.warning(f"[ALERT] {title}: {message}")


class PlayerController:
    """Holds the PlaybackState and turns user actions and widget callbacks into events.

    Events are queued and drained synchronously, so a widget command issued
    while handling one event that triggers a callback is applied after it.
    Fetches follow a latest-request-wins policy: a response that arrives after
    a newer fetch or a clear_all is dropped.
    """

    def __init__(self, client=None, widget=None, alert=None):
        self.client = client or StreamAPIClient()
        self.widget = widget or VideoWidget()
        self.alert = alert or log_alert
        self._state = PlaybackState()
        self._events = deque()
        self._draining = False
        self._lock = threading.RLock()
        self._ticket = 0

    @property
    def state(self):
        return self._state

    def dispatch(self, event):
        with self._lock:
            self._events.append(event)
            if self._draining:
                return self._state
            self._draining = True
            try:
                while self._events:
                    self._state = update(self._state, self._events.popleft())
            except Exception:
                # Drop whatever was queued behind the failed event
                self._events.clear()
                raise
            finally:
                self._draining = False
            return self._state

    # -------------------------------------------------------------------------
    # user actions
    # -------------------------------------------------------------------------

    def set_title(self, title):
        if title is None:
            title = ''
        if not isinstance(title, str):
            raise TypeError(f"title must be a string, not {type(title).__name__}")
        self.dispatch(TitleChanged(title))

    @property
    def can_fetch(self):
        return bool(self._state.title.strip()) and not self._state.loading

    def fetch_stream(self, title=None):
        """Resolve a title and start playing it.

        Returns True when a stream was stored. A blank title never reaches
        the network.
        """
        if title is not None:
            self.set_title(title)
        title = self._state.title.strip()

        if not title:
            self.dispatch(FetchFailed(VALIDATION_MESSAGE))
            self.alert('Error', VALIDATION_MESSAGE)
            return False

        with self._lock:
            self._ticket += 1
            ticket = self._ticket
        self.dispatch(FetchStarted())
        self.widget.set_source(None)

        logger.info(f"Searching for: {title}")
        try:
            data = self.client.get_stream(title)
        except Exception as e:
            return self._finish(ticket, FetchFailed(f"Network error: {e}"),
                                alert=('Network Error', NETWORK_ALERT_MESSAGE))

        if not isinstance(data, dict) or not data.get('success'):
            message = (data.get('error') if isinstance(data, dict) else None) or UPSTREAM_FALLBACK_MESSAGE
            return self._finish(ticket, FetchFailed(message), alert=('Error', message))

        try:
            stream = StreamDescriptor.from_json(data)
        except InvalidStreamError as e:
            return self._finish(ticket, FetchFailed(str(e)), alert=('Error', str(e)))

        logger.info(f"Stream ready: {stream.m3u8_url}")
        return self._finish(ticket, FetchSucceeded(stream))

    def _finish(self, ticket, event, alert=None):
        with self._lock:
            if ticket != self._ticket:
                logger.debug(f"Dropping stale fetch result: {event!r}")
                return False
            self.dispatch(event)
            self.dispatch(FetchFinished())

        if alert:
            self.alert(*alert)
        if isinstance(event, FetchSucceeded):
            self.widget.set_source(event.stream.source())
            self.widget.set_paused(False)
            return True
        return False

    def play_example(self, title):
        return self.fetch_stream(title)

    def seek(self, time):
        self.widget.seek(time)

    def pause(self):
        self._set_player_state(PlayerState.PAUSED)

    def resume(self):
        self._set_player_state(PlayerState.PLAYING)

    def toggle_pause(self):
        if self._state.player_state is PlayerState.PLAYING:
            self.pause()
        else:
            self.resume()

    def _set_player_state(self, player_state):
        self.dispatch(PlayerStateChanged(player_state))
        self.widget.set_paused(player_state is not PlayerState.PLAYING)

    def replay(self):
        self.dispatch(Replayed())
        self.widget.set_paused(False)
        self.widget.seek(0)

    def clear_all(self):
        with self._lock:
            # Invalidate any fetch still in flight
            self._ticket += 1
            was_fullscreen = self._state.is_fullscreen
            self.dispatch(Cleared())
        self.widget.set_source(None)
        self.widget.set_paused(True)
        if was_fullscreen:
            self.widget.set_fullscreen(False)

    def enter_fullscreen(self):
        self.dispatch(FullscreenChanged(True))
        self.widget.set_fullscreen(True)

    def exit_fullscreen(self):
        self.dispatch(FullscreenChanged(False))
        self.widget.set_fullscreen(False)

    # -------------------------------------------------------------------------
    # widget callbacks
    # -------------------------------------------------------------------------

    def on_load_start(self):
        logger.info("Video loading started")
        self.dispatch(LoadStarted())

    def on_load(self, data):
        logger.info("Video loaded successfully")
        self.dispatch(Loaded(data.get('duration', 0.0)))

    def on_progress(self, data):
        self.dispatch(Progressed(data.get('currentTime', 0.0)))

    def on_seeking(self, current_time):
        self.dispatch(Seeking(current_time))

    def on_end(self):
        logger.info("Video ended")
        self.dispatch(Ended())

    def on_buffer(self, data):
        is_buffering = bool(data.get('isBuffering'))
        logger.debug("Buffering..." if is_buffering else "Buffering ended")
        self.dispatch(BufferChanged(is_buffering))

    def on_error(self, error):
        logger.error(f"Video Error: {error}")
        self.dispatch(PlaybackFailed(error))
        self.alert('Playback Error', PLAYBACK_ALERT_MESSAGE)

    # -------------------------------------------------------------------------
    # view helpers
    # -------------------------------------------------------------------------

    @property
    def status_text(self):
        if self._state.loading:
            return 'Loading...'
        if self._state.stream:
            return 'Playing'
        return 'Ready'

    def stream_info(self):
        """Lines for the stream information panel, empty without a stream"""
        stream = self._state.stream
        if not stream:
            return []
        return [
            f"Video ID: {stream.video_id}",
            "M3U8 URL: Loaded with headers",
            f"Referer: {stream.referer}",
            "Status: Playing with extracted headers",
        ]

    def snapshot(self):
        """JSON-friendly view of the current state"""
        state = self._state
        return {
            'title': state.title,
            'stream': state.stream.source() if state.stream else None,
            'videoId': state.stream.video_id if state.stream else None,
            'playerState': state.player_state.value,
            'currentTime': state.current_time,
            'duration': state.duration,
            'isFullscreen': state.is_fullscreen,
            'error': state.error,
            'loading': state.loading,
            'videoLoading': state.video_loading,
            'buffering': state.buffering,
            'status': self.status_text,
            'canFetch': self.can_fetch,
            'info': self.stream_info(),
        }
