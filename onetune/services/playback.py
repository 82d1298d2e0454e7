"""Playback sequencing as a pure state machine.

``transition(state, event)`` returns the next state and the effects the owner
must run. Track URLs are requested through :class:`FetchTrackUrl` effects;
their results come back as :class:`UrlResolved` or :class:`UrlFailed` events
carrying the generation of the request. A result whose generation no longer
matches the state is stale and leaves the state untouched.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple, Union

from .playlist import PlaylistEntry


class PlaybackStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY_PAUSED = "ready-paused"
    READY_PLAYING = "ready-playing"
    ERROR = "error"


_READY_STATES = (PlaybackStatus.READY_PAUSED, PlaybackStatus.READY_PLAYING)


@dataclass(frozen=True)
class PlaybackState:
    tracks: Tuple[PlaylistEntry, ...] = ()
    index: int = 0
    url: Optional[str] = None
    status: PlaybackStatus = PlaybackStatus.IDLE
    generation: int = 0
    autoplay: bool = False
    error: Optional[str] = None

    @property
    def playing(self) -> bool:
        return self.status is PlaybackStatus.READY_PLAYING

    @property
    def current(self) -> Optional[PlaylistEntry]:
        if not self.tracks:
            return None
        return self.tracks[self.index]

    def to_dict(self) -> Dict[str, Any]:
        current = self.current
        return {
            "status": self.status.value,
            "index": self.index,
            "track_count": len(self.tracks),
            "track_name": current.name if current is not None else None,
            "track_path": current.path if current is not None else None,
            "url": self.url,
            "playing": self.playing,
            "generation": self.generation,
            "error": self.error,
        }


# Events -------------------------------------------------------------------


@dataclass(frozen=True)
class LoadSequence:
    tracks: Tuple[PlaylistEntry, ...]


@dataclass(frozen=True)
class UrlResolved:
    generation: int
    url: str


@dataclass(frozen=True)
class UrlFailed:
    generation: int
    message: str


@dataclass(frozen=True)
class Next:
    pass


@dataclass(frozen=True)
class Previous:
    pass


@dataclass(frozen=True)
class TrackEnded:
    # Generation of the track the page was playing; ``None`` skips the check.
    generation: Optional[int] = None


@dataclass(frozen=True)
class TogglePlayback:
    pass


@dataclass(frozen=True)
class Retry:
    pass


@dataclass(frozen=True)
class Reset:
    pass


Event = Union[
    LoadSequence, UrlResolved, UrlFailed, Next, Previous, TrackEnded, TogglePlayback, Retry, Reset
]


# Effects ------------------------------------------------------------------


@dataclass(frozen=True)
class FetchTrackUrl:
    generation: int
    index: int
    path: str


Effect = FetchTrackUrl
Transition = Tuple[PlaybackState, Tuple[Effect, ...]]


def _begin_loading(state: PlaybackState, index: int, *, autoplay: bool) -> Transition:
    generation = state.generation + 1
    loading = replace(
        state,
        index=index,
        status=PlaybackStatus.LOADING,
        generation=generation,
        autoplay=autoplay,
        error=None,
    )
    return loading, (FetchTrackUrl(generation=generation, index=index, path=state.tracks[index].path),)


def _step(state: PlaybackState, offset: int) -> Transition:
    if not state.tracks:
        return state, ()
    index = (state.index + offset) % len(state.tracks)
    return _begin_loading(state, index, autoplay=True)


def transition(state: PlaybackState, event: Event) -> Transition:
    """Return the state following *event* and the effects to run."""

    if isinstance(event, LoadSequence):
        tracks = tuple(event.tracks)
        if not tracks:
            return PlaybackState(generation=state.generation + 1), ()
        fresh = PlaybackState(tracks=tracks, generation=state.generation)
        return _begin_loading(fresh, 0, autoplay=False)

    if isinstance(event, Reset):
        return PlaybackState(generation=state.generation + 1), ()

    if isinstance(event, (UrlResolved, UrlFailed)):
        if event.generation != state.generation or state.status is not PlaybackStatus.LOADING:
            return state, ()
        if isinstance(event, UrlResolved):
            status = PlaybackStatus.READY_PLAYING if state.autoplay else PlaybackStatus.READY_PAUSED
            return replace(state, url=event.url, status=status, error=None), ()
        return replace(state, status=PlaybackStatus.ERROR, error=event.message), ()

    if isinstance(event, Next):
        return _step(state, 1)

    if isinstance(event, Previous):
        return _step(state, -1)

    if isinstance(event, TrackEnded):
        if event.generation is not None and event.generation != state.generation:
            return state, ()
        return _step(state, 1)

    if isinstance(event, TogglePlayback):
        if state.url is None or state.status not in _READY_STATES:
            return state, ()
        status = (
            PlaybackStatus.READY_PAUSED
            if state.status is PlaybackStatus.READY_PLAYING
            else PlaybackStatus.READY_PLAYING
        )
        return replace(state, status=status), ()

    if isinstance(event, Retry):
        if state.status is not PlaybackStatus.ERROR or not state.tracks:
            return state, ()
        return _begin_loading(state, state.index, autoplay=state.autoplay)

    raise TypeError(f"Unsupported playback event: {event!r}")


def initial_state(tracks: Sequence[PlaylistEntry] = ()) -> Transition:
    """Return the state and effects for a freshly loaded sequence."""

    return transition(PlaybackState(), LoadSequence(tuple(tracks)))


__all__ = [
    "Effect",
    "Event",
    "FetchTrackUrl",
    "LoadSequence",
    "Next",
    "PlaybackState",
    "PlaybackStatus",
    "Previous",
    "Reset",
    "Retry",
    "TogglePlayback",
    "TrackEnded",
    "Transition",
    "UrlFailed",
    "UrlResolved",
    "initial_state",
    "transition",
]
