"""Async owner of the playback state machine."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Dict, Optional, Sequence, Tuple

from .auth import AuthenticationRequiredError
from .events import emit_playback_event
from .graph import GraphAPIError
from .playback import (
    Effect,
    Event,
    FetchTrackUrl,
    LoadSequence,
    Next,
    PlaybackState,
    Previous,
    Reset,
    Retry,
    TogglePlayback,
    TrackEnded,
    UrlFailed,
    UrlResolved,
    transition,
)
from .playlist import PlaylistEntry

LOGGER = logging.getLogger(__name__)

UrlFetcher = Callable[[str], Awaitable[str]]


class PlaybackController:
    """Apply playback events and run the URL fetches they request.

    Concurrent callers may interleave while a fetch is pending; every result is
    fed back tagged with the generation of its request, so only the latest one
    changes the state.
    """

    def __init__(
        self,
        fetch_url: UrlFetcher,
        *,
        correlation: Optional[Callable[[], Dict[str, str]]] = None,
    ) -> None:
        self._fetch_url = fetch_url
        self._state = PlaybackState()
        self._correlation = correlation or dict

    @property
    def state(self) -> PlaybackState:
        return self._state

    def _apply(self, event: Event) -> Tuple[Effect, ...]:
        previous = self._state
        self._state, effects = transition(previous, event)
        if self._state is not previous and self._state.status is not previous.status:
            current = self._state.current
            emit_playback_event(
                f"{previous.status.value} -> {self._state.status.value}",
                context={
                    "event": type(event).__name__,
                    "index": self._state.index,
                    "generation": self._state.generation,
                    "track": current.name if current is not None else None,
                    "error": self._state.error,
                },
                correlation=self._correlation(),
            )
        return effects

    async def dispatch(self, event: Event) -> PlaybackState:
        """Apply *event*, await the fetches it triggers and return the latest state."""

        for effect in self._apply(event):
            await self._run(effect)
        return self._state

    async def _run(self, effect: FetchTrackUrl) -> None:
        LOGGER.debug(
            "Fetching URL for track %s (generation %s): %s",
            effect.index,
            effect.generation,
            effect.path,
        )
        try:
            url = await self._fetch_url(effect.path)
        except AuthenticationRequiredError as error:
            self._apply(UrlFailed(generation=effect.generation, message=str(error)))
            raise
        except GraphAPIError as error:
            LOGGER.error("Could not fetch track URL for %s: %s", effect.path, error)
            self._apply(UrlFailed(generation=effect.generation, message=str(error)))
            return
        if effect.generation != self._state.generation:
            LOGGER.debug(
                "Discarding URL for generation %s; current generation is %s",
                effect.generation,
                self._state.generation,
            )
            return
        self._apply(UrlResolved(generation=effect.generation, url=url))

    async def load(self, tracks: Sequence[PlaylistEntry]) -> PlaybackState:
        return await self.dispatch(LoadSequence(tuple(tracks)))

    async def next(self) -> PlaybackState:
        return await self.dispatch(Next())

    async def previous(self) -> PlaybackState:
        return await self.dispatch(Previous())

    async def ended(self, generation: Optional[int] = None) -> PlaybackState:
        return await self.dispatch(TrackEnded(generation=generation))

    async def toggle(self) -> PlaybackState:
        return await self.dispatch(TogglePlayback())

    async def retry(self) -> PlaybackState:
        return await self.dispatch(Retry())

    async def reset(self) -> PlaybackState:
        return await self.dispatch(Reset())


__all__ = ["PlaybackController", "UrlFetcher"]
