r"""
Client-side controller for one peer of a video call.

The session acquires local media, claims the signaling room to learn its
role, and then drives a peer connection from room events:

    IDLE -> ACQUIRING_MEDIA -> JOINING -> OFFERING ---------------> CONNECTING -> CONNECTED
                                      \-> WAITING_FOR_OFFER -> ANSWERING -/

Any state can move to CLOSED. Room events arrive through the channel's
subscription callback, are queued, and are handled one at a time on the
event loop, so no two handlers interleave. Once closed, late events are
dropped.

Usage:
    session = CallSession(room_id, peer_id, channel, media, peer_factory, on_leave=...)
    await session.join()
    ...
    await session.hang_up()
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Optional

from ...config import CALL_END_GRACE_SECONDS, ICE_SERVERS
from ...shared.errors import MediaAccessError, SessionBookError
from .channel import SignalingChannel
from .media import MediaDevices, MediaTrack, PeerConnection, PeerConnectionFactory, RtpSender
from .schemas import is_valid_description

logger = logging.getLogger(__name__)


class CallState(str, Enum):
    IDLE = "idle"
    ACQUIRING_MEDIA = "acquiring_media"
    JOINING = "joining"
    OFFERING = "offering"
    WAITING_FOR_OFFER = "waiting_for_offer"
    ANSWERING = "answering"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


ALLOWED_TRANSITIONS: dict[CallState, set[CallState]] = {
    CallState.IDLE: {CallState.ACQUIRING_MEDIA, CallState.CLOSED},
    CallState.ACQUIRING_MEDIA: {CallState.JOINING, CallState.CLOSED},
    CallState.JOINING: {CallState.OFFERING, CallState.WAITING_FOR_OFFER, CallState.CLOSED},
    CallState.OFFERING: {CallState.CONNECTING, CallState.CLOSED},
    CallState.WAITING_FOR_OFFER: {CallState.ANSWERING, CallState.CLOSED},
    CallState.ANSWERING: {CallState.CONNECTING, CallState.CLOSED},
    CallState.CONNECTING: {CallState.CONNECTED, CallState.CLOSED},
    CallState.CONNECTED: {CallState.CLOSED},
    CallState.CLOSED: set(),
}


class CallSessionError(Exception):
    """Raised when an operation does not fit the session's current state."""


class InvalidTransitionError(CallSessionError):
    """Raised when a state change is not in the transition table."""


class CallSession:
    """One peer's side of a call: media, peer connection and room signaling"""

    def __init__(
        self,
        room_id: str,
        peer_id: str,
        channel: SignalingChannel,
        media: MediaDevices,
        peer_factory: PeerConnectionFactory,
        on_leave: Optional[Callable[[], None]] = None,
        on_remote_track: Optional[Callable[[MediaTrack], None]] = None,
        on_connection_state: Optional[Callable[[str], None]] = None,
        on_room_update: Optional[Callable[[dict], None]] = None,
        ice_servers: Optional[list[dict]] = None,
        end_grace_seconds: float = CALL_END_GRACE_SECONDS,
    ):
        self.room_id = room_id
        self.peer_id = peer_id
        self.channel = channel
        self.media = media
        self.peer_factory = peer_factory
        self.on_leave = on_leave
        self.on_remote_track = on_remote_track
        self.on_connection_state = on_connection_state
        self.on_room_update = on_room_update
        self.ice_servers = ICE_SERVERS if ice_servers is None else ice_servers
        self.end_grace_seconds = end_grace_seconds

        self.state = CallState.IDLE
        self.role: Optional[str] = None
        self.room: Optional[dict] = None
        self.peer: Optional[PeerConnection] = None
        self.local_tracks: list[MediaTrack] = []
        self.remote_tracks: list[MediaTrack] = []
        self.muted = False
        self.camera_off = False
        self.screen_sharing = False

        self._camera_track: Optional[MediaTrack] = None
        self._screen_track: Optional[MediaTrack] = None
        self._video_sender: Optional[RtpSender] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._events: Optional[asyncio.Queue] = None
        self._pump_task: Optional[asyncio.Task] = None
        self._end_task: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._joined = False
        self._closed = False
        self._left = False
        self._remote_description_set = False
        self._pending_candidates: list[dict] = []
        self._seen_candidate_ids: set[int] = set()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def remote_side(self) -> str:
        """Candidate side written by the other peer"""
        return "answer" if self.role == "caller" else "offer"

    def _transition(self, new_state: CallState) -> None:
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"No valid transition from '{self.state.value}' to '{new_state.value}'"
            )
        logger.debug(f"Call {self.room_id}/{self.peer_id}: {self.state.value} -> {new_state.value}")
        self.state = new_state

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def join(self) -> bool:
        """
        Acquire media, claim the room and start signaling.

        Returns False when camera/microphone access was denied. A signaling
        error is re-raised. Either way the session is closed and ``on_leave``
        has been called.
        """
        self._transition(CallState.ACQUIRING_MEDIA)
        try:
            self.local_tracks = list(await self.media.get_user_media(audio=True, video=True))
        except MediaAccessError as e:
            logger.warning(f"⚠️ Media access denied for {self.peer_id} in room {self.room_id}: {e.message}")
            await self._teardown(end_room=False)
            return False

        self._camera_track = next((t for t in self.local_tracks if t.kind == "video"), None)
        self._transition(CallState.JOINING)

        try:
            claim = await self.channel.claim(self.room_id, self.peer_id)
            self._joined = True
            self.role = claim.role
            self.room = claim.room.model_dump(mode="json")
            await self.channel.set_presence(self.room_id, self.peer_id, True)
        except SessionBookError:
            await self._teardown(end_room=False)
            raise

        logger.info(f"📞 {self.peer_id} joined room {self.room_id} as {self.role}")

        self._loop = asyncio.get_running_loop()
        self._events = asyncio.Queue()
        self._unsubscribe = self.channel.subscribe(self.room_id, self._enqueue)

        if self.role == "caller":
            self._transition(CallState.OFFERING)
            try:
                await self._send_offer()
            except SessionBookError as e:
                logger.warning(f"⚠️ Offer rejected in room {self.room_id}: {e.message}")
                await self._teardown(end_room=False)
                raise
        else:
            # The first valid offer arrives through the subscription
            self._transition(CallState.WAITING_FOR_OFFER)

        self._pump_task = asyncio.create_task(self._pump_events())
        return True

    async def hang_up(self) -> None:
        """End the call for both peers, then tear down locally"""
        await self._teardown(end_room=True)

    async def leave(self) -> None:
        """Tear down locally (e.g. page unmount) without ending the room"""
        await self._teardown(end_room=False)

    async def _teardown(self, end_room: bool) -> None:
        if self._closed:
            return
        self._closed = True

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        for track in self.local_tracks:
            track.stop()
        if self._screen_track is not None:
            self._screen_track.stop()
            self._screen_track = None
        self.screen_sharing = False

        if self.peer is not None:
            await self.peer.close()

        if self._joined:
            if end_room:
                try:
                    await self.channel.end(self.room_id, self.peer_id)
                except SessionBookError as e:
                    logger.warning(f"⚠️ Could not mark room {self.room_id} ended: {e.message}")
            try:
                await self.channel.set_presence(self.room_id, self.peer_id, False)
            except SessionBookError as e:
                logger.warning(f"⚠️ Could not clear presence in room {self.room_id}: {e.message}")

        if self._events is not None:
            self._events.put_nowait(None)
        current = asyncio.current_task()
        if self._end_task is not None and self._end_task is not current:
            self._end_task.cancel()

        self._transition(CallState.CLOSED)
        logger.info(f"📴 {self.peer_id} left room {self.room_id}")

        if not self._left:
            self._left = True
            if self.on_leave is not None:
                self.on_leave()

    # ------------------------------------------------------------------
    # Local media controls
    # ------------------------------------------------------------------

    def toggle_mute(self) -> bool:
        """Flip the microphone tracks' enabled flag; returns the new muted state"""
        self.muted = not self.muted
        for track in self.local_tracks:
            if track.kind == "audio":
                track.enabled = not self.muted
        return self.muted

    def toggle_camera(self) -> bool:
        self.camera_off = not self.camera_off
        for track in self.local_tracks:
            if track.kind == "video":
                track.enabled = not self.camera_off
        return self.camera_off

    async def start_screen_share(self) -> None:
        """Send a screen track in place of the camera through the existing sender"""
        if self._closed or self._video_sender is None:
            raise CallSessionError("Screen sharing needs an active peer connection")
        if self.screen_sharing:
            return

        screen = await self.media.get_display_media()
        await self._video_sender.replace_track(screen)
        self._screen_track = screen
        self.screen_sharing = True
        # Browser-level "stop sharing" ends the track on its own
        screen.on_ended(lambda: self._schedule(self.stop_screen_share))
        logger.info(f"🖥️ {self.peer_id} started screen sharing in room {self.room_id}")

    async def stop_screen_share(self) -> None:
        """Restore the camera track on the video sender"""
        if not self.screen_sharing or self._closed:
            return

        screen, self._screen_track = self._screen_track, None
        self.screen_sharing = False
        if self._video_sender is not None:
            await self._video_sender.replace_track(self._camera_track)
        if screen is not None:
            screen.stop()
        logger.info(f"🖥️ {self.peer_id} stopped screen sharing in room {self.room_id}")

    # ------------------------------------------------------------------
    # Peer connection
    # ------------------------------------------------------------------

    def _create_peer(self) -> PeerConnection:
        peer = self.peer_factory(self.ice_servers)
        peer.on_ice_candidate(self._on_local_candidate)
        peer.on_track(self._on_remote_track)
        peer.on_connection_state_change(self._on_connection_state_change)
        for track in self.local_tracks:
            sender = peer.add_track(track)
            if track is self._camera_track:
                self._video_sender = sender
        self.peer = peer
        return peer

    async def _send_offer(self) -> None:
        peer = self._create_peer()
        offer = await peer.create_offer()
        await peer.set_local_description(offer)
        await self.channel.write_offer(self.room_id, self.peer_id, offer)

    async def _answer_offer(self, offer: dict) -> None:
        self._transition(CallState.ANSWERING)
        peer = self._create_peer()
        await peer.set_remote_description(offer)
        await self._remote_description_ready()
        answer = await peer.create_answer()
        await peer.set_local_description(answer)
        await self.channel.write_answer(self.room_id, self.peer_id, answer)
        self._enter_connecting()

    async def _apply_answer(self, answer: dict) -> None:
        await self.peer.set_remote_description(answer)
        await self._remote_description_ready()
        self._enter_connecting()

    def _enter_connecting(self) -> None:
        self._transition(CallState.CONNECTING)
        # ICE may already have completed while the descriptions were exchanged
        if self.peer.connection_state == "connected":
            self._transition(CallState.CONNECTED)

    async def _remote_description_ready(self) -> None:
        self._remote_description_set = True
        pending, self._pending_candidates = self._pending_candidates, []
        for candidate in pending:
            await self.peer.add_ice_candidate(candidate)

    def _on_local_candidate(self, candidate: dict) -> None:
        if self._closed:
            return
        self._schedule(self._send_candidate, candidate)

    async def _send_candidate(self, candidate: dict) -> None:
        if self._closed:
            return
        try:
            await self.channel.add_candidate(self.room_id, self.peer_id, candidate)
        except SessionBookError as e:
            logger.warning(f"⚠️ Dropped local ICE candidate for room {self.room_id}: {e.message}")

    def _on_remote_track(self, track: MediaTrack) -> None:
        if self._closed:
            return
        self.remote_tracks.append(track)
        if self.on_remote_track is not None:
            self.on_remote_track(track)

    def _on_connection_state_change(self, state: str) -> None:
        if self._closed:
            return
        logger.info(f"Call {self.room_id}/{self.peer_id} connection state: {state}")
        if state == "connected" and self.state == CallState.CONNECTING:
            self._transition(CallState.CONNECTED)
        if self.on_connection_state is not None:
            self.on_connection_state(state)

    # ------------------------------------------------------------------
    # Room events
    # ------------------------------------------------------------------

    def _enqueue(self, event: dict[str, Any]) -> None:
        if self._closed or self._loop is None:
            return
        self._loop.call_soon_threadsafe(self._events.put_nowait, event)

    async def _pump_events(self) -> None:
        while True:
            event = await self._events.get()
            if event is None or self._closed:
                return
            try:
                await self._handle_event(event)
            except Exception as e:
                logger.error(f"❌ Call {self.room_id}/{self.peer_id} failed handling {event.get('type')} event: {e}")

    async def _handle_event(self, event: dict[str, Any]) -> None:
        if event.get("type") == "room":
            await self._handle_room(event["room"])
        elif event.get("type") == "candidate":
            await self._handle_candidate(event)

    async def _handle_room(self, room: dict) -> None:
        self.room = room
        if self.on_room_update is not None:
            self.on_room_update(room)

        if room.get("ended"):
            if self._end_task is None:
                logger.info(f"Room {self.room_id} ended, leaving in {self.end_grace_seconds}s")
                self._end_task = asyncio.create_task(self._leave_after_grace())
            return

        if self.role == "caller":
            if self.state == CallState.OFFERING and is_valid_description(room.get("answer"), "answer"):
                await self._apply_answer(room["answer"])
        elif self.state == CallState.WAITING_FOR_OFFER and is_valid_description(room.get("offer"), "offer"):
            try:
                await self._answer_offer(room["offer"])
            except SessionBookError as e:
                logger.warning(f"⚠️ Answer rejected in room {self.room_id}: {e.message}")
                await self._teardown(end_room=False)

    async def _handle_candidate(self, event: dict) -> None:
        if event.get("side") != self.remote_side:
            return
        candidate_id = event.get("id")
        if candidate_id in self._seen_candidate_ids:
            return
        self._seen_candidate_ids.add(candidate_id)

        if not self._remote_description_set:
            self._pending_candidates.append(event["candidate"])
            return
        await self.peer.add_ice_candidate(event["candidate"])

    async def _leave_after_grace(self) -> None:
        await asyncio.sleep(self.end_grace_seconds)
        await self._teardown(end_room=False)

    def _schedule(self, coroutine_fn: Callable, *args) -> None:
        """Run a coroutine on the session's loop from a plain callback"""

        def start() -> None:
            task = asyncio.ensure_future(coroutine_fn(*args))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        if self._loop is not None:
            self._loop.call_soon_threadsafe(start)
        else:
            start()
