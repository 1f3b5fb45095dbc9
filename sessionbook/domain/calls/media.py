"""Media and peer-connection interfaces the call session drives.

Any WebRTC stack (a browser bridge, aiortc, a test double) can be plugged in
by implementing these protocols. Session descriptions and ICE candidates are
plain dicts in their ``toJSON()`` shape.
"""

from typing import Callable, Optional, Protocol


class MediaTrack(Protocol):
    kind: str  # "audio" or "video"
    enabled: bool

    def stop(self) -> None: ...

    def on_ended(self, callback: Callable[[], None]) -> None:
        """Register a callback for when the track ends outside our control"""
        ...


class MediaDevices(Protocol):
    async def get_user_media(self, audio: bool = True, video: bool = True) -> list[MediaTrack]:
        """Camera and microphone tracks; raises MediaAccessError when denied"""
        ...

    async def get_display_media(self) -> MediaTrack:
        """A screen-capture video track"""
        ...


class RtpSender(Protocol):
    track: Optional[MediaTrack]

    async def replace_track(self, track: Optional[MediaTrack]) -> None: ...


class PeerConnection(Protocol):
    connection_state: str

    def add_track(self, track: MediaTrack) -> RtpSender: ...

    async def create_offer(self) -> dict: ...

    async def create_answer(self) -> dict: ...

    async def set_local_description(self, description: dict) -> None: ...

    async def set_remote_description(self, description: dict) -> None: ...

    async def add_ice_candidate(self, candidate: dict) -> None: ...

    def on_ice_candidate(self, callback: Callable[[dict], None]) -> None: ...

    def on_track(self, callback: Callable[[MediaTrack], None]) -> None: ...

    def on_connection_state_change(self, callback: Callable[[str], None]) -> None: ...

    async def close(self) -> None: ...


# Builds a peer connection from a list of RTCIceServer dicts
PeerConnectionFactory = Callable[[list[dict]], PeerConnection]
