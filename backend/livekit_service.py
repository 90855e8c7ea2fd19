import json
import logging
import random
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from livekit import api

from errors import UpstreamError

logger = logging.getLogger(__name__)

PARTICIPANT_PREFIX = "voice_assistant_user_"
ROOM_PREFIX = "voice_assistant_room_"


@dataclass
class RoomIdentity:
    participant_name: str
    room_name: str


def random_identity(id_space: int = 10_000, rng: Optional[random.Random] = None) -> RoomIdentity:
    """Draw participant and room names independently from ``[0, id_space)``.

    Nothing checks the names against rooms already in use, so two concurrent
    callers can receive the same room.
    """
    rng = rng or random
    return RoomIdentity(
        participant_name=f"{PARTICIPANT_PREFIX}{rng.randrange(id_space)}",
        room_name=f"{ROOM_PREFIX}{rng.randrange(id_space)}",
    )


def create_participant_token(
    api_key: str,
    api_secret: str,
    identity: str,
    room_name: str,
    ttl: timedelta = timedelta(minutes=15),
) -> str:
    grants = api.VideoGrants(
        room=room_name,
        room_join=True,
        can_publish=True,
        can_publish_data=True,
        can_subscribe=True,
    )
    return (
        api.AccessToken(api_key, api_secret)
        .with_identity(identity)
        .with_name(identity)
        .with_ttl(ttl)
        .with_grants(grants)
        .to_jwt()
    )


def room_metadata(resume_id: Optional[str], resume_url: Optional[str] = None) -> str:
    metadata = {"resumeId": resume_id}
    if resume_url:
        metadata["resumeUrl"] = resume_url
    return json.dumps(metadata)


class RoomService:
    """Creates rooms on the LiveKit server API before the candidate joins."""

    def __init__(self, url: str, api_key: str, api_secret: str, empty_timeout: int = 600):
        self.url = url
        self.api_key = api_key
        self.api_secret = api_secret
        self.empty_timeout = empty_timeout

    async def create_room(self, room_name: str, metadata: str) -> None:
        lk = api.LiveKitAPI(self.url, self.api_key, self.api_secret)
        try:
            await lk.room.create_room(
                api.CreateRoomRequest(
                    name=room_name,
                    metadata=metadata,
                    empty_timeout=self.empty_timeout,
                )
            )
            logger.info("Created room %s", room_name)
        except Exception as e:
            raise UpstreamError(f"Failed to create room: {e}")
        finally:
            await lk.aclose()
