"""
Playback token endpoint for Cloudflare Stream.

POST /api/video/token
    Authorization: Bearer <sessionToken>
    {"videoId": "<stream video uid>"}

The session and entitlement are checked before the body, so an
unauthenticated caller always gets 401 whatever it sends.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from src.api.dependencies.services import get_bearer_token, get_playback_token_service
from src.services.playback_token_service import PlaybackTokenService

router = APIRouter(prefix="/api/video", tags=["video"])


async def _read_video_id(request: Request) -> Optional[str]:
    """videoId from the JSON body, or None when the body is unusable."""
    try:
        body = await request.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    video_id = body.get("videoId")
    return video_id if isinstance(video_id, str) else None


@router.post("/token")
async def create_playback_token(
    request: Request,
    bearer_token: Optional[str] = Depends(get_bearer_token),
    service: PlaybackTokenService = Depends(get_playback_token_service),
) -> dict:
    """
    Mint a signed playback token for one video.

    Returns:
        {token, videoId, customerSubdomain, expiresIn}
    """
    video_id = await _read_video_id(request)
    result = await run_in_threadpool(service.mint, video_id, bearer_token)
    return result.to_response()
