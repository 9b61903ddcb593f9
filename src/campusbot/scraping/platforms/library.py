"""
Library Session - Library system rooms, reservations and status.
================================================================

Paths:
- /rooms                      study room list
- /rooms/<id>/schedule        bookings of one room
- /rooms/reserve              reservation (POST, JSON reply)
- /rooms/cancel/<id>          cancellation (POST, JSON reply)
- /status                     occupancy, opening hours and notices
"""

import json
from typing import Any, Optional

from campusbot.scraping.extractor import RecordKind
from campusbot.scraping.fetcher import FetchedPage
from campusbot.scraping.platforms.base import CategoryHandler, PlatformSession
from campusbot.shared.errors import ParseError
from campusbot.shared.logging import get_logger
from campusbot.shared.schemas import (
    Category,
    LibraryResource,
    Platform,
    ReservationResult,
    RoomRecord,
    RoomScheduleSlot,
)

logger = get_logger(__name__)

DEFAULT_PURPOSE = "학습"


class LibrarySession(PlatformSession):
    """Session for the library system."""

    platform = Platform.LIBRARY

    async def list_rooms(self, campus: Optional[str] = None) -> list[RoomRecord]:
        return await self._scrape(self.urls.query_url("/rooms", {"campus": campus}), RecordKind.ROOM)

    async def get_room_schedule(self, room_id: str) -> list[RoomScheduleSlot]:
        return await self._scrape(self.urls.url(f"/rooms/{room_id}/schedule"), RecordKind.ROOM_SCHEDULE)

    async def get_status(self, campus: Optional[str] = None) -> LibraryResource:
        return await self._scrape(
            self.urls.query_url("/status", {"campus": campus}), RecordKind.LIBRARY_STATUS
        )

    def _decode_reply(self, page: FetchedPage) -> dict[str, Any]:
        try:
            data = page.json()
        except json.JSONDecodeError as e:
            raise ParseError(f"Library reply from {page.url} is not JSON") from e
        if not isinstance(data, dict):
            raise ParseError(f"Library reply from {page.url} is not a JSON object")
        return data

    async def reserve_room(
        self,
        room_id: str,
        date: str,
        start_time: str,
        end_time: str,
        purpose: str = DEFAULT_PURPOSE,
    ) -> ReservationResult:
        """
        Reserve a study room.

        Args:
            room_id: Room identifier from list_rooms
            date: Reservation date (YYYY-MM-DD)
            start_time: Start time (HH:MM)
            end_time: End time (HH:MM)
            purpose: Free-text purpose shown on the booking
        """
        page = await self._post(
            self.urls.url("/rooms/reserve"),
            {
                "roomId": room_id,
                "date": date,
                "startTime": start_time,
                "endTime": end_time,
                "purpose": purpose or DEFAULT_PURPOSE,
            },
        )
        data = self._decode_reply(page)
        result = ReservationResult(
            success=data.get("success") is True,
            reservation_id=str(data["reservationId"]) if data.get("reservationId") else None,
            message=str(data.get("message") or ""),
        )
        logger.info(f"Reservation of room {room_id} on {date}: success={result.success}")
        return result

    async def cancel_reservation(self, reservation_id: str) -> ReservationResult:
        page = await self._post(self.urls.url(f"/rooms/cancel/{reservation_id}"), {})
        data = self._decode_reply(page)
        return ReservationResult(
            success=data.get("success") is True,
            reservation_id=reservation_id,
            message=str(data.get("message") or ""),
        )

    async def _status_for_category(self, campus: str, count: int) -> list[LibraryResource]:
        return [await self.get_status(campus)]

    async def _rooms_for_category(self, campus: str, count: int) -> list[RoomRecord]:
        return await self.list_rooms(campus)

    def category_handlers(self) -> dict[str, CategoryHandler]:
        return {
            Category.LIBRARY.value: self._status_for_category,
            Category.STUDYROOM.value: self._rooms_for_category,
            Category.FACILITIES.value: self._status_for_category,
        }
