"""Calendar view schemas."""

from pydantic import BaseModel, Field

from marketplace.schemas.booking import BookingResponse, BookingStats


class CalendarPeriod(BaseModel):
    year: int
    month: int = Field(ge=1, le=12)


class CalendarResponse(BaseModel):
    """Month view of bookings.

    ``bookings_by_day`` is keyed by ``YYYY-MM-DD``; ``blocked_dates`` lists
    every day covered by a confirmed stay that touches the month.
    """

    period: CalendarPeriod
    bookings: list[BookingResponse]
    bookings_by_day: dict[str, list[BookingResponse]]
    blocked_dates: list[str]
    stats: BookingStats
