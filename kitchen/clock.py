import datetime as dt
import logging

from kitchen.models import DAYS, DayMealKey, MealTime


logger = logging.getLogger(__name__)


# Indian Standard Time, applied whatever the server's own timezone is.
IST_OFFSET = dt.timedelta(hours=5, minutes=30)


def meal_time_for_hour(hour: int) -> MealTime:
    if 5 <= hour < 11:
        return MealTime.breakfast
    if 11 <= hour < 16:
        return MealTime.lunch
    return MealTime.dinner


def day_of_week(when: dt.datetime) -> str:
    # isoweekday: Monday == 1 ... Sunday == 7
    return DAYS[when.isoweekday() % 7]


def ist_now(instant: dt.datetime | None = None) -> dt.datetime:
    """The instant shifted into IST, returned as a naive wall-clock time.

    Naive instants are taken to be UTC.
    """
    instant = dt.datetime.now(dt.timezone.utc) if instant is None else instant
    if instant.tzinfo is not None:
        instant = instant.astimezone(dt.timezone.utc).replace(tzinfo=None)
    return instant + IST_OFFSET


def resolve(instant: dt.datetime | None = None) -> DayMealKey:
    local = ist_now(instant)
    key = DayMealKey(day_of_week(local), meal_time_for_hour(local.hour))
    logger.debug(
        "IST time %s, day %s, hour %s, meal time %s",
        local.isoformat(),
        key.day,
        local.hour,
        key.meal_time.value,
    )
    return key
