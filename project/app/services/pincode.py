# app/services/pincode.py

import re
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.models.pincode import Pincode, PincodeSlot
from app.schemas.pincode import PincodeIn
from app.utils.errors import ValidationError
from app.utils.log import Log

PINCODE_RE = re.compile(r"^\d{6}$")
SLOT_WINDOW_DAYS = 3   # standard_days, +1, +2


def day_label(day: datetime) -> str:
    """'Wed, 21 Oct' regardless of the process locale."""
    return f"{day:%a}, {day.day} {day:%b}"


def offered_slots(record: Pincode, now: datetime) -> list[dict]:
    """
    Slots for the days standard_days .. standard_days+2 counted from midnight of `now`.
    On the nearest day a slot is skipped once now.hour reaches its cutoff hour.
    """
    slots = []
    if not record.slots:
        return slots

    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    for offset in range(record.standard_days, record.standard_days + SLOT_WINDOW_DAYS):
        day = midnight + timedelta(days=offset)
        for slot in record.slots:
            if offset == record.standard_days and now.hour >= slot.cutoff_hour:
                continue
            slots.append({
                "label": f"{day_label(day)}, {slot.label} ({slot.start_hour}:00 - {slot.end_hour}:00)",
                "date": day.date(),
                "extra_charge": slot.extra_charge or 0,
            })
    return slots


async def check_serviceability(db: AsyncSession, pincode: str, now: datetime | None = None) -> dict:
    """
    Delivery feasibility for a postal code. Unknown or disabled codes are not an error,
    they come back with is_serviceable=False.
    """
    pincode = (pincode or "").strip()
    if not PINCODE_RE.match(pincode):
        raise ValidationError("Valid 6-digit pincode is required")

    now = now or datetime.now()
    result = await db.execute(select(Pincode).where(Pincode.pincode == pincode))
    record = result.scalar_one_or_none()
    if record is None or not record.is_serviceable:
        return {"pincode": pincode, "is_serviceable": False}

    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    standard_date = midnight + timedelta(days=record.standard_days)
    express_date = midnight + timedelta(days=record.express_days) if record.express_delivery else None

    return {
        "pincode": pincode,
        "is_serviceable": True,
        "city": record.city,
        "state": record.state,
        "country": record.country,
        "cod_available": record.cod_available,
        "delivery": {
            "standard_days": record.standard_days,
            "express_days": record.express_days if record.express_delivery else None,
            "delivery_charge": record.delivery_charge,
            "express_charge": record.express_charge if record.express_delivery else None,
            "free_delivery_above": record.free_delivery_above,
            "standard_date": standard_date.date(),
            "express_date": express_date.date() if express_date else None,
            "estimated_date": day_label(standard_date),
        },
        "slots": offered_slots(record, now),
    }


async def upsert_pincode(db: AsyncSession, log: Log, data: PincodeIn) -> Pincode:
    """Creates or fully replaces a pincode record together with its slots."""
    result = await db.execute(select(Pincode).where(Pincode.pincode == data.pincode))
    record = result.scalar_one_or_none()
    created = record is None
    if created:
        record = Pincode(pincode=data.pincode)
        db.add(record)

    for key, value in data.model_dump(exclude={"pincode", "slots"}).items():
        setattr(record, key, value)
    record.slots = [PincodeSlot(**slot.model_dump()) for slot in data.slots]

    await db.flush()
    await log.log_info("pincode", "Pincode created" if created else "Pincode updated", {
        "pincode": data.pincode, "slots": len(data.slots),
    })
    return record
