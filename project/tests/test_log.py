# tests/test_log.py

import datetime

from app.schemas.order import ByStatus
from app.utils.errors import InsufficientBalance, NotFound
from app.utils.log import Log


async def test_log_writes_daily_file(tmp_path):
    log = Log(log_dir=str(tmp_path), log_print=False)

    await log.log_info("order", "Order created", {"id": 7})
    await log.log_warning("rewards", "Insufficient points", {"requested": 80})
    await log.shutdown()

    with open(log.build_log_path(datetime.datetime.now()), encoding="utf-8") as fh:
        content = fh.read()
    assert "order: Order created: {'id': 7}" in content
    assert "rewards: WARNING: Insufficient points" in content


def test_safe_serialize(tmp_path):
    log = Log(log_dir=str(tmp_path), log_print=False)

    data = log.safe_serialize({
        "at": datetime.datetime(2026, 10, 21, 9, 0),
        "filter": ByStatus(status="shipped"),
        "ids": (1, 2),
    })

    assert data == {
        "at": "2026-10-21T09:00:00",
        "filter": {"kind": "status", "status": "shipped"},
        "ids": [1, 2],
    }


def test_error_bodies():
    assert NotFound("Order not found").to_dict() == {"error": "Order not found"}
    assert InsufficientBalance(available=3, requested=9).status_code == 400
