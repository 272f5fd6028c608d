# app/routes/pincode.py

from fastapi import APIRouter, Depends, Query, Request, status

from app.routes.auth import admin_required
from app.schemas.pincode import PincodeIn, Serviceability
from app.schemas.user import Actor
from app.services.pincode import check_serviceability, upsert_pincode

router = APIRouter()


@router.get(
    "/",
    response_model=Serviceability,
    status_code=status.HTTP_200_OK,
    summary="Delivery serviceability of a pincode",
    responses={
        200: {"description": "Serviceability resolved (is_serviceable may be false)"},
        400: {"description": "Pincode is not 6 digits"},
        500: {"description": "Internal server error"},
    },
)
async def get_serviceability(request: Request, pincode: str = Query(...)):
    try:
        return await check_serviceability(request.state.db, pincode)
    except Exception as e:
        await request.app.state.log.log_error("pincode", f"Serviceability error: {e}", {"pincode": pincode})
        raise


@router.put(
    "/",
    response_model=Serviceability,
    status_code=status.HTTP_200_OK,
    summary="Create or replace a pincode record (admin)",
    responses={
        200: {"description": "Pincode saved, current serviceability returned"},
        401: {"description": "Missing or invalid token"},
        403: {"description": "Administrator required"},
        400: {"description": "Invalid pincode data"},
        500: {"description": "Internal server error"},
    },
)
async def put_pincode(body: PincodeIn, request: Request, actor: Actor = Depends(admin_required)):
    db = request.state.db
    try:
        await upsert_pincode(db, request.app.state.log, body)
        await db.commit()
        return await check_serviceability(db, body.pincode)
    except Exception as e:
        await request.app.state.log.log_error("pincode", f"Pincode save error: {e}", {"pincode": body.pincode})
        raise
