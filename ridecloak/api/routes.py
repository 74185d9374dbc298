from typing import Tuple
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ridecloak.api.deps import get_service
from ridecloak.service.core import RideService
from ridecloak.service.errors import (
    AlreadyAccepted, DriverUnavailable, DuplicateOrder, InvalidInput, InvalidTransition, OrderNotFound,
)

router = APIRouter(prefix="/api")

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class OrderReq(CamelModel):
    order_id: str
    rider_id: str
    lat: float
    lon: float
    destination: Tuple[float, float]

class MatchReq(CamelModel):
    order_id: str

class AcceptReq(CamelModel):
    driver_id: str

def _call(fn, *args):
    try:
        return fn(*args)
    except DuplicateOrder as e:
        raise HTTPException(status_code=409, detail=e.detail)
    except InvalidInput as e:
        raise HTTPException(status_code=400, detail=e.detail)
    except OrderNotFound as e:
        raise HTTPException(status_code=404, detail=e.detail)
    except (AlreadyAccepted, DriverUnavailable, InvalidTransition) as e:
        raise HTTPException(status_code=409, detail=e.detail)

@router.post("/order")
def create_order(p: OrderReq, service: RideService = Depends(get_service)):
    return {"status": "ok", **_call(service.create_order, p.order_id, p.rider_id, p.lat, p.lon, p.destination)}

@router.post("/match")
def match(p: MatchReq, service: RideService = Depends(get_service)):
    return _call(service.query_candidates, p.order_id)

@router.get("/drivers")
def drivers(service: RideService = Depends(get_service)):
    return service.list_drivers()

@router.get("/orders/{order_id}")
def get_order(order_id: str, service: RideService = Depends(get_service)):
    return _call(service.get_order, order_id)

@router.post("/orders/{order_id}/accept")
def accept(order_id: str, p: AcceptReq, service: RideService = Depends(get_service)):
    return _call(service.accept, order_id, p.driver_id)

@router.post("/orders/{order_id}/start")
def start(order_id: str, service: RideService = Depends(get_service)):
    return _call(service.start, order_id)

@router.post("/orders/{order_id}/complete")
def complete(order_id: str, service: RideService = Depends(get_service)):
    return _call(service.complete, order_id)
