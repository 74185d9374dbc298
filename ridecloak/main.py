from fastapi import FastAPI
from ridecloak.api import realtime, routes
from ridecloak.api.deps import get_service
from ridecloak.config.settings import configure_logging, get_settings

app = FastAPI(title="Privacy-Preserving Ride Matching")
app.include_router(routes.router)
app.include_router(realtime.router)

@app.on_event("startup")
def startup_event():
    configure_logging()
    # bootstrap the driver directory before the first request
    get_service()

@app.get("/health")
def health():
    return {"status": "ok", "node": get_settings().node_id}
