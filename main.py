from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException

from npr.api_models import CycleStatusOut, PortOut
from npr.browser import DiscoveryError
from npr.reconciler import PortReconciler
from npr.settings import settings

logger = logging.getLogger(__name__)


def create_app(reconciler: PortReconciler | None = None, poll_interval_s: float = settings.poll_interval_s) -> FastAPI:
    rec = reconciler or PortReconciler()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if poll_interval_s > 0:
            rec.start(poll_interval_s)
        yield
        rec.stop(timeout_s=1.0)

    app = FastAPI(title="Network Port Reconciler", lifespan=lifespan)
    app.state.reconciler = rec

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "healthy"}

    @app.get("/ports", response_model=list[PortOut])
    def list_ports() -> list[PortOut]:
        return [PortOut.from_port(p) for p in rec.known_ports()]

    # Plain def: FastAPI runs it in the threadpool, so the blocking cycle
    # does not stall the event loop.
    @app.post("/discover", response_model=list[PortOut])
    def discover() -> list[PortOut]:
        try:
            ports = rec.run_discovery_cycle()
        except DiscoveryError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return [PortOut.from_port(p) for p in ports]

    @app.get("/status", response_model=CycleStatusOut)
    def status() -> CycleStatusOut:
        st = rec.last_status()
        if st is None:
            raise HTTPException(status_code=404, detail="No discovery cycle has run yet.")
        return CycleStatusOut.from_status(st)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(app, host="0.0.0.0", port=8000, access_log=not settings.quiet_access_log)
