# /gaswatch/core/api.py
# Thin HTTP surface over the engine. No fee logic lives here.
from fastapi import FastAPI, HTTPException, Header, Depends, Request
from fastapi.responses import JSONResponse

from gaswatch.core.chains import ConfigurationError
from gaswatch.core.config import settings
from gaswatch.core.fee_resolver import TotalChainFailure
from gaswatch.core.history import ALL_CHAINS, clamp_hours
from gaswatch.core.logger import get_logger
from gaswatch.core.models import GasSnapshot, TieredEstimate
from gaswatch.core.service import GasWatchService

log = get_logger(__name__)


def get_service(request: Request) -> GasWatchService:
    return request.app.state.service


def verify(authorization: str | None = Header(None)):
    token = settings.COLLECT_API_TOKEN
    if not token:
        raise HTTPException(status_code=500, detail="Collect token not configured")
    if authorization != f"Bearer {token}":
        raise HTTPException(status_code=401, detail="Unauthorized")


def create_app(service: GasWatchService) -> FastAPI:
    app = FastAPI(title="gaswatch", description="Multi-chain gas fee aggregation")
    app.state.service = service

    @app.get("/healthz")
    async def healthz(svc: GasWatchService = Depends(get_service)):
        return {
            "status": "ok",
            "chains": len(svc.chains),
            "prices_fresh": svc.oracle.is_fresh(),
        }

    @app.get("/gas-all", response_model=GasSnapshot)
    async def gas_all(svc: GasWatchService = Depends(get_service)):
        try:
            return await svc.aggregator.collect_all(record=False)
        except ConfigurationError as e:
            raise HTTPException(status_code=500, detail=str(e))

    @app.get("/gas", response_model=TieredEstimate)
    async def gas(chain: str = "ethereum", svc: GasWatchService = Depends(get_service)):
        config = svc.chain(chain)
        if config is None:
            raise HTTPException(status_code=400, detail="Unknown chain")
        try:
            return await svc.resolver.estimate(config)
        except TotalChainFailure as e:
            log.error("GAS_ESTIMATE_FAILED", chain=chain, error=str(e))
            raise HTTPException(status_code=502, detail=str(e))

    @app.get("/history")
    async def history(chain: str = ALL_CHAINS, hours: float = 24, svc: GasWatchService = Depends(get_service)):
        points = await svc.store.query_window(chain, clamp_hours(hours))
        return {"points": [p.model_dump() for p in points]}

    @app.get("/price")
    async def price(token: str = "ethereum", svc: GasWatchService = Depends(get_service)):
        return {"price": await svc.oracle.get_price(token)}

    @app.get("/collect")
    async def collect(auth: None = Depends(verify), svc: GasWatchService = Depends(get_service)):
        try:
            snapshot = await svc.aggregator.collect_all(record=True)
        except ConfigurationError as e:
            log.error("COLLECT_FAILED", error=str(e))
            return JSONResponse(status_code=500, content={"ok": False, "error": str(e)})
        return {"ok": True, "collected": len(snapshot.results), "timestamp": snapshot.timestamp}

    return app
