from contextlib import asynccontextmanager
from datetime import datetime
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from typing import Dict, List, Optional
import logging

from alerts import active_alerts, alert_stats, filter_alerts
from config import DATA_DIR, POLLING_ENABLED, STORAGE_KEY
from crops import crop_stats
from poller import UpstreamPoller
from store import JsonFileBackend, RecommendationStore
from sync import RecommendationSync
from weather import WeatherServiceError, fetch_forecast

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class AlertOut(BaseModel):
    id: str
    type: str
    severity: str
    title: str
    description: str
    is_active: bool
    valid_until: datetime

class CropOut(BaseModel):
    id: str
    name: str
    type: str
    location: str
    planting_date: Optional[datetime] = None

class RecoOut(BaseModel):
    id: str
    title: str
    description: str
    type: str
    priority: str
    actions: List[str]
    related_crop: Optional[str] = None
    related_alert: Optional[str] = None
    is_read: bool
    created_at: datetime
    valid_until: Optional[datetime] = None

class UnreadOut(BaseModel):
    unread_count: int

class AlertStatsOut(BaseModel):
    total: int
    active: int
    high_severity: int
    by_type: Dict[str, int]

class CropStatsOut(BaseModel):
    total: int
    by_type: Dict[str, int]

class SummaryOut(BaseModel):
    unread_recommendations: int
    priority_count: int
    priority_preview: List[RecoOut]
    active_alerts: int
    crops: CropStatsOut


def create_app(store: Optional[RecommendationStore] = None,
               poller: Optional[UpstreamPoller] = None,
               polling: bool = POLLING_ENABLED) -> FastAPI:
    store = store or RecommendationStore(JsonFileBackend(DATA_DIR / f"{STORAGE_KEY}.json"))
    poller = poller or UpstreamPoller(RecommendationSync(store))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store.load()
        if polling:
            await poller.start()
        yield
        if polling:
            await poller.stop()

    app = FastAPI(title="Alertas Climáticas - Recomendaciones", lifespan=lifespan)
    app.state.store = store
    app.state.poller = poller

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    def root():
        return {"message": "Climate alert recommendations API",
                "endpoints": ["/alerts", "/crops", "/recommendations", "/dashboard/summary"]}

    @app.get("/health")
    def health_check(request: Request):
        p: UpstreamPoller = request.app.state.poller
        return {"status": "healthy",
                "weather_loaded": p.weather is not None,
                "alerts_updated": p.alerts_updated}

    @app.get("/features/forecast")
    def features(lat: float, lon: float, days: int = 7):
        try:
            daily = fetch_forecast(lat, lon, days=days)
        except WeatherServiceError as e:
            logger.error(f"Error fetching forecast for lat={lat}, lon={lon}: {e}")
            raise HTTPException(status_code=502, detail=f"Failed to fetch weather data: {str(e)}")
        return daily.to_dict(orient="records")

    @app.get("/alerts", response_model=List[AlertOut])
    def alerts(request: Request, type: Optional[str] = None, severity: Optional[str] = None,
               active: Optional[bool] = None, search: Optional[str] = None, sort_by: str = "date"):
        p: UpstreamPoller = request.app.state.poller
        res = filter_alerts(p.alerts, type=type, severity=severity, active=active,
                            search=search, sort_by=sort_by)
        return [a.__dict__ for a in res]

    @app.get("/alerts/stats", response_model=AlertStatsOut)
    def alerts_stats(request: Request):
        return alert_stats(request.app.state.poller.alerts)

    @app.get("/crops", response_model=List[CropOut])
    def crops(request: Request):
        return [c.__dict__ for c in request.app.state.poller.crops]

    @app.get("/recommendations", response_model=List[RecoOut])
    def recommendations(request: Request, unread: bool = False):
        recs = request.app.state.store.recommendations
        if unread:
            recs = [r for r in recs if not r.is_read]
        return [r.__dict__ for r in recs]

    @app.get("/recommendations/unread-count", response_model=UnreadOut)
    def unread_count(request: Request):
        return UnreadOut(unread_count=request.app.state.store.unread_count())

    @app.get("/recommendations/priority", response_model=List[RecoOut])
    def priority(request: Request):
        return [r.__dict__ for r in request.app.state.store.priority_unread()]

    # Unknown ids are a no-op: the entry may already be gone after a merge
    @app.post("/recommendations/read-all", response_model=UnreadOut)
    def read_all(request: Request):
        s: RecommendationStore = request.app.state.store
        s.mark_all_read()
        return UnreadOut(unread_count=s.unread_count())

    @app.post("/recommendations/{rec_id}/read", response_model=UnreadOut)
    def mark_read(rec_id: str, request: Request):
        s: RecommendationStore = request.app.state.store
        s.mark_read(rec_id)
        return UnreadOut(unread_count=s.unread_count())

    @app.delete("/recommendations/{rec_id}", response_model=UnreadOut)
    def dismiss(rec_id: str, request: Request):
        s: RecommendationStore = request.app.state.store
        s.dismiss(rec_id)
        logger.info(f"Dismissed recommendation {rec_id}")
        return UnreadOut(unread_count=s.unread_count())

    @app.get("/dashboard/summary", response_model=SummaryOut)
    def summary(request: Request):
        s: RecommendationStore = request.app.state.store
        p: UpstreamPoller = request.app.state.poller
        prio = s.priority_unread()
        return SummaryOut(
            unread_recommendations=s.unread_count(),
            priority_count=len(prio),
            priority_preview=[RecoOut(**r.__dict__) for r in prio[:2]],
            active_alerts=len(active_alerts(p.alerts, p.clock())),
            crops=CropStatsOut(**crop_stats(p.crops)),
        )

    return app


app = create_app()
