import asyncio
import logging

from fastapi import FastAPI

from .db import Base, SessionLocal, engine, get_db
from .cleanup import find_stuck_questions
from .pipeline import build_pipeline
from .settings import settings
from .routers import auth
from .routers import questions
from .routers import assessments
from .routers import admin

logging.basicConfig(
	level=getattr(logging, settings.log_level.upper(), logging.INFO),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Question Quality Control API")
app.include_router(auth.router)
app.include_router(questions.router)
app.include_router(assessments.router)
app.include_router(admin.router)


@app.get("/info")
def root():
	return {"status": "ok", "analyzer_configured": bool(settings.gemini_api_key)}


def _report_stuck() -> None:
	db = next(get_db())
	try:
		find_stuck_questions(db)
	finally:
		db.close()


async def _stuck_watcher():
	while True:
		await asyncio.sleep(60 * 60)
		try:
			_report_stuck()
		except Exception:
			logger.exception("Stuck-question sweep failed")


@app.on_event("startup")
async def startup_event():
	Base.metadata.create_all(bind=engine)
	app.state.pipeline = build_pipeline(SessionLocal, settings)
	if not settings.gemini_api_key:
		logger.warning("GEMINI_API_KEY is not set; every analysis will fail and revert to draft")
	app.state.stuck_watcher = asyncio.create_task(_stuck_watcher())


@app.on_event("shutdown")
async def shutdown_event():
	app.state.stuck_watcher.cancel()
	await app.state.pipeline.aclose()
