import sys, os, uvicorn, logging
from contextlib import asynccontextmanager
from typing import Optional, Protocol, cast

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from config.settings import settings
from agents.base_agent import AgentNick
from orchestration.orchestrator import PipelineOrchestrator
from api.routers import hitl, reference, run

LOG_DIR = settings.log_dir
os.makedirs(LOG_DIR, exist_ok=True)
logging.basicConfig(level=getattr(logging, str(settings.log_level).upper(), logging.INFO),
                    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
                    handlers=[logging.StreamHandler(), logging.FileHandler(os.path.join(LOG_DIR, "pipeline.log"))])
logger = logging.getLogger(__name__)


class PipelineAppState(Protocol):
    agent_nick: Optional["AgentNick"]
    orchestrator: Optional["PipelineOrchestrator"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("API starting up...")
    state = cast(PipelineAppState, app.state)
    try:
        agent_nick = AgentNick()
        state.agent_nick = agent_nick
        state.orchestrator = PipelineOrchestrator(agent_nick)
        logger.info("System initialized successfully.")
    except Exception as e:
        logger.critical(f"FATAL: System initialization failed: {e}", exc_info=True)
        state.agent_nick = None
        state.orchestrator = None
    yield
    if hasattr(state, "orchestrator"):
        state.orchestrator = None
    if hasattr(state, "agent_nick"):
        state.agent_nick = None
    logger.info("API shutting down.")

app = FastAPI(title="PR Classification & Reconciliation API", version="1.0", lifespan=lifespan)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_credentials=True, allow_methods=["*"], allow_headers=["*"])

app.include_router(run.router)
app.include_router(hitl.router)
app.include_router(reference.router)

@app.get("/", tags=["General"])
def read_root(): return {"message": "Welcome to the PR classification and reconciliation API"}

if __name__ == "__main__":
    uvicorn.run("api.main:app", host="0.0.0.0", port=8000, reload=True)
