"""
FastAPI Server for strategy validation, generation and activation

Endpoints:
- POST /strategies/validate - Validate and normalize a strategy graph
- POST /strategies/generate - Generate a form-mode graph from a description
- POST /strategies - Create a strategy (graph validated before it is stored)
- PUT /strategies/{id} - Update a strategy
- DELETE /strategies/{id} - Stop on the engine, then delete
- POST /strategies/{id}/activate|deactivate|kill|unkill - Run-state control
- POST /wallets/{id}/strategies - Assign a strategy to a wallet (or update the assignment)
- DELETE /wallets/{id}/strategies/{strategy_id} - Stop on the engine if running, then unassign
- DELETE /wallets/{id} - Stop the wallet's strategies on the engine, then delete
- GET /status - Health check
- GET /engine/status - Proxy the execution engine status
"""

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from typing import Dict, Any, Iterator, Optional, List
import logging
import os
from dotenv import load_dotenv
from sqlalchemy.orm import Session

from ai_providers import get_provider
from database import DatabaseManager
from engine_client import ExecutionEngine, HttpEngineClient
from graph_errors import (
    AssignmentNotFound,
    EngineRequestError,
    GenerationError,
    GraphValidationError,
    PreconditionError,
    SecurityValidationError,
    StrategyNotFound,
    ValidationFailed,
    WalletNotFound,
)
from strategy_activation import StrategyActivationService
from strategy_generator import MAX_DESCRIPTION_LENGTH, MIN_DESCRIPTION_LENGTH, StrategyGenerator
from strategy_store import (
    assign_strategy,
    create_strategy,
    delete_strategy,
    delete_wallet,
    unassign_strategy,
    update_strategy,
)
from strategy_validation import validate_strategy_graph

from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown events"""
    print("=" * 60)
    print("Strategy control plane")
    print("=" * 60)
    print(f"Provider: {AI_PROVIDER.upper()}")
    print(f"Model: {AI_MODEL}")
    print(f"Engine: {ENGINE_URL} (timeout {ENGINE_TIMEOUT_SECS}s)")
    print("=" * 60)
    db.init_schema()
    yield
    db.dispose()

# Load environment variables
load_dotenv()

# ============================================================================
# CONFIGURATION
# ============================================================================

AI_PROVIDER = os.getenv("AI_PROVIDER", "anthropic").lower()
AI_MODEL = os.getenv("AI_MODEL", None)
GENERATION_TIMEOUT_SECS = float(os.getenv("GENERATION_TIMEOUT_SECS", "30"))
GENERATION_MAX_TOKENS = int(os.getenv("GENERATION_MAX_TOKENS", "1024"))

ENGINE_URL = os.getenv("ENGINE_URL", "http://localhost:3001")
ENGINE_TIMEOUT_SECS = float(os.getenv("ENGINE_TIMEOUT_SECS", "10"))

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./strategies.db")

# Get API key based on provider
if AI_PROVIDER == "anthropic":
    AI_API_KEY = os.getenv("ANTHROPIC_API_KEY")
    if not AI_API_KEY:
        raise ValueError("Missing ANTHROPIC_API_KEY environment variable")
    DEFAULT_MODEL = "claude-sonnet-4-5"
elif AI_PROVIDER == "openai":
    AI_API_KEY = os.getenv("OPENAI_API_KEY")
    if not AI_API_KEY:
        raise ValueError("Missing OPENAI_API_KEY environment variable")
    DEFAULT_MODEL = "gpt-5.2"
else:
    raise ValueError(f"Invalid AI_PROVIDER: {AI_PROVIDER}. Must be 'openai' or 'anthropic'")

AI_MODEL = AI_MODEL or DEFAULT_MODEL

# ============================================================================
# INITIALIZE SERVICES
# ============================================================================

ai_provider = get_provider(
    api_key=AI_API_KEY,
    model=AI_MODEL,
    provider=AI_PROVIDER,
    max_tokens=GENERATION_MAX_TOKENS,
    timeout=GENERATION_TIMEOUT_SECS,
)
strategy_generator = StrategyGenerator(ai_provider)

engine_client = HttpEngineClient(ENGINE_URL, timeout=ENGINE_TIMEOUT_SECS)
activation_service = StrategyActivationService(engine_client)

db = DatabaseManager(DATABASE_URL)


def get_session() -> Iterator[Session]:
    with db.session() as session:
        yield session


def get_generator() -> StrategyGenerator:
    return strategy_generator


def get_activation_service() -> StrategyActivationService:
    return activation_service


def get_engine_client() -> ExecutionEngine:
    return engine_client


# Initialize FastAPI app
app = FastAPI(
    title="Strategy Control Plane",
    description="Validate, generate and activate trading strategies",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# ERROR MAPPING
# ============================================================================

@app.exception_handler(GraphValidationError)
async def graph_validation_error_handler(request: Request, exc: GraphValidationError):
    return JSONResponse(status_code=422, content={"error": str(exc), "errors": [exc.to_dict()]})


@app.exception_handler(SecurityValidationError)
async def security_validation_error_handler(request: Request, exc: SecurityValidationError):
    return JSONResponse(status_code=422, content={"error": str(exc), "errors": exc.errors})


@app.exception_handler(GenerationError)
async def generation_error_handler(request: Request, exc: GenerationError):
    content: Dict[str, Any] = {"error": str(exc)}
    if isinstance(exc, ValidationFailed) and exc.path:
        content["path"] = exc.path
    return JSONResponse(status_code=422, content=content)


@app.exception_handler(EngineRequestError)
async def engine_error_handler(request: Request, exc: EngineRequestError):
    logger.warning("Engine call failed: %s", exc)
    return JSONResponse(
        status_code=502,
        content={
            "error": f"Failed to {exc.operation} strategy. Engine may be unavailable.",
            "operation": exc.operation,
            "wallet_id": exc.wallet_id,
            "strategy_id": exc.strategy_id,
        },
    )


@app.exception_handler(PreconditionError)
async def precondition_error_handler(request: Request, exc: PreconditionError):
    return JSONResponse(status_code=409, content={"error": str(exc)})


@app.exception_handler(StrategyNotFound)
@app.exception_handler(AssignmentNotFound)
@app.exception_handler(WalletNotFound)
async def not_found_handler(request: Request, exc: LookupError):
    return JSONResponse(status_code=404, content={"error": str(exc)})


# ============================================================================
# REQUEST / RESPONSE MODELS
# ============================================================================

class ValidateGraphRequest(BaseModel):
    graph: Dict[str, Any] = Field(..., description="Form- or node-mode strategy graph")


class ValidateGraphResponse(BaseModel):
    valid: bool
    graph: Dict[str, Any]


class GenerateStrategyRequest(BaseModel):
    """Request for AI strategy generation"""
    description: str = Field(
        ...,
        min_length=MIN_DESCRIPTION_LENGTH,
        max_length=MAX_DESCRIPTION_LENGTH,
        description="Plain-language strategy description",
    )

    class Config:
        str_strip_whitespace = True
        json_schema_extra = {
            "example": {
                "description": "Buy UP when price drops more than 5% and the spread is tight."
            }
        }


class GenerateStrategyResponse(BaseModel):
    graph: Dict[str, Any]


class CreateStrategyRequest(BaseModel):
    user_id: int
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    graph: Dict[str, Any]


class UpdateStrategyRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    graph: Optional[Dict[str, Any]] = None


class StrategyResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    mode: str
    graph: Dict[str, Any]
    is_active: bool


class AssignStrategyRequest(BaseModel):
    strategy_id: int
    markets: Optional[List[str]] = None
    max_position_usdc: float = Field(default=100, ge=1, le=1_000_000)
    is_paper: bool = False


class AssignmentResponse(BaseModel):
    id: int
    wallet_id: int
    strategy_id: int
    markets: List[str]
    max_position_usdc: float
    is_running: bool
    is_paper: bool


class RunStateResponse(BaseModel):
    success: bool
    strategy_id: int
    wallet_ids: List[int] = []
    message: str


class StatusResponse(BaseModel):
    """Status check response"""
    status: str
    provider: str
    model: str
    engine_url: str


def _strategy_response(strategy) -> StrategyResponse:
    return StrategyResponse(
        id=strategy.id,
        name=strategy.name,
        description=strategy.description,
        mode=strategy.mode,
        graph=strategy.graph,
        is_active=strategy.is_active,
    )


# ============================================================================
# ENDPOINTS
# ============================================================================

@app.get("/status", response_model=StatusResponse)
async def status():
    """Health check endpoint"""
    return StatusResponse(
        status="running",
        provider=AI_PROVIDER,
        model=AI_MODEL,
        engine_url=ENGINE_URL,
    )


@app.get("/engine/status")
def engine_status(engine: ExecutionEngine = Depends(get_engine_client)):
    """Report the execution engine's own status."""
    return engine.engine_status()


@app.post("/strategies/validate", response_model=ValidateGraphResponse)
def validate_graph(request: ValidateGraphRequest):
    """Validate a strategy graph and return it with normalized ids."""
    return ValidateGraphResponse(valid=True, graph=validate_strategy_graph(request.graph))


@app.post("/strategies/generate", response_model=GenerateStrategyResponse)
async def generate_strategy(
    request: GenerateStrategyRequest,
    generator: StrategyGenerator = Depends(get_generator),
):
    """Generate a validated form-mode graph from a plain-language description."""
    result = await generator.generate(request.description)
    return GenerateStrategyResponse(graph=result["graph"])


@app.post("/strategies", response_model=StrategyResponse, status_code=201)
def store_strategy(request: CreateStrategyRequest, session: Session = Depends(get_session)):
    strategy = create_strategy(
        session,
        user_id=request.user_id,
        name=request.name,
        description=request.description,
        graph=request.graph,
    )
    return _strategy_response(strategy)


@app.put("/strategies/{strategy_id}", response_model=StrategyResponse)
def edit_strategy(
    strategy_id: int,
    request: UpdateStrategyRequest,
    session: Session = Depends(get_session),
):
    strategy = update_strategy(
        session,
        strategy_id,
        name=request.name,
        description=request.description,
        graph=request.graph,
    )
    return _strategy_response(strategy)


@app.delete("/strategies/{strategy_id}", status_code=204)
def destroy_strategy(
    strategy_id: int,
    session: Session = Depends(get_session),
    activation: StrategyActivationService = Depends(get_activation_service),
):
    delete_strategy(session, activation, strategy_id)


@app.post("/strategies/{strategy_id}/activate", response_model=RunStateResponse)
def activate_strategy(
    strategy_id: int,
    session: Session = Depends(get_session),
    activation: StrategyActivationService = Depends(get_activation_service),
):
    wallet_ids = activation.activate(session, strategy_id)
    return RunStateResponse(
        success=True, strategy_id=strategy_id, wallet_ids=wallet_ids, message="Strategy activated."
    )


@app.post("/strategies/{strategy_id}/deactivate", response_model=RunStateResponse)
def deactivate_strategy(
    strategy_id: int,
    session: Session = Depends(get_session),
    activation: StrategyActivationService = Depends(get_activation_service),
):
    wallet_ids = activation.deactivate(session, strategy_id)
    return RunStateResponse(
        success=True, strategy_id=strategy_id, wallet_ids=wallet_ids, message="Strategy deactivated."
    )


@app.post("/strategies/{strategy_id}/kill", response_model=RunStateResponse)
def kill_strategy(
    strategy_id: int,
    session: Session = Depends(get_session),
    activation: StrategyActivationService = Depends(get_activation_service),
):
    activation.kill(session, strategy_id)
    return RunStateResponse(
        success=True,
        strategy_id=strategy_id,
        message="Kill switch activated, all evaluation stopped.",
    )


@app.post("/strategies/{strategy_id}/unkill", response_model=RunStateResponse)
def unkill_strategy(
    strategy_id: int,
    session: Session = Depends(get_session),
    activation: StrategyActivationService = Depends(get_activation_service),
):
    activation.unkill(session, strategy_id)
    return RunStateResponse(
        success=True,
        strategy_id=strategy_id,
        message="Kill switch deactivated, evaluation resumed.",
    )


@app.post("/wallets/{wallet_id}/strategies", response_model=AssignmentResponse, status_code=201)
def assign_wallet_strategy(
    wallet_id: int,
    request: AssignStrategyRequest,
    session: Session = Depends(get_session),
):
    assignment = assign_strategy(
        session,
        wallet_id,
        request.strategy_id,
        markets=request.markets,
        max_position_usdc=request.max_position_usdc,
        is_paper=request.is_paper,
    )
    return AssignmentResponse(
        id=assignment.id,
        wallet_id=assignment.wallet_id,
        strategy_id=assignment.strategy_id,
        markets=assignment.markets,
        max_position_usdc=float(assignment.max_position_usdc),
        is_running=assignment.is_running,
        is_paper=assignment.is_paper,
    )


@app.delete("/wallets/{wallet_id}/strategies/{strategy_id}", status_code=204)
def remove_wallet_strategy(
    wallet_id: int,
    strategy_id: int,
    session: Session = Depends(get_session),
    activation: StrategyActivationService = Depends(get_activation_service),
):
    unassign_strategy(session, activation, wallet_id, strategy_id)


@app.delete("/wallets/{wallet_id}", status_code=204)
def destroy_wallet(
    wallet_id: int,
    session: Session = Depends(get_session),
    activation: StrategyActivationService = Depends(get_activation_service),
):
    delete_wallet(session, activation, wallet_id)


# ============================================================================
# STARTUP
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "server:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", 8000)),
        reload=True
    )
