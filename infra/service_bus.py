"""
FastAPI Service Bus
-------------------
Internal API over the hybrid orchestrator.
Provides REST endpoints for routing, tool introspection and direct execution.

This is NOT an external-facing API - it's for internal service communication.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .logging import get_logger

VERSION = "0.1.0"


# Request/Response Models

class RouteRequest(BaseModel):
    """Natural-language request to route."""
    text: str = Field(..., min_length=1, description="Request text to route")
    module: Optional[str] = Field(None, description="Restrict routing to one module")


class ToolResultModel(BaseModel):
    """Outcome of a tool execution."""
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    escalate_to_cloud: bool = False


class DecisionResponse(BaseModel):
    """Routing decision."""
    tool_name: str
    arguments: Dict[str, Any]
    source: str
    confidence: float
    latency_ms: float
    tool_result: Optional[ToolResultModel] = None
    no_api_key: bool = False
    request_id: Optional[str] = None


class ExecuteRequest(BaseModel):
    """Direct tool execution input."""
    arguments: Dict[str, Any] = Field(default_factory=dict)


class ToolInfo(BaseModel):
    """Tool information."""
    name: str
    description: str
    parameters: Dict[str, Any]


class ModuleInfoModel(BaseModel):
    """Module information."""
    name: str
    description: str
    tool_count: int
    tool_names: List[str]


class StatusResponse(BaseModel):
    """System status response."""
    on_device: bool
    cloud_configured: bool
    modules: List[str]
    tool_count: int
    requests: int
    sources: Dict[str, int]
    errors: Dict[str, int]
    uptime_seconds: float


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str = VERSION
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())


# Service Bus

class ServiceBus:
    """
    Internal service bus for Sentinel.

    Provides REST API for:
    - Request routing
    - Status queries
    - Tool and module introspection
    - Direct tool execution
    """

    def __init__(self, orchestrator=None):
        self._orchestrator = orchestrator
        self._start_time = datetime.now()
        self._logger = get_logger("infra.service_bus")
        self._app: Optional[FastAPI] = None

    def _require_orchestrator(self):
        if not self._orchestrator:
            raise HTTPException(status_code=503, detail="Orchestrator not initialized")
        return self._orchestrator

    def _require_module(self, orchestrator, module: Optional[str]) -> None:
        if module and module not in orchestrator.registry.module_names():
            raise HTTPException(status_code=404, detail=f"Unknown module: {module}")

    def create_app(self) -> FastAPI:
        """Create and configure the FastAPI application."""

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            self._logger.info("Service bus starting...")
            yield
            self._logger.info("Service bus shutting down...")

        app = FastAPI(
            title="Sentinel Internal API",
            description="Hybrid tool routing service bus",
            version=VERSION,
            lifespan=lifespan
        )

        # CORS for local development
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["http://localhost", "http://127.0.0.1"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        self._register_routes(app)

        self._app = app
        return app

    def _register_routes(self, app: FastAPI) -> None:
        """Register all API routes."""

        @app.get("/health", response_model=HealthResponse, tags=["System"])
        async def health_check():
            """Health check endpoint."""
            return HealthResponse(status="healthy")

        @app.get("/status", response_model=StatusResponse, tags=["System"])
        async def get_status():
            """Get system status."""
            orchestrator = self._require_orchestrator()
            status = orchestrator.get_status()
            uptime = (datetime.now() - self._start_time).total_seconds()
            return StatusResponse(uptime_seconds=uptime, **status)

        @app.post("/route", response_model=DecisionResponse, tags=["Routing"])
        async def route(request: RouteRequest):
            """Route a request through the fallback chain and execute the chosen tool."""
            orchestrator = self._require_orchestrator()
            self._require_module(orchestrator, request.module)

            decision = await orchestrator.route(request.text, request.module)
            return DecisionResponse(**decision.to_dict())

        @app.get("/tools", response_model=List[ToolInfo], tags=["Tools"])
        async def list_tools(module: Optional[str] = Query(None)):
            """List available tools, optionally for one module."""
            orchestrator = self._require_orchestrator()
            self._require_module(orchestrator, module)

            return [
                ToolInfo(name=t.name, description=t.description, parameters=t.parameters)
                for t in orchestrator.list_tools(module)
            ]

        @app.get("/modules", response_model=List[ModuleInfoModel], tags=["Tools"])
        async def list_modules():
            """List registered modules."""
            orchestrator = self._require_orchestrator()
            return [ModuleInfoModel(**info.to_dict()) for info in orchestrator.list_modules()]

        @app.post("/tools/{name}/execute", response_model=ToolResultModel, tags=["Tools"])
        def execute_tool(name: str, request: ExecuteRequest):
            """Execute a tool directly, bypassing routing."""
            orchestrator = self._require_orchestrator()
            if not orchestrator.registry.has_tool(name):
                raise HTTPException(status_code=404, detail=f"Unknown tool: {name}")

            result = orchestrator.execute_tool(name, request.arguments)
            return ToolResultModel(**result.to_dict())


def create_app(orchestrator=None) -> FastAPI:
    """Create the FastAPI application."""
    bus = ServiceBus(orchestrator)
    return bus.create_app()
