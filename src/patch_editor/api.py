"""FastAPI backend exposing one graph to a rendering client.

The client polls ``GET /api/graph`` for the committed state and sends
intents through the mutation endpoints. Graph errors become JSON error
responses with a ``detail`` message.
"""
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .core import Graph
from .errors import (
    ConfigError,
    CycleError,
    DocumentVersionError,
    DuplicateConnectionError,
    GraphError,
    IncompatiblePortsError,
    NavigationError,
    NotFoundError,
    UnknownTypeError,
)
from .layout import port_positions
from .models import Port, Position, Viewport
from .navigation import CanvasNavigation
from .node_def import NodeRegistry, default_registry, load_registry
from .serialization import export_document, import_document
from .settings import get_setting, init_settings

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    NotFoundError: 404,
    UnknownTypeError: 400,
    IncompatiblePortsError: 409,
    DuplicateConnectionError: 409,
    CycleError: 409,
    NavigationError: 409,
    ConfigError: 422,
    DocumentVersionError: 422,
}


def status_for(error: GraphError) -> int:
    for error_type, status in ERROR_STATUS.items():
        if isinstance(error, error_type):
            return status
    return 400


class AddNodeRequest(BaseModel):
    type: str
    position: Position = Position()
    parent_id: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


class ConnectionRequest(BaseModel):
    source_node_id: str
    source_port_id: str
    target_node_id: str
    target_port_id: str


class EnterRequest(BaseModel):
    node_id: str
    viewport: Optional[Viewport] = None


class NavigateRequest(BaseModel):
    depth: int
    viewport: Optional[Viewport] = None


class EditorState:
    """The graph served by the app and the client's place in it."""

    def __init__(self, graph: Graph):
        self.graph = graph
        self.navigation = CanvasNavigation(graph)

    def replace(self, graph: Graph):
        self.graph = graph
        self.navigation = CanvasNavigation(graph)


def create_app(graph: Optional[Graph] = None, registry: Optional[NodeRegistry] = None) -> FastAPI:
    registry = registry or (graph.registry if graph is not None else default_registry())
    state = EditorState(graph if graph is not None else Graph(registry=registry))

    app = FastAPI(title="Patch Editor Backend")
    app.state.editor = state
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(GraphError)
    async def graph_error_handler(request: Request, exc: GraphError):
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status_for(exc), content={"detail": str(exc), "error": type(exc).__name__})

    def navigation_state() -> Dict[str, Any]:
        nav = state.navigation
        return {
            "path": nav.path,
            "depth": nav.depth,
            "current_node_id": nav.current_node_id,
            "breadcrumbs": [{"node_id": node_id, "name": name} for node_id, name in nav.breadcrumbs()],
            "viewport": nav.current_viewport().model_dump(),
        }

    @app.get("/")
    async def read_root():
        return {"message": "Welcome to the Patch Editor Backend"}

    @app.get("/api/nodes/definitions")
    async def get_node_definitions():
        """Menu-visible node definitions, in category and menu order."""
        return [
            definition.model_dump(mode="json")
            for _, definitions in registry.menu()
            for definition in definitions
        ]

    @app.get("/api/nodes/categories")
    async def get_categories():
        return [
            {
                "category_id": category.category_id,
                "display_name": category.display_name,
                "order": category.order,
                "default_open": category.default_open,
                "node_types": [d.type for d in definitions],
            }
            for category, definitions in registry.menu()
        ]

    @app.get("/api/settings/graph")
    async def get_graph_settings():
        return {"max_traversal_depth": get_setting("graph.max_traversal_depth")}

    @app.get("/api/graph")
    async def get_graph():
        graph = state.graph
        return {
            "document": export_document(graph).model_dump(mode="json"),
            "navigation": navigation_state(),
            "selection": {
                "node_ids": graph.selected_node_ids,
                "connection_ids": graph.selected_connection_ids,
            },
        }

    @app.post("/api/graph/nodes")
    async def add_node(request: AddNodeRequest):
        node = state.graph.add_node(request.type, request.position, request.parent_id, data=request.data)
        return node.model_dump(mode="json")

    @app.delete("/api/graph/nodes/{node_id}")
    async def remove_node(node_id: str):
        return {"removed": state.graph.remove_node(node_id)}

    @app.patch("/api/graph/nodes/{node_id}/position")
    async def update_node_position(node_id: str, position: Position):
        state.graph.update_node_position(node_id, position)
        return state.graph.get_node(node_id).model_dump(mode="json")

    @app.patch("/api/graph/nodes/{node_id}/data")
    async def update_node_data(node_id: str, data: Dict[str, Any]):
        state.graph.update_node_data(node_id, data)
        return state.graph.get_node(node_id).model_dump(mode="json")

    @app.put("/api/graph/nodes/{node_id}/ports")
    async def update_node_ports(node_id: str, ports: List[Port]):
        state.graph.update_node_ports(node_id, ports)
        return [p.model_dump(mode="json") for p in state.graph.get_node(node_id).ports]

    @app.get("/api/graph/nodes/{node_id}/ports")
    async def get_node_ports(node_id: str):
        """Resolved ports, their normalized positions and every wire touching the node."""
        graph = state.graph
        node = graph.get_node(node_id)
        positions = port_positions(node, registry.get_definition(node.type))
        return {
            "ports": [p.model_dump(mode="json") for p in node.ports],
            "positions": {port_id: pos.model_dump() for port_id, pos in positions.items()},
            "connections": [c.model_dump(mode="json") for c in graph.connections_for_node(node_id)],
        }

    @app.post("/api/graph/nodes/{node_id}/ports/{port_id}/toggle")
    async def toggle_bundle(node_id: str, port_id: str):
        return state.graph.toggle_bundle_expansion(node_id, port_id).model_dump(mode="json")

    @app.post("/api/graph/connections")
    async def add_connection(request: ConnectionRequest):
        conn = state.graph.add_connection(
            request.source_node_id, request.source_port_id,
            request.target_node_id, request.target_port_id,
        )
        return conn.model_dump(mode="json")

    @app.delete("/api/graph/connections/{connection_id}")
    async def remove_connection(connection_id: str):
        return {"removed": state.graph.remove_connection(connection_id)}

    @app.get("/api/graph/export")
    async def export_graph(name: str = "Untitled"):
        return export_document(state.graph, name).model_dump(mode="json")

    @app.post("/api/graph/import")
    async def import_graph(document: Dict[str, Any]):
        state.replace(import_document(document, registry=registry))
        return {"nodes": len(state.graph.nodes), "connections": len(state.graph.connections)}

    @app.get("/api/navigation")
    async def get_navigation():
        return navigation_state()

    @app.post("/api/navigation/enter")
    async def enter_node(request: EnterRequest):
        state.navigation.enter_node(request.node_id, request.viewport)
        return navigation_state()

    @app.post("/api/navigation/exit")
    async def exit_node(viewport: Optional[Viewport] = None):
        state.navigation.exit_node(viewport)
        return navigation_state()

    @app.post("/api/navigation/root")
    async def exit_to_root(viewport: Optional[Viewport] = None):
        state.navigation.exit_to_root(viewport)
        return navigation_state()

    @app.post("/api/navigation/goto")
    async def navigate_to(request: NavigateRequest):
        state.navigation.navigate_to(request.depth, request.viewport)
        return navigation_state()

    return app


def configured_app(config_file: Optional[Path] = None) -> FastAPI:
    """Build the app from the settings file, the user config dir when none is given."""
    init_settings(config_file)
    logging.basicConfig(level=get_setting("logging.level", "INFO"))
    search_paths = [Path(p) for p in get_setting("catalog.search_paths", [])]
    return create_app(registry=load_registry(search_paths) if search_paths else None)


config_env = os.environ.get("PATCH_EDITOR_CONFIG")
app = configured_app(Path(config_env) if config_env else None)
