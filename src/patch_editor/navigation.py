import logging
from typing import List, Optional, Tuple

from .core import Graph
from .errors import NavigationError
from .models import Viewport

logger = logging.getLogger(__name__)


class CanvasNavigation:
    """
    The path of node ids from the root level down to the level being viewed.

    Entering pushes a node, exiting pops one, exiting to root clears the path
    and navigating to a depth truncates it. Every level keeps its own
    viewport: the root one here, nested ones on the entered node.
    """

    def __init__(self, graph: Graph):
        self.graph = graph
        self.root_viewport = Viewport()
        self._path: List[str] = []

    def _prune(self):
        # drop levels whose node was deleted since we entered it
        parent_id = None
        for index, node_id in enumerate(self._path):
            node = self.graph.nodes.get(node_id)
            if node is None or node.parent_id != parent_id:
                logger.debug("Navigation path truncated at depth %d", index)
                del self._path[index:]
                return
            parent_id = node_id

    @property
    def path(self) -> List[str]:
        self._prune()
        return list(self._path)

    @property
    def current_node_id(self) -> Optional[str]:
        path = self.path
        return path[-1] if path else None

    @property
    def depth(self) -> int:
        return len(self.path)

    @property
    def at_root(self) -> bool:
        return not self.path

    def save_viewport(self, viewport: Viewport):
        """Remember the viewport of the level currently shown."""
        current = self.current_node_id
        if current is None:
            self.root_viewport = viewport.model_copy(deep=True)
        else:
            self.graph.nodes[current].internal_viewport = viewport.model_copy(deep=True)

    def current_viewport(self) -> Viewport:
        current = self.current_node_id
        if current is None:
            return self.root_viewport.model_copy(deep=True)
        stored = self.graph.nodes[current].internal_viewport
        return stored.model_copy(deep=True) if stored else Viewport()

    def enter_node(self, node_id: str, viewport: Optional[Viewport] = None) -> Viewport:
        """Show the inside of a child of the current level.

        The node's default sub-graph is created on first entry.
        """
        node = self.graph.get_node(node_id)
        if node.parent_id != self.current_node_id:
            raise NavigationError(f"Node '{node_id}' is not on the current level")
        if not self.graph.is_enterable(node_id):
            raise NavigationError(f"Node '{node_id}' ({node.type}) cannot be entered")
        if viewport is not None:
            self.save_viewport(viewport)
        self.graph.ensure_internals(node_id)
        self._path.append(node_id)
        logger.debug("Entered %s (depth %d)", node_id, len(self._path))
        return self.current_viewport()

    def exit_node(self, viewport: Optional[Viewport] = None) -> Viewport:
        """Go up one level; at the root this does nothing."""
        if viewport is not None:
            self.save_viewport(viewport)
        if self.path:
            self._path.pop()
        return self.current_viewport()

    def exit_to_root(self, viewport: Optional[Viewport] = None) -> Viewport:
        if viewport is not None:
            self.save_viewport(viewport)
        self._path.clear()
        return self.current_viewport()

    def navigate_to(self, depth: int, viewport: Optional[Viewport] = None) -> Viewport:
        """Truncate the path to ``depth`` entries (0 is the root level)."""
        path = self.path
        if depth < 0 or depth > len(path):
            raise NavigationError(f"Depth {depth} is outside the current path (0..{len(path)})")
        if viewport is not None:
            self.save_viewport(viewport)
        del self._path[depth:]
        return self.current_viewport()

    def breadcrumbs(self) -> List[Tuple[Optional[str], str]]:
        crumbs: List[Tuple[Optional[str], str]] = [(None, "Root")]
        for node_id in self.path:
            crumbs.append((node_id, self.graph.nodes[node_id].name))
        return crumbs
