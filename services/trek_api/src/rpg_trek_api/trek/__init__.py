"""Trek: серверная стейт-машина путешествия по узлам-энкаунтерам."""

from .definitions import DEFAULT_DEFINITION, TrekDefinition, load_definitions
from .engine import PatchTargets, TrekEngine, prune_run
from .errors import BusyError, NodeNotOpenError, NotFoundError, TrekError, UnauthorizedError
from .inventory_sync import InventorySyncNotifier, inventory_ops_from_patches
from .models import TrekNode, TrekRun, TrekStatus, TrekUiState
from .service import TrekContext, TrekService
from .view import run_to_ui_state

__all__ = [
    "BusyError",
    "DEFAULT_DEFINITION",
    "InventorySyncNotifier",
    "NodeNotOpenError",
    "NotFoundError",
    "PatchTargets",
    "TrekContext",
    "TrekDefinition",
    "TrekEngine",
    "TrekError",
    "TrekNode",
    "TrekRun",
    "TrekService",
    "TrekStatus",
    "TrekUiState",
    "UnauthorizedError",
    "inventory_ops_from_patches",
    "load_definitions",
    "prune_run",
    "run_to_ui_state",
]
