# idlecore: deterministic simulation core for idle games

from idlecore._types import compare
from idlecore.events import EventBus
from idlecore.curve import Curve, CurveEvaluator, CurveError
from idlecore.expression import Expression, ExpressionError, parse_expression
from idlecore.condition import Cond, Condition, ConditionContext
from idlecore.requirement import Requirement, Req
from idlecore.multiplier import (
    MultiplierSource,
    MultiplierStack,
    MultiplierSystem,
    StackType,
)
from idlecore.resource import ResourceDef, ResourceState
from idlecore.building import (
    BuildingDef,
    BuildingEffect,
    BuildingInfo,
    BuildingState,
    ConsumedResource,
    ConsumptionConfig,
    DeathPolicy,
    ProductionConfig,
    ProductionInput,
    ProductionOutput,
    Synergy,
)
from idlecore.upgrade import (
    GrantResources,
    UnlockBuilding,
    UnlockEra,
    UnlockFeature,
    UnlockResource,
    UpgradeDef,
    UpgradeEffect,
    UpgradeInfo,
)
from idlecore.definition import (
    ClickTarget,
    DevModeConfig,
    GameConfig,
    GameDefinition,
    SaveConfig,
    TimingConfig,
)
from idlecore.state import GameState
from idlecore.state_manager import StateManager
from idlecore.context import SimulationContext
from idlecore.loop import GameLoop
from idlecore.offline import OfflineProgress, calculate_offline_progress
from idlecore.save import FileStore, MemoryStore, SaveSnapshot, SaveSystem, SyncStatus
from idlecore.remote import RemoteSave, RemoteSaveClient, RemoteSaveError, SyncResult
from idlecore.server import LocalRemoteClient, SaveServer
from idlecore.runtime import GameRuntime
from idlecore.strategy import ClickProfile, GreedyCheapest, Idle, PriorityList, Strategy
from idlecore.metrics import MetricsCollector
from idlecore.simulation import SimulatedClock, Simulation
from idlecore.report import SimulationReport, build_report
from idlecore.formatting import format_text_report

__all__ = [
    # Types
    "compare",
    "EventBus",
    # Curves and expressions
    "Curve",
    "CurveEvaluator",
    "CurveError",
    "Expression",
    "ExpressionError",
    "parse_expression",
    # Conditions and requirements
    "Cond",
    "Condition",
    "ConditionContext",
    "Requirement",
    "Req",
    # Multipliers
    "MultiplierSource",
    "MultiplierStack",
    "MultiplierSystem",
    "StackType",
    # Data model
    "ResourceDef",
    "ResourceState",
    "BuildingDef",
    "BuildingEffect",
    "BuildingInfo",
    "BuildingState",
    "ConsumedResource",
    "ConsumptionConfig",
    "DeathPolicy",
    "ProductionConfig",
    "ProductionInput",
    "ProductionOutput",
    "Synergy",
    "GrantResources",
    "UnlockBuilding",
    "UnlockEra",
    "UnlockFeature",
    "UnlockResource",
    "UpgradeDef",
    "UpgradeEffect",
    "UpgradeInfo",
    # Definition
    "ClickTarget",
    "DevModeConfig",
    "GameConfig",
    "GameDefinition",
    "SaveConfig",
    "TimingConfig",
    # State
    "GameState",
    "StateManager",
    "SimulationContext",
    # Runtime
    "GameLoop",
    "GameRuntime",
    "OfflineProgress",
    "calculate_offline_progress",
    # Persistence
    "FileStore",
    "MemoryStore",
    "SaveSnapshot",
    "SaveSystem",
    "SyncStatus",
    "RemoteSave",
    "RemoteSaveClient",
    "RemoteSaveError",
    "SyncResult",
    "LocalRemoteClient",
    "SaveServer",
    # Simulation
    "Strategy",
    "ClickProfile",
    "GreedyCheapest",
    "Idle",
    "PriorityList",
    "MetricsCollector",
    "SimulatedClock",
    "Simulation",
    "SimulationReport",
    "build_report",
    # Formatting
    "format_text_report",
]
