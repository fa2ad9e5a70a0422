"""
Value types for strategy graphs.

A strategy is authored either as a flat rule set ("form" mode) or as a typed
node/edge graph ("node" mode). The two shapes are a tagged union keyed on
`mode`.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from graph_errors import StructuralError

INDICATORS = (
    # price
    "abs_move_pct", "dir_move_pct", "mid_up", "mid_down", "ref_price",
    # spread
    "spread_up", "spread_down",
    # order book
    "size_ratio_up", "size_ratio_down", "bid_up", "ask_up", "bid_down", "ask_down",
    # time
    "pct_into_slot", "minutes_into_slot", "hour_utc", "day_of_week",
    # volume
    "market_volume_usd",
)
OPERATORS = (">", "<", ">=", "<=", "==", "!=", "between")

NODE_TYPES = (
    "input", "indicator", "comparator", "logic", "not", "if_else", "math",
    "ev_calculator", "kelly", "action", "cancel", "notify", "api_fetch",
)

Indicator = Literal[
    "abs_move_pct", "dir_move_pct", "mid_up", "mid_down", "ref_price",
    "spread_up", "spread_down",
    "size_ratio_up", "size_ratio_down", "bid_up", "ask_up", "bid_down", "ask_down",
    "pct_into_slot", "minutes_into_slot", "hour_utc", "day_of_week",
    "market_volume_usd",
]
Operator = Literal[">", "<", ">=", "<=", "==", "!=", "between"]


# ─── Form mode ─────────────────────────────────────────────────────


class Rule(BaseModel):
    id: Optional[str] = None
    indicator: Indicator
    operator: Operator
    value: Union[float, Tuple[float, float]]


class ConditionGroup(BaseModel):
    id: Optional[str] = None
    type: Literal["AND", "OR"]
    rules: List[Rule] = Field(min_length=1)


class Action(BaseModel):
    signal: Literal["buy", "sell"]
    outcome: Literal["UP", "DOWN"]
    size_mode: Literal["fixed", "proportional"]
    size_usdc: float = Field(ge=1)
    order_type: Literal["market", "limit"]


class Risk(BaseModel):
    max_position_usdc: float = Field(ge=1)
    max_trades_per_slot: float = Field(ge=1)
    stoploss_pct: Optional[float] = Field(default=None, gt=0)
    take_profit_pct: Optional[float] = Field(default=None, gt=0)
    daily_loss_limit_usdc: Optional[float] = Field(default=None, gt=0)
    cooldown_seconds: Optional[float] = Field(default=None, gt=0)


class FormGraph(BaseModel):
    mode: Literal["form"] = "form"
    conditions: List[ConditionGroup] = Field(min_length=1)
    action: Action
    risk: Risk


# ─── Node mode ─────────────────────────────────────────────────────


class Position(BaseModel):
    x: float
    y: float


class GraphNode(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)
    position: Optional[Position] = None


class GraphEdge(BaseModel):
    model_config = ConfigDict(extra="allow")

    source: str
    target: str


class NodeGraph(BaseModel):
    mode: Literal["node"] = "node"
    nodes: List[GraphNode] = Field(default_factory=list)
    edges: List[GraphEdge] = Field(default_factory=list)

    def nodes_of_type(self, node_type: str) -> List[GraphNode]:
        return [node for node in self.nodes if node.type == node_type]


StrategyGraph = Annotated[Union[FormGraph, NodeGraph], Field(discriminator="mode")]

_strategy_graph_adapter: TypeAdapter = TypeAdapter(StrategyGraph)


def graph_mode(payload: Any) -> str:
    """Return the `mode` tag of a raw graph payload, or raise StructuralError."""
    if not isinstance(payload, Mapping):
        raise StructuralError("graph", "must be an object")
    mode = payload.get("mode")
    if mode not in ("form", "node"):
        raise StructuralError("mode", 'must be "form" or "node"')
    return mode


def parse_strategy_graph(payload: Mapping[str, Any]) -> Union[FormGraph, NodeGraph]:
    """Build the typed graph for a payload that has already been validated."""
    graph_mode(payload)
    return _strategy_graph_adapter.validate_python(dict(payload))


def dump_graph(graph: Union[FormGraph, NodeGraph]) -> Dict[str, Any]:
    """Serialize a typed graph to the JSON shape stored and sent to the engine."""
    if isinstance(graph, FormGraph):
        return graph.model_dump(mode="json")
    return graph.model_dump(mode="json", exclude_none=True)
