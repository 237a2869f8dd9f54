from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Optional

class TradeSide(str, Enum):
    BUY = "buy"
    SELL = "sell"

class TradeDraft(BaseModel):
    """A trade as submitted, before it gets an id and timestamp"""
    model_config = ConfigDict(frozen=True)

    symbol: str = Field(..., min_length=1)
    side: TradeSide
    quantity: int = Field(..., gt=0)
    price: float = Field(..., gt=0)
    date: str

class Trade(TradeDraft):
    id: str
    timestamp: str

class Position(BaseModel):
    symbol: str
    quantity: int
    average_price: float
    current_price: float
    market_value: float
    unrealized_pnl: float

class Portfolio(BaseModel):
    cash: float
    positions: Dict[str, Position] = Field(default_factory=dict)
    total_value: float
    total_pnl: float = 0.0

class RejectionReason(str, Enum):
    INSUFFICIENT_CASH = "insufficient_cash"
    INSUFFICIENT_SHARES = "insufficient_shares"
    NO_POSITION = "no_position"

class RejectedTrade(BaseModel):
    trade: Trade
    reason: RejectionReason
    message: str

class LedgerResult(BaseModel):
    portfolio: Portfolio
    rejected: List[RejectedTrade] = Field(default_factory=list)

class TradeExecution(BaseModel):
    trade: Trade
    accepted: bool
    rejection: Optional[RejectedTrade] = None
    portfolio: Portfolio
