"""Round ledger record — one tamper-evident entry per processed round."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field

from quarter_engine.models.base import EngineModel


class RoundLedgerRecord(EngineModel):
    id: str                                 # "{game_id}:r{round}"
    game_id: str
    round_number: int = Field(ge=1)
    seed: int
    round_seed: int
    engine_version: str
    draws: int = Field(ge=0)
    state_hashes: Dict[str, str] = {}       # team id -> sha256 after the round
    market_hash: str
    standings: List[str] = []               # Team ids by overall rank
    recorded_at: datetime = Field(default_factory=datetime.utcnow)

    # Chain
    signature: str = ""                     # sha256 over the record with this field blank
    prior_record_hash: Optional[str] = None
