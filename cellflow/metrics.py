from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Any, List
import pandas as pd

@dataclass
class MetricsStore:
    currency_rows: List[Dict[str, Any]] = field(default_factory=list)
    node_rows: List[Dict[str, Any]] = field(default_factory=list)

    def add_currency(self, row: Dict[str, Any]) -> None:
        self.currency_rows.append(row)

    def add_node_rows(self, rows: List[Dict[str, Any]]) -> None:
        self.node_rows.extend(rows)

    def currency_df(self) -> pd.DataFrame:
        return pd.DataFrame(self.currency_rows)

    def node_df(self) -> pd.DataFrame:
        return pd.DataFrame(self.node_rows)

    def currency_series(self) -> pd.DataFrame:
        """Currency amounts indexed by tick, one column per currency."""
        df = self.currency_df()
        if df.empty:
            return df
        return df.set_index("tick")
