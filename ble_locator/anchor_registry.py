from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, cast

import pandas as pd

from .distance_model import DistanceModel
from .models import Anchor, RangeMeasurement
from .signals import SignalSnapshot


logger = logging.getLogger(__name__)

COLUMNS = ["name", "x", "y", "z"]


class AnchorRegistry:
    """管理信标坐标（pandas，索引为 id），启动后视为只读"""

    def __init__(self, anchors: Optional[Iterable[Anchor]] = None):
        self._df = pd.DataFrame(columns=COLUMNS)
        self._df.index.name = "id"
        if anchors is not None:
            self.add_many(anchors)

    # ---- Utils ----
    @staticmethod
    def _normalize_df(df: pd.DataFrame) -> pd.DataFrame:
        if "id" not in df.columns:
            raise KeyError("信标数据缺少 'id' 列")
        df = df.copy()
        df["id"] = df["id"].astype(str)
        for col in ["x", "y", "z"]:
            if col not in df.columns:
                df[col] = 0.0
            # 非法数值填 0.0
            df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0.0)
        if "name" not in df.columns:
            df["name"] = df["id"]
        df["name"] = df["name"].where(df["name"].notna(), df["id"]).astype(str)
        df = df[["id"] + COLUMNS]
        df = df.drop_duplicates(subset=["id"], keep="last").set_index("id")
        df = df.astype({"x": "float64", "y": "float64", "z": "float64"})
        df.index.name = "id"
        return df

    @staticmethod
    def _row_to_anchor(anchor_id: Any, row: pd.Series) -> Anchor:
        return Anchor(
            id=str(anchor_id),
            name=str(row.at["name"]),
            x=float(row.at["x"]),
            y=float(row.at["y"]),
            z=float(row.at["z"]),
        )

    # ---- Loaders ----
    @classmethod
    def from_anchors(cls, anchors: Iterable[Anchor]) -> "AnchorRegistry":
        return cls(anchors)

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> "AnchorRegistry":
        """从配置中的字典列表加载，例如 [{"id": "B1", "x": 0, "y": 0, "z": 100}]"""
        records = list(records)
        registry = cls()
        if records:
            registry._df = cls._normalize_df(pd.DataFrame.from_records(records))
        logger.info("已加载信标 %d 个", len(registry))
        return registry

    @classmethod
    def from_csv(cls, csv_path: str) -> "AnchorRegistry":
        """读取 id,name,x,y,z 格式的 CSV；不会写回文件"""
        df = pd.read_csv(csv_path, dtype=str)
        registry = cls()
        registry._df = cls._normalize_df(df)
        logger.info("从 %s 加载信标 %d 个", csv_path, len(registry))
        return registry

    def to_dataframe(self) -> pd.DataFrame:
        return self._df.copy()

    # ---- CRUD ----
    def add(self, anchor: Anchor) -> None:
        # 新增或覆盖
        self._df.loc[anchor.id] = [
            anchor.name,
            float(anchor.x),
            float(anchor.y),
            float(anchor.z),
        ]

    def add_many(self, anchors: Iterable[Anchor]) -> None:
        for anchor in anchors:
            self.add(anchor)

    def remove(self, anchor_id: str) -> Optional[Anchor]:
        anchor = self.get(anchor_id)
        if anchor is not None:
            self._df = self._df.drop(index=anchor_id)
        return anchor

    def clear(self) -> None:
        self._df = self._df.iloc[0:0].copy()

    # ---- Accessors ----
    def has(self, anchor_id: str) -> bool:
        return anchor_id in self._df.index

    def get(self, anchor_id: str) -> Optional[Anchor]:
        if anchor_id not in self._df.index:
            return None
        row = cast(pd.Series, self._df.loc[anchor_id])
        return self._row_to_anchor(anchor_id, row)

    def all(self) -> Dict[str, Anchor]:
        result: Dict[str, Anchor] = {}
        for anchor_id, row in self._df.iterrows():
            anchor = self._row_to_anchor(anchor_id, cast(pd.Series, row))
            result[anchor.id] = anchor
        return result

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    def __contains__(self, anchor_id: object) -> bool:
        return anchor_id in self._df.index

    def __len__(self) -> int:
        return len(self._df.index)

    def __iter__(self) -> Iterator[Anchor]:
        return iter(self.all().values())

    # ---- Measurements ----
    def measurements(
        self, snapshot: SignalSnapshot, model: DistanceModel
    ) -> List[RangeMeasurement]:
        """
        将本周期信号换算为 (x, y, z, distance) 测量，按 RSSI 从强到弱排序
        未登记的信标读数被忽略
        """
        readings = [
            (anchor_id, rssi) for anchor_id, rssi in snapshot if anchor_id in self._df.index
        ]
        readings.sort(key=lambda item: (-item[1], item[0]))

        result: List[RangeMeasurement] = []
        for anchor_id, rssi in readings:
            anchor = cast(Anchor, self.get(anchor_id))
            result.append(
                RangeMeasurement(
                    x=anchor.x,
                    y=anchor.y,
                    z=anchor.z,
                    distance=model.distance_from_rssi(rssi),
                    rssi=rssi,
                    beacon_id=anchor_id,
                )
            )
        ignored = len(snapshot) - len(readings)
        if ignored:
            logger.debug("忽略未登记信标读数 %d 条", ignored)
        return result
