from __future__ import annotations

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from collections import OrderedDict

from bizintel.models import Dataset

logger = logging.getLogger(__name__)


def new_dataset_id(prefix: str = "ds") -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


class DatasetStore(ABC):
    @abstractmethod
    def put(self, dataset: Dataset) -> str:
        raise NotImplementedError

    @abstractmethod
    def get(self, dataset_id: str) -> Dataset | None:
        raise NotImplementedError

    @abstractmethod
    def list(self) -> list[Dataset]:
        raise NotImplementedError


class InMemoryDatasetStore(DatasetStore):
    """Process-lifetime dataset map.

    Unbounded unless ``max_items`` is given, in which case the least
    recently used dataset is evicted once the bound is reached.
    """

    def __init__(self, max_items: int | None = None) -> None:
        self.max_items = max_items
        self._items: OrderedDict[str, Dataset] = OrderedDict()
        self._lock = threading.Lock()

    def put(self, dataset: Dataset) -> str:
        with self._lock:
            if dataset.id in self._items:
                raise ValueError(f"Dataset '{dataset.id}' is already stored.")
            self._items[dataset.id] = dataset
            if self.max_items is not None:
                while len(self._items) > self.max_items:
                    evicted_id, _ = self._items.popitem(last=False)
                    logger.info("Evicted dataset %s (store bound %d)", evicted_id, self.max_items)
        return dataset.id

    def get(self, dataset_id: str) -> Dataset | None:
        with self._lock:
            dataset = self._items.get(dataset_id)
            if dataset is not None and self.max_items is not None:
                self._items.move_to_end(dataset_id)
            return dataset

    def list(self) -> list[Dataset]:
        with self._lock:
            return list(self._items.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
