"""
Defines the interface of the shared dependency layer cache.
"""
from typing import Protocol

class LayerInterface(Protocol):
    def create_layer_if_not_exists(self, version: int) -> str:
        raise NotImplementedError
