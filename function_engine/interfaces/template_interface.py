"""
Defines the interface of the provider scaffolding new functions.
"""
from dataclasses import dataclass
from typing import Protocol, List

@dataclass
class TemplateFile:
    path: str
    name: str
    content: str

class TemplateProviderInterface(Protocol):
    def get_files(self) -> List[TemplateFile]:
        raise NotImplementedError
