# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/qlinstall/deploy/registry.py
from __future__ import annotations

from typing import Dict, Iterator, List, Optional

from ..errors import DuplicateStepError
from .steps import ProvisioningStep


class UnknownDependencyError(ValueError):
    pass


class StepRegistry:
    """
    Ordered collection of provisioning steps.

    Declaration order is execution order. A step may only require steps
    registered before it, so the declared sequence is always a valid
    topological order and never needs sorting.
    """

    def __init__(self, name: str = "provision", steps: Optional[List[ProvisioningStep]] = None):
        self.name = name
        self._steps: List[ProvisioningStep] = []
        self._by_name: Dict[str, ProvisioningStep] = {}
        for step in steps or []:
            self.register(step)

    def register(self, step: ProvisioningStep) -> ProvisioningStep:
        if step.name in self._by_name:
            raise DuplicateStepError(f"Step '{step.name}' is already registered in '{self.name}'")
        for dep in step.requires:
            if dep not in self._by_name:
                raise UnknownDependencyError(
                    f"Step '{step.name}' requires '{dep}', which is not registered before it"
                )
        self._steps.append(step)
        self._by_name[step.name] = step
        return step

    def ordered(self) -> List[ProvisioningStep]:
        return list(self._steps)

    def names(self) -> List[str]:
        return [s.name for s in self._steps]

    def get(self, name: str) -> ProvisioningStep:
        return self._by_name[name]

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __iter__(self) -> Iterator[ProvisioningStep]:
        return iter(self.ordered())

    def __len__(self) -> int:
        return len(self._steps)
