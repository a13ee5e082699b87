# -----------------------------------------------------------------------------
# Calculator store (YAML)
# Purpose: Load/save the list of saved calculator definitions and provide the
# lookup + authoring operations (add, raw update, rename, duplicate, delete,
# insert snippets) used by the API.
# - Depends on .definition for normalization and save-time validation.
# - Passed explicitly to block resolution; there is no global store.
# -----------------------------------------------------------------------------

from __future__ import annotations
import json
import logging
import os
import yaml
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from .definition import (
    CalculatorError, InvalidSyntax, MalformedDefinition, ReferenceNotFound, normalize, validate_for_save,
)
from .ids import generate_id
from .types import CalculatorDefinition

logger = logging.getLogger(__name__)

BLOCK_LANGUAGE = "formula-calculator"

# Domain-specific error for store conflicts: duplicate names, id changes, broken files.
class CatalogError(CalculatorError):
    kind = "catalog_error"

@dataclass
class CalculatorStore:
    # Saved calculators in user order
    calculators: List[CalculatorDefinition] = field(default_factory=list)
    # Backing YAML file, if any
    path: str | None = None

    @staticmethod
    def from_yaml_dict(d: Mapping[str, Any] | None, path: str | None = None) -> "CalculatorStore":
        """
        Build a store from a pre-parsed YAML document.
        Expected shape:
          calculators:
            - id: "a1B2c3D4"
              name: "BMI"
              variables:
                - { name: weight, label: "Weight (kg)", type: number, value: 70, propertyMap: weight }
              formulas:
                - { name: BMI, value: "weight / (height / 100) ** 2" }
              autoCalculate: true
              renderFormula: false
        Legacy `formula`/`resultLabel` entries are upgraded on load.
        """
        calcs: List[CalculatorDefinition] = []
        for i, raw in enumerate((d or {}).get("calculators") or []):
            try:
                calcs.append(normalize(raw))
            except CalculatorError as e:
                raise CatalogError(f"Stored calculator #{i + 1}: {e}") from e
        return CalculatorStore(calculators=calcs, path=path)

    @staticmethod
    def from_yaml_text(text: str, path: str | None = None) -> "CalculatorStore":
        # yaml.safe_load: no arbitrary object constructors.
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise CatalogError(f"Store file is not valid YAML: {e}") from e
        if data is not None and not isinstance(data, Mapping):
            raise CatalogError("Store file must be a mapping with a 'calculators' list")
        return CalculatorStore.from_yaml_dict(data, path)

    @staticmethod
    def from_file(path: str) -> "CalculatorStore":
        """
        Open a YAML store from disk. A missing file is an empty store bound to
        that path (first run); it is created on the first save.
        """
        if not os.path.exists(path):
            logger.info("store %s does not exist yet; starting empty", path)
            return CalculatorStore(path=path)
        with open(path, "r", encoding="utf-8") as f:
            return CalculatorStore.from_yaml_text(f.read(), path)

    def to_yaml_dict(self) -> Dict[str, Any]:
        return {"calculators": [c.to_dict() for c in self.calculators]}

    def save(self, path: str | None = None) -> str:
        target = path or self.path
        if not target:
            raise CatalogError("No store path configured")
        with open(target, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.to_yaml_dict(), f, sort_keys=False, allow_unicode=True)
        self.path = target
        return target

    # ---------------- lookup ----------------

    def get(self, calculator_id: str) -> CalculatorDefinition | None:
        return next((c for c in self.calculators if c.id == calculator_id), None)

    def require(self, calculator_id: str) -> CalculatorDefinition:
        found = self.get(calculator_id)
        if found is None:
            raise ReferenceNotFound(calculator_id)
        return found

    def name_taken(self, name: str, exclude_id: str | None = None) -> bool:
        return any(c.name == name and c.id != exclude_id for c in self.calculators)

    def list_calculators(self) -> List[Dict[str, Any]]:
        """UI-friendly listing (id, name, counts, flags)."""
        return [{
            "id": c.id, "name": c.name,
            "variables": len(c.variables), "formulas": len(c.formulas),
            "autoCalculate": c.auto_calculate, "renderFormula": c.render_formula,
        } for c in self.calculators]

    # ---------------- authoring ----------------

    def _fresh_id(self) -> str:
        while True:
            cid = generate_id()
            if self.get(cid) is None:
                return cid

    def add(self, raw: Mapping[str, Any] | CalculatorDefinition) -> CalculatorDefinition:
        """Save a new calculator under a freshly generated id. Names must be unique."""
        data = raw.to_dict() if isinstance(raw, CalculatorDefinition) else dict(raw)
        name = str(data.get("name") or "").strip()
        if not name:
            raise MalformedDefinition("Invalid calculator data: a calculator name is required")
        if self.name_taken(name):
            raise CatalogError(f'A calculator named "{name}" already exists.')
        definition = normalize({**data, "name": name, "id": self._fresh_id()})
        validate_for_save(definition)
        self.calculators.append(definition)
        logger.info("saved calculator %s (%s)", definition.id, definition.name)
        return definition

    def update_raw(self, calculator_id: str, raw: str | Mapping[str, Any]) -> CalculatorDefinition:
        """
        Replace a stored calculator from edited raw JSON (or a mapping).
        The id is immutable; the payload must carry the same id.
        """
        current = self.require(calculator_id)
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError as e:
                raise InvalidSyntax(f"Invalid JSON: {e}") from e
        if not isinstance(raw, Mapping):
            raise MalformedDefinition("Invalid calculator data: expected an object")
        if raw.get("id") != current.id:
            raise CatalogError("The calculator ID cannot be changed.")
        updated = normalize(raw)
        if self.name_taken(updated.name, exclude_id=current.id):
            raise CatalogError(f'A calculator named "{updated.name}" already exists.')
        validate_for_save(updated)
        idx = next(i for i, c in enumerate(self.calculators) if c.id == current.id)
        self.calculators[idx] = updated
        return updated

    def rename(self, calculator_id: str, new_name: str) -> CalculatorDefinition:
        current = self.require(calculator_id)
        new_name = (new_name or "").strip()
        if not new_name:
            raise MalformedDefinition("Invalid calculator data: a calculator name is required")
        if new_name != current.name and self.name_taken(new_name):
            raise CatalogError(f'A calculator named "{new_name}" already exists.')
        logger.info("renamed calculator %s: %r -> %r", current.id, current.name, new_name)
        current.name = new_name
        return current

    def duplicate(self, calculator_id: str) -> CalculatorDefinition:
        # "X (copy)", then "X (copy 2)", "X (copy 3)", ...
        current = self.require(calculator_id)
        new_name = f"{current.name} (copy)"
        counter = 2
        while self.name_taken(new_name):
            new_name = f"{current.name} (copy {counter})"
            counter += 1
        copy_def = normalize({**current.to_dict(), "id": self._fresh_id(), "name": new_name})
        self.calculators.append(copy_def)
        return copy_def

    def delete(self, calculator_id: str) -> CalculatorDefinition:
        current = self.require(calculator_id)
        self.calculators.remove(current)
        logger.info("deleted calculator %s (%s)", current.id, current.name)
        return current

    # ---------------- insert snippets ----------------

    def reference_block(self, calculator_id: str) -> str:
        current = self.require(calculator_id)
        return f"```{BLOCK_LANGUAGE}\n{current.id}\n```"

    def raw_block(self, calculator_id: str) -> str:
        # Inline copy without the id: it becomes an ephemeral raw- calculator when rendered.
        data = self.require(calculator_id).to_dict()
        data.pop("id")
        return f"```{BLOCK_LANGUAGE}\n{json.dumps(data, indent=2, ensure_ascii=False)}\n```"
