# Overview: Formula catalog; indexes formula definitions and runs chained item and summary calculations.

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from flask import current_app

from ..errors import FormulaEvaluationError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Formula
from ..models.catalog import VALUE_TYPES
from ..number_utils import parse_number
from .expression_service import evaluate_expression


logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = 99

SUMMARY_KEYS = (
    "total_items_value",
    "total_profit_wage_fee",
    "total_general_tax",
    "total_before_vat",
    "total_vat",
    "final_payable_amount",
)

_CACHE_KEY = "goldbook.formula_catalog"


@dataclass(frozen=True)
class FormulaDefinition:
    name: str
    expression: str
    group: str | None = None
    fields: tuple[str, ...] = field(default_factory=tuple)
    output_field: str | None = None
    priority: int = DEFAULT_PRIORITY
    value_type: str = "amount"
    label: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping) -> "FormulaDefinition":
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("Formula name is required")
        expression = data.get("expression", data.get("formula"))
        if not expression:
            raise ValidationError(f"Formula {name} has no expression")
        value_type = data.get("value_type") or "amount"
        if value_type not in VALUE_TYPES:
            raise ValidationError(f"Formula {name} has invalid value_type {value_type!r}")
        priority = data.get("priority")
        if priority is None or priority == "":
            priority = DEFAULT_PRIORITY
        try:
            priority = int(priority)
        except (TypeError, ValueError) as exc:
            raise ValidationError(
                f"Formula {name} has invalid priority {priority!r}",
                details={"formula": name, "field": "priority"},
            ) from exc
        return cls(
            name=name,
            expression=expression,
            group=(data.get("group") or None),
            fields=tuple(data.get("fields") or ()),
            output_field=(data.get("output_field") or None),
            priority=priority,
            value_type=value_type,
            label=data.get("label"),
        )

    @classmethod
    def from_model(cls, formula: Formula) -> "FormulaDefinition":
        return cls(
            name=formula.name,
            expression=formula.expression,
            group=formula.group_name or None,
            fields=tuple(formula.fields),
            output_field=formula.output_field or None,
            priority=DEFAULT_PRIORITY if formula.priority is None else formula.priority,
            value_type=formula.value_type or "amount",
            label=formula.label,
        )

    @property
    def group_key(self) -> str | None:
        return self.group.strip().lower() if self.group else None


def _sort_key(definition: FormulaDefinition):
    return (definition.priority, definition.name)


class FormulaCatalog:
    """
    Loaded-once set of formula definitions.

    - Lookup by unique name and by group (case-insensitive).
    - Group formulas run in ascending priority; each output is fed back into the
      value map so later formulas can use it.
    - Formulas without a group are transaction summary formulas.
    """

    def __init__(self, definitions: Iterable[FormulaDefinition], *, strict: bool = False):
        self.strict = strict
        self._by_name: dict[str, FormulaDefinition] = {}
        self._by_group: dict[str, list[FormulaDefinition]] = {}
        self._summary: list[FormulaDefinition] = []

        for definition in definitions:
            if definition.name in self._by_name:
                raise ValidationError(f"Duplicate formula name {definition.name}")
            self._by_name[definition.name] = definition
            if definition.group_key:
                self._by_group.setdefault(definition.group_key, []).append(definition)
            else:
                self._summary.append(definition)

        for group in self._by_group.values():
            group.sort(key=_sort_key)
        self._summary.sort(key=_sort_key)

    @classmethod
    def from_db(cls, *, strict: bool = False) -> "FormulaCatalog":
        rows = db.session.query(Formula).all()
        return cls((FormulaDefinition.from_model(row) for row in rows), strict=strict)

    @classmethod
    def from_json(cls, path: str, *, strict: bool = False) -> "FormulaCatalog":
        return cls(read_formula_file(path), strict=strict)

    def __len__(self) -> int:
        return len(self._by_name)

    def __contains__(self, name: str) -> bool:
        return name in self._by_name

    def get(self, name: str) -> FormulaDefinition | None:
        return self._by_name.get(name)

    def for_group(self, group: str) -> list[FormulaDefinition]:
        return list(self._by_group.get((group or "").strip().lower(), ()))

    def summary_formulas(self) -> list[FormulaDefinition]:
        return list(self._summary)

    def evaluate(self, definition: FormulaDefinition, values: Mapping[str, object]) -> float:
        missing = [f for f in definition.fields if parse_number(values.get(f)) is None]
        if missing:
            logger.warning(
                "Formula %s is missing required fields %s; reading them as 0",
                definition.name, ", ".join(missing),
            )
            if self.strict:
                raise FormulaEvaluationError(
                    f"Formula {definition.name} is missing required fields",
                    details={"formula": definition.name, "missing": missing},
                )
        return evaluate_expression(
            definition.expression,
            values,
            value_type=definition.value_type,
            strict=self.strict,
            formula_name=definition.name,
        )

    def calculate(self, name: str, values: Mapping[str, object]) -> float:
        definition = self.get(name)
        if definition is None:
            raise NotFoundError(f"Formula {name} not found")
        return self.evaluate(definition, values)

    def calculate_all_for_item(self, values: Mapping[str, object]) -> dict[str, float]:
        """
        Run the item's group formulas in priority order.

        values must carry 'product_group'. Returns only the computed outputs.
        """
        group = values.get("product_group")
        if not group or not isinstance(group, str):
            raise ValidationError("product_group is required to calculate an item")

        running = dict(values)
        outputs: dict[str, float] = {}
        for definition in self.for_group(group):
            result = self.evaluate(definition, running)
            if not definition.output_field:
                continue
            running[definition.output_field] = result
            outputs[definition.output_field] = result
        return outputs

    def calculate_transaction_summary(self, items: Iterable[Mapping[str, object]]) -> dict[str, float]:
        """
        Evaluate summary formulas over field sums of all items.

        A summary formula's result is stored under its output field (or its name);
        later summary formulas see earlier results instead of the field sums.
        """
        items = list(items)
        summary: dict[str, float] = {key: 0.0 for key in SUMMARY_KEYS}
        computed: dict[str, float] = {}

        for definition in self._summary:
            variables: dict[str, float] = {}
            for name in definition.fields:
                if name in computed:
                    variables[name] = computed[name]
                else:
                    variables[name] = sum(parse_number(item.get(name)) or 0.0 for item in items)
            key = definition.output_field or definition.name
            computed[key] = self.evaluate(definition, variables)

        summary.update(computed)
        return summary


def read_formula_file(path: str) -> list[FormulaDefinition]:
    with open(path, encoding="utf-8") as fh:
        payload = json.load(fh)
    rows = payload.get("formulas", []) if isinstance(payload, dict) else payload
    return [FormulaDefinition.from_mapping(row) for row in rows]


def get_formula_catalog() -> FormulaCatalog:
    """Catalog for the current app, loaded from the database on first use."""
    catalog = current_app.extensions.get(_CACHE_KEY)
    if catalog is None:
        catalog = FormulaCatalog.from_db(strict=current_app.config.get("FORMULA_STRICT", False))
        current_app.extensions[_CACHE_KEY] = catalog
    return catalog


def invalidate_formula_catalog() -> None:
    current_app.extensions.pop(_CACHE_KEY, None)


def load_formulas_from_json(path: str, *, replace: bool = False) -> int:
    """
    Upsert formula rows from a JSON file ({"formulas": [...]} or a bare list).

    replace=True deletes formulas that are not in the file.
    """
    definitions = read_formula_file(path)
    FormulaCatalog(definitions)  # rejects duplicate names before anything is written

    existing = {row.name: row for row in db.session.query(Formula).all()}
    names = set()
    try:
        for definition in definitions:
            names.add(definition.name)
            row = existing.get(definition.name)
            if row is None:
                row = Formula(name=definition.name)
                db.session.add(row)
            row.label = definition.label
            row.group_name = definition.group
            row.expression = definition.expression
            row.fields = definition.fields
            row.output_field = definition.output_field
            row.priority = definition.priority
            row.value_type = definition.value_type

        if replace:
            for name, row in existing.items():
                if name not in names:
                    db.session.delete(row)

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    invalidate_formula_catalog()
    logger.info("Loaded %d formulas from %s", len(definitions), path)
    return len(definitions)
