"""
Declarative server-side pipelines.

The difference computation is stored on every node as data. Steps are small
tagged structures that serialize to the aggregation-pipeline wire form the
nodes accept, and that the reference node can parse back and evaluate.

    $addFields  -> BindVariable
    $project    -> Project
    $map/$zip/$subtract -> ZipSubtract
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple, Union

VARIABLE_PREFIX = "##"


@dataclass(frozen=True)
class ZipSubtract:
    """Element-wise `left - right` of two array fields of the same document."""
    left: str
    right: str

    def to_wire(self) -> dict:
        return {
            "$map": {
                "input": {"$zip": {"inputs": [f"${self.left}", f"${self.right}"]}},
                "as": "pair",
                "in": {
                    "$subtract": [
                        {"$arrayElemAt": ["$$pair", 0]},
                        {"$arrayElemAt": ["$$pair", 1]},
                    ]
                },
            }
        }

    def evaluate(self, document: dict) -> List[Any]:
        left = document.get(self.left) or []
        right = document.get(self.right) or []
        return [a - b for a, b in zip(left, right)]

    @classmethod
    def from_wire(cls, expr: dict) -> "ZipSubtract":
        try:
            inputs = expr["$map"]["input"]["$zip"]["inputs"]
            subtract = expr["$map"]["in"]["$subtract"]
        except (KeyError, TypeError):
            raise ValueError(f"Unsupported expression: {expr}")
        if len(inputs) != 2 or len(subtract) != 2:
            raise ValueError(f"Unsupported expression: {expr}")
        return cls(left=inputs[0].lstrip("$"), right=inputs[1].lstrip("$"))


Expression = ZipSubtract


@dataclass(frozen=True)
class BindVariable:
    """Copy an externally supplied variable into every document."""
    name: str

    def to_wire(self) -> dict:
        return {"$addFields": {self.name: f"{VARIABLE_PREFIX}{self.name}"}}

    def apply(self, documents: List[dict], variables: Dict[str, Any]) -> List[dict]:
        if self.name not in variables:
            raise ValueError(f"Missing variable: {self.name}")
        value = variables[self.name]
        return [{**doc, self.name: value} for doc in documents]


@dataclass(frozen=True)
class Project:
    """Keep `include` fields and add computed ones."""
    include: Tuple[str, ...] = ("_id",)
    computed: Tuple[Tuple[str, Expression], ...] = ()

    def to_wire(self) -> dict:
        body: Dict[str, Any] = {name: 1 for name in self.include}
        for name, expr in self.computed:
            body[name] = expr.to_wire()
        return {"$project": body}

    def apply(self, documents: List[dict], variables: Dict[str, Any]) -> List[dict]:
        projected = []
        for doc in documents:
            out = {name: doc[name] for name in self.include if name in doc}
            for name, expr in self.computed:
                out[name] = expr.evaluate(doc)
            projected.append(out)
        return projected


Step = Union[BindVariable, Project]


@dataclass(frozen=True)
class Pipeline:
    """An ordered list of steps plus the variables callers must supply."""
    steps: Tuple[Step, ...]
    variables: Dict[str, dict] = field(default_factory=dict, hash=False)

    def to_wire(self) -> List[dict]:
        return [step.to_wire() for step in self.steps]

    def run(self, documents: List[dict], variables: Dict[str, Any]) -> List[dict]:
        missing = [name for name in self.variables if name not in variables]
        if missing:
            raise ValueError(f"Missing variables: {', '.join(missing)}")
        for step in self.steps:
            documents = step.apply(documents, variables)
        return documents

    @classmethod
    def from_wire(cls, stages: List[dict], variables: Dict[str, dict] = None) -> "Pipeline":
        steps: List[Step] = []
        for stage in stages:
            if not isinstance(stage, dict) or len(stage) != 1:
                raise ValueError(f"Invalid pipeline stage: {stage}")
            (op, body), = stage.items()
            if op == "$addFields":
                for name, value in body.items():
                    if value != f"{VARIABLE_PREFIX}{name}":
                        raise ValueError(f"Unsupported $addFields value: {value}")
                    steps.append(BindVariable(name))
            elif op == "$project":
                include = tuple(k for k, v in body.items() if v == 1)
                computed = tuple(
                    (k, ZipSubtract.from_wire(v))
                    for k, v in body.items() if isinstance(v, dict)
                )
                steps.append(Project(include=include, computed=computed))
            else:
                raise ValueError(f"Unsupported pipeline stage: {op}")
        return cls(steps=tuple(steps), variables=dict(variables or {}))


DIFFERENCE_PIPELINE = Pipeline(
    steps=(
        BindVariable("query_embedding"),
        Project(
            include=("_id",),
            computed=(("difference", ZipSubtract("embedding", "query_embedding")),),
        ),
    ),
    variables={
        "query_embedding": {
            "description": "The query embedding",
            "type": "array",
            "items": {"type": "number"},
        }
    },
)
